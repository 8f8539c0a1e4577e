"""Unit tests for navfilter.utils.parameters."""

import unittest

from navfilter.utils import ParameterList


class TestParameterList(unittest.TestCase):
    """Test suite for ParameterList."""

    def test_defaults_from_keywords(self) -> None:
        params = ParameterList(stddev=1.0, enabled=True)
        self.assertEqual(params["stddev"], 1.0)
        self.assertTrue(params["enabled"])
        self.assertEqual(len(params), 2)
        self.assertEqual(list(params), ["stddev", "enabled"])

    def test_set_coerces_to_default_type(self) -> None:
        params = ParameterList(stddev=1.0, enabled=True)
        params["stddev"] = 2
        params["enabled"] = 0
        self.assertIsInstance(params["stddev"], float)
        self.assertEqual(params["stddev"], 2.0)
        self.assertIs(params["enabled"], False)

    def test_unknown_name_raises(self) -> None:
        params = ParameterList(stddev=1.0)
        with self.assertRaises(KeyError):
            params["missing"] = 3.0
        with self.assertRaises(KeyError):
            params.update({"missing": 3.0})

    def test_readd_keeps_current_value(self) -> None:
        params = ParameterList(stddev=1.0)
        params["stddev"] = 5.0
        params.add("stddev", 1.0)
        self.assertEqual(params["stddev"], 5.0)

    def test_restore_defaults(self) -> None:
        params = ParameterList(stddev=1.0)
        params["stddev"] = 5.0
        self.assertEqual(params.default("stddev"), 1.0)
        params.restore_defaults()
        self.assertEqual(params["stddev"], 1.0)

    def test_get_with_fallback(self) -> None:
        params = ParameterList(stddev=1.0)
        self.assertIsNone(params.get("missing"))
        self.assertEqual(params.get("missing", 4.0), 4.0)
        self.assertIn("stddev", params)
        self.assertNotIn("missing", params)

    def test_invalid_name(self) -> None:
        params = ParameterList()
        with self.assertRaises(ValueError):
            params.add("", 1.0)

    def test_to_dict_is_a_copy(self) -> None:
        params = ParameterList(stddev=1.0)
        values = params.to_dict()
        values["stddev"] = 3.0
        self.assertEqual(params["stddev"], 1.0)


if __name__ == "__main__":
    unittest.main()
