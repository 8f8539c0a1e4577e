"""Unit tests for chi-square innovation gating."""

import unittest

import numpy as np

from navfilter.estimators.gating import (
    chi_square_bounds,
    chi_square_gate,
    chi_square_threshold,
    mahalanobis_distance_squared,
)


class TestMahalanobisDistance(unittest.TestCase):

    def test_identity_covariance(self) -> None:
        d2 = mahalanobis_distance_squared(np.array([3.0, 4.0]), np.eye(2))
        self.assertAlmostEqual(d2, 25.0)

    def test_scaled_covariance(self) -> None:
        d2 = mahalanobis_distance_squared(np.array([2.0]), np.array([[4.0]]))
        self.assertAlmostEqual(d2, 1.0)

    def test_dimension_mismatch(self) -> None:
        with self.assertRaises(ValueError):
            mahalanobis_distance_squared(np.array([1.0, 2.0]), np.eye(3))

    def test_singular_covariance(self) -> None:
        with self.assertRaises(ValueError):
            mahalanobis_distance_squared(np.array([1.0, 2.0]), np.zeros((2, 2)))


class TestChiSquareGate(unittest.TestCase):

    def test_threshold_values(self) -> None:
        self.assertAlmostEqual(chi_square_threshold(1, 0.95), 3.841, places=3)
        self.assertAlmostEqual(chi_square_threshold(2, 0.95), 5.991, places=3)

    def test_invalid_arguments(self) -> None:
        with self.assertRaises(ValueError):
            chi_square_threshold(0)
        with self.assertRaises(ValueError):
            chi_square_threshold(1, 1.5)

    def test_gate_accepts_and_rejects(self) -> None:
        self.assertTrue(chi_square_gate(np.array([0.1, 0.2]), np.eye(2)))
        self.assertFalse(chi_square_gate(np.array([5.0, 5.0]), np.eye(2)))

    def test_bounds_ordered(self) -> None:
        lower, upper = chi_square_bounds(3, 0.95)
        self.assertLess(lower, 3.0)
        self.assertGreater(upper, 3.0)


if __name__ == "__main__":
    unittest.main()
