"""Unit tests for the GPS measurement and its reference handling."""

import unittest

import numpy as np
from numpy.testing import assert_allclose

from navfilter.estimators.base import STALE_INPUT
from navfilter.estimators.status import SystemStatus
from navfilter.fusion import GPSUpdate, PoseEstimation
from navfilter.measurements import GPS
from navfilter.models import GenericQuaternionSystemModel

LATITUDE = np.deg2rad(49.86)
LONGITUDE = np.deg2rad(8.68)
# Approximate radians of latitude per meter near the reference
METER = 1.0 / 6.37e6


def make_estimator(**gps_parameters):
    system_model = GenericQuaternionSystemModel(
        position_prior_stddev=10.0,
        velocity_prior_stddev=1.0,
    )
    estimator = PoseEstimation(system_model=system_model)
    gps = estimator.add_measurement(GPS(**gps_parameters))
    estimator.init()
    return estimator, gps


class TestGPSReference(unittest.TestCase):

    def test_no_reference_gives_unusable_observation(self) -> None:
        estimator, gps = make_estimator(auto_reference=False)
        assert_allclose(gps.get_vector(GPSUpdate(LATITUDE, LONGITUDE)), np.full(4, np.nan))

        x_before = estimator.get_state()
        result = estimator.correct('gps', GPSUpdate(LATITUDE, LONGITUDE))
        self.assertFalse(result.accepted)
        self.assertEqual(result.reason, STALE_INPUT)
        assert_allclose(estimator.get_state(), x_before)

    def test_configured_reference_used_without_auto(self) -> None:
        estimator, gps = make_estimator(auto_reference=False)
        estimator.global_reference.set_position(LATITUDE, LONGITUDE)
        result = estimator.correct('gps', GPSUpdate(LATITUDE + 50.0 * METER, LONGITUDE))
        self.assertTrue(result.accepted)
        self.assertGreater(estimator.get_position()[1], 1.0)

    def test_first_fix_defines_origin(self) -> None:
        estimator, gps = make_estimator()
        result = estimator.correct('gps', GPSUpdate(LATITUDE, LONGITUDE))
        self.assertTrue(result.accepted)
        self.assertTrue(estimator.global_reference.has_position())
        self.assertAlmostEqual(estimator.global_reference.latitude, LATITUDE)
        self.assertAlmostEqual(estimator.global_reference.longitude, LONGITUDE)
        assert_allclose(result.innovation[:2], [0.0, 0.0], atol=1e-6)

    def test_origin_keeps_current_position(self) -> None:
        estimator, gps = make_estimator()
        estimator.state.get_position()[:2] = [10.0, 20.0]
        estimator.correct('gps', GPSUpdate(LATITUDE, LONGITUDE))
        x, y = estimator.global_reference.from_wgs84(LATITUDE, LONGITUDE)
        assert_allclose([x, y], [10.0, 20.0], atol=1e-2)

    def test_fix_converted_to_nav_frame(self) -> None:
        estimator, gps = make_estimator()
        estimator.correct('gps', GPSUpdate(LATITUDE, LONGITUDE))
        y = gps.get_vector(GPSUpdate(LATITUDE + 100.0 * METER, LONGITUDE, velocity_north=2.0))
        assert_allclose(y[0], 0.0, atol=0.5)
        assert_allclose(y[1], 100.0, atol=1.0)
        assert_allclose(y[2:], [0.0, 2.0], atol=1e-12)

    def test_timeout_rederives_origin(self) -> None:
        estimator, gps = make_estimator(timeout=1.0)
        estimator.correct('gps', GPSUpdate(LATITUDE, LONGITUDE))
        gps.increase_timer(2.0)
        self.assertTrue(gps.timed_out())

        position = estimator.get_position()
        fix = (LATITUDE + 500.0 * METER, LONGITUDE)
        result = estimator.correct('gps', GPSUpdate(*fix))
        self.assertTrue(result.accepted)
        x, y = estimator.global_reference.from_wgs84(*fix)
        assert_allclose([x, y], position[:2], atol=1e-2)
        self.assertEqual(gps.timer, 0.0)

    def test_accepted_fix_activates_horizontal_partitions(self) -> None:
        estimator, gps = make_estimator()
        estimator.correct('gps', GPSUpdate(LATITUDE, LONGITUDE, velocity_east=1.0))
        self.assertTrue(estimator.in_system_status(
            SystemStatus.STATE_XY_POSITION | SystemStatus.STATE_XY_VELOCITY))
        self.assertGreater(estimator.get_velocity()[0], 0.1)

    def test_reset_forgets_reference(self) -> None:
        estimator, gps = make_estimator()
        estimator.correct('gps', GPSUpdate(LATITUDE, LONGITUDE))
        estimator.reset()
        self.assertIsNone(gps.reference)
        self.assertFalse(estimator.global_reference.has_position())


if __name__ == "__main__":
    unittest.main()
