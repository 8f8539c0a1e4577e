"""
Unit tests for the extended Kalman filter engine.

Tests cover:
    - Zero-duration prediction
    - Quaternion norm and constant-rate rotation under prediction
    - Corrections with dominating and vanishing measurement noise
    - Recoverable conditions (singular S, unusable observation, partition
      mismatch, gate rejection, non-finite derivative)
    - Fatal configuration errors
"""

import unittest

import numpy as np
from numpy.testing import assert_allclose, assert_array_equal

from navfilter.coords.rotations import axis_angle_to_quat, quat_to_axis_angle
from navfilter.estimators.base import (
    NUMERICAL,
    PARTITION_MISMATCH,
    REJECTED,
    STALE_INPUT,
    ConfigurationError,
)
from navfilter.estimators.extended_kalman_filter import ExtendedKalmanFilter
from navfilter.estimators.state import Partition, State
from navfilter.estimators.status import SystemStatus
from navfilter.models.measurement_model import MeasurementModel
from navfilter.models.quaternion_system_model import GenericQuaternionSystemModel
from navfilter.models.system_model import SystemInput


class PositionZModel(MeasurementModel):
    """Direct observation of the vertical position."""

    dimension = 1

    def __init__(self, stddev=1.0):
        super().__init__()
        self.parameters.add('stddev', stddev)

    def get_status_flags(self):
        return SystemStatus.STATE_Z_POSITION

    def get_expected_value(self, state):
        return state.get_position()[2:3].copy()

    def get_measurement_jacobian(self, state):
        C = np.zeros((1, state.dimension))
        C[0, state.indices(Partition.POSITION_Z)] = 1.0
        return C


class PositionXZModel(MeasurementModel):
    """Observation of the x and z position."""

    dimension = 2

    def __init__(self, stddev=1.0):
        super().__init__()
        self.parameters.add('stddev', stddev)

    def get_status_flags(self):
        return SystemStatus.STATE_XY_POSITION | SystemStatus.STATE_Z_POSITION

    def get_expected_value(self, state):
        p = state.get_position()
        return np.array([p[0], p[2]])

    def get_measurement_jacobian(self, state):
        C = np.zeros((2, state.dimension))
        C[0, state.get_position_index()] = 1.0
        C[1, state.get_position_index() + 2] = 1.0
        return C


class InputNoiseModel(GenericQuaternionSystemModel):
    """Declares input noise without an input Jacobian."""

    input_noise = True


def make_filter(prior_z=100.0):
    state = State(prior_variance={
        Partition.POSITION_Z: prior_z,
        Partition.POSITION_XY: prior_z,
        Partition.VELOCITY_Z: 1.0,
        Partition.VELOCITY_XY: 1.0,
    })
    state.enable(Partition.POSITION_Z)
    ekf = ExtendedKalmanFilter(state)
    return state, ekf


class TestPredict(unittest.TestCase):

    def setUp(self) -> None:
        self.model = GenericQuaternionSystemModel()
        self.state, self.ekf = make_filter()
        self.ekf.init(self.model)

    def test_zero_dt_is_noop(self) -> None:
        self.state.get_orientation()[:] = axis_angle_to_quat([1.0, 2.0, 3.0], 0.4)
        self.state.get_velocity()[2] = 1.5
        x_before, P_before = self.ekf.get_state()

        self.ekf.predict(self.model, SystemInput(rate=[0.1, 0.2, 0.3]), 0.0)

        assert_array_equal(self.ekf.x, x_before)
        assert_array_equal(self.ekf.P, P_before)

    def test_negative_dt_raises(self) -> None:
        with self.assertRaises(ValueError):
            self.ekf.predict(self.model, None, -0.1)

    def test_quaternion_norm_preserved(self) -> None:
        self.state.get_orientation()[:] = axis_angle_to_quat([0.3, -1.0, 0.5], 2.0)
        for _ in range(2000):
            self.ekf.predict(self.model, None, 0.01)
            self.assertAlmostEqual(np.linalg.norm(self.state.get_orientation()), 1.0, delta=1e-9)

    def test_constant_rate_rotation(self) -> None:
        rate = np.array([0.1, 0.2, -0.3])
        system_input = SystemInput(rate=rate)
        for _ in range(1000):
            self.ekf.predict(self.model, system_input, 0.001)

        axis, angle = quat_to_axis_angle(self.state.get_orientation())
        assert_allclose(angle, np.linalg.norm(rate) * 1.0, atol=1e-6)
        assert_allclose(axis, rate / np.linalg.norm(rate), atol=1e-6)

    def test_inactive_partition_frozen(self) -> None:
        # Velocity active, horizontal position not
        self.state.enable(Partition.VELOCITY_XY)
        self.state.get_velocity()[0] = 1.0
        P_xy = self.state.P[4:6, 4:6].copy()

        self.ekf.predict(self.model, None, 0.1)

        assert_array_equal(self.state.get_position()[:2], [0.0, 0.0])
        assert_array_equal(self.state.P[4:6, 4:6], P_xy)
        assert_array_equal(self.state.P[4:6, 6:], 0.0)

    def test_position_integrates_velocity(self) -> None:
        self.state.get_velocity()[2] = 2.0
        self.ekf.predict(self.model, SystemInput(acceleration=[0.0, 0.0, 9.8065]), 0.5)
        assert_allclose(self.state.get_position()[2], 1.0)
        assert_allclose(self.state.get_velocity()[2], 2.0)

    def test_covariance_grows_and_stays_symmetric(self) -> None:
        P_before = self.state.P.copy()
        self.ekf.predict(self.model, SystemInput(rate=[0.1, 0.0, 0.0]), 0.1)
        assert_allclose(self.state.P, self.state.P.T)
        self.assertGreater(self.state.P[6, 6], P_before[6, 6])

    def test_non_finite_input_skips_step(self) -> None:
        x_before, P_before = self.ekf.get_state()
        with self.assertWarns(RuntimeWarning):
            self.ekf.predict(self.model, SystemInput(rate=[np.nan, 0.0, 0.0]), 0.1)
        assert_array_equal(self.ekf.x, x_before)
        assert_array_equal(self.ekf.P, P_before)
        self.assertEqual(self.ekf.diagnostics[-1].kind, NUMERICAL)


class TestCorrect(unittest.TestCase):

    def setUp(self) -> None:
        self.state, self.ekf = make_filter(prior_z=100.0)

    def test_large_noise_leaves_state_unchanged(self) -> None:
        x_before, P_before = self.ekf.get_state()
        result = self.ekf.correct(PositionZModel(), np.array([2.0]), R=np.array([[1e12]]))
        self.assertTrue(result.accepted)
        assert_allclose(self.ekf.x, x_before, atol=1e-8)
        assert_allclose(self.ekf.P, P_before, atol=1e-6)

    def test_zero_noise_reaches_observation(self) -> None:
        result = self.ekf.correct(PositionZModel(), np.array([2.0]), R=np.zeros((1, 1)))
        self.assertTrue(result.accepted)
        self.assertFalse(result.partial)
        assert_allclose(self.state.get_position()[2], 2.0, atol=1e-12)
        assert_allclose(self.state.P[6, 6], 0.0, atol=1e-12)

    def test_height_scenario(self) -> None:
        result = self.ekf.correct(PositionZModel(stddev=0.1), np.array([2.0]))
        self.assertTrue(result)
        assert_allclose(result.innovation, [2.0])
        assert_allclose(result.innovation_covariance, [[100.01]])
        assert_allclose(self.state.get_position()[2], 2.0, atol=1e-3)
        self.assertLess(self.state.P[6, 6], 0.011)

    def test_singular_innovation_covariance_skipped(self) -> None:
        state, ekf = make_filter(prior_z=0.0)
        x_before, P_before = ekf.get_state()
        with self.assertWarns(RuntimeWarning):
            result = ekf.correct(PositionZModel(), np.array([2.0]), R=np.zeros((1, 1)))
        self.assertFalse(result.accepted)
        self.assertEqual(result.reason, NUMERICAL)
        assert_array_equal(ekf.x, x_before)
        assert_array_equal(ekf.P, P_before)
        self.assertEqual(ekf.diagnostics[-1].kind, NUMERICAL)

    def test_unusable_observation_skipped(self) -> None:
        x_before, P_before = self.ekf.get_state()
        result = self.ekf.correct(PositionZModel(), np.array([np.nan]), source='height')
        self.assertFalse(result.accepted)
        self.assertEqual(result.reason, STALE_INPUT)
        assert_array_equal(self.ekf.x, x_before)
        assert_array_equal(self.ekf.P, P_before)
        self.assertEqual(self.ekf.diagnostics[-1].source, 'height')

    def test_partial_correction(self) -> None:
        result = self.ekf.correct(PositionXZModel(stddev=0.1), np.array([5.0, 2.0]))
        self.assertTrue(result.accepted)
        self.assertTrue(result.partial)
        self.assertEqual(result.reason, PARTITION_MISMATCH)
        self.assertEqual(self.state.get_position()[0], 0.0)
        self.assertGreater(self.state.get_position()[2], 1.9)

    def test_no_active_dimension(self) -> None:
        state = State()
        ekf = ExtendedKalmanFilter(state)
        result = ekf.correct(PositionZModel(), np.array([2.0]))
        self.assertFalse(result.accepted)
        self.assertEqual(result.reason, PARTITION_MISMATCH)

    def test_gate_rejects_outlier(self) -> None:
        state, ekf = make_filter(prior_z=1.0)
        x_before = ekf.x.copy()
        result = ekf.correct(PositionZModel(stddev=0.1), np.array([50.0]), gate_confidence=0.99)
        self.assertFalse(result.accepted)
        self.assertEqual(result.reason, REJECTED)
        assert_array_equal(ekf.x, x_before)

        result = ekf.correct(PositionZModel(stddev=0.1), np.array([0.5]), gate_confidence=0.99)
        self.assertTrue(result.accepted)

    def test_shape_mismatch_raises(self) -> None:
        with self.assertRaises(ValueError):
            self.ekf.correct(PositionZModel(), np.array([1.0, 2.0]))
        with self.assertRaises(ValueError):
            self.ekf.correct(PositionZModel(), np.array([1.0]), R=np.eye(2))

    def test_diagnostics_bounded(self) -> None:
        ekf = ExtendedKalmanFilter(self.state, max_diagnostics=3)
        for _ in range(10):
            ekf.correct(PositionZModel(), np.array([np.nan]))
        self.assertEqual(len(ekf.diagnostics), 3)


class TestConfiguration(unittest.TestCase):

    def test_input_noise_without_jacobian_is_fatal(self) -> None:
        state = State()
        ekf = ExtendedKalmanFilter(state)
        with self.assertRaises(ConfigurationError):
            ekf.init(InputNoiseModel())
        with self.assertRaises(ConfigurationError):
            ekf.predict(InputNoiseModel(), None, 0.1)


if __name__ == "__main__":
    unittest.main()
