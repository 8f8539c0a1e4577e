"""
Unit tests for the quaternion process model.

Analytic state Jacobians are checked against central differences of the
derivative, which is critical for filter consistency.

Run with: python -m pytest tests/navfilter/models/test_quaternion_system_model.py -v
"""

from typing import Callable

import numpy as np
import pytest
from numpy.testing import assert_allclose

from navfilter.coords.rotations import axis_angle_to_quat
from navfilter.estimators.state import Partition, State
from navfilter.estimators.status import SystemStatus
from navfilter.models.quaternion_system_model import GenericQuaternionSystemModel
from navfilter.models.system_model import AccelerometerModel, GyroModel, SystemInput
from navfilter.utils import ParameterList

ALL_FLAGS = (
    SystemStatus.STATE_XY_POSITION
    | SystemStatus.STATE_Z_POSITION
    | SystemStatus.STATE_XY_VELOCITY
    | SystemStatus.STATE_Z_VELOCITY
    | SystemStatus.STATE_RATE_XY
    | SystemStatus.STATE_RATE_Z
)


def numerical_jacobian(
    f: Callable,
    x: np.ndarray,
    epsilon: float = 1e-6
) -> np.ndarray:
    """Central-difference Jacobian of f at x, shape (len(f(x)), len(x))."""
    x = np.asarray(x, dtype=float)
    y0 = f(x)
    J = np.zeros((len(y0), len(x)))
    for i in range(len(x)):
        x_plus = x.copy()
        x_minus = x.copy()
        x_plus[i] += epsilon
        x_minus[i] -= epsilon
        J[:, i] = (f(x_plus) - f(x_minus)) / (2 * epsilon)
    return J


class EstimatorStub:
    """Minimal estimator exposing what the process model uses at init."""

    def __init__(self, gravity_magnitude=9.81):
        self.parameters = ParameterList(gravity_magnitude=gravity_magnitude)
        self.submodels = {}

    def add_submodel(self, name, model):
        self.submodels[name] = model
        return model


def make_model(with_rate=False, filtered=True):
    gyro = GyroModel(filtered=filtered, bias_x=0.01, bias_y=-0.02, bias_z=0.03)
    accelerometer = AccelerometerModel(filtered=filtered, bias_x=0.1, bias_y=0.05, bias_z=-0.2)
    model = GenericQuaternionSystemModel(gyro=gyro, accelerometer=accelerometer)
    state = State(with_rate=with_rate)
    model.init(EstimatorStub(), state)
    gyro.init(None, state)
    accelerometer.init(None, state)
    state.set_system_status(ALL_FLAGS)

    state.get_orientation()[:] = axis_angle_to_quat([0.2, -0.5, 1.0], 0.7)
    state.get_position()[:] = [1.0, -2.0, 3.0]
    state.get_velocity()[:] = [0.5, -0.3, 0.2]
    if with_rate:
        state.get_rate()[:] = [0.05, -0.1, 0.2]
    return model, state


def derivative_of(model, state, system_input):
    def f(x):
        saved = state.x.copy()
        state.x[:] = x
        x_dot, _ = model.get_derivative(state, system_input)
        state.x[:] = saved
        return x_dot
    return f


class TestStateJacobian:
    """Analytic state Jacobian against numerical differentiation."""

    system_input = SystemInput(rate=[0.1, -0.2, 0.3], acceleration=[0.4, -0.6, 9.7])

    @pytest.mark.parametrize("with_rate", [False, True])
    def test_jacobian_matches_numerical(self, with_rate):
        model, state = make_model(with_rate=with_rate)
        x_dot, inputs = model.get_derivative(state, self.system_input)
        A = model.get_state_jacobian(state, inputs)

        A_num = numerical_jacobian(derivative_of(model, state, self.system_input), state.x)
        assert_allclose(A, A_num, atol=1e-6)

    def test_jacobian_without_bias_blocks(self):
        model, state = make_model(filtered=False)
        _, inputs = model.get_derivative(state, self.system_input)
        A = model.get_state_jacobian(state, inputs)
        A_num = numerical_jacobian(derivative_of(model, state, self.system_input), state.x)
        assert state.dimension == 10
        assert_allclose(A, A_num, atol=1e-6)

    def test_inactive_partitions_are_zero(self):
        model, state = make_model(filtered=False)
        state.set_system_status(SystemStatus.NONE)
        x_dot, inputs = model.get_derivative(state, self.system_input)
        A = model.get_state_jacobian(state, inputs)

        assert np.all(x_dot[4:] == 0.0)
        assert np.all(A[4:, :] == 0.0)
        assert np.all(A[:, 4:] == 0.0)


class TestDerivative:

    def test_rate_from_input_minus_bias(self):
        gyro = GyroModel(bias_z=0.1)
        model = GenericQuaternionSystemModel(gyro=gyro, accelerometer=AccelerometerModel())
        state = State()
        x_dot, inputs = model.get_derivative(state, SystemInput(rate=[0.0, 0.0, 0.1]))
        assert_allclose(inputs.rate, np.zeros(3))
        assert_allclose(inputs.biases['gyro'], [0.0, 0.0, 0.1])
        assert_allclose(x_dot[:4], np.zeros(4))

    def test_rate_from_state_when_estimated(self):
        model, state = make_model(with_rate=True)
        _, inputs = model.get_derivative(state, SystemInput(rate=[9.0, 9.0, 9.0]))
        assert_allclose(inputs.rate, state.get_rate())

    def test_gravity_only_on_vertical_axis(self):
        model = GenericQuaternionSystemModel(gravity=-9.8)
        state = State()
        state.set_system_status(SystemStatus.STATE_Z_VELOCITY | SystemStatus.STATE_XY_VELOCITY)
        x_dot, _ = model.get_derivative(state, SystemInput(acceleration=[1.0, 2.0, 0.0]))
        assert_allclose(x_dot[state.indices('velocity')], [1.0, 2.0, -9.8])

    def test_vertical_velocity_inactive_gets_no_gravity(self):
        model = GenericQuaternionSystemModel()
        state = State()
        state.set_system_status(SystemStatus.STATE_XY_VELOCITY)
        x_dot, _ = model.get_derivative(state, SystemInput())
        assert x_dot[state.get_velocity_index() + 2] == 0.0

    def test_zero_input_defaults(self):
        model = GenericQuaternionSystemModel()
        x_dot, inputs = model.get_derivative(State(), None)
        assert_allclose(inputs.rate, np.zeros(3))
        assert_allclose(x_dot[:4], np.zeros(4))


class TestSystemNoise:

    def test_fixed_terms(self):
        model = GenericQuaternionSystemModel(
            angular_acceleration_stddev=2.0,
            acceleration_stddev=0.5,
            velocity_stddev=0.1,
        )
        state = State(with_rate=True)
        Q = np.zeros((state.dimension, state.dimension))
        model.get_system_noise(Q, state, init=True)

        assert_allclose(np.diag(Q)[4:7], 4.0)
        assert_allclose(np.diag(Q)[7:10], 0.01)
        assert_allclose(np.diag(Q)[10:13], 0.25)
        assert np.count_nonzero(Q - np.diag(np.diag(Q))) == 0

    def test_quaternion_noise(self):
        model = GenericQuaternionSystemModel(rate_stddev=0.2)
        state = State()
        q = axis_angle_to_quat([1.0, 2.0, -1.0], 0.9)
        state.get_orientation()[:] = q
        Q = np.zeros((state.dimension, state.dimension))
        model.get_system_noise(Q, state)

        squares = q * q
        expected = 0.25 * 0.04 * (squares.sum() - squares)
        assert_allclose(np.diag(Q)[:4], expected)

    def test_bias_drift(self):
        model, state = make_model()
        Q = np.zeros((state.dimension, state.dimension))
        model.get_system_noise(Q, state, init=True)
        gyro_index = state.indices(model.gyro.block_name)
        assert_allclose(np.diag(Q)[gyro_index], model.gyro.parameters['drift'] ** 2)


class TestStatusFlags:

    def test_implications_without_rate(self):
        model = GenericQuaternionSystemModel()
        state = State()
        state.set_measurement_status(SystemStatus.STATE_XY_POSITION)
        flags = model.get_status_flags(state)
        for expected in (
            SystemStatus.STATE_XY_VELOCITY,
            SystemStatus.STATE_ROLLPITCH,
            SystemStatus.STATE_RATE_XY,
            SystemStatus.STATE_RATE_Z,
        ):
            assert flags & expected
        assert not flags & SystemStatus.STATE_Z_POSITION

    def test_rate_flags_not_forced_with_rate_partition(self):
        model = GenericQuaternionSystemModel()
        state = State(with_rate=True)
        state.set_measurement_status(SystemStatus.STATE_Z_POSITION)
        flags = model.get_status_flags(state)
        assert flags & SystemStatus.STATE_Z_VELOCITY
        assert not flags & SystemStatus.STATE_RATE_XY
        assert not flags & SystemStatus.STATE_RATE_Z


class TestInit:

    def test_init_registers_submodels(self):
        model = GenericQuaternionSystemModel()
        estimator = EstimatorStub(gravity_magnitude=9.81)
        assert model.init(estimator, State())
        assert set(estimator.submodels) == {'gyro', 'accelerometer'}
        assert model.parameters['gravity'] == -9.81
        assert model.parameters['rate_stddev'] == model.gyro.parameters['stddev']

    def test_prior(self):
        model = GenericQuaternionSystemModel(position_prior_stddev=10.0)
        state = State()
        model.get_prior(state)
        assert state.get_prior_variance(Partition.POSITION_Z) == 100.0
        assert state.get_prior_variance(Partition.ORIENTATION) == 0.25

    def test_input_jacobian_not_implemented(self):
        model = GenericQuaternionSystemModel()
        with pytest.raises(NotImplementedError):
            model.get_input_jacobian(State(), None)
