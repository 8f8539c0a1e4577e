"""
Quaternion-based rigid body kinematics (reference process model).

Continuous-time model:

    q_dot = 0.5 * Omega(w) * q                         (orientation)
    v_dot = R(q) * a + [0, 0, g]^T                      (velocity, nav frame)
    p_dot = v                                           (position)
    w_dot = 0                                           (rate, if estimated)
    b_dot = 0                                           (bias blocks, random walk)

    Where:
        w: body angular rate, from the rate partition if it is active,
           otherwise the external gyro input minus the gyro bias
        a: body specific force, the accelerometer input minus its bias
        g: signed gravity on the vertical axis (negative for z up)

Only active partitions receive derivatives, Jacobian entries and noise. The
vertical velocity row (and its gravity term) is only present while the
vertical velocity partition is active.

Status implications (get_status_flags):
    position -> velocity on the same axes
    horizontal velocity -> roll/pitch
    roll/pitch -> horizontal rate
    no rate partition -> both rate flags, since the rate is always supplied
"""

from typing import TYPE_CHECKING, Optional, Tuple

import numpy as np

from navfilter.coords.rotations import (
    omega_matrix,
    quat_rotate,
    quat_rotate_jacobian,
    quat_to_rotation_matrix,
    xi_matrix,
)
from navfilter.estimators.state import Partition, State
from navfilter.estimators.status import SystemStatus
from navfilter.models.system_model import (
    AccelerometerModel,
    BiasModel,
    GyroModel,
    KinematicInputs,
    SystemInput,
    SystemModel,
)

if TYPE_CHECKING:
    from navfilter.fusion.pose_estimation import PoseEstimation


class GenericQuaternionSystemModel(SystemModel):
    """
    Quaternion kinematics with optional rate, position and velocity partitions.

    Parameters:
        gravity: Signed vertical gravity (m/s^2). Overwritten from the
            estimator's 'gravity_magnitude' at init (z axis up).
        angular_acceleration_stddev: Drives the rate partition (rad/s^2).
        rate_stddev: Gyro noise propagated into the quaternion (rad/s).
            Taken from the gyro sub-model at init.
        acceleration_stddev: Drives the velocity partition (m/s^2).
            Taken from the accelerometer sub-model at init.
        velocity_stddev: Random-walk leak on position (m/s).
        orientation_prior_stddev, rate_prior_stddev, position_prior_stddev,
        velocity_prior_stddev: Seeded when a partition (re)activates.

    Args:
        gyro: Gyro bias sub-model (created on init if None).
        accelerometer: Accelerometer bias sub-model (created on init if None).
        **parameters: Parameter overrides.

    Example:
        >>> model = GenericQuaternionSystemModel(angular_acceleration_stddev=1.0)
        >>> model.parameters['velocity_stddev']
        0.0
    """

    def __init__(
        self,
        gyro: Optional[BiasModel] = None,
        accelerometer: Optional[BiasModel] = None,
        **parameters,
    ):
        super().__init__()
        self.gyro = gyro
        self.accelerometer = accelerometer
        self.parameters.add('gravity', -9.8065)
        self.parameters.add('angular_acceleration_stddev', np.deg2rad(360.0))
        self.parameters.add('rate_stddev', 0.0)
        self.parameters.add('acceleration_stddev', 0.0)
        self.parameters.add('velocity_stddev', 0.0)
        self.parameters.add('orientation_prior_stddev', 0.5)
        self.parameters.add('rate_prior_stddev', 0.0)
        self.parameters.add('position_prior_stddev', 0.0)
        self.parameters.add('velocity_prior_stddev', 0.0)
        self.parameters.update(parameters)

    def init(self, estimator: 'PoseEstimation', state: State) -> bool:
        if self.gyro is None:
            self.gyro = GyroModel()
        if self.accelerometer is None:
            self.accelerometer = AccelerometerModel()

        estimator.add_submodel(self.gyro.name, self.gyro)
        estimator.add_submodel(self.accelerometer.name, self.accelerometer)

        self.parameters['gravity'] = -abs(estimator.parameters['gravity_magnitude'])
        self.parameters['rate_stddev'] = self.gyro.parameters['stddev']
        self.parameters['acceleration_stddev'] = self.accelerometer.parameters['stddev']
        return True

    def get_prior(self, state: State) -> None:
        state.set_prior_variance(
            Partition.ORIENTATION, self.parameters['orientation_prior_stddev'] ** 2)
        state.set_prior_variance(
            Partition.RATE, self.parameters['rate_prior_stddev'] ** 2)
        for partition in (Partition.POSITION_XY, Partition.POSITION_Z):
            state.set_prior_variance(
                partition, self.parameters['position_prior_stddev'] ** 2)
        for partition in (Partition.VELOCITY_XY, Partition.VELOCITY_Z):
            state.set_prior_variance(
                partition, self.parameters['velocity_prior_stddev'] ** 2)

    # ------------------------------------------------------------------

    def _bias(self, sub_model: Optional[BiasModel], state: State) -> np.ndarray:
        if sub_model is None:
            return np.zeros(3)
        return sub_model.get_bias(state)

    def resolve_inputs(
        self, state: State, system_input: Optional[SystemInput]
    ) -> KinematicInputs:
        """Rate and specific force for this cycle, bias corrections included."""
        if system_input is None:
            system_input = SystemInput()

        gyro_bias = self._bias(self.gyro, state)
        accel_bias = self._bias(self.accelerometer, state)
        biases = {}
        if self.gyro is not None:
            biases[self.gyro.name] = gyro_bias
        if self.accelerometer is not None:
            biases[self.accelerometer.name] = accel_bias

        if state.is_active(Partition.RATE):
            rate = state.get_rate().copy()
        else:
            rate = system_input.rate - gyro_bias
        acceleration = system_input.acceleration - accel_bias

        return KinematicInputs(rate=rate, acceleration=acceleration, biases=biases)

    def get_derivative(
        self, state: State, system_input: Optional[SystemInput]
    ) -> Tuple[np.ndarray, KinematicInputs]:
        inputs = self.resolve_inputs(state, system_input)
        x_dot = np.zeros(state.dimension)

        q = state.get_orientation()
        if q is not None and state.is_active(Partition.ORIENTATION):
            x_dot[state.indices(Partition.ORIENTATION)] = 0.5 * omega_matrix(inputs.rate) @ q

        v = state.get_velocity()
        if v is not None and q is not None:
            f = quat_rotate(q, inputs.acceleration)
            if state.is_active(Partition.VELOCITY_XY):
                x_dot[state.indices(Partition.VELOCITY_XY)] = f[:2]
            if state.is_active(Partition.VELOCITY_Z):
                x_dot[state.indices(Partition.VELOCITY_Z)] = f[2] + self.parameters['gravity']

        if v is not None:
            if state.is_active(Partition.POSITION_XY):
                x_dot[state.indices(Partition.POSITION_XY)] = v[:2]
            if state.is_active(Partition.POSITION_Z):
                x_dot[state.indices(Partition.POSITION_Z)] = v[2]

        return x_dot, inputs

    def get_state_jacobian(self, state: State, inputs: KinematicInputs) -> np.ndarray:
        n = state.dimension
        A = np.zeros((n, n))
        q = state.get_orientation()

        if q is not None and state.is_active(Partition.ORIENTATION):
            iq = state.indices(Partition.ORIENTATION)
            A[np.ix_(iq, iq)] = 0.5 * omega_matrix(inputs.rate)

            if state.is_active(Partition.RATE):
                A[np.ix_(iq, state.indices(Partition.RATE))] = 0.5 * xi_matrix(q)
            elif self.gyro is not None and self.gyro.is_estimated(state):
                A[np.ix_(iq, state.indices(self.gyro.block_name))] = -0.5 * xi_matrix(q)

            if state.get_velocity() is not None:
                J = quat_rotate_jacobian(q, inputs.acceleration)
                estimate_accel_bias = (
                    self.accelerometer is not None
                    and self.accelerometer.is_estimated(state)
                )
                R = quat_to_rotation_matrix(q) if estimate_accel_bias else None
                for partition, rows in (
                    (Partition.VELOCITY_XY, slice(0, 2)),
                    (Partition.VELOCITY_Z, slice(2, 3)),
                ):
                    if not state.is_active(partition):
                        continue
                    iv = state.indices(partition)
                    A[np.ix_(iv, iq)] = J[rows]
                    if estimate_accel_bias:
                        ib = state.indices(self.accelerometer.block_name)
                        A[np.ix_(iv, ib)] = -R[rows]

        if state.get_velocity() is not None:
            for position, velocity in (
                (Partition.POSITION_XY, Partition.VELOCITY_XY),
                (Partition.POSITION_Z, Partition.VELOCITY_Z),
            ):
                if state.is_active(position):
                    A[state.indices(position), state.indices(velocity)] = 1.0

        return A

    def get_system_noise(self, Q: np.ndarray, state: State, init: bool = False) -> None:
        if init:
            if state.has(Partition.RATE):
                idx = state.indices(Partition.RATE)
                Q[idx, idx] = self.parameters['angular_acceleration_stddev'] ** 2
            if state.get_position() is not None:
                idx = state.indices('position')
                Q[idx, idx] = self.parameters['velocity_stddev'] ** 2
            if state.get_velocity() is not None:
                idx = state.indices('velocity')
                Q[idx, idx] = self.parameters['acceleration_stddev'] ** 2
            for sub_model in (self.gyro, self.accelerometer):
                if sub_model is not None:
                    sub_model.get_system_noise(Q, state)

        q = state.get_orientation()
        rate_stddev = self.parameters['rate_stddev']
        if rate_stddev > 0.0 and q is not None:
            rate_variance_4 = 0.25 * rate_stddev ** 2
            squares = q * q
            idx = state.indices(Partition.ORIENTATION)
            Q[idx, idx] = rate_variance_4 * (squares.sum() - squares)

    def get_status_flags(self, state: State) -> SystemStatus:
        flags = state.get_measurement_status()
        if flags & SystemStatus.STATE_XY_POSITION:
            flags |= SystemStatus.STATE_XY_VELOCITY
        if flags & SystemStatus.STATE_Z_POSITION:
            flags |= SystemStatus.STATE_Z_VELOCITY
        if flags & SystemStatus.STATE_XY_VELOCITY:
            flags |= SystemStatus.STATE_ROLLPITCH
        if flags & SystemStatus.STATE_ROLLPITCH:
            flags |= SystemStatus.STATE_RATE_XY
        if not state.has(Partition.RATE):
            flags |= SystemStatus.STATE_RATE_XY | SystemStatus.STATE_RATE_Z
        return flags
