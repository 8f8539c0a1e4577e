"""Gravity (accelerometer at rest) measurement.

    y = R(q)^T [0, 0, g] + b_a

At rest an accelerometer senses the reaction to gravity, pointing up in the
navigation frame. The observation constrains roll and pitch. If the
accelerometer bias is part of the state it is observed as well.
"""

from typing import TYPE_CHECKING, Optional

import numpy as np

from navfilter.coords.rotations import quat_rotate_inverse, quat_rotate_inverse_jacobian
from navfilter.estimators.state import Partition, State
from navfilter.estimators.status import SystemStatus
from navfilter.models.measurement_model import Measurement, MeasurementModel

if TYPE_CHECKING:
    from navfilter.fusion.pose_estimation import PoseEstimation


class GravityModel(MeasurementModel):
    """
    Specific force of a resting body.

    Parameters:
        stddev: Per-axis accelerometer noise (m/s^2).
        gravity_magnitude: Taken from the estimator at init.
    """

    dimension = 3

    def __init__(self, bias_block: str = 'accelerometer_bias', **parameters):
        super().__init__()
        self.bias_block = bias_block
        self.parameters.add('stddev', 1.0)
        self.parameters.add('gravity_magnitude', 9.8065)
        self.parameters.update(parameters)

    def init(self, estimator: 'PoseEstimation', state: State) -> bool:
        self.parameters['gravity_magnitude'] = estimator.parameters['gravity_magnitude']
        return True

    def get_status_flags(self) -> SystemStatus:
        return SystemStatus.STATE_ROLLPITCH

    def _up(self) -> np.ndarray:
        return np.array([0.0, 0.0, self.parameters['gravity_magnitude']])

    def get_expected_value(self, state: State) -> np.ndarray:
        q = state.get_orientation()
        if q is None:
            return np.full(3, np.nan)
        y = quat_rotate_inverse(q, self._up())
        if state.has(self.bias_block):
            y = y + state.get_block_value(self.bias_block)
        return y

    def get_measurement_jacobian(self, state: State) -> np.ndarray:
        C = np.zeros((3, state.dimension))
        q = state.get_orientation()
        if q is not None:
            C[:, state.indices(Partition.ORIENTATION)] = quat_rotate_inverse_jacobian(q, self._up())
        if state.has(self.bias_block):
            C[:, state.indices(self.bias_block)] = np.eye(3)
        return C


class Gravity(Measurement):
    def __init__(self, name: str = 'gravity', model: Optional[GravityModel] = None, **parameters):
        super().__init__(name, model if model is not None else GravityModel(), **parameters)
