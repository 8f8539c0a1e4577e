"""Gyroscope measurement of the estimated angular rate.

    y = omega + b_g

Only meaningful when the angular rate is part of the state. If the gyro bias
is filtered as well, it is observed through the same channel.
"""

from typing import Optional

import numpy as np

from navfilter.estimators.state import Partition, State
from navfilter.estimators.status import SystemStatus
from navfilter.models.measurement_model import Measurement, MeasurementModel


class RateModel(MeasurementModel):
    """
    Parameters:
        stddev: Per-axis gyro noise (rad/s).
    """

    dimension = 3

    def __init__(self, bias_block: str = 'gyro_bias', **parameters):
        super().__init__()
        self.bias_block = bias_block
        self.parameters.add('stddev', np.deg2rad(1.0))
        self.parameters.update(parameters)

    def get_status_flags(self) -> SystemStatus:
        return SystemStatus.STATE_RATE_XY | SystemStatus.STATE_RATE_Z

    def get_expected_value(self, state: State) -> np.ndarray:
        rate = state.get_rate()
        y = np.zeros(3) if rate is None else rate.copy()
        if state.has(self.bias_block):
            y = y + state.get_block_value(self.bias_block)
        return y

    def get_measurement_jacobian(self, state: State) -> np.ndarray:
        C = np.zeros((3, state.dimension))
        if state.has(Partition.RATE):
            C[:, state.indices(Partition.RATE)] = np.eye(3)
        if state.has(self.bias_block):
            C[:, state.indices(self.bias_block)] = np.eye(3)
        return C


class Rate(Measurement):
    def __init__(self, name: str = 'rate', model: Optional[RateModel] = None, **parameters):
        super().__init__(name, model if model is not None else RateModel(), **parameters)
