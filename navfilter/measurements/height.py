"""Height (altimeter) measurement.

    y = p_z + elevation

'elevation' is the altitude of the navigation frame origin. With
'auto_elevation' enabled, the first height update after a reset defines it
so that the current vertical position estimate is kept; the value is shared
through the global reference altitude.
"""

from typing import TYPE_CHECKING, Optional

import numpy as np

from navfilter.estimators.state import Partition, State
from navfilter.estimators.status import SystemStatus
from navfilter.fusion.types import Update
from navfilter.models.measurement_model import Measurement, MeasurementModel

if TYPE_CHECKING:
    from navfilter.fusion.pose_estimation import PoseEstimation


class HeightModel(MeasurementModel):
    """
    Direct observation of the vertical position.

    Parameters:
        stddev: Height noise (m).
        elevation: Altitude of the navigation frame origin (m).
    """

    dimension = 1

    def __init__(self, **parameters):
        super().__init__()
        self.parameters.add('stddev', 10.0)
        self.parameters.add('elevation', 0.0)
        self.parameters.update(parameters)

    def get_status_flags(self) -> SystemStatus:
        return SystemStatus.STATE_Z_POSITION

    def get_expected_value(self, state: State) -> np.ndarray:
        p = state.get_position()
        z = p[2] if p is not None else 0.0
        return np.array([z + self.parameters['elevation']])

    def get_measurement_jacobian(self, state: State) -> np.ndarray:
        C = np.zeros((1, state.dimension))
        C[0, state.indices(Partition.POSITION_Z)] = 1.0
        return C


class Height(Measurement):
    """
    Height measurement with optional automatic elevation.

    Example:
        >>> height = Height('height', stddev=0.1)
        >>> height.model.parameters['stddev']
        0.1
    """

    def __init__(self, name: str = 'height', model: Optional[HeightModel] = None, **parameters):
        super().__init__(name, model if model is not None else HeightModel())
        self.parameters.add('auto_elevation', False)
        self._elevation_initialized = False
        self.configure(**parameters)

    def on_reset(self) -> None:
        self._elevation_initialized = False

    def before_update(self, estimator: 'PoseEstimation', update: Update) -> bool:
        if not self.parameters['auto_elevation']:
            return True

        reference = estimator.global_reference
        if not self._elevation_initialized:
            p = estimator.state.get_position()
            z = p[2] if p is not None else 0.0
            reference.set_altitude(float(update.y[0]) - z)
            self._elevation_initialized = True
        self.model.parameters['elevation'] = reference.altitude
        return True
