"""Satellite navigation (GPS) measurement.

    y = [p_x, p_y, v_x, v_y]

Fixes arrive in geodetic coordinates (GPSUpdate) and are converted into the
navigation frame with the estimator's global reference. If no reference is
available the observation vector is NaN and the filter skips the correction.

With 'auto_reference' enabled, the first fix after a reset (or after the
measurement timed out) re-derives the reference origin so that the current
horizontal position estimate maps onto the fix.
"""

from typing import TYPE_CHECKING, Optional

import numpy as np

from navfilter.coords.global_reference import GlobalReference
from navfilter.estimators.state import Partition, State
from navfilter.estimators.status import SystemStatus
from navfilter.fusion.types import GPSUpdate
from navfilter.models.measurement_model import Measurement, MeasurementModel

if TYPE_CHECKING:
    from navfilter.fusion.pose_estimation import PoseEstimation


class GPSModel(MeasurementModel):
    """
    Direct observation of horizontal position and velocity.

    Parameters:
        position_stddev: Horizontal position noise (m).
        velocity_stddev: Horizontal velocity noise (m/s).
    """

    dimension = 4

    def __init__(self, **parameters):
        super().__init__()
        self.parameters.add('position_stddev', 10.0)
        self.parameters.add('velocity_stddev', 1.0)
        self.parameters.update(parameters)

    def get_status_flags(self) -> SystemStatus:
        return SystemStatus.STATE_XY_POSITION | SystemStatus.STATE_XY_VELOCITY

    def get_noise_stddev(self) -> np.ndarray:
        p = self.parameters['position_stddev']
        v = self.parameters['velocity_stddev']
        return np.array([p, p, v, v])

    def get_expected_value(self, state: State) -> np.ndarray:
        y = np.zeros(4)
        p = state.get_position()
        v = state.get_velocity()
        if p is not None:
            y[0:2] = p[0:2]
        if v is not None:
            y[2:4] = v[0:2]
        return y

    def get_measurement_jacobian(self, state: State) -> np.ndarray:
        C = np.zeros((4, state.dimension))
        for row, column in enumerate(state.indices(Partition.POSITION_XY)):
            C[row, column] = 1.0
        for row, column in enumerate(state.indices(Partition.VELOCITY_XY)):
            C[2 + row, column] = 1.0
        return C


class GPS(Measurement):
    """
    GPS measurement bound to the estimator's global reference.

    Parameters:
        auto_reference: Derive the reference origin from the first fix.
    """

    def __init__(self, name: str = 'gps', model: Optional[GPSModel] = None, **parameters):
        super().__init__(name, model if model is not None else GPSModel())
        self.parameters.add('auto_reference', True)
        self.reference: Optional[GlobalReference] = None
        self.last_update: Optional[GPSUpdate] = None
        self.configure(**parameters)

    def on_reset(self) -> None:
        self.reference = None
        self.last_update = None

    def get_vector(self, update: GPSUpdate) -> np.ndarray:
        if self.reference is None or not self.reference.has_position():
            return np.full(4, np.nan)

        x, y = self.reference.from_wgs84(update.latitude, update.longitude)
        vx, vy = self.reference.from_north_east(update.velocity_north, update.velocity_east)
        self.last_update = update
        return np.array([x, y, vx, vy])

    def before_update(self, estimator: 'PoseEstimation', update: GPSUpdate) -> bool:
        # Forget the reference if the fix has been missing for too long.
        if self.timed_out():
            self.reference = None

        reference = estimator.global_reference
        if self.reference is reference:
            return True

        if self.parameters['auto_reference']:
            reference.set_position(update.latitude, update.longitude)
            p = estimator.state.get_position()
            if p is not None:
                latitude, longitude = reference.to_wgs84(-p[0], -p[1])
                reference.set_position(latitude, longitude)
            self.reference = reference
        elif reference.has_position():
            self.reference = reference
        return True
