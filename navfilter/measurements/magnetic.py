"""Magnetometer measurement.

    y = R(q)^T m

where m is the earth magnetic field expressed in the navigation frame:

    m_enu = magnitude * [cos(inc) sin(dec), cos(inc) cos(dec), -sin(inc)]

    dec: declination (east of true north), inc: inclination (positive down)

The east/north components are rotated into the nav frame with the global
reference heading. With 'magnitude' = 0 only the direction of the field is
used: measured vectors are normalized and the expected field has unit length.

With 'auto_heading' enabled, the first update after a reset sets the
reference heading so that the current yaw estimate agrees with the measured
field.
"""

import math
from typing import TYPE_CHECKING, Optional

import numpy as np

from navfilter.coords.global_reference import GlobalReference
from navfilter.coords.rotations import (
    quat_rotate,
    quat_rotate_inverse,
    quat_rotate_inverse_jacobian,
)
from navfilter.estimators.state import Partition, State
from navfilter.estimators.status import SystemStatus
from navfilter.fusion.types import Update
from navfilter.models.measurement_model import Measurement, MeasurementModel

if TYPE_CHECKING:
    from navfilter.fusion.pose_estimation import PoseEstimation


class MagneticModel(MeasurementModel):
    """
    Body-frame earth magnetic field.

    Parameters:
        stddev: Per-axis noise (same unit as the field, or unitless when
            magnitude is 0).
        declination: Degrees east of true north.
        inclination: Degrees below the horizontal.
        magnitude: Field strength, 0 to use the field direction only.
    """

    dimension = 3

    def __init__(self, **parameters):
        super().__init__()
        self.parameters.add('stddev', 1.0)
        self.parameters.add('declination', 0.0)
        self.parameters.add('inclination', 60.0)
        self.parameters.add('magnitude', 0.0)
        self.parameters.update(parameters)
        self.reference: Optional[GlobalReference] = None

    def init(self, estimator: 'PoseEstimation', state: State) -> bool:
        self.reference = estimator.global_reference
        return True

    def has_magnitude(self) -> bool:
        return self.parameters['magnitude'] != 0.0

    def field_north_east_up(self) -> np.ndarray:
        dec = math.radians(self.parameters['declination'])
        inc = math.radians(self.parameters['inclination'])
        magnitude = self.parameters['magnitude'] if self.has_magnitude() else 1.0
        return magnitude * np.array([
            math.cos(inc) * math.cos(dec),
            math.cos(inc) * math.sin(dec),
            -math.sin(inc),
        ])

    def get_reference_field(self) -> np.ndarray:
        """Earth field in the navigation frame."""
        north, east, up = self.field_north_east_up()
        if self.reference is not None:
            x, y = self.reference.from_north_east(north, east)
        else:
            x, y = east, north
        return np.array([x, y, up])

    def get_status_flags(self) -> SystemStatus:
        return SystemStatus.STATE_YAW

    def get_expected_value(self, state: State) -> np.ndarray:
        q = state.get_orientation()
        if q is None:
            return np.full(3, np.nan)
        return quat_rotate_inverse(q, self.get_reference_field())

    def get_measurement_jacobian(self, state: State) -> np.ndarray:
        C = np.zeros((3, state.dimension))
        q = state.get_orientation()
        if q is not None:
            C[:, state.indices(Partition.ORIENTATION)] = quat_rotate_inverse_jacobian(
                q, self.get_reference_field())
        return C

    def get_heading(self, state: State, y: np.ndarray) -> float:
        """
        Reference heading under which y agrees with the current orientation.

        Returns the nav frame heading (radians, counter-clockwise from east).
        """
        north, east, _ = self.field_north_east_up()
        field_azimuth = math.atan2(north, east)
        q = state.get_orientation()
        f = quat_rotate(q, y) if q is not None else np.asarray(y, dtype=float)
        return field_azimuth - math.atan2(f[1], f[0])


class Magnetic(Measurement):
    """
    Magnetometer measurement.

    Parameters:
        auto_heading: Align the reference heading with the first update.
    """

    def __init__(self, name: str = 'magnetic', model: Optional[MagneticModel] = None, **parameters):
        super().__init__(name, model if model is not None else MagneticModel())
        self.parameters.add('auto_heading', True)
        self._heading_initialized = False
        self.configure(**parameters)

    def on_reset(self) -> None:
        self._heading_initialized = False

    def get_vector(self, update: Update) -> np.ndarray:
        y = np.asarray(update.y, dtype=float)
        if self.model.has_magnitude():
            return y
        norm = np.linalg.norm(y)
        if norm == 0.0:
            return np.full(3, np.nan)
        return y / norm

    def get_covariance(self, update: Update) -> Optional[np.ndarray]:
        if not update.has_covariance():
            return None
        if self.model.has_magnitude():
            return update.R
        norm = np.linalg.norm(update.y)
        return update.R / norm ** 2 if norm > 0.0 else update.R

    def before_update(self, estimator: 'PoseEstimation', update: Update) -> bool:
        if not self.parameters['auto_heading'] or self._heading_initialized:
            return True
        y = self.get_vector(update)
        if not np.all(np.isfinite(y)):
            return True
        reference = estimator.global_reference
        if reference.has_heading():
            self._heading_initialized = True
            return True
        reference.set_heading(self.model.get_heading(estimator.state, y))
        self._heading_initialized = True
        return True
