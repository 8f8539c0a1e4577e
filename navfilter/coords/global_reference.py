"""Global reference shared by measurements that observe absolute quantities.

The navigation frame of the filter is a local tangent plane anchored at a
geodetic reference point. Its x axis points along 'heading' (radians,
counter-clockwise from east); with heading = 0 the nav frame is ENU.

Measurement models use the reference to convert satellite navigation fixes
into nav-frame coordinates. A reference that has not been established yet
is reported through has_position()/has_altitude()/has_heading(); models must
return an unusable (NaN) observation instead of fabricating one.
"""

import math
from typing import Tuple

import numpy as np

from navfilter.coords.transforms import enu_to_llh, llh_to_enu
from navfilter.utils import ParameterList


class GlobalReference:
    """
    Geodetic origin and heading of the navigation frame.

    Parameters (NaN means "not configured, derive from the first fix"):
        reference_latitude: Latitude in degrees.
        reference_longitude: Longitude in degrees.
        reference_altitude: Altitude in meters.
        reference_heading: Heading in degrees.

    Example:
        >>> ref = GlobalReference()
        >>> ref.set_position(np.deg2rad(49.86), np.deg2rad(8.68))
        >>> x, y = ref.from_wgs84(np.deg2rad(49.86), np.deg2rad(8.68))
        >>> abs(x) < 1e-6 and abs(y) < 1e-6
        True
    """

    def __init__(self, **parameters):
        self.parameters = ParameterList(
            reference_latitude=math.nan,
            reference_longitude=math.nan,
            reference_altitude=math.nan,
            reference_heading=math.nan,
        )
        self.parameters.update(parameters)
        self.reset()

    def reset(self) -> None:
        """Forget derived values and fall back to the configured reference."""
        self.latitude = 0.0
        self.longitude = 0.0
        self.altitude = 0.0
        self.heading = 0.0
        self._has_position = False
        self._has_altitude = False
        self._has_heading = False

        lat = self.parameters['reference_latitude']
        lon = self.parameters['reference_longitude']
        if not (math.isnan(lat) or math.isnan(lon)):
            self.set_position(math.radians(lat), math.radians(lon))
        if not math.isnan(self.parameters['reference_altitude']):
            self.set_altitude(self.parameters['reference_altitude'])
        if not math.isnan(self.parameters['reference_heading']):
            self.set_heading(math.radians(self.parameters['reference_heading']))

    def has_position(self) -> bool:
        return self._has_position

    def has_altitude(self) -> bool:
        return self._has_altitude

    def has_heading(self) -> bool:
        return self._has_heading

    def set_position(self, latitude: float, longitude: float) -> None:
        """Set the geodetic origin (radians)."""
        self.latitude = float(latitude)
        self.longitude = float(longitude)
        self._has_position = True

    def set_altitude(self, altitude: float) -> None:
        self.altitude = float(altitude)
        self._has_altitude = True

    def set_heading(self, heading: float) -> None:
        """Set the nav frame heading (radians, counter-clockwise from east)."""
        self.heading = math.atan2(math.sin(heading), math.cos(heading))
        self._has_heading = True

    def _to_nav(self, east: float, north: float) -> Tuple[float, float]:
        c = math.cos(self.heading)
        s = math.sin(self.heading)
        return c * east + s * north, -s * east + c * north

    def _to_enu(self, x: float, y: float) -> Tuple[float, float]:
        c = math.cos(self.heading)
        s = math.sin(self.heading)
        return c * x - s * y, s * x + c * y

    def from_wgs84(self, latitude: float, longitude: float) -> Tuple[float, float]:
        """Nav-frame (x, y) of a geodetic position given in radians."""
        if not self._has_position:
            raise RuntimeError("Global reference position has not been set")
        enu = llh_to_enu(
            latitude, longitude, self.altitude,
            self.latitude, self.longitude, self.altitude,
        )
        return self._to_nav(enu[0], enu[1])

    def to_wgs84(self, x: float, y: float) -> Tuple[float, float]:
        """Geodetic (latitude, longitude) in radians of a nav-frame position."""
        if not self._has_position:
            raise RuntimeError("Global reference position has not been set")
        east, north = self._to_enu(x, y)
        llh = enu_to_llh(east, north, 0.0, self.latitude, self.longitude, self.altitude)
        return float(llh[0]), float(llh[1])

    def from_north_east(self, north: float, east: float) -> Tuple[float, float]:
        """Nav-frame (x, y) components of a north/east vector."""
        return self._to_nav(east, north)

    def to_north_east(self, x: float, y: float) -> Tuple[float, float]:
        east, north = self._to_enu(x, y)
        return north, east

    def __repr__(self) -> str:
        return (
            f"GlobalReference(lat={np.rad2deg(self.latitude):.7f}, "
            f"lon={np.rad2deg(self.longitude):.7f}, alt={self.altitude:.2f}, "
            f"heading={np.rad2deg(self.heading):.2f})"
        )
