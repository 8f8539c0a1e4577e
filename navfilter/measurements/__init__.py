"""Measurement models shipped with the pose estimator.

- Height: altimeter, observes the vertical position
- GPS: satellite fix, observes horizontal position and velocity
- Magnetic: magnetometer, observes yaw
- Gravity: accelerometer at rest, observes roll and pitch
- Rate: gyroscope, observes the estimated angular rate
"""

from navfilter.measurements.gps import GPS, GPSModel
from navfilter.measurements.gravity import Gravity, GravityModel
from navfilter.measurements.height import Height, HeightModel
from navfilter.measurements.magnetic import Magnetic, MagneticModel
from navfilter.measurements.rate import Rate, RateModel

__all__ = [
    "Height",
    "HeightModel",
    "GPS",
    "GPSModel",
    "Magnetic",
    "MagneticModel",
    "Gravity",
    "GravityModel",
    "Rate",
    "RateModel",
]
