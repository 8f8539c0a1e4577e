"""Sensor fusion front end.

- Update, GPSUpdate: value objects handed to measurements
- PoseEstimation: facade tying the process model, measurements and filter
"""

from navfilter.fusion.pose_estimation import PoseEstimation
from navfilter.fusion.types import GPSUpdate, Update

__all__ = [
    "PoseEstimation",
    "Update",
    "GPSUpdate",
]
