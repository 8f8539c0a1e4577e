"""Core modules for multi-sensor pose estimation.

This package contains the reusable components of the navigation filter:
- coords: Quaternion helpers, geodetic transforms and the global reference
- estimators: State, status flags and the extended Kalman filter engine
- models: Process (system) and measurement model abstractions
- measurements: Height, GPS, magnetic, gravity and rate sensors
- fusion: Update types and the PoseEstimation facade
"""

__version__ = "0.1.0"
