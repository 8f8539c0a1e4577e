"""Coordinate helpers for the navigation filter.

- Quaternion kinematics and rotation helpers (body-to-nav, scalar-first)
- Geodetic transforms between LLH, ECEF and local ENU frames
- GlobalReference: geodetic origin and heading of the nav frame
"""

from navfilter.coords.global_reference import GlobalReference
from navfilter.coords.rotations import (
    axis_angle_to_quat,
    euler_to_quat,
    omega_matrix,
    quat_conjugate,
    quat_multiply,
    quat_normalize,
    quat_rotate,
    quat_rotate_inverse,
    quat_rotate_inverse_jacobian,
    quat_rotate_jacobian,
    quat_to_axis_angle,
    quat_to_euler,
    quat_to_rotation_matrix,
    skew,
    xi_matrix,
)
from navfilter.coords.transforms import ecef_to_llh, enu_to_llh, llh_to_ecef, llh_to_enu

__all__ = [
    # Global reference
    "GlobalReference",
    # Transforms
    "llh_to_ecef",
    "ecef_to_llh",
    "llh_to_enu",
    "enu_to_llh",
    # Rotations
    "axis_angle_to_quat",
    "euler_to_quat",
    "omega_matrix",
    "quat_conjugate",
    "quat_multiply",
    "quat_normalize",
    "quat_rotate",
    "quat_rotate_inverse",
    "quat_rotate_inverse_jacobian",
    "quat_rotate_jacobian",
    "quat_to_axis_angle",
    "quat_to_euler",
    "quat_to_rotation_matrix",
    "skew",
    "xi_matrix",
]
