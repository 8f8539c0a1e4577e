"""Quaternion kinematics and rotation helpers.

Conventions:
- Quaternions: [qw, qx, qy, qz] where qw is the scalar part, body-to-nav
- Euler angles: [roll, pitch, yaw] in radians (ZYX/3-2-1 convention)
- Angular rates are expressed in the body frame

The rotation helpers quat_rotate/quat_rotate_inverse use the homogeneous
quadratic form of the rotation matrix,

    R(q) v = (qw^2 - |u|^2) v + 2 (u . v) u + 2 qw (u x v),   u = [qx, qy, qz],

which equals the usual rotation for unit quaternions and whose partial
derivatives with respect to q are exact quadratic forms. Process and
measurement Jacobians rely on that consistency.
"""

import numpy as np
from numpy.typing import NDArray


def quat_normalize(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Normalize quaternion to unit norm."""
    q = np.asarray(q, dtype=np.float64)
    norm = np.linalg.norm(q)
    if norm == 0.0:
        raise ValueError("Cannot normalize a zero quaternion")
    return q / norm


def quat_conjugate(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Conjugate (inverse for unit quaternions)."""
    return np.array([q[0], -q[1], -q[2], -q[3]], dtype=np.float64)


def quat_multiply(p: NDArray[np.float64], q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Hamilton product p * q."""
    pw, px, py, pz = p
    qw, qx, qy, qz = q
    return np.array(
        [
            pw * qw - px * qx - py * qy - pz * qz,
            pw * qx + px * qw + py * qz - pz * qy,
            pw * qy - px * qz + py * qw + pz * qx,
            pw * qz + px * qy - py * qx + pz * qw,
        ],
        dtype=np.float64,
    )


def skew(v: NDArray[np.float64]) -> NDArray[np.float64]:
    """Skew-symmetric matrix [v]x such that [v]x @ w = v x w."""
    return np.array(
        [
            [0.0, -v[2], v[1]],
            [v[2], 0.0, -v[0]],
            [-v[1], v[0], 0.0],
        ],
        dtype=np.float64,
    )


def omega_matrix(rate: NDArray[np.float64]) -> NDArray[np.float64]:
    """4x4 rate matrix Omega(w) such that q_dot = 0.5 * Omega(w) @ q.

    Args:
        rate: Body angular rate [wx, wy, wz] in rad/s.

    Returns:
        4x4 skew-symmetric matrix.
    """
    wx, wy, wz = rate
    return np.array(
        [
            [0.0, -wx, -wy, -wz],
            [wx, 0.0, wz, -wy],
            [wy, -wz, 0.0, wx],
            [wz, wy, -wx, 0.0],
        ],
        dtype=np.float64,
    )


def xi_matrix(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """4x3 matrix Xi(q) such that q_dot = 0.5 * Xi(q) @ w.

    Xi(q) is the partial derivative of Omega(w) @ q with respect to w.
    """
    qw, qx, qy, qz = q
    return np.array(
        [
            [-qx, -qy, -qz],
            [qw, -qz, qy],
            [qz, qw, -qx],
            [-qy, qx, qw],
        ],
        dtype=np.float64,
    )


def quat_rotate(q: NDArray[np.float64], v: NDArray[np.float64]) -> NDArray[np.float64]:
    """Rotate body vector v into the nav frame: R(q) @ v (homogeneous form)."""
    qw = q[0]
    u = np.asarray(q[1:4], dtype=np.float64)
    v = np.asarray(v, dtype=np.float64)
    return (qw * qw - u @ u) * v + 2.0 * (u @ v) * u + 2.0 * qw * np.cross(u, v)


def quat_rotate_inverse(q: NDArray[np.float64], v: NDArray[np.float64]) -> NDArray[np.float64]:
    """Rotate nav vector v into the body frame: R(q)^T @ v (homogeneous form)."""
    return quat_rotate(quat_conjugate(q), v)


def quat_rotate_jacobian(q: NDArray[np.float64], v: NDArray[np.float64]) -> NDArray[np.float64]:
    """Partial derivative of quat_rotate(q, v) with respect to q (3x4).

    Every entry is a bilinear form in the quaternion components and v.
    """
    qw = q[0]
    u = np.asarray(q[1:4], dtype=np.float64)
    v = np.asarray(v, dtype=np.float64)
    J = np.zeros((3, 4))
    J[:, 0] = 2.0 * qw * v + 2.0 * np.cross(u, v)
    J[:, 1:4] = (
        -2.0 * np.outer(v, u)
        + 2.0 * (u @ v) * np.eye(3)
        + 2.0 * np.outer(u, v)
        - 2.0 * qw * skew(v)
    )
    return J


def quat_rotate_inverse_jacobian(q: NDArray[np.float64], v: NDArray[np.float64]) -> NDArray[np.float64]:
    """Partial derivative of quat_rotate_inverse(q, v) with respect to q (3x4)."""
    J = quat_rotate_jacobian(quat_conjugate(q), v)
    J[:, 1:4] *= -1.0
    return J


def quat_to_rotation_matrix(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Convert quaternion to rotation matrix.

    Args:
        q: Unit quaternion as numpy array [qw, qx, qy, qz].

    Returns:
        3x3 rotation matrix R such that v_nav = R @ v_body.

    Raises:
        ValueError: If q is not a 4-element array.
    """
    q = np.asarray(q, dtype=np.float64)
    if q.shape != (4,):
        raise ValueError(f"Expected 4-element quaternion, got shape {q.shape}")

    return np.column_stack([quat_rotate(q, e) for e in np.eye(3)])


def euler_to_quat(
    roll: float,
    pitch: float,
    yaw: float,
) -> NDArray[np.float64]:
    """Convert Euler angles (ZYX convention) to a unit quaternion [qw, qx, qy, qz].

    Example:
        >>> q = euler_to_quat(0.0, 0.0, np.pi/2)  # 90 deg yaw
        >>> np.allclose(q, [np.cos(np.pi/4), 0.0, 0.0, np.sin(np.pi/4)])
        True
    """
    cr = np.cos(roll / 2.0)
    sr = np.sin(roll / 2.0)
    cp = np.cos(pitch / 2.0)
    sp = np.sin(pitch / 2.0)
    cy = np.cos(yaw / 2.0)
    sy = np.sin(yaw / 2.0)

    qw = cr * cp * cy + sr * sp * sy
    qx = sr * cp * cy - cr * sp * sy
    qy = cr * sp * cy + sr * cp * sy
    qz = cr * cp * sy - sr * sp * cy

    return np.array([qw, qx, qy, qz], dtype=np.float64)


def quat_to_euler(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Convert quaternion to Euler angles [roll, pitch, yaw] (ZYX convention).

    Raises:
        ValueError: If q is not a 4-element array.
    """
    q = np.asarray(q, dtype=np.float64)
    if q.shape != (4,):
        raise ValueError(f"Expected 4-element quaternion, got shape {q.shape}")

    qw, qx, qy, qz = q

    sin_roll_cos_pitch = 2.0 * (qw * qx + qy * qz)
    cos_roll_cos_pitch = 1.0 - 2.0 * (qx * qx + qy * qy)
    roll = np.arctan2(sin_roll_cos_pitch, cos_roll_cos_pitch)

    # Clamp to avoid numerical issues with arcsin
    sin_pitch = np.clip(2.0 * (qw * qy - qz * qx), -1.0, 1.0)
    pitch = np.arcsin(sin_pitch)

    sin_yaw_cos_pitch = 2.0 * (qw * qz + qx * qy)
    cos_yaw_cos_pitch = 1.0 - 2.0 * (qy * qy + qz * qz)
    yaw = np.arctan2(sin_yaw_cos_pitch, cos_yaw_cos_pitch)

    return np.array([roll, pitch, yaw], dtype=np.float64)


def axis_angle_to_quat(axis: NDArray[np.float64], angle: float) -> NDArray[np.float64]:
    """Unit quaternion for a rotation of 'angle' radians about 'axis'."""
    axis = np.asarray(axis, dtype=np.float64)
    norm = np.linalg.norm(axis)
    if norm == 0.0:
        return np.array([1.0, 0.0, 0.0, 0.0])
    axis = axis / norm
    half = 0.5 * angle
    return np.concatenate([[np.cos(half)], np.sin(half) * axis])


def quat_to_axis_angle(q: NDArray[np.float64]):
    """Axis (unit 3-vector) and angle in [0, pi] of a unit quaternion."""
    q = quat_normalize(q)
    if q[0] < 0.0:
        q = -q
    s = np.linalg.norm(q[1:4])
    angle = 2.0 * np.arctan2(s, q[0])
    if s < 1e-12:
        return np.array([1.0, 0.0, 0.0]), 0.0
    return q[1:4] / s, float(angle)
