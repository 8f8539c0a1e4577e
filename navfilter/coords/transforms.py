"""Geodetic transformations between LLH, ECEF and local ENU frames.

Used by the global reference to express satellite navigation fixes in the
local navigation frame of the filter. Angles are in radians.

WGS84 ellipsoid parameters:
- Semi-major axis (a): 6378137.0 m
- Flattening (f): 1/298.257223563
"""

import numpy as np
from numpy.typing import NDArray

WGS84_A = 6378137.0  # Semi-major axis (m)
WGS84_F = 1.0 / 298.257223563  # Flattening
WGS84_B = WGS84_A * (1.0 - WGS84_F)  # Semi-minor axis (m)
WGS84_E2 = 1.0 - (WGS84_B / WGS84_A) ** 2  # First eccentricity squared


def _enu_rotation(lat: float, lon: float) -> NDArray[np.float64]:
    """Rotation matrix from ECEF to ENU at the given reference point."""
    sin_lat = np.sin(lat)
    cos_lat = np.cos(lat)
    sin_lon = np.sin(lon)
    cos_lon = np.cos(lon)
    return np.array(
        [
            [-sin_lon, cos_lon, 0.0],
            [-sin_lat * cos_lon, -sin_lat * sin_lon, cos_lat],
            [cos_lat * cos_lon, cos_lat * sin_lon, sin_lat],
        ],
        dtype=np.float64,
    )


def llh_to_ecef(lat: float, lon: float, height: float) -> NDArray[np.float64]:
    """Convert geodetic coordinates to ECEF [x, y, z] in meters."""
    sin_lat = np.sin(lat)
    cos_lat = np.cos(lat)
    # Radius of curvature in the prime vertical
    N = WGS84_A / np.sqrt(1.0 - WGS84_E2 * sin_lat**2)

    x = (N + height) * cos_lat * np.cos(lon)
    y = (N + height) * cos_lat * np.sin(lon)
    z = (N * (1.0 - WGS84_E2) + height) * sin_lat
    return np.array([x, y, z], dtype=np.float64)


def ecef_to_llh(
    x: float,
    y: float,
    z: float,
    tol: float = 1e-12,
    max_iter: int = 10,
) -> NDArray[np.float64]:
    """Convert ECEF coordinates to geodetic [lat, lon, height].

    Args:
        x, y, z: ECEF coordinates in meters.
        tol: Convergence tolerance on latitude (radians).
        max_iter: Maximum number of iterations.
    """
    lon = np.arctan2(y, x)
    p = np.sqrt(x**2 + y**2)

    if p < 1e-10:
        lat = np.copysign(np.pi / 2.0, z)
        return np.array([lat, lon, abs(z) - WGS84_B], dtype=np.float64)

    lat = np.arctan2(z, p * (1.0 - WGS84_E2))
    for _ in range(max_iter):
        N = WGS84_A / np.sqrt(1.0 - WGS84_E2 * np.sin(lat) ** 2)
        height = p / np.cos(lat) - N
        lat_new = np.arctan2(z, p * (1.0 - WGS84_E2 * N / (N + height)))
        converged = abs(lat_new - lat) < tol
        lat = lat_new
        if converged:
            break

    N = WGS84_A / np.sqrt(1.0 - WGS84_E2 * np.sin(lat) ** 2)
    height = p / np.cos(lat) - N
    return np.array([lat, lon, height], dtype=np.float64)


def llh_to_enu(
    lat: float,
    lon: float,
    height: float,
    lat_ref: float,
    lon_ref: float,
    height_ref: float,
) -> NDArray[np.float64]:
    """Express a geodetic point as [east, north, up] relative to a reference."""
    d = llh_to_ecef(lat, lon, height) - llh_to_ecef(lat_ref, lon_ref, height_ref)
    return _enu_rotation(lat_ref, lon_ref) @ d


def enu_to_llh(
    east: float,
    north: float,
    up: float,
    lat_ref: float,
    lon_ref: float,
    height_ref: float,
) -> NDArray[np.float64]:
    """Geodetic coordinates of a local [east, north, up] offset from a reference."""
    d = _enu_rotation(lat_ref, lon_ref).T @ np.array([east, north, up], dtype=np.float64)
    return ecef_to_llh(*(llh_to_ecef(lat_ref, lon_ref, height_ref) + d))
