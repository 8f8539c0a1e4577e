"""Update value objects handed to measurements.

An external ingestion layer turns sensor messages into one of these values
and passes it to PoseEstimation.correct() or to a measurement queue. The
generic Update carries the observation vector directly; sensor specific
updates (GPSUpdate) carry raw quantities that the measurement converts into
its observation vector.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np


def _validate_covariance(R: np.ndarray, m: int) -> None:
    if R.ndim != 2:
        raise ValueError(f"Covariance R must be 2D array, got shape {R.shape}")
    if R.shape != (m, m):
        raise ValueError(
            f"Covariance R shape {R.shape} must match "
            f"measurement dimension ({m}, {m})"
        )
    if not np.allclose(R, R.T):
        raise ValueError("Covariance R must be symmetric")
    eigvals = np.linalg.eigvalsh(R)
    if np.any(eigvals < -1e-10):
        raise ValueError(f"Covariance R must be positive semi-definite, got eigenvalues {eigvals}")


@dataclass(frozen=True)
class Update:
    """Observation vector with an optional explicit covariance.

    Non-finite entries in y are allowed: they mark an unusable observation
    and make the filter skip the correction.

    Attributes:
        y: Observation vector (m,). Scalars are promoted to shape (1,).
        R: Optional covariance override (m x m). If None, the measurement
           model's noise covariance is used.
        t: Timestamp in seconds, if known.
        meta: Optional metadata dictionary.

    Example:
        >>> update = Update(2.0)
        >>> update.y
        array([2.])
        >>> update.has_covariance()
        False
    """

    y: np.ndarray
    R: Optional[np.ndarray] = None
    t: Optional[float] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        y = np.atleast_1d(np.asarray(self.y, dtype=float))
        if y.ndim != 1:
            raise ValueError(f"Observation y must be 1D array, got shape {y.shape}")
        object.__setattr__(self, 'y', y)

        if self.R is not None:
            R = np.atleast_2d(np.asarray(self.R, dtype=float))
            _validate_covariance(R, len(y))
            object.__setattr__(self, 'R', R)

        if self.t is not None and not isinstance(self.t, (float, int)):
            raise TypeError(f"Timestamp must be numeric, got {type(self.t)}")

    def has_covariance(self) -> bool:
        return self.R is not None


@dataclass(frozen=True)
class GPSUpdate:
    """Satellite navigation fix.

    Attributes:
        latitude: Latitude in radians.
        longitude: Longitude in radians.
        velocity_north: Velocity towards north (m/s).
        velocity_east: Velocity towards east (m/s).
        R: Optional covariance override of [x, y, vx, vy] (4 x 4).
        t: Timestamp in seconds, if known.
    """

    latitude: float
    longitude: float
    velocity_north: float = 0.0
    velocity_east: float = 0.0
    R: Optional[np.ndarray] = None
    t: Optional[float] = None

    def __post_init__(self) -> None:
        if self.R is not None:
            R = np.asarray(self.R, dtype=float)
            _validate_covariance(R, 4)
            object.__setattr__(self, 'R', R)

    def has_covariance(self) -> bool:
        return self.R is not None
