"""Innovation gating for measurement corrections.

Chi-square statistical gating used by the filter engine to reject
observations whose innovation is inconsistent with the predicted state.
A measurement enables it through its 'gate_confidence' parameter
(0 disables gating).

The squared Mahalanobis distance of the innovation,

    d^2 = nu^T S^{-1} nu,

is chi-square distributed with m = len(nu) degrees of freedom when the
observation agrees with the estimate. It is accepted if d^2 < chi2(m, confidence).
"""

from typing import Tuple

import numpy as np
from scipy import stats


def _check_chi_square_arguments(dof: int, confidence: float) -> None:
    if dof < 1:
        raise ValueError(f"Degrees of freedom must be positive, got {dof}")
    if not (0 < confidence < 1):
        raise ValueError(f"Confidence level must be in (0, 1), got {confidence}")


def mahalanobis_distance_squared(nu: np.ndarray, S: np.ndarray) -> float:
    """Squared Mahalanobis distance nu^T S^{-1} nu of an innovation.

    Raises:
        ValueError: If the shapes are incompatible or S is singular.

    Example:
        >>> mahalanobis_distance_squared(np.array([3.0, 4.0]), np.eye(2))
        25.0
    """
    nu = np.asarray(nu, dtype=float)
    S = np.asarray(S, dtype=float)
    if nu.ndim != 1 or S.shape != (len(nu), len(nu)):
        raise ValueError(
            f"Innovation of shape {nu.shape} incompatible with covariance of shape {S.shape}"
        )
    try:
        return float(nu @ np.linalg.solve(S, nu))
    except np.linalg.LinAlgError as e:
        raise ValueError(f"Innovation covariance is singular: {e}") from e


def chi_square_threshold(dof: int, confidence: float = 0.95) -> float:
    """Chi-square critical value chi2(dof, confidence).

    Example:
        >>> round(chi_square_threshold(dof=1, confidence=0.95), 3)
        3.841
    """
    _check_chi_square_arguments(dof, confidence)
    return float(stats.chi2.ppf(confidence, dof))


def chi_square_gate(nu: np.ndarray, S: np.ndarray, confidence: float = 0.95) -> bool:
    """True if the innovation lies inside the chi-square gate.

    Example:
        >>> chi_square_gate(np.array([0.1, 0.2]), np.eye(2))
        True
        >>> chi_square_gate(np.array([5.0, 5.0]), np.eye(2))
        False
    """
    d_squared = mahalanobis_distance_squared(nu, S)
    return d_squared < chi_square_threshold(dof=len(nu), confidence=confidence)


def chi_square_bounds(dof: int, confidence: float = 0.95) -> Tuple[float, float]:
    """Two-sided interval of the normalized innovation squared (NIS).

    A consistent filter keeps about 'confidence' of its NIS values inside.
    """
    _check_chi_square_arguments(dof, confidence)
    tail = 0.5 * (1.0 - confidence)
    return (
        float(stats.chi2.ppf(tail, dof)),
        float(stats.chi2.ppf(1.0 - tail, dof)),
    )
