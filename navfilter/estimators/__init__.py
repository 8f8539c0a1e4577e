"""State estimation core.

- SystemStatus: bitmask of estimator status and observable quantities
- State: state vector, covariance and partition activation
- ExtendedKalmanFilter: predict/correct recursion over a State
- Chi-square innovation gating
"""

from navfilter.estimators.base import (
    NUMERICAL,
    PARTITION_MISMATCH,
    REJECTED,
    STALE_INPUT,
    ConfigurationError,
    CorrectionResult,
    Diagnostic,
    StateEstimator,
)
from navfilter.estimators.extended_kalman_filter import ExtendedKalmanFilter
from navfilter.estimators.gating import (
    chi_square_bounds,
    chi_square_gate,
    chi_square_threshold,
    mahalanobis_distance_squared,
)
from navfilter.estimators.state import Partition, State, StateBlock, StateSnapshot
from navfilter.estimators.status import (
    STATE_MASK,
    STATUS_MASK,
    SystemStatus,
    status_to_string,
)

__all__ = [
    # Status
    "SystemStatus",
    "STATE_MASK",
    "STATUS_MASK",
    "status_to_string",
    # State
    "Partition",
    "State",
    "StateBlock",
    "StateSnapshot",
    # Filter
    "StateEstimator",
    "ExtendedKalmanFilter",
    "CorrectionResult",
    "ConfigurationError",
    "Diagnostic",
    "NUMERICAL",
    "STALE_INPUT",
    "PARTITION_MISMATCH",
    "REJECTED",
    # Gating
    "mahalanobis_distance_squared",
    "chi_square_threshold",
    "chi_square_gate",
    "chi_square_bounds",
]
