"""
Base classes and result types for state estimators.

This module defines the abstract estimator interface together with the
error taxonomy shared by the filter engine:

    - ConfigurationError: fatal, a model declares a capability it cannot
      compute. Raised at initialization or at the offending call.
    - Diagnostic: record of a recoverable condition (numerical degeneracy,
      stale input, partition mismatch). Recoverable conditions never raise
      across the predict/correct boundary.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np


class ConfigurationError(RuntimeError):
    """A model declares a capability it cannot fulfill."""


# Diagnostic kinds
NUMERICAL = 'numerical'
STALE_INPUT = 'stale_input'
PARTITION_MISMATCH = 'partition_mismatch'
REJECTED = 'rejected'


@dataclass(frozen=True)
class Diagnostic:
    """
    Recoverable condition reported by the filter engine.

    Attributes:
        kind: One of 'numerical', 'stale_input', 'partition_mismatch',
              'rejected'.
        message: Human readable description.
        source: Name of the measurement or 'system' for the process model.
        timestamp: Estimator time at which the condition occurred, if known.
    """

    kind: str
    message: str
    source: str = 'system'
    timestamp: Optional[float] = None


@dataclass
class CorrectionResult:
    """
    Outcome of a single measurement correction.

    Attributes:
        accepted: True if x and P were updated.
        partial: True if the correction only applied to the intersection of
                 the dimensions the sensor observes and the active ones.
        reason: Why the correction was skipped or partial ('' if neither).
        innovation: Innovation vector nu = y - y_pred (None if not computed).
        innovation_covariance: S = C P C^T + R (None if not computed).
    """

    accepted: bool
    partial: bool = False
    reason: str = ''
    innovation: Optional[np.ndarray] = field(default=None, repr=False)
    innovation_covariance: Optional[np.ndarray] = field(default=None, repr=False)

    def __bool__(self) -> bool:
        return self.accepted


class StateEstimator(ABC):
    """Abstract base class for recursive state estimators."""

    def __init__(self, state_dim: int):
        """
        Initialize state estimator.

        Args:
            state_dim: Dimension of the state vector.
        """
        self.state_dim = state_dim

    @property
    @abstractmethod
    def x(self) -> np.ndarray:
        """Current state vector."""

    @property
    @abstractmethod
    def P(self) -> np.ndarray:
        """Current state covariance."""

    @abstractmethod
    def predict(self, *args, **kwargs) -> None:
        """Perform prediction step (time update)."""

    @abstractmethod
    def correct(self, *args, **kwargs) -> CorrectionResult:
        """Perform measurement update (correction step)."""

    def get_state(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Get current state estimate and covariance.

        Returns:
            Tuple of (state_vector, covariance_matrix), both copies.
        """
        return self.x.copy(), self.P.copy()
