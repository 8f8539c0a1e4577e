"""
Extended Kalman filter engine for the partitioned pose state.

The engine owns the State and runs the two-phase recursion:

    - Predict (continuous-time propagation, one explicit Euler step):
      x   <- x + f(x, u) dt
      Phi  = I + A dt,            A = df/dx
      P   <- Phi P Phi^T + Q dt

    - Correct (discrete-time update):
      nu   = y - h(x)
      S    = C P C^T + R
      K    = P C^T S^{-1}
      x   <- x + K nu
      P   <- (I - K C) P (I - K C)^T + K R K^T      (Joseph form)

Inactive state dimensions are masked out of f, A, Q, C and K before use, so
they keep their frozen values and covariance. The quaternion partition is
renormalized and P symmetrized after every step.

Recoverable conditions (non-finite input, singular S, gate rejection) never
raise: the step is skipped, x and P are left untouched and a Diagnostic is
recorded. Only invalid arguments (ValueError) and undeclared capabilities
(ConfigurationError) raise.
"""

import warnings
from collections import deque
from typing import TYPE_CHECKING, Deque, Optional

import numpy as np

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
from navfilter.estimators.gating import chi_square_gate
from navfilter.estimators.state import State
from navfilter.estimators.status import STATE_MASK

if TYPE_CHECKING:
    from navfilter.models.measurement_model import MeasurementModel
    from navfilter.models.system_model import SystemInput, SystemModel


# Innovation covariances with a larger condition number count as singular.
MAX_CONDITION_NUMBER = 1e12


def _has_input_jacobian(system: 'SystemModel') -> bool:
    from navfilter.models.system_model import SystemModel

    return type(system).get_input_jacobian is not SystemModel.get_input_jacobian


class ExtendedKalmanFilter(StateEstimator):
    """
    EKF over a State with dynamically active partitions.

    Attributes:
        state: Shared state vector and covariance.
        Q: Continuous-time process noise buffer filled by the system model.
        diagnostics: Bounded history of recoverable conditions.
        timestamp: Estimator time stamped onto diagnostics.

    Example:
        >>> from navfilter.models import GenericQuaternionSystemModel
        >>> state = State()
        >>> ekf = ExtendedKalmanFilter(state)
        >>> ekf.predict(GenericQuaternionSystemModel(), None, 0.0)
        >>> ekf.x[:4]
        array([1., 0., 0., 0.])
    """

    def __init__(self, state: State, max_diagnostics: int = 100):
        super().__init__(state.dimension)
        self.state = state
        self.Q = np.zeros((state.dimension, state.dimension))
        self.diagnostics: Deque[Diagnostic] = deque(maxlen=max_diagnostics)
        self.timestamp: Optional[float] = None
        self._initialized_for: Optional['SystemModel'] = None

    @property
    def x(self) -> np.ndarray:
        return self.state.x

    @property
    def P(self) -> np.ndarray:
        return self.state.P

    def init(self, system: 'SystemModel') -> None:
        """
        Allocate the noise buffer and fill its state-independent terms.

        Raises:
            ConfigurationError: If the system model declares input noise
                without implementing its input Jacobian.
        """
        if system.input_noise and not _has_input_jacobian(system):
            raise ConfigurationError(
                f"{type(system).__name__} declares input noise but does not "
                f"implement get_input_jacobian()"
            )
        self.state_dim = self.state.dimension
        self.Q = np.zeros((self.state_dim, self.state_dim))
        system.get_system_noise(self.Q, self.state, init=True)
        self._initialized_for = system

    def record(self, kind: str, message: str, source: str = 'system') -> Diagnostic:
        diagnostic = Diagnostic(kind, message, source, self.timestamp)
        self.diagnostics.append(diagnostic)
        if kind == NUMERICAL:
            warnings.warn(f"{source}: {message}", RuntimeWarning, stacklevel=3)
        return diagnostic

    # ------------------------------------------------------------------
    # Predict
    # ------------------------------------------------------------------

    def predict(
        self,
        system: 'SystemModel',
        system_input: Optional['SystemInput'],
        dt: float,
    ) -> None:
        """
        Propagate state and covariance over dt seconds.

        Args:
            system: Process model.
            system_input: External rate/specific force, None for zeros.
            dt: Step length in seconds. 0 leaves x and P unchanged.

        Raises:
            ValueError: If dt is negative or not finite.
            ConfigurationError: If the model declares input noise without an
                input Jacobian.
        """
        if not np.isfinite(dt) or dt < 0.0:
            raise ValueError(f"Time step must be non-negative, got {dt}")
        if system is not self._initialized_for or self.state.dimension != self.state_dim:
            self.init(system)
        if dt == 0.0:
            return

        state = self.state
        n = state.dimension

        x_dot, inputs = system.get_derivative(state, system_input)
        A = system.get_state_jacobian(state, inputs)
        system.get_system_noise(self.Q, state)
        Q = self.Q.copy()

        if system.input_noise:
            try:
                B = system.get_input_jacobian(state, inputs)
                Q += B @ system.get_input_covariance() @ B.T
            except NotImplementedError as e:
                raise ConfigurationError(str(e)) from e

        if not (np.all(np.isfinite(x_dot)) and np.all(np.isfinite(A)) and np.all(np.isfinite(Q))):
            self.record(NUMERICAL, "non-finite derivative or Jacobian, prediction skipped")
            return

        mask = state.active_mask()
        inactive = ~mask
        x_dot[inactive] = 0.0
        A[inactive, :] = 0.0
        A[:, inactive] = 0.0
        Q[inactive, :] = 0.0
        Q[:, inactive] = 0.0

        frozen = state.P[np.ix_(inactive, inactive)].copy()

        state.x += x_dot * dt
        Phi = np.eye(n) + A * dt
        P = Phi @ state.P @ Phi.T + Q * dt
        P[np.ix_(inactive, inactive)] = frozen
        P[np.ix_(inactive, mask)] = 0.0
        P[np.ix_(mask, inactive)] = 0.0
        state.P[:] = 0.5 * (P + P.T)

        state.normalize_orientation()

    # ------------------------------------------------------------------
    # Correct
    # ------------------------------------------------------------------

    def correct(
        self,
        model: 'MeasurementModel',
        y: np.ndarray,
        R: Optional[np.ndarray] = None,
        gate_confidence: float = 0.0,
        source: str = 'measurement',
    ) -> CorrectionResult:
        """
        Correct the state with one observation.

        Args:
            model: Measurement model providing h(x), C and R.
            y: Observation vector (m,).
            R: Optional covariance override (m x m).
            gate_confidence: Chi-square gate confidence, 0 disables gating.
            source: Name recorded in diagnostics.

        Returns:
            CorrectionResult. x and P are unchanged unless accepted is True.

        Raises:
            ValueError: If the shapes of y, R or C do not match the model.
        """
        state = self.state
        n = state.dimension
        m = model.dimension

        y = np.atleast_1d(np.asarray(y, dtype=float))
        if y.shape != (m,):
            raise ValueError(f"Observation must have shape ({m},), got {y.shape}")
        R = model.get_noise_covariance() if R is None else np.atleast_2d(np.asarray(R, dtype=float))
        if R.shape != (m, m):
            raise ValueError(f"Covariance must have shape ({m}, {m}), got {R.shape}")

        if not np.all(np.isfinite(y)):
            self.record(STALE_INPUT, "observation is not usable", source)
            return CorrectionResult(False, reason=STALE_INPUT)

        y_pred = np.atleast_1d(np.asarray(model.get_expected_value(state), dtype=float))
        C = np.array(model.get_measurement_jacobian(state), dtype=float)
        if C.shape != (m, n):
            raise ValueError(f"Jacobian must have shape ({m}, {n}), got {C.shape}")
        if not (np.all(np.isfinite(y_pred)) and np.all(np.isfinite(C)) and np.all(np.isfinite(R))):
            self.record(NUMERICAL, "non-finite expected value or Jacobian", source)
            return CorrectionResult(False, reason=NUMERICAL)

        mask = state.active_mask()
        observed = np.any(C != 0.0, axis=0)
        if not np.any(observed & mask):
            self.record(PARTITION_MISMATCH, "no observed dimension is active", source)
            return CorrectionResult(False, reason=PARTITION_MISMATCH)

        declared = model.get_status_flags() & STATE_MASK
        partial = bool(np.any(observed & ~mask)) or bool(int(declared) & ~int(state.get_system_status()))

        C[:, ~mask] = 0.0
        nu = np.atleast_1d(model.get_innovation(y, y_pred))
        P = state.P
        S = C @ P @ C.T + R
        S = 0.5 * (S + S.T)

        if not np.all(np.isfinite(S)) or np.linalg.cond(S) > MAX_CONDITION_NUMBER:
            self.record(NUMERICAL, "innovation covariance is singular", source)
            return CorrectionResult(False, reason=NUMERICAL, innovation=nu, innovation_covariance=S)
        try:
            S_inv = np.linalg.inv(S)
        except np.linalg.LinAlgError:
            self.record(NUMERICAL, "innovation covariance is singular", source)
            return CorrectionResult(False, reason=NUMERICAL, innovation=nu, innovation_covariance=S)

        if gate_confidence > 0.0 and not chi_square_gate(nu, S, confidence=gate_confidence):
            self.record(REJECTED, "innovation outside chi-square gate", source)
            return CorrectionResult(False, reason=REJECTED, innovation=nu, innovation_covariance=S)

        K = P @ C.T @ S_inv
        K[~mask, :] = 0.0

        state.x += K @ nu
        I_KC = np.eye(n) - K @ C
        P_new = I_KC @ P @ I_KC.T + K @ R @ K.T
        state.P[:] = 0.5 * (P_new + P_new.T)
        state.normalize_orientation()

        reason = ''
        if partial:
            reason = PARTITION_MISMATCH
            self.record(PARTITION_MISMATCH, "correction restricted to active dimensions", source)
        return CorrectionResult(True, partial=partial, reason=reason, innovation=nu, innovation_covariance=S)
