"""
Measurement model abstraction and the Measurement wrapper.

A MeasurementModel is a stateless projection of the shared state onto one
sensor's observation space:

    y_pred = h(x)          get_expected_value()
    C      = dh/dx         get_measurement_jacobian()
    R                      get_noise_covariance()

A Measurement registers a model with the estimator under a unique name and
adds everything that is not pure math: enable/timeout bookkeeping, optional
chi-square gating, a small thread-safe queue of pending updates and the
before/after hooks that let a sensor veto an update or derive a reference
value (e.g. the GPS origin) the first time it becomes available.
"""

import threading
from abc import ABC, abstractmethod
from collections import deque
from typing import TYPE_CHECKING, Any, Deque, Optional

import numpy as np

from navfilter.estimators.base import CorrectionResult
from navfilter.estimators.state import State
from navfilter.estimators.status import SystemStatus
from navfilter.utils import ParameterList

if TYPE_CHECKING:
    from navfilter.fusion.pose_estimation import PoseEstimation


class MeasurementModel(ABC):
    """
    Observation model of a single sensor.

    Subclasses set the class attribute 'dimension' and declare a 'stddev'
    parameter (or override get_noise_stddev()).
    """

    dimension: int = 1

    def __init__(self):
        self.parameters = ParameterList()

    def init(self, estimator: 'PoseEstimation', state: State) -> bool:
        return True

    def reset(self) -> None:
        pass

    def get_status_flags(self) -> SystemStatus:
        """State partitions this sensor corroborates."""
        return SystemStatus.NONE

    @abstractmethod
    def get_expected_value(self, state: State) -> np.ndarray:
        """Expected observation y_pred = h(x), shape (dimension,)."""

    @abstractmethod
    def get_measurement_jacobian(self, state: State) -> np.ndarray:
        """Observation Jacobian dh/dx, shape (dimension, n)."""

    def get_noise_stddev(self) -> np.ndarray:
        return np.full(self.dimension, self.parameters['stddev'])

    def get_noise_covariance(self) -> np.ndarray:
        """Diagonal covariance of squared per-channel standard deviations."""
        return np.diag(self.get_noise_stddev() ** 2)

    def get_innovation(self, y: np.ndarray, y_pred: np.ndarray) -> np.ndarray:
        """Innovation nu = y - y_pred. Override for angle wrapping."""
        return y - y_pred

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.parameters.to_dict()!r})"


class Measurement:
    """
    Named measurement registered with the estimator.

    Parameters:
        enabled: Disabled measurements neither correct nor contribute flags.
        timeout: Seconds without an accepted correction after which the
            measurement counts as inactive (0 disables the timeout).
        gate_confidence: Chi-square gate confidence in (0, 1), 0 disables
            gating.

    Args:
        name: Unique name.
        model: Measurement model.
        **parameters: Parameter overrides for the wrapper or the model.
    """

    def __init__(self, name: str, model: MeasurementModel, **parameters):
        if not isinstance(name, str) or not name:
            raise ValueError(f"Measurement name must be a non-empty string, got {name!r}")
        self.name = name
        self.model = model
        self.parameters = ParameterList(
            enabled=True,
            timeout=0.0,
            gate_confidence=0.0,
        )
        self.configure(**parameters)

        self.timer = 0.0
        self.last_result: Optional[CorrectionResult] = None
        self._queue: Deque[Any] = deque()
        self._queue_lock = threading.Lock()

    def configure(self, **parameters) -> None:
        """Apply overrides to the wrapper or, for unknown names, to the model."""
        for key, value in parameters.items():
            if key in self.parameters:
                self.parameters[key] = value
            else:
                self.model.parameters[key] = value

    def init(self, estimator: 'PoseEstimation', state: State) -> bool:
        return self.model.init(estimator, state)

    def reset(self) -> None:
        self.timer = 0.0
        self.last_result = None
        with self._queue_lock:
            self._queue.clear()
        self.model.reset()
        self.on_reset()

    def get_status_flags(self) -> SystemStatus:
        return self.model.get_status_flags()

    # ------------------------------------------------------------------
    # Activity
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self.parameters['enabled']

    def increase_timer(self, dt: float) -> None:
        self.timer += dt

    def timed_out(self) -> bool:
        timeout = self.parameters['timeout']
        return timeout > 0.0 and self.timer > timeout

    def active(self) -> bool:
        return self.enabled and not self.timed_out()

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def get_vector(self, update: Any) -> np.ndarray:
        return update.y

    def get_covariance(self, update: Any) -> Optional[np.ndarray]:
        """Explicit covariance of the update, None to use the model's."""
        if update.has_covariance():
            return update.R
        return None

    def before_update(self, estimator: 'PoseEstimation', update: Any) -> bool:
        """Return False to drop the update."""
        return True

    def after_update(self, estimator: 'PoseEstimation') -> None:
        pass

    def on_reset(self) -> None:
        pass

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def add(self, update: Any) -> None:
        """Queue an update for the next estimator cycle."""
        with self._queue_lock:
            self._queue.append(update)

    def pending(self) -> int:
        with self._queue_lock:
            return len(self._queue)

    def process(self, estimator: 'PoseEstimation') -> None:
        """Apply every queued update in arrival order."""
        while True:
            with self._queue_lock:
                if not self._queue:
                    return
                update = self._queue.popleft()
            self.update(estimator, update)

    def update(self, estimator: 'PoseEstimation', update: Any) -> CorrectionResult:
        if not self.enabled:
            self.last_result = CorrectionResult(False, reason='disabled')
            return self.last_result

        if not self.before_update(estimator, update):
            self.last_result = CorrectionResult(False, reason='vetoed')
            return self.last_result

        result = estimator.apply_correction(
            self,
            self.get_vector(update),
            self.get_covariance(update),
        )
        if result.accepted:
            self.timer = 0.0
            self.after_update(estimator)
        self.last_result = result
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, model={self.model!r})"
