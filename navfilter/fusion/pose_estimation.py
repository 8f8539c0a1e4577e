"""
Pose estimation facade.

PoseEstimation ties one process model and any number of named measurements
to a shared State and an ExtendedKalmanFilter. Every cycle of update():

    1. advances the time base and the measurement timers,
    2. recomputes the measurement status from the active measurements,
    3. lets the process model derive the system status from it (the status
       callback may veto the change) and (de)activates state partitions,
    4. predicts,
    5. applies queued measurement updates in registration order.

Sequential corrections within a cycle are equivalent to a joint update only
for sensors with uncorrelated noise. That is assumed and not checked.

All predict/correct calls run under one re-entrant lock, which is the only
serialization point for concurrent callers.
"""

import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import numpy as np

from navfilter.coords.global_reference import GlobalReference
from navfilter.coords.rotations import quat_to_euler
from navfilter.estimators.base import (
    STALE_INPUT,
    ConfigurationError,
    CorrectionResult,
    Diagnostic,
)
from navfilter.estimators.extended_kalman_filter import ExtendedKalmanFilter
from navfilter.estimators.state import State
from navfilter.estimators.status import STATE_MASK, STATUS_MASK, SystemStatus
from navfilter.fusion.types import Update
from navfilter.models.measurement_model import Measurement, MeasurementModel
from navfilter.models.quaternion_system_model import GenericQuaternionSystemModel
from navfilter.models.system_model import BiasModel, SystemInput, SystemModel
from navfilter.utils import ParameterList

StatusCallback = Callable[[SystemStatus], bool]


class PoseEstimation:
    """
    Estimator facade around the filter engine.

    Parameters:
        gravity_magnitude: Shared with the process and gravity models (m/s^2).

    Args:
        system_model: Process model (GenericQuaternionSystemModel if None).
        with_rate: Estimate the angular rate instead of reading it from
            the system input.
        with_position: Include the position partition.
        with_velocity: Include the velocity partition.
        max_diagnostics: Size of the diagnostics history.
        **parameters: Parameter overrides.

    Example:
        >>> from navfilter.measurements import HeightModel
        >>> estimator = PoseEstimation()
        >>> _ = estimator.add_measurement('height', HeightModel(stddev=0.1))
        >>> estimator.init()
        True
        >>> estimator.update(SystemInput(), dt=0.01)
        >>> bool(estimator.in_system_status(SystemStatus.STATE_Z_POSITION))
        True
    """

    def __init__(
        self,
        system_model: Optional[SystemModel] = None,
        with_rate: bool = False,
        with_position: bool = True,
        with_velocity: bool = True,
        max_diagnostics: int = 100,
        **parameters,
    ):
        self.parameters = ParameterList(gravity_magnitude=9.8065)
        self.parameters.update(parameters)

        self.state = State(
            with_rate=with_rate,
            with_position=with_position,
            with_velocity=with_velocity,
        )
        self.filter = ExtendedKalmanFilter(self.state, max_diagnostics=max_diagnostics)
        self.global_reference = GlobalReference()

        self.system_model: Optional[SystemModel] = None
        self.measurements: Dict[str, Measurement] = {}
        self.submodels: Dict[str, BiasModel] = {}
        self.status_callback: Optional[StatusCallback] = None

        self._timestamp: Optional[float] = None
        self._initialized = False
        self._lock = threading.RLock()

        self.set_system_model(
            system_model if system_model is not None else GenericQuaternionSystemModel()
        )

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def set_system_model(self, system_model: SystemModel) -> SystemModel:
        with self._lock:
            self.system_model = system_model
            self._initialized = False
            return system_model

    def add_measurement(self, name: str, model: Any = None, **parameters) -> Measurement:
        """
        Register a measurement under a unique name.

        Args:
            name: Measurement name. Re-registering a name replaces the
                previous measurement and forces a status recompute.
            model: A Measurement, or a bare MeasurementModel to wrap.
            **parameters: Parameter overrides for the wrapper.

        Raises:
            TypeError: If model is neither a Measurement nor a MeasurementModel.
        """
        if isinstance(name, Measurement) and model is None:
            measurement = name
        elif isinstance(model, Measurement):
            measurement = model
            measurement.name = name
        elif isinstance(model, MeasurementModel):
            measurement = Measurement(name, model, **parameters)
        else:
            raise TypeError(
                f"Expected a Measurement or MeasurementModel, got {type(model).__name__}"
            )

        with self._lock:
            replaced = measurement.name in self.measurements
            # Re-registration keeps its place in the update order.
            self.measurements[measurement.name] = measurement
            if self._initialized:
                if not measurement.init(self, self.state):
                    raise ConfigurationError(f"Measurement '{measurement.name}' failed to initialize")
                measurement.reset()
            if replaced:
                self.update_status()
        return measurement

    def get_measurement(self, name: str) -> Optional[Measurement]:
        return self.measurements.get(name)

    def add_submodel(self, name: str, model: BiasModel) -> BiasModel:
        self.submodels[name] = model
        return model

    def get_submodel(self, name: str) -> Optional[BiasModel]:
        return self.submodels.get(name)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init(self) -> bool:
        """
        Initialize all models and reset the filter.

        Raises:
            ConfigurationError: If a model cannot be initialized or declares
                a capability it does not implement.
        """
        with self._lock:
            if self.system_model is None:
                raise ConfigurationError("No system model set")
            if not self.system_model.init(self, self.state):
                raise ConfigurationError(
                    f"System model {type(self.system_model).__name__} failed to initialize"
                )
            for name, submodel in self.submodels.items():
                if not submodel.init(self, self.state):
                    raise ConfigurationError(f"Sub-model '{name}' failed to initialize")
            self.system_model.get_prior(self.state)

            for measurement in self.measurements.values():
                if not measurement.init(self, self.state):
                    raise ConfigurationError(
                        f"Measurement '{measurement.name}' failed to initialize"
                    )

            self.filter.init(self.system_model)
            self._initialized = True
            self.reset()
            return True

    def reset(self) -> None:
        """Restore the initial state, references and measurement bookkeeping."""
        with self._lock:
            self.state.reset()
            self.global_reference.reset()
            self.system_model.reset()
            for measurement in self.measurements.values():
                measurement.reset()
            self.filter.diagnostics.clear()
            self._timestamp = None
            self.filter.timestamp = None
            self.update_status()
            self.update_system_status(SystemStatus.STATUS_READY, SystemStatus.NONE)

    def cleanup(self) -> None:
        with self._lock:
            for measurement in self.measurements.values():
                measurement.reset()
            self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    # ------------------------------------------------------------------
    # Filter cycle
    # ------------------------------------------------------------------

    def update(
        self,
        system_input: Optional[SystemInput] = None,
        timestamp: Optional[float] = None,
        dt: Optional[float] = None,
    ) -> None:
        """
        Run one predict/correct cycle.

        Args:
            system_input: Measured rate and specific force.
            timestamp: Cycle time in seconds. Used to derive dt if not given.
            dt: Explicit step length in seconds.

        Raises:
            ConfigurationError: If init() has not been called.
            ValueError: If dt is negative.
        """
        with self._lock:
            if not self._initialized:
                raise ConfigurationError("PoseEstimation.init() must be called before update()")

            if timestamp is None and system_input is not None:
                timestamp = system_input.t
            if dt is None:
                dt = 0.0
                if timestamp is not None and self._timestamp is not None:
                    dt = timestamp - self._timestamp
                    if dt < 0.0:
                        self.filter.record(
                            STALE_INPUT,
                            f"timestamp {timestamp} is older than {self._timestamp}, step skipped",
                        )
                        return
            elif dt < 0.0:
                raise ValueError(f"Time step must be non-negative, got {dt}")

            if timestamp is not None:
                self._timestamp = timestamp
            elif self._timestamp is not None:
                self._timestamp += dt
            else:
                self._timestamp = dt
            self.filter.timestamp = self._timestamp

            for measurement in self.measurements.values():
                measurement.increase_timer(dt)

            self.update_status()
            self.filter.predict(self.system_model, system_input, dt)

            for measurement in self.measurements.values():
                measurement.process(self)

    def update_status(self) -> None:
        """Recompute measurement and system status from the registered models."""
        with self._lock:
            measurement_status = SystemStatus.NONE
            for measurement in self.measurements.values():
                if measurement.active():
                    measurement_status |= measurement.get_status_flags()
            self.state.set_measurement_status(measurement_status)
            self._refresh_system_status()

    def _refresh_system_status(self) -> bool:
        status = self.system_model.get_status_flags(self.state)
        status = SystemStatus(
            (int(status) & int(STATE_MASK))
            | (int(self.state.get_system_status()) & int(STATUS_MASK))
        )
        return self.set_system_status(status)

    def correct(self, name: str, update: Any) -> CorrectionResult:
        """
        Apply one update immediately through the named measurement.

        Raises:
            KeyError: If no measurement of that name is registered.
        """
        with self._lock:
            if name not in self.measurements:
                raise KeyError(f"Unknown measurement '{name}'")
            if not hasattr(update, 'has_covariance'):
                update = Update(update)
            return self.measurements[name].update(self, update)

    def apply_correction(
        self,
        measurement: Measurement,
        y: np.ndarray,
        R: Optional[np.ndarray] = None,
    ) -> CorrectionResult:
        """
        Correct the filter with an observation of a registered measurement.

        Partitions the measurement corroborates are activated first. A
        skipped correction rolls the state, covariance and status back to
        their values before the activation. An accepted correction keeps
        the measurement's flags in the measurement status.
        """
        with self._lock:
            if not self._initialized:
                raise ConfigurationError("PoseEstimation.init() must be called before correct()")

            snapshot = self.state.snapshot()
            flags = measurement.get_status_flags()
            measurement_status = self.state.get_measurement_status()
            if int(flags) & ~int(measurement_status):
                self.state.set_measurement_status(measurement_status | flags)
                self._refresh_system_status()

            result = self.filter.correct(
                measurement.model,
                y,
                R,
                gate_confidence=measurement.parameters['gate_confidence'],
                source=measurement.name,
            )
            if result.accepted:
                self.state.set_measurement_status(self.state.get_measurement_status() | flags)
            else:
                self.state.restore(snapshot)
            return result

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_system_status(self) -> SystemStatus:
        return self.state.get_system_status()

    def get_measurement_status(self) -> SystemStatus:
        return self.state.get_measurement_status()

    def in_system_status(self, test_status: SystemStatus) -> bool:
        return (self.get_system_status() & test_status) == test_status

    def set_system_status_callback(self, callback: Optional[StatusCallback]) -> None:
        """Install a callback that may veto system status changes by returning False."""
        self.status_callback = callback

    def set_system_status(self, new_status: SystemStatus) -> bool:
        new_status = SystemStatus(new_status)
        with self._lock:
            if new_status == self.state.get_system_status():
                return True
            if self.status_callback is not None and not self.status_callback(new_status):
                return False
            self.state.set_system_status(new_status)
            return True

    def update_system_status(self, set_flags: SystemStatus, clear_flags: SystemStatus) -> bool:
        status = int(self.get_system_status())
        return self.set_system_status(SystemStatus((status | int(set_flags)) & ~int(clear_flags)))

    def set_measurement_status(self, new_status: SystemStatus) -> bool:
        with self._lock:
            self.state.set_measurement_status(SystemStatus(new_status))
            return True

    def update_measurement_status(self, set_flags: SystemStatus, clear_flags: SystemStatus) -> bool:
        status = int(self.get_measurement_status())
        return self.set_measurement_status(SystemStatus((status | int(set_flags)) & ~int(clear_flags)))

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def get_state(self) -> np.ndarray:
        with self._lock:
            return self.state.x.copy()

    def get_covariance(self) -> np.ndarray:
        with self._lock:
            return self.state.P.copy()

    def set_state(self, x: np.ndarray) -> None:
        x = np.asarray(x, dtype=float)
        if x.shape != self.state.x.shape:
            raise ValueError(f"State must have shape {self.state.x.shape}, got {x.shape}")
        with self._lock:
            self.state.x[:] = x
            self.state.normalize_orientation()

    def set_covariance(self, P: np.ndarray) -> None:
        P = np.asarray(P, dtype=float)
        if P.shape != self.state.P.shape:
            raise ValueError(f"Covariance must have shape {self.state.P.shape}, got {P.shape}")
        with self._lock:
            self.state.P[:] = 0.5 * (P + P.T)

    def _copy(self, value: Optional[np.ndarray]) -> Optional[np.ndarray]:
        return value.copy() if value is not None else None

    def get_orientation(self) -> Optional[np.ndarray]:
        """Orientation quaternion [qw, qx, qy, qz]."""
        with self._lock:
            return self._copy(self.state.get_orientation())

    def get_euler(self) -> Optional[np.ndarray]:
        """Orientation as [roll, pitch, yaw] in radians."""
        with self._lock:
            q = self.state.get_orientation()
            return quat_to_euler(q) if q is not None else None

    def get_position(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._copy(self.state.get_position())

    def get_velocity(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._copy(self.state.get_velocity())

    def get_rate(self, system_input: Optional[SystemInput] = None) -> np.ndarray:
        """Angular rate from the state, or the bias-corrected input rate."""
        with self._lock:
            rate = self.state.get_rate()
            if rate is not None:
                return rate.copy()
            if system_input is None:
                return np.zeros(3)
            gyro = self.submodels.get('gyro')
            bias = gyro.get_bias(self.state) if gyro is not None else np.zeros(3)
            return system_input.rate - bias

    def get_bias(self) -> Tuple[np.ndarray, np.ndarray]:
        """Current (gyro, accelerometer) bias estimates."""
        biases = []
        with self._lock:
            for name in ('gyro', 'accelerometer'):
                submodel = self.submodels.get(name)
                biases.append(submodel.get_bias(self.state) if submodel is not None else np.zeros(3))
        return biases[0], biases[1]

    def get_global_position(self) -> Tuple[float, float, float]:
        """Geodetic (latitude, longitude, altitude) of the position estimate in radians/m."""
        with self._lock:
            p = self.state.get_position()
            if p is None:
                raise RuntimeError("State has no position partition")
            latitude, longitude = self.global_reference.to_wgs84(p[0], p[1])
            return latitude, longitude, self.global_reference.altitude + p[2]

    def get_timestamp(self) -> Optional[float]:
        with self._lock:
            return self._timestamp

    def set_timestamp(self, timestamp: float) -> None:
        with self._lock:
            self._timestamp = float(timestamp)
            self.filter.timestamp = self._timestamp

    @property
    def diagnostics(self) -> List[Diagnostic]:
        return list(self.filter.diagnostics)

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    def _parameter_owners(self) -> Dict[str, ParameterList]:
        owners: Dict[str, ParameterList] = {'pose_estimation': self.parameters}
        owners['system'] = self.system_model.parameters
        for name, submodel in self.submodels.items():
            owners[name] = submodel.parameters
        for name, measurement in self.measurements.items():
            owners[name] = measurement.parameters
            owners[f"{name}/model"] = measurement.model.parameters
        return owners

    def get_parameters(self) -> Dict[str, Any]:
        """All parameters as a flat dictionary keyed '<owner>/<name>'."""
        result: Dict[str, Any] = {}
        for owner, parameters in self._parameter_owners().items():
            for name, value in parameters.items():
                result[f"{owner}/{name}"] = value
        return result

    def set_parameters(self, values: Mapping[str, Any]) -> None:
        """
        Apply a flat '<owner>/<name>' dictionary.

        Raises:
            KeyError: For unknown owners or parameter names.
        """
        owners = self._parameter_owners()
        with self._lock:
            for key, value in values.items():
                owner, _, name = key.rpartition('/')
                if owner not in owners:
                    raise KeyError(f"Unknown parameter owner '{owner}'")
                owners[owner][name] = value

    def __repr__(self) -> str:
        return (
            f"PoseEstimation(measurements={list(self.measurements)}, "
            f"state={self.state!r})"
        )
