"""
Process (system) model abstraction and bias sub-models.

A system model supplies the continuous-time dynamics of the shared state:

    x_dot = f(x, u)            get_derivative()
    A     = df/dx              get_state_jacobian()
    Q     = diag(...)          get_system_noise()

It never stores the state. The estimator passes the State in on every call
and the model returns what it computed. The rate and specific force used by
the derivative (including every bias correction applied by sub-models) are
returned next to x_dot as a KinematicInputs record, and the Jacobian is
evaluated with that same record.

Sub-models (BiasModel) estimate sensor biases. A filtered sub-model appends
its own 3-element block to the state and follows a random walk; an
unfiltered one only holds a configured bias.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Optional, Tuple

import numpy as np

from navfilter.estimators.state import State
from navfilter.estimators.status import SystemStatus
from navfilter.utils import ParameterList

if TYPE_CHECKING:
    from navfilter.fusion.pose_estimation import PoseEstimation


@dataclass
class SystemInput:
    """
    External input of the process model.

    Attributes:
        rate: Measured body angular rate (rad/s), shape (3,).
        acceleration: Measured body specific force (m/s^2), shape (3,).
        t: Timestamp in seconds, if known.
    """

    rate: np.ndarray = field(default_factory=lambda: np.zeros(3))
    acceleration: np.ndarray = field(default_factory=lambda: np.zeros(3))
    t: Optional[float] = None

    def __post_init__(self) -> None:
        self.rate = np.asarray(self.rate, dtype=float)
        self.acceleration = np.asarray(self.acceleration, dtype=float)
        if self.rate.shape != (3,):
            raise ValueError(f"Rate must have shape (3,), got {self.rate.shape}")
        if self.acceleration.shape != (3,):
            raise ValueError(
                f"Acceleration must have shape (3,), got {self.acceleration.shape}"
            )


@dataclass
class KinematicInputs:
    """
    Rate and specific force actually used by one derivative evaluation.

    Attributes:
        rate: Body angular rate (rad/s), from the state or bias-corrected input.
        acceleration: Bias-corrected body specific force (m/s^2).
        biases: Bias applied by each sub-model, keyed by sub-model name.
    """

    rate: np.ndarray
    acceleration: np.ndarray
    biases: Dict[str, np.ndarray] = field(default_factory=dict)


class SystemModel(ABC):
    """
    Continuous-time process model shared by the filter.

    Class attributes:
        input_noise: Set to True by models whose noise is propagated from the
            input covariance through get_input_jacobian(). Such a model must
            implement get_input_jacobian(); otherwise the estimator fails with
            a ConfigurationError.
    """

    input_noise: bool = False

    def __init__(self):
        self.parameters = ParameterList()

    def init(self, estimator: 'PoseEstimation', state: State) -> bool:
        """Register sub-models and fetch shared parameters."""
        return True

    def reset(self) -> None:
        pass

    def get_prior(self, state: State) -> None:
        """Configure the prior variances used when partitions (re)activate."""

    def get_status_flags(self, state: State) -> SystemStatus:
        return state.get_measurement_status()

    @abstractmethod
    def get_derivative(
        self, state: State, system_input: Optional[SystemInput]
    ) -> Tuple[np.ndarray, KinematicInputs]:
        """
        Continuous-time state derivative.

        Returns:
            Tuple of (x_dot, inputs). x_dot has the full state dimension with
            zeros for inactive dimensions.
        """

    @abstractmethod
    def get_state_jacobian(self, state: State, inputs: KinematicInputs) -> np.ndarray:
        """Partial derivative of x_dot with respect to the state (n x n)."""

    def get_input_jacobian(self, state: State, inputs: KinematicInputs) -> np.ndarray:
        """Partial derivative of x_dot with respect to the input (n x 6)."""
        raise NotImplementedError(
            f"{type(self).__name__} does not implement an input Jacobian"
        )

    def get_input_covariance(self) -> np.ndarray:
        """Covariance of the external input [rate, acceleration] (6 x 6)."""
        raise NotImplementedError(
            f"{type(self).__name__} does not implement an input covariance"
        )

    @abstractmethod
    def get_system_noise(self, Q: np.ndarray, state: State, init: bool = False) -> None:
        """
        Fill the diagonal of the continuous-time process noise Q in place.

        Args:
            Q: Noise buffer owned by the filter engine (n x n).
            state: Current state.
            init: True once at initialization for state-independent terms.
        """


class BiasModel:
    """
    Sensor bias sub-model.

    The corrected sensor value is 'measured - bias'.

    Parameters:
        stddev: White noise standard deviation of the sensor.
        drift: Bias random-walk standard deviation (per sqrt(s)).
        prior_stddev: Standard deviation seeded when the bias block activates.
        bias_x, bias_y, bias_z: Configured (or initial) bias.

    Args:
        name: Name under which the sub-model registers with the estimator.
        filtered: Estimate the bias as a state extension block.
    """

    def __init__(self, name: str, filtered: bool = False, **parameters):
        self.name = name
        self.filtered = filtered
        self.parameters = ParameterList(
            stddev=0.0,
            drift=0.0,
            prior_stddev=0.0,
            bias_x=0.0,
            bias_y=0.0,
            bias_z=0.0,
        )
        self.parameters.update(parameters)

    @property
    def block_name(self) -> str:
        return f"{self.name}_bias"

    def configured_bias(self) -> np.ndarray:
        return np.array([
            self.parameters['bias_x'],
            self.parameters['bias_y'],
            self.parameters['bias_z'],
        ])

    def init(self, estimator: 'PoseEstimation', state: State) -> bool:
        if self.filtered:
            state.add_block(
                self.block_name, 3,
                prior_variance=self.parameters['prior_stddev'] ** 2,
                initial=self.configured_bias(),
            )
        return True

    def is_estimated(self, state: State) -> bool:
        return self.filtered and state.is_active(self.block_name)

    def get_bias(self, state: State) -> np.ndarray:
        if self.filtered and state.has(self.block_name):
            return state.get_block_value(self.block_name).copy()
        return self.configured_bias()

    def get_system_noise(self, Q: np.ndarray, state: State) -> None:
        if not self.filtered or not state.has(self.block_name):
            return
        idx = state.indices(self.block_name)
        Q[idx, idx] = self.parameters['drift'] ** 2

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, filtered={self.filtered})"


class GyroModel(BiasModel):
    """Gyroscope bias sub-model."""

    def __init__(self, name: str = 'gyro', filtered: bool = False, **parameters):
        defaults = dict(
            stddev=np.deg2rad(1.0),
            drift=np.deg2rad(1.0e-2),
            prior_stddev=np.deg2rad(1.0),
        )
        defaults.update(parameters)
        super().__init__(name, filtered, **defaults)


class AccelerometerModel(BiasModel):
    """Accelerometer bias sub-model."""

    def __init__(self, name: str = 'accelerometer', filtered: bool = False, **parameters):
        defaults = dict(
            stddev=1.0e-2,
            drift=1.0e-4,
            prior_stddev=0.1,
        )
        defaults.update(parameters)
        super().__init__(name, filtered, **defaults)
