"""
State vector, covariance and partition bookkeeping for the pose filter.

State Vector Layout (fixed at construction, extensions appended):
    x = [q (4), omega (3), p (3), v (3), extensions...]^T

    Where:
        q: Orientation quaternion (body-to-nav), scalar-first [qw, qx, qy, qz]
        omega: Angular rate in body frame (rad/s), optional
        p: Position in nav frame [px, py, pz] (m), optional
        v: Velocity in nav frame [vx, vy, vz] (m/s), optional
        extensions: Blocks registered by sub-models (e.g. gyro bias)

Every logical partition can be activated or deactivated independently.
Only active dimensions are advanced by predict/correct; inactive blocks keep
their frozen values and are re-seeded with a prior variance when they become
active again.

Notes:
    - Index getters return None for partitions absent from the layout.
    - Position and velocity are split into horizontal (xy) and vertical (z)
      partitions that share one 3-element block.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Set, Tuple, Union

import numpy as np

from navfilter.estimators.status import SystemStatus


class Partition(Enum):
    """Logical partitions of the state vector."""

    ORIENTATION = 'orientation'
    RATE = 'rate'
    POSITION_XY = 'position_xy'
    POSITION_Z = 'position_z'
    VELOCITY_XY = 'velocity_xy'
    VELOCITY_Z = 'velocity_z'


# Status bits that switch a partition on. Orientation has none: it is
# estimated whenever it is part of the layout and not explicitly disabled.
PARTITION_FLAGS: Dict[Partition, SystemStatus] = {
    Partition.ORIENTATION: SystemStatus.NONE,
    Partition.RATE: SystemStatus.STATE_RATE_XY | SystemStatus.STATE_RATE_Z,
    Partition.POSITION_XY: SystemStatus.STATE_XY_POSITION,
    Partition.POSITION_Z: SystemStatus.STATE_Z_POSITION,
    Partition.VELOCITY_XY: SystemStatus.STATE_XY_VELOCITY,
    Partition.VELOCITY_Z: SystemStatus.STATE_Z_VELOCITY,
}

# Horizontal velocity needs roll/pitch, which needs the horizontal rate.
# Prerequisites absent from the layout are skipped.
PREREQUISITES: Dict[Partition, Tuple[Partition, ...]] = {
    Partition.ORIENTATION: (),
    Partition.RATE: (),
    Partition.VELOCITY_XY: (Partition.ORIENTATION, Partition.RATE),
    Partition.VELOCITY_Z: (Partition.ORIENTATION,),
    Partition.POSITION_XY: (Partition.VELOCITY_XY,),
    Partition.POSITION_Z: (Partition.VELOCITY_Z,),
}

# Resolution order: prerequisites come before their dependents.
PARTITION_ORDER: Tuple[Partition, ...] = (
    Partition.ORIENTATION,
    Partition.RATE,
    Partition.VELOCITY_XY,
    Partition.VELOCITY_Z,
    Partition.POSITION_XY,
    Partition.POSITION_Z,
)

BlockKey = Union[Partition, str]


@dataclass(frozen=True)
class StateBlock:
    """Contiguous block of the state vector."""

    name: str
    offset: int
    size: int

    @property
    def slice(self) -> slice:
        return slice(self.offset, self.offset + self.size)

    @property
    def indices(self) -> np.ndarray:
        return np.arange(self.offset, self.offset + self.size)


@dataclass(frozen=True)
class StateSnapshot:
    """Saved vector, covariance, status and active set of a State."""

    x: np.ndarray
    P: np.ndarray
    system_status: SystemStatus
    measurement_status: SystemStatus
    requested: SystemStatus
    active: FrozenSet[BlockKey]


class State:
    """
    State vector and covariance shared by the process and measurement models.

    The filter engine owns the State. Models receive it for the duration of
    a single call and never keep a reference to it.

    Args:
        with_orientation: Include the quaternion partition.
        with_rate: Include the angular rate partition. When absent, the rate
            is read from the external system input.
        with_position: Include the position partition.
        with_velocity: Include the velocity partition.
        prior_variance: Optional prior variances keyed by Partition or by
            extension block name.

    Example:
        >>> state = State()
        >>> state.get_orientation_index(), state.get_rate_index()
        (0, None)
        >>> state.set_system_status(SystemStatus.STATE_Z_POSITION | SystemStatus.STATE_Z_VELOCITY)
        >>> state.is_active(Partition.POSITION_Z)
        True
    """

    def __init__(
        self,
        with_orientation: bool = True,
        with_rate: bool = False,
        with_position: bool = True,
        with_velocity: bool = True,
        prior_variance: Optional[Dict[BlockKey, float]] = None,
    ):
        self._blocks: Dict[str, StateBlock] = {}
        self._extensions: List[str] = []
        offset = 0
        for name, size, present in (
            ('orientation', 4, with_orientation),
            ('rate', 3, with_rate),
            ('position', 3, with_position),
            ('velocity', 3, with_velocity),
        ):
            if present:
                self._blocks[name] = StateBlock(name, offset, size)
                offset += size

        self.x = np.zeros(offset)
        self.P = np.zeros((offset, offset))
        if with_orientation:
            self.x[self._blocks['orientation'].offset] = 1.0

        self._prior: Dict[BlockKey, float] = {key: 0.0 for key in Partition}
        self._initial: Dict[str, np.ndarray] = {}
        self._pinned: Set[BlockKey] = set()
        self._blocked: Set[BlockKey] = set()
        self._active: Set[BlockKey] = set()
        self._system_status = SystemStatus.NONE
        self._measurement_status = SystemStatus.NONE

        if prior_variance:
            for key, variance in prior_variance.items():
                self.set_prior_variance(key, variance)

        self._apply(SystemStatus.NONE)

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    @property
    def dimension(self) -> int:
        return len(self.x)

    def add_block(
        self,
        name: str,
        size: int,
        prior_variance: float = 0.0,
        initial: Optional[np.ndarray] = None,
    ) -> StateBlock:
        """
        Append an extension block registered by a sub-model.

        Registering an existing name with the same size returns the existing
        block unchanged.

        Raises:
            ValueError: If the name collides with a core partition or an
                existing block of different size.
        """
        if name in ('orientation', 'rate', 'position', 'velocity'):
            raise ValueError(f"Block name '{name}' is reserved")
        if size <= 0:
            raise ValueError(f"Block size must be positive, got {size}")
        if name in self._blocks:
            block = self._blocks[name]
            if block.size != size:
                raise ValueError(
                    f"Block '{name}' already registered with size {block.size}"
                )
            return block

        n = self.dimension
        block = StateBlock(name, n, size)
        self._blocks[name] = block
        self._extensions.append(name)

        x = np.zeros(n + size)
        x[:n] = self.x
        if initial is not None:
            initial = np.asarray(initial, dtype=float)
            if initial.shape != (size,):
                raise ValueError(f"Initial value must have shape ({size},), got {initial.shape}")
            x[n:] = initial
            self._initial[name] = initial.copy()
        P = np.zeros((n + size, n + size))
        P[:n, :n] = self.P
        self.x = x
        self.P = P

        self._prior[name] = float(prior_variance)
        self._apply(self._requested)
        return block

    def get_block(self, name: str) -> Optional[StateBlock]:
        return self._blocks.get(name)

    def get_block_index(self, name: str) -> Optional[int]:
        block = self._blocks.get(name)
        return block.offset if block is not None else None

    @property
    def extensions(self) -> Tuple[str, ...]:
        return tuple(self._extensions)

    def get_orientation_index(self) -> Optional[int]:
        return self.get_block_index('orientation')

    def get_rate_index(self) -> Optional[int]:
        return self.get_block_index('rate')

    def get_position_index(self) -> Optional[int]:
        return self.get_block_index('position')

    def get_velocity_index(self) -> Optional[int]:
        return self.get_block_index('velocity')

    def has(self, key: BlockKey) -> bool:
        """Whether the partition or extension block is part of the layout."""
        return self._block_for(key) is not None

    def indices(self, key: BlockKey) -> np.ndarray:
        """State indices covered by a partition or extension block."""
        block = self._block_for(key)
        if block is None:
            return np.zeros(0, dtype=int)
        if key is Partition.POSITION_XY or key is Partition.VELOCITY_XY:
            return block.indices[:2]
        if key is Partition.POSITION_Z or key is Partition.VELOCITY_Z:
            return block.indices[2:]
        return block.indices

    def _block_for(self, key: BlockKey) -> Optional[StateBlock]:
        if isinstance(key, Partition):
            name = {
                Partition.ORIENTATION: 'orientation',
                Partition.RATE: 'rate',
                Partition.POSITION_XY: 'position',
                Partition.POSITION_Z: 'position',
                Partition.VELOCITY_XY: 'velocity',
                Partition.VELOCITY_Z: 'velocity',
            }[key]
            return self._blocks.get(name)
        return self._blocks.get(key)

    def _keys(self) -> List[BlockKey]:
        keys: List[BlockKey] = [p for p in PARTITION_ORDER if self.has(p)]
        keys.extend(self._extensions)
        return keys

    # ------------------------------------------------------------------
    # Partition views
    # ------------------------------------------------------------------

    def _view(self, name: str) -> Optional[np.ndarray]:
        block = self._blocks.get(name)
        return self.x[block.slice] if block is not None else None

    def get_orientation(self) -> Optional[np.ndarray]:
        return self._view('orientation')

    def get_rate(self) -> Optional[np.ndarray]:
        return self._view('rate')

    def get_position(self) -> Optional[np.ndarray]:
        return self._view('position')

    def get_velocity(self) -> Optional[np.ndarray]:
        return self._view('velocity')

    def get_block_value(self, name: str) -> Optional[np.ndarray]:
        return self._view(name)

    def normalize_orientation(self) -> None:
        """Project the quaternion partition back onto the unit sphere."""
        q = self.get_orientation()
        if q is None:
            return
        norm = np.linalg.norm(q)
        if norm > 0.0 and np.isfinite(norm):
            q /= norm

    # ------------------------------------------------------------------
    # Priors
    # ------------------------------------------------------------------

    def set_prior_variance(self, key: BlockKey, variance: float) -> None:
        """Variance re-seeded on the diagonal when the block (re)activates."""
        if variance < 0.0:
            raise ValueError(f"Prior variance must be non-negative, got {variance}")
        if isinstance(key, Partition) or key in self._blocks:
            self._prior[key] = float(variance)
        else:
            raise KeyError(f"Unknown state block '{key}'")

    def get_prior_variance(self, key: BlockKey) -> float:
        return self._prior[key]

    # ------------------------------------------------------------------
    # Status and activation
    # ------------------------------------------------------------------

    def get_system_status(self) -> SystemStatus:
        return self._system_status

    def get_measurement_status(self) -> SystemStatus:
        return self._measurement_status

    def set_measurement_status(self, status: SystemStatus) -> None:
        self._measurement_status = SystemStatus(status)

    def set_system_status(self, status: SystemStatus) -> None:
        """
        Set the system status and derive the active partitions from it.

        Explicit enable()/disable() overrides take precedence over the flags.
        Partitions that become active are re-seeded with their prior.
        """
        self._apply(SystemStatus(status))

    def is_active(self, key: BlockKey) -> bool:
        return key in self._active

    def active_partitions(self) -> Set[BlockKey]:
        return set(self._active)

    def active_mask(self) -> np.ndarray:
        """Boolean mask of state dimensions currently taking part in the filter."""
        mask = np.zeros(self.dimension, dtype=bool)
        for key in self._active:
            mask[self.indices(key)] = True
        return mask

    def enable(self, key: BlockKey) -> None:
        """
        Activate a partition (and its prerequisites) until disabled again.

        Idempotent: enabling an already active partition does not touch the
        covariance.
        """
        self._check_key(key)
        for required in self._prerequisites_of(key):
            if self.has(required):
                self._pinned.add(required)
                self._blocked.discard(required)
        self._pinned.add(key)
        self._blocked.discard(key)
        self._apply(self._requested)

    def disable(self, key: BlockKey) -> None:
        """
        Deactivate a partition until enabled again.

        Dependent partitions become inactive as well. Idempotent.
        """
        self._check_key(key)
        self._blocked.add(key)
        self._pinned.discard(key)
        self._apply(self._requested)

    def clear_overrides(self) -> None:
        self._pinned.clear()
        self._blocked.clear()
        self._apply(self._requested)

    def _check_key(self, key: BlockKey) -> None:
        if not self.has(key):
            raise KeyError(f"State has no partition '{key}'")

    def _prerequisites_of(self, key: BlockKey) -> List[Partition]:
        if not isinstance(key, Partition):
            return []
        result: List[Partition] = []
        for required in PREREQUISITES[key]:
            result.extend(self._prerequisites_of(required))
            result.append(required)
        return result

    def _apply(self, status: SystemStatus) -> None:
        self._requested = status

        active: Set[BlockKey] = set()
        for key in self._keys():
            if isinstance(key, Partition) and key is not Partition.ORIENTATION:
                wanted = bool(status & PARTITION_FLAGS[key])
            else:
                wanted = True
            if key in self._pinned:
                wanted = True
            if key in self._blocked:
                wanted = False
            if wanted and isinstance(key, Partition):
                wanted = all(
                    required in active
                    for required in PREREQUISITES[key]
                    if self.has(required)
                )
            if wanted:
                active.add(key)

        for key in self._keys():
            if key in active and key not in self._active:
                self._seed(key)
            elif key not in active and key in self._active:
                self._freeze(key)
        self._active = active

        effective = status
        for key in self._keys():
            if not isinstance(key, Partition):
                continue
            flags = PARTITION_FLAGS[key]
            if key in active:
                effective |= flags
            elif self.has(key):
                effective = SystemStatus(int(effective) & ~int(flags))
        if Partition.VELOCITY_XY in active:
            effective |= SystemStatus.STATE_ROLLPITCH | SystemStatus.STATE_RATE_XY
        self._system_status = SystemStatus(effective)

    def snapshot(self) -> StateSnapshot:
        """Copy of everything a correction may change."""
        return StateSnapshot(
            x=self.x.copy(),
            P=self.P.copy(),
            system_status=self._system_status,
            measurement_status=self._measurement_status,
            requested=self._requested,
            active=frozenset(self._active),
        )

    def restore(self, snapshot: StateSnapshot) -> None:
        """Roll back to a snapshot taken with the same layout."""
        if snapshot.x.shape != self.x.shape:
            raise ValueError("Snapshot was taken with a different state layout")
        self.x[:] = snapshot.x
        self.P[:] = snapshot.P
        self._system_status = snapshot.system_status
        self._measurement_status = snapshot.measurement_status
        self._requested = snapshot.requested
        self._active = set(snapshot.active)

    def _seed(self, key: BlockKey) -> None:
        idx = self.indices(key)
        self.P[idx, :] = 0.0
        self.P[:, idx] = 0.0
        self.P[idx, idx] = self._prior[key]

    def _freeze(self, key: BlockKey) -> None:
        idx = self.indices(key)
        others = np.setdiff1d(np.arange(self.dimension), idx)
        self.P[np.ix_(idx, others)] = 0.0
        self.P[np.ix_(others, idx)] = 0.0

    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Restore the initial vector, clear overrides and re-seed priors."""
        self.x[:] = 0.0
        q_index = self.get_orientation_index()
        if q_index is not None:
            self.x[q_index] = 1.0
        for name, value in self._initial.items():
            self.x[self._blocks[name].slice] = value
        self.P[:] = 0.0
        self._pinned.clear()
        self._blocked.clear()
        self._active = set()
        self._measurement_status = SystemStatus.NONE
        self._apply(SystemStatus.NONE)

    def __repr__(self) -> str:
        return (
            f"State(dimension={self.dimension}, "
            f"active={sorted(str(getattr(k, 'value', k)) for k in self._active)})"
        )
