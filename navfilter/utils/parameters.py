"""
Named numeric parameters with defaults.

Every model exposes a flat list of tunable values (standard deviations,
gains, timeouts). Loading and persisting them is left to the caller; this
module only keeps the names, defaults and current values together.
"""

from typing import Any, Dict, Iterator, Mapping, Optional, Tuple


class ParameterList:
    """
    Ordered collection of named parameters.

    Example:
        >>> params = ParameterList()
        >>> params.add("stddev", 10.0)
        >>> params["stddev"] = 0.5
        >>> params.get("stddev")
        0.5
        >>> params.default("stddev")
        10.0
    """

    def __init__(self, **defaults: Any):
        self._values: Dict[str, Any] = {}
        self._defaults: Dict[str, Any] = {}
        for name, value in defaults.items():
            self.add(name, value)

    def add(self, name: str, default: Any) -> None:
        """
        Declare a parameter.

        Re-declaring an existing name keeps its current value.

        Raises:
            ValueError: If the name is empty.
        """
        if not isinstance(name, str) or not name:
            raise ValueError(f"Parameter name must be a non-empty string, got {name!r}")
        self._defaults[name] = default
        self._values.setdefault(name, default)

    def get(self, name: str, fallback: Optional[Any] = None) -> Any:
        return self._values.get(name, fallback)

    def set(self, name: str, value: Any) -> None:
        if name not in self._values:
            raise KeyError(f"Unknown parameter '{name}'")
        default = self._defaults[name]
        if isinstance(default, bool):
            value = bool(value)
        elif isinstance(default, float):
            value = float(value)
        self._values[name] = value

    def default(self, name: str) -> Any:
        return self._defaults[name]

    def update(self, values: Mapping[str, Any]) -> None:
        """Apply several values at once. Unknown names raise KeyError."""
        for name, value in values.items():
            self.set(name, value)

    def restore_defaults(self) -> None:
        self._values = dict(self._defaults)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._values)

    def items(self) -> Iterator[Tuple[str, Any]]:
        return iter(self._values.items())

    def __getitem__(self, name: str) -> Any:
        return self._values[name]

    def __setitem__(self, name: str, value: Any) -> None:
        self.set(name, value)

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ParameterList({self._values!r})"
