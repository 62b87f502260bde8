"""Per-iteration variable store."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class IterationContext:
    """Key/value state private to one iteration of one virtual user.

    A fresh context is created at the start of every iteration and dropped
    at its end, so values extracted by one iteration never leak into
    another, nor into a different virtual user.

    Attributes:
        user_id: Virtual user running the iteration.
        iteration: Zero-based iteration number for that user.
    """

    user_id: int
    iteration: int
    _vars: dict[str, Any] = field(default_factory=dict, repr=False)

    def get(self, name: str, default: Any = None) -> Any:
        return self._vars.get(name, default)

    def set(self, name: str, value: Any) -> None:
        self._vars[name] = value

    def __contains__(self, name: object) -> bool:
        return name in self._vars

    def as_mapping(self) -> dict[str, Any]:
        """Return the variables for template rendering.

        ``__vu`` and ``__iter`` are always present, following the names k6
        scripts use for the same values.
        """
        return {"__vu": self.user_id, "__iter": self.iteration, **self._vars}
