"""Turns a load pattern's tick timeline into scale commands."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING

from loadstage.patterns.base import _validate_positive

if TYPE_CHECKING:
    from collections.abc import Iterator

    from loadstage.patterns.base import LoadPattern


class ScaleDirection(Enum):
    """Direction of a concurrency change between two ticks."""

    UP = auto()
    DOWN = auto()
    HOLD = auto()


@dataclass(frozen=True)
class ScaleCommand:
    """Instruction to bring the number of active virtual users to a target.

    Attributes:
        elapsed_seconds: Offset from the run start at which to apply it.
        target_concurrency: Desired number of active virtual users.
        direction: Change relative to the previous command.
        delta: Absolute size of the change (always >= 0).
    """

    elapsed_seconds: float
    target_concurrency: int
    direction: ScaleDirection
    delta: int


class Scheduler:
    """Walks ``LoadPattern.iter_concurrency()`` and emits :class:`ScaleCommand`.

    The first command is relative to zero users, so a schedule that starts
    above zero opens with an ``UP`` command.

    Args:
        pattern: Concurrency schedule to follow.
        tick_interval: Seconds between commands.
    """

    def __init__(self, pattern: LoadPattern, tick_interval: float = 1.0) -> None:
        _validate_positive(tick_interval, "tick_interval")
        self._pattern = pattern
        self._tick_interval = tick_interval

    @property
    def duration_seconds(self) -> float:
        return self._pattern.duration_seconds

    def iter_commands(self) -> Iterator[ScaleCommand]:
        """Yield one command per tick, ending at the schedule's end."""
        previous = 0
        for elapsed, target in self._pattern.iter_concurrency(self._tick_interval):
            delta = target - previous
            if delta > 0:
                direction = ScaleDirection.UP
            elif delta < 0:
                direction = ScaleDirection.DOWN
            else:
                direction = ScaleDirection.HOLD

            yield ScaleCommand(
                elapsed_seconds=elapsed,
                target_concurrency=target,
                direction=direction,
                delta=abs(delta),
            )
            previous = target
