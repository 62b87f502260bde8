"""Abstract base class for concurrency schedules."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from loadstage._internal.errors import ConfigError

if TYPE_CHECKING:
    from collections.abc import Iterator


class LoadPattern(ABC):
    """Abstract base for all concurrency schedules.

    A pattern maps elapsed run time to a desired number of concurrently
    active virtual users.  Concrete subclasses implement :meth:`target_at`
    (the exact, possibly fractional, target) and :attr:`duration_seconds`;
    everything else is derived from those two.

    Example::

        pattern = StagesPattern([Stage(30.0, 20), Stage(60.0, 20), Stage(10.0, 0)])
        for elapsed, users in pattern.iter_concurrency(tick_interval=5.0):
            print(f"t={elapsed:.0f}s -> {users} users")
    """

    @property
    @abstractmethod
    def duration_seconds(self) -> float:
        """Total length of the schedule in seconds."""

    @abstractmethod
    def target_at(self, elapsed: float) -> float:
        """Return the exact target concurrency at *elapsed* seconds.

        Args:
            elapsed: Seconds since the run started.  Values past the end of
                the schedule return the final target.

        Returns:
            The target as a float; callers round it via
            :meth:`concurrency_at`.
        """

    @abstractmethod
    def describe(self) -> str:
        """Return a short human-readable description for logs and reports."""

    def concurrency_at(self, elapsed: float) -> int:
        """Return the whole number of virtual users desired at *elapsed*."""
        return max(round(self.target_at(elapsed)), 0)

    def max_concurrency(self) -> int:
        """Return the peak whole-user target over the schedule."""
        return max(users for _, users in self.iter_concurrency())

    def iter_concurrency(self, tick_interval: float = 1.0) -> Iterator[tuple[float, int]]:
        """Yield ``(elapsed_seconds, target_concurrency)`` at each tick.

        Ticks start at 0 and are spaced by *tick_interval*.  A final tick at
        exactly :attr:`duration_seconds` is always emitted, so the last value
        is the schedule's end target.

        Args:
            tick_interval: Seconds between ticks.

        Yields:
            ``(elapsed_seconds, target_concurrency)`` tuples.
        """
        _validate_positive(tick_interval, "tick_interval")
        duration = self.duration_seconds
        # Small epsilon absorbs float error in duration / tick_interval.
        ticks = math.floor(duration / tick_interval + 1e-9)
        for i in range(ticks + 1):
            elapsed = i * tick_interval
            yield (elapsed, self.concurrency_at(elapsed))
        if ticks * tick_interval < duration - 1e-9:
            yield (duration, self.concurrency_at(duration))


def _validate_positive(value: float, name: str) -> None:
    """Raise :class:`ConfigError` if *value* is not strictly positive."""
    if value <= 0:
        msg = f"{name} must be positive, got {value}"
        raise ConfigError(msg)


def _validate_non_negative(value: float, name: str) -> None:
    """Raise :class:`ConfigError` if *value* is negative."""
    if value < 0:
        msg = f"{name} must be non-negative, got {value}"
        raise ConfigError(msg)
