"""Constant pattern: a fixed number of virtual users for a fixed duration."""

from __future__ import annotations

from loadstage._internal.durations import format_duration
from loadstage._internal.errors import ConfigError
from loadstage.patterns.base import LoadPattern, _validate_positive


class ConstantPattern(LoadPattern):
    """Hold *users* virtual users for *duration* seconds.

    Equivalent to k6's ``vus`` + ``duration`` options when no stages are
    given.

    Args:
        users: Number of concurrent virtual users.  Must be >= 1.
        duration: Run length in seconds.  Must be > 0.

    Raises:
        ConfigError: If either argument is out of range.
    """

    def __init__(self, users: int, duration: float) -> None:
        if users < 1:
            msg = f"users must be >= 1, got {users}"
            raise ConfigError(msg)
        _validate_positive(duration, "duration")
        self._users = users
        self._duration = duration

    @property
    def users(self) -> int:
        return self._users

    @property
    def duration_seconds(self) -> float:
        return self._duration

    def target_at(self, elapsed: float) -> float:  # noqa: ARG002
        return float(self._users)

    def describe(self) -> str:
        return f"Constant: {self._users} users for {format_duration(self._duration)}"
