"""Staged ramp pattern: piecewise-linear concurrency between stage targets."""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from itertools import accumulate
from typing import TYPE_CHECKING

from loadstage._internal.durations import format_duration, parse_duration
from loadstage._internal.errors import ConfigError
from loadstage.patterns.base import LoadPattern, _validate_non_negative, _validate_positive

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence


@dataclass(frozen=True)
class Stage:
    """One segment of a ramp profile.

    Attributes:
        duration: Length of the stage in seconds.  Must be > 0.
        target: Concurrency reached at the end of the stage.  Must be >= 0.
    """

    duration: float
    target: int

    def __post_init__(self) -> None:
        _validate_positive(self.duration, "stage duration")
        if isinstance(self.target, bool) or not isinstance(self.target, int):
            msg = f"stage target must be an integer, got {self.target!r}"
            raise ConfigError(msg)
        _validate_non_negative(self.target, "stage target")

    @classmethod
    def from_dict(cls, raw: Mapping[str, object]) -> Stage:
        """Build a stage from ``{"duration": "30s", "target": 20}``.

        Raises:
            ConfigError: If a key is missing or has an invalid value.
        """
        try:
            duration = raw["duration"]
            target = raw["target"]
        except KeyError as exc:
            msg = f"stage is missing required key {exc.args[0]!r}: {dict(raw)!r}"
            raise ConfigError(msg) from None
        return cls(
            duration=parse_duration(duration, name="stage duration"),  # type: ignore[arg-type]
            target=target,  # type: ignore[arg-type]
        )

    @classmethod
    def parse(cls, text: str) -> Stage:
        """Build a stage from the compact ``"30s:20"`` form used on the CLI.

        Raises:
            ConfigError: If the text is not ``<duration>:<target>``.
        """
        duration, sep, target = text.partition(":")
        if not sep:
            msg = f"stage must look like '<duration>:<target>', got {text!r}"
            raise ConfigError(msg)
        try:
            users = int(target)
        except ValueError:
            msg = f"stage target must be an integer, got {target!r}"
            raise ConfigError(msg) from None
        return cls(duration=parse_duration(duration, name="stage duration"), target=users)


class StagesPattern(LoadPattern):
    """Ramp concurrency through an ordered sequence of stages.

    Within each stage the target moves linearly from the previous stage's
    target (or *start_users* for the first stage) to the stage's own target
    over the stage duration.  After the last stage the final target holds.
    The resulting curve is continuous and piecewise-linear.

    Args:
        stages: Ordered stages.  Must not be empty.
        start_users: Concurrency at t=0.  Defaults to 0.

    Raises:
        ConfigError: If *stages* is empty or *start_users* is negative.

    Example::

        pattern = StagesPattern(
            [Stage(30.0, 20), Stage(60.0, 20), Stage(10.0, 0)]
        )
        assert pattern.concurrency_at(15.0) == 10   # ramping up
        assert pattern.concurrency_at(45.0) == 20   # steady
        assert pattern.concurrency_at(95.0) == 10   # draining
    """

    def __init__(self, stages: Sequence[Stage], start_users: int = 0) -> None:
        if not stages:
            msg = "stages must contain at least one stage"
            raise ConfigError(msg)
        _validate_non_negative(start_users, "start_users")
        self._stages = tuple(stages)
        self._start_users = start_users
        # Absolute end time of each stage, for bisecting.
        self._boundaries = list(accumulate(s.duration for s in self._stages))

    @property
    def stages(self) -> tuple[Stage, ...]:
        """The configured stages in order."""
        return self._stages

    @property
    def duration_seconds(self) -> float:
        return self._boundaries[-1]

    def target_at(self, elapsed: float) -> float:
        if elapsed <= 0:
            return float(self._start_users)
        if elapsed >= self.duration_seconds:
            return float(self._stages[-1].target)

        index = bisect_right(self._boundaries, elapsed)
        stage = self._stages[index]
        stage_start = self._boundaries[index - 1] if index > 0 else 0.0
        previous = self._stages[index - 1].target if index > 0 else self._start_users

        fraction = (elapsed - stage_start) / stage.duration
        return previous + (stage.target - previous) * fraction

    def stage_index_at(self, elapsed: float) -> int:
        """Return the index of the stage active at *elapsed* seconds."""
        if elapsed >= self.duration_seconds:
            return len(self._stages) - 1
        return bisect_right(self._boundaries, max(elapsed, 0.0))

    def describe(self) -> str:
        steps = " -> ".join(f"{s.target}@{format_duration(s.duration)}" for s in self._stages)
        return (
            f"Stages: {self._start_users} -> {steps} "
            f"({format_duration(self.duration_seconds)} total)"
        )
