"""Parsing of k6-style duration strings such as ``"30s"`` or ``"1m30s"``."""

from __future__ import annotations

import math
import re

from loadstage._internal.errors import ConfigError

_UNIT_SECONDS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_FULL = re.compile(r"^(?:\d+(?:\.\d+)?(?:ms|h|m|s))+$")


def parse_duration(value: str | float, *, name: str = "duration") -> float:
    """Convert a duration to seconds.

    Accepts plain numbers (already seconds), numeric strings, and unit
    strings combining ``h``, ``m``, ``s`` and ``ms`` parts, e.g. ``"2h"``,
    ``"1m30s"``, ``"500ms"``.

    Args:
        value: Duration as seconds or a duration string.
        name: Field name used in error messages.

    Returns:
        The duration in seconds.

    Raises:
        ConfigError: If the value cannot be parsed or is negative.
    """
    if isinstance(value, bool):
        msg = f"{name} must be a number or duration string, got {value!r}"
        raise ConfigError(msg)

    if isinstance(value, int | float):
        seconds = float(value)
    elif isinstance(value, str):
        text = value.strip().lower()
        try:
            seconds = float(text)
        except ValueError:
            if not _FULL.match(text):
                msg = f"{name} is not a valid duration: {value!r}"
                raise ConfigError(msg) from None
            seconds = sum(
                float(amount) * _UNIT_SECONDS[unit] for amount, unit in _PART.findall(text)
            )
    else:
        msg = f"{name} must be a number or duration string, got {type(value).__name__}"
        raise ConfigError(msg)

    if not math.isfinite(seconds) or seconds < 0:
        msg = f"{name} must be a finite, non-negative duration, got {value!r}"
        raise ConfigError(msg)
    return seconds


def format_duration(seconds: float) -> str:
    """Render seconds in the compact form used by ``describe()`` strings.

    Args:
        seconds: Duration in seconds.

    Returns:
        A string such as ``"1m30s"``, ``"45s"`` or ``"0.5s"``.
    """
    if seconds < 60 or seconds != int(seconds):
        return f"{seconds:g}s"
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs:
        parts.append(f"{secs}s")
    return "".join(parts)
