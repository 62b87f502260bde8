"""Shared type aliases for loadstage."""

from __future__ import annotations

# HTTP headers dictionary.
Headers = dict[str, str]

# Think time: fixed seconds or a (min_seconds, max_seconds) range.
ThinkTime = float | tuple[float, float]
