"""Configuration loading for loadstage."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loadstage._internal.durations import parse_duration
from loadstage._internal.errors import ConfigError

if TYPE_CHECKING:
    from loadstage._internal.types import Headers


@dataclass(frozen=True)
class LoadStageConfig:
    """Global loadstage configuration.

    Attributes:
        default_base_url: Base URL used when a scenario does not set one.
        default_headers: HTTP headers applied to every request.
        request_timeout: Per-request timeout in seconds.
        graceful_stop: Seconds running iterations get to finish once the
            stage schedule has ended.
        graceful_ramp_down: Seconds a retired virtual user gets to finish
            its current iteration when the target concurrency drops.
        tick_interval: Seconds between concurrency adjustments.
    """

    default_base_url: str = ""
    default_headers: Headers = field(default_factory=dict)
    request_timeout: float = 60.0
    graceful_stop: float = 30.0
    graceful_ramp_down: float = 30.0
    tick_interval: float = 1.0


def _read_positive_float(var: str, default: str) -> float:
    raw = os.environ.get(var, default)
    try:
        value = float(raw)
    except ValueError:
        msg = f"{var} must be a number, got: {raw!r}"
        raise ConfigError(msg) from None
    if value <= 0:
        msg = f"{var} must be positive, got: {value}"
        raise ConfigError(msg)
    return value


def load_config() -> LoadStageConfig:
    """Load configuration from environment variables with defaults.

    Environment variables:
        LOADSTAGE_BASE_URL: Default base URL.
        LOADSTAGE_TIMEOUT: Request timeout in seconds (default: 60).
        LOADSTAGE_GRACEFUL_STOP: Duration string (default: 30s).
        LOADSTAGE_GRACEFUL_RAMP_DOWN: Duration string (default: 30s).
        LOADSTAGE_TICK_INTERVAL: Seconds between scale ticks (default: 1.0).

    Returns:
        Populated LoadStageConfig instance.

    Raises:
        ConfigError: If an environment variable has an invalid value.
    """
    timeout = _read_positive_float("LOADSTAGE_TIMEOUT", "60")
    tick_interval = _read_positive_float("LOADSTAGE_TICK_INTERVAL", "1.0")

    graceful_stop = parse_duration(
        os.environ.get("LOADSTAGE_GRACEFUL_STOP", "30s"),
        name="LOADSTAGE_GRACEFUL_STOP",
    )
    graceful_ramp_down = parse_duration(
        os.environ.get("LOADSTAGE_GRACEFUL_RAMP_DOWN", "30s"),
        name="LOADSTAGE_GRACEFUL_RAMP_DOWN",
    )

    return LoadStageConfig(
        default_base_url=os.environ.get("LOADSTAGE_BASE_URL", ""),
        request_timeout=timeout,
        graceful_stop=graceful_stop,
        graceful_ramp_down=graceful_ramp_down,
        tick_interval=tick_interval,
    )
