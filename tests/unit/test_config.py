"""Tests for configuration loading."""

from __future__ import annotations

import pytest

from loadstage._internal.config import LoadStageConfig, load_config
from loadstage._internal.errors import ConfigError

_ENV_VARS = (
    "LOADSTAGE_BASE_URL",
    "LOADSTAGE_TIMEOUT",
    "LOADSTAGE_GRACEFUL_STOP",
    "LOADSTAGE_GRACEFUL_RAMP_DOWN",
    "LOADSTAGE_TICK_INTERVAL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)


class TestLoadStageConfig:
    """Tests for the LoadStageConfig dataclass."""

    def test_defaults(self):
        """Timeouts and grace periods match k6's defaults."""
        config = LoadStageConfig()
        assert config.default_base_url == ""
        assert config.default_headers == {}
        assert config.request_timeout == 60.0
        assert config.graceful_stop == 30.0
        assert config.graceful_ramp_down == 30.0
        assert config.tick_interval == 1.0

    def test_frozen(self):
        config = LoadStageConfig()
        with pytest.raises(AttributeError):
            config.default_base_url = "http://changed"  # type: ignore[misc]


class TestLoadConfig:
    """Tests for the load_config function."""

    def test_defaults_from_env(self):
        assert load_config() == LoadStageConfig()

    def test_base_url_from_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("LOADSTAGE_BASE_URL", "http://api.example.com")
        assert load_config().default_base_url == "http://api.example.com"

    def test_timeout_from_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("LOADSTAGE_TIMEOUT", "10.5")
        assert load_config().request_timeout == 10.5

    def test_tick_interval_from_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("LOADSTAGE_TICK_INTERVAL", "0.25")
        assert load_config().tick_interval == 0.25

    def test_graceful_periods_accept_duration_strings(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("LOADSTAGE_GRACEFUL_STOP", "1m")
        monkeypatch.setenv("LOADSTAGE_GRACEFUL_RAMP_DOWN", "500ms")
        config = load_config()
        assert config.graceful_stop == 60.0
        assert config.graceful_ramp_down == 0.5

    def test_invalid_timeout(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("LOADSTAGE_TIMEOUT", "fast")
        with pytest.raises(ConfigError, match="LOADSTAGE_TIMEOUT must be a number"):
            load_config()

    def test_non_positive_tick_interval(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("LOADSTAGE_TICK_INTERVAL", "0")
        with pytest.raises(ConfigError, match="must be positive"):
            load_config()

    def test_invalid_graceful_stop(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("LOADSTAGE_GRACEFUL_STOP", "whenever")
        with pytest.raises(ConfigError, match="LOADSTAGE_GRACEFUL_STOP"):
            load_config()
