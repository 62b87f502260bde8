"""Synchronous entry point that loads a scenario and runs it on an event loop."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from loadstage._internal.config import load_config
from loadstage._internal.logging import get_logger, setup_logging
from loadstage.dsl.loader import load_scenario
from loadstage.engine.session import TestSession

if TYPE_CHECKING:
    from collections.abc import Callable

    from loadstage._internal.config import LoadStageConfig
    from loadstage.dsl.scenario import Scenario
    from loadstage.metrics.models import MetricSnapshot, TestResult
    from loadstage.patterns.base import LoadPattern

logger = get_logger("engine.runner")


def _uvloop_factory() -> Callable[[], asyncio.AbstractEventLoop] | None:
    """Return uvloop's loop factory if available.

    Falls back to the default asyncio event loop on Windows or if uvloop
    is not installed.
    """
    if sys.platform == "win32":
        return None

    try:
        import uvloop
    except ImportError:
        logger.debug("uvloop not available, using default asyncio event loop")
        return None

    logger.debug("Using uvloop event loop")
    return uvloop.new_event_loop


class LoadTestRunner:
    """Loads a scenario and runs it to completion in the current process.

    Blocks until the schedule ends or a SIGINT/SIGTERM aborts the run.

    Example::

        runner = LoadTestRunner("scenarios/crocodiles.yaml")
        result = runner.run()
        print(result.final_summary.check_pass_rate)

    Args:
        scenario: A :class:`Scenario`, or a path to a ``.py``, ``.yaml``,
            ``.yml`` or ``.json`` file defining one.
        pattern: Schedule override, e.g. from ``--stage`` CLI options.
        config: Configuration.  Defaults to :func:`load_config`.
        on_snapshot: Called with each per-tick snapshot.
        log_level: Level for the ``loadstage`` logger.
        json_logs: Emit log lines as JSON.
    """

    def __init__(
        self,
        scenario: Scenario | str | Path,
        *,
        pattern: LoadPattern | None = None,
        config: LoadStageConfig | None = None,
        on_snapshot: Callable[[MetricSnapshot], None] | None = None,
        log_level: int = logging.INFO,
        json_logs: bool = False,
    ) -> None:
        self._scenario_source = scenario
        self._pattern = pattern
        self._config = config
        self._on_snapshot = on_snapshot
        self._log_level = log_level
        self._json_logs = json_logs

    def load(self) -> Scenario:
        """Return the scenario, loading it from disk if given a path.

        Raises:
            ScenarioError: If the file cannot be loaded.
        """
        if isinstance(self._scenario_source, str | Path):
            return load_scenario(self._scenario_source)
        return self._scenario_source

    def run(self) -> TestResult:
        """Execute the load test and return results.

        Returns:
            TestResult with all snapshots and the final summary.

        Raises:
            ScenarioError: If the scenario cannot be loaded.
            ConfigError: If the environment configuration is invalid.
            EngineError: If the session fails unexpectedly.
        """
        setup_logging(level=self._log_level, json_format=self._json_logs)

        config = self._config or load_config()
        scenario = self.load()
        session = TestSession(
            scenario,
            self._pattern,
            config=config,
            on_snapshot=self._on_snapshot,
        )

        with asyncio.Runner(loop_factory=_uvloop_factory()) as runner:
            return runner.run(session.run())
