"""Test session lifecycle: virtual users, ramp scheduling and signal handling."""

from __future__ import annotations

import asyncio
import contextlib
import signal
import sys
import time
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING

from loadstage._internal.config import LoadStageConfig
from loadstage._internal.durations import format_duration
from loadstage._internal.errors import EngineError
from loadstage._internal.logging import get_logger
from loadstage.dsl.http_client import HttpClient
from loadstage.engine.context import IterationContext
from loadstage.engine.executor import StepExecutor
from loadstage.engine.scheduler import ScaleDirection, Scheduler
from loadstage.metrics.collector import MetricCollector
from loadstage.metrics.models import MetricSnapshot, TestResult

if TYPE_CHECKING:
    from collections.abc import Callable

    from loadstage.dsl.scenario import Scenario
    from loadstage.patterns.base import LoadPattern

logger = get_logger("engine.session")


class SessionState(Enum):
    """State machine for a test session."""

    CREATED = auto()
    STARTING = auto()
    RUNNING = auto()
    STOPPING = auto()
    COMPLETED = auto()
    FAILED = auto()


@dataclass
class _VirtualUser:
    user_id: int
    retire: asyncio.Event
    task: asyncio.Task[None] | None = None
    retired_at: float | None = None
    loop_exited: bool = False


class TestSession:
    """Runs one scenario against its concurrency schedule in this process.

    Every tick of the schedule brings the number of active virtual users
    to the target.  Each virtual user is an asyncio task with its own
    ``HttpClient``, looping over the scenario with a fresh
    :class:`IterationContext` per iteration.

    Scaling follows k6's ramping semantics:

    - Scaling down retires the most recently started users.  A retiring
      user finishes its current iteration and exits; it is cancelled if
      still running ``graceful_ramp_down`` seconds later.
    - Scaling up first revives retiring users that are still inside an
      iteration, then starts new ones.
    - When the schedule ends every user finishes its current iteration,
      and stragglers are cancelled after ``graceful_stop`` seconds.
    - :meth:`stop` (or SIGINT/SIGTERM) aborts: running iterations finish
      the step in flight and skip the rest.

    State machine: CREATED -> STARTING -> RUNNING -> STOPPING -> COMPLETED
                                                  -> FAILED (on error)
    """

    __test__ = False  # not a pytest test class

    def __init__(
        self,
        scenario: Scenario,
        pattern: LoadPattern | None = None,
        *,
        config: LoadStageConfig | None = None,
        on_snapshot: Callable[[MetricSnapshot], None] | None = None,
        handle_signals: bool = True,
    ) -> None:
        """Initialize a test session.

        Args:
            scenario: Scenario to execute.
            pattern: Schedule override.  Defaults to the scenario's own.
            config: Timeouts, grace periods and defaults.  Defaults to
                ``LoadStageConfig()``.
            on_snapshot: Called with each per-tick snapshot.
            handle_signals: Install SIGINT/SIGTERM handlers while running.
        """
        self._scenario = scenario
        self._pattern = pattern or scenario.pattern
        self._config = config or LoadStageConfig()
        self._on_snapshot = on_snapshot
        self._handle_signals = handle_signals

        self._state = SessionState.CREATED
        self._collector = MetricCollector()
        self._active: list[_VirtualUser] = []
        self._retiring: list[_VirtualUser] = []
        self._next_user_id = 0
        self._stop_event = asyncio.Event()
        self._abort = asyncio.Event()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def collector(self) -> MetricCollector:
        return self._collector

    @property
    def active_user_count(self) -> int:
        """Number of users running iterations (retiring users excluded)."""
        return len(self._active)

    @property
    def retiring_user_count(self) -> int:
        return len(self._retiring)

    async def run(self) -> TestResult:
        """Execute the full session lifecycle.

        Returns:
            TestResult with per-tick snapshots and the final summary.

        Raises:
            EngineError: If the session hits an unexpected error.
        """
        self._state = SessionState.STARTING
        logger.info(
            "Starting test session: scenario=%s, duration=%s, pattern=%s",
            self._scenario.name,
            format_duration(self._pattern.duration_seconds),
            self._pattern.describe(),
        )

        if self._handle_signals:
            self._install_signal_handlers()

        scheduler = Scheduler(self._pattern, self._config.tick_interval)
        start_time = time.monotonic()
        snapshots: list[MetricSnapshot] = []

        self._state = SessionState.RUNNING
        try:
            for command in scheduler.iter_commands():
                delay = start_time + command.elapsed_seconds - time.monotonic()
                if delay > 0:
                    with contextlib.suppress(TimeoutError):
                        await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                if self._stop_event.is_set():
                    break

                if command.direction is not ScaleDirection.HOLD:
                    logger.debug(
                        "Scaling %s by %d to %d users at %.1fs",
                        command.direction.name.lower(),
                        command.delta,
                        command.target_concurrency,
                        command.elapsed_seconds,
                    )
                self._scale_users(command.target_concurrency)
                self._reap_retiring()

                elapsed = time.monotonic() - start_time
                snapshot = self._collector.flush(
                    elapsed_seconds=elapsed,
                    active_users=self.active_user_count,
                )
                snapshots.append(snapshot)
                if self._on_snapshot is not None:
                    self._on_snapshot(snapshot)

                logger.debug(
                    "Tick %.1fs: users=%d (+%d retiring), rps=%.1f, p95=%.1fms, "
                    "errors=%d, checks failed=%d",
                    elapsed,
                    self.active_user_count,
                    self.retiring_user_count,
                    snapshot.requests_per_second,
                    snapshot.latency.p95,
                    snapshot.total_errors,
                    snapshot.checks_failed,
                )
        except Exception as exc:
            self._state = SessionState.FAILED
            logger.exception("Test session failed")
            msg = f"Test session for scenario {self._scenario.name!r} failed"
            raise EngineError(msg) from exc
        finally:
            if self._state != SessionState.FAILED:
                self._state = SessionState.STOPPING
            await self._shutdown_users()
            if self._handle_signals:
                self._remove_signal_handlers()

        end_time = time.monotonic()
        total_duration = end_time - start_time

        # Picks up iterations that finished during shutdown.
        tail = self._collector.flush(elapsed_seconds=total_duration, active_users=0)
        if tail.total_requests or tail.iterations or tail.iterations_interrupted:
            snapshots.append(tail)

        final_summary = self._collector.get_cumulative_snapshot(
            elapsed_seconds=total_duration,
            active_users=0,
        )

        self._state = SessionState.COMPLETED
        logger.info(
            "Test completed: duration=%.1fs, requests=%d, avg_rps=%.1f, p95=%.1fms, "
            "error_rate=%.2f%%, checks=%d/%d passed, iterations=%d (+%d interrupted)",
            total_duration,
            final_summary.total_requests,
            final_summary.requests_per_second,
            final_summary.latency.p95,
            final_summary.error_rate * 100,
            final_summary.checks_passed,
            final_summary.checks_passed + final_summary.checks_failed,
            final_summary.iterations,
            final_summary.iterations_interrupted,
        )

        return TestResult(
            scenario_name=self._scenario.name,
            start_time=start_time,
            end_time=end_time,
            duration_seconds=total_duration,
            pattern_description=self._pattern.describe(),
            snapshots=snapshots,
            final_summary=final_summary,
            aborted=self._abort.is_set(),
        )

    async def stop(self) -> None:
        """Abort the session.

        The scheduling loop exits at once; running iterations finish the
        step in flight and skip the rest.
        """
        if self._state in (SessionState.STARTING, SessionState.RUNNING):
            logger.info("Graceful shutdown requested")
            self._request_abort()

    def _request_abort(self) -> None:
        self._state = SessionState.STOPPING
        self._abort.set()
        self._stop_event.set()

    async def _run_virtual_user(self, user: _VirtualUser) -> None:
        scenario = self._scenario
        async with HttpClient(
            base_url=scenario.base_url or self._config.default_base_url,
            headers={**self._config.default_headers, **scenario.default_headers},
            metric_callback=self._collector.record,
            user_id=user.user_id,
            timeout=scenario.request_timeout or self._config.request_timeout,
        ) as client:
            executor = StepExecutor(client, self._collector, self._abort)
            iteration = 0
            while not user.retire.is_set() and not self._abort.is_set():
                ctx = IterationContext(user_id=user.user_id, iteration=iteration)
                await executor.run_iteration(scenario, ctx)
                iteration += 1
            user.loop_exited = True
        logger.debug("Virtual user %d exited after %d iterations", user.user_id, iteration)

    def _spawn_user(self) -> _VirtualUser:
        user = _VirtualUser(user_id=self._next_user_id, retire=asyncio.Event())
        self._next_user_id += 1
        user.task = asyncio.create_task(
            self._run_virtual_user(user),
            name=f"virtual-user-{user.user_id}",
        )
        user.task.add_done_callback(self._on_user_done)
        return user

    def _scale_users(self, target: int) -> None:
        """Bring the number of active virtual users to *target*."""
        self._prune_finished()
        current = self.active_user_count

        if target > current:
            needed = target - current
            # A user whose loop already ended cannot be woken again.
            revivable = [u for u in self._retiring if not u.loop_exited]
            while needed and revivable:
                user = revivable.pop()
                self._retiring.remove(user)
                user.retire.clear()
                user.retired_at = None
                self._active.append(user)
                needed -= 1
            for _ in range(needed):
                self._active.append(self._spawn_user())

        elif target < current:
            now = time.monotonic()
            for _ in range(current - target):
                user = self._active.pop()
                user.retire.set()
                user.retired_at = now
                self._retiring.append(user)

    def _reap_retiring(self) -> None:
        """Cancel retiring users that overran ``graceful_ramp_down``."""
        deadline = time.monotonic() - self._config.graceful_ramp_down
        for user in self._retiring:
            if user.retired_at is None or user.retired_at > deadline:
                continue
            if user.task is not None and not user.task.done():
                logger.debug("Cancelling virtual user %d after ramp-down", user.user_id)
                user.task.cancel()

    def _prune_finished(self) -> None:
        self._active = [u for u in self._active if u.task is not None and not u.task.done()]
        self._retiring = [u for u in self._retiring if u.task is not None and not u.task.done()]

    async def _shutdown_users(self) -> None:
        """Let every user finish its iteration, cancelling after ``graceful_stop``."""
        users = self._active + self._retiring
        for user in users:
            user.retire.set()
        tasks = [u.task for u in users if u.task is not None and not u.task.done()]

        if tasks:
            _done, pending = await asyncio.wait(tasks, timeout=self._config.graceful_stop)
            for task in pending:
                task.cancel()
            if pending:
                logger.info(
                    "Cancelled %d virtual users still running after graceful stop",
                    len(pending),
                )
                await asyncio.wait(pending)

        self._active.clear()
        self._retiring.clear()
        logger.debug("All virtual users shut down")

    @staticmethod
    def _on_user_done(task: asyncio.Task[None]) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Virtual user task %s crashed",
                task.get_name(),
                exc_info=task.exception(),
            )

    def _install_signal_handlers(self) -> None:
        """Abort on SIGINT and SIGTERM."""
        loop = asyncio.get_running_loop()

        def _signal_handler() -> None:
            logger.info("Signal received, initiating graceful shutdown")
            self._request_abort()

        if sys.platform != "win32":
            loop.add_signal_handler(signal.SIGINT, _signal_handler)
            loop.add_signal_handler(signal.SIGTERM, _signal_handler)
        else:
            # Windows doesn't support add_signal_handler
            signal.signal(signal.SIGINT, lambda _s, _f: _signal_handler())
            signal.signal(signal.SIGTERM, lambda _s, _f: _signal_handler())

    def _remove_signal_handlers(self) -> None:
        """Restore default signal handling."""
        if sys.platform != "win32":
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
        else:
            signal.signal(signal.SIGINT, signal.default_int_handler)
            signal.signal(signal.SIGTERM, signal.SIG_DFL)
