"""Runs scenario steps for one virtual user: request, checks, extraction, pause."""

from __future__ import annotations

import asyncio
import contextlib
import random
import time
from typing import TYPE_CHECKING

from loadstage._internal.logging import get_logger
from loadstage.dsl.checks import run_checks
from loadstage.dsl.templating import render

if TYPE_CHECKING:
    from loadstage.dsl.http_client import HttpClient, Response
    from loadstage.dsl.scenario import Group, Scenario, Step
    from loadstage.engine.context import IterationContext
    from loadstage.metrics.collector import MetricCollector

logger = get_logger("engine.executor")


class StepExecutor:
    """Executes steps and whole iterations against one ``HttpClient``.

    Nothing a step does halts the iteration: transport failures come back
    from the client as status-0 responses, failing or raising checks are
    recorded as failed results, and a broken extractor leaves its variable
    unset.  Only the abort event cuts an iteration short, and then only
    between steps.

    Args:
        client: The virtual user's HTTP client.
        collector: Sink for check results and iteration outcomes.
        abort: Event set on an external stop.  Wakes pauses early and
            prevents further steps from starting.
    """

    def __init__(
        self,
        client: HttpClient,
        collector: MetricCollector,
        abort: asyncio.Event | None = None,
    ) -> None:
        self._client = client
        self._collector = collector
        self._abort = abort or asyncio.Event()

    @property
    def aborted(self) -> bool:
        return self._abort.is_set()

    async def run_iteration(self, scenario: Scenario, ctx: IterationContext) -> bool:
        """Run every group and step of *scenario* once, in order.

        The iteration is recorded with the collector as completed or
        interrupted, including when the surrounding task is cancelled.

        Args:
            scenario: Scenario to run.
            ctx: Fresh context for this iteration.

        Returns:
            True if every step ran.
        """
        start = time.monotonic()
        completed = False
        try:
            completed = await self._run_groups(scenario, ctx)
        except Exception:
            logger.debug(
                "Iteration %d of user %d failed",
                ctx.iteration,
                ctx.user_id,
                exc_info=True,
                extra={"vu": ctx.user_id, "iteration": ctx.iteration},
            )
        finally:
            self._collector.record_iteration(
                (time.monotonic() - start) * 1000,
                completed=completed,
            )
        return completed

    async def _run_groups(self, scenario: Scenario, ctx: IterationContext) -> bool:
        for group in scenario.groups:
            for step in group.steps:
                if self._abort.is_set():
                    return False
                await self.run_step(group, step, ctx)
            await self.pause(group.pause)
        return True

    async def run_step(self, group: Group, step: Step, ctx: IterationContext) -> Response:
        """Render, send and assert one step, then extract and pause.

        Args:
            group: Group the step belongs to, used to tag metrics.
            step: The step to execute.
            ctx: Iteration context to render from and extract into.

        Returns:
            The step's response (status 0 on transport failure).
        """
        variables = ctx.as_mapping()
        response = await self._client.request(
            step.method,
            render(step.url, variables),
            name=step.name,
            group=group.name,
            headers=render(step.headers, variables),
            params=render(step.params, variables) or None,
            json=render(step.json, variables),
            data=render(step.data, variables),
        )

        results = run_checks(response, step.checks, group=group.name, step=step.name)
        self._collector.record_checks(results)

        extra = {
            "vu": ctx.user_id,
            "iteration": ctx.iteration,
            "group": group.name,
            "step": step.name,
        }
        for result in results:
            if not result.passed:
                logger.debug(
                    "Check %r failed (status=%d)", result.name, response.status, extra=extra
                )

        self._extract(step, response, ctx, extra)
        await self.pause(step.pause)
        return response

    async def pause(self, bounds: tuple[float, float] | None) -> None:
        """Sleep for a time drawn from *bounds*, waking early on abort."""
        if bounds is None or self._abort.is_set():
            return
        low, high = bounds
        delay = low if low == high else random.uniform(low, high)  # noqa: S311
        if delay <= 0:
            return
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._abort.wait(), timeout=delay)

    @staticmethod
    def _extract(
        step: Step,
        response: Response,
        ctx: IterationContext,
        extra: dict[str, object],
    ) -> None:
        for var, source in step.extract.items():
            try:
                value = response.json(source) if isinstance(source, str) else source(response)
            except Exception:  # noqa: BLE001
                logger.debug("Extractor for %r raised", var, exc_info=True, extra=extra)
                continue
            if value is None:
                logger.debug("Nothing to extract for %r", var, extra=extra)
            ctx.set(var, value)
