"""Thread-safe aggregation sink for request metrics, check results and iterations."""

from __future__ import annotations

import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from loadstage._internal.logging import get_logger
from loadstage.metrics.histogram import LatencyHistogram
from loadstage.metrics.models import (
    CheckMetrics,
    EndpointMetrics,
    LatencyStats,
    MetricSnapshot,
    endpoint_key,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from loadstage.dsl.checks import CheckResult
    from loadstage.dsl.http_client import RequestMetric

logger = get_logger("metrics.collector")

_PERCENTILES = [50.0, 75.0, 90.0, 95.0, 99.0, 99.9]


def _compute_stats(latencies: list[float]) -> LatencyStats:
    """Compute a latency summary from raw millisecond values with numpy."""
    if not latencies:
        return LatencyStats()

    arr = np.array(latencies, dtype=np.float64)
    p50, p75, p90, p95, p99, p999 = np.percentile(arr, _PERCENTILES)
    return LatencyStats(
        min=float(np.min(arr)),
        max=float(np.max(arr)),
        avg=float(np.mean(arr)),
        p50=float(p50),
        p75=float(p75),
        p90=float(p90),
        p95=float(p95),
        p99=float(p99),
        p999=float(p999),
    )


@dataclass
class _Interval:
    """Raw observations gathered since the last flush."""

    requests: list[RequestMetric] = field(default_factory=list)
    checks: list[CheckResult] = field(default_factory=list)
    iteration_durations: list[float] = field(default_factory=list)
    interrupted: int = 0


@dataclass
class _Totals:
    """Run-long counters; latencies go into HDR histograms."""

    overall: LatencyHistogram = field(default_factory=LatencyHistogram)
    endpoints: dict[str, LatencyHistogram] = field(default_factory=dict)
    endpoint_meta: dict[str, tuple[str, str]] = field(default_factory=dict)
    endpoint_counts: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    endpoint_errors: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    requests: int = 0
    errors: int = 0
    errors_by_status: dict[int, int] = field(default_factory=lambda: defaultdict(int))
    errors_by_type: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    checks: dict[str, CheckMetrics] = field(default_factory=dict)
    iteration_durations: LatencyHistogram = field(default_factory=LatencyHistogram)
    iterations: int = 0
    interrupted: int = 0


class MetricCollector:
    """Aggregation sink shared by all virtual users of a session.

    Steps report into it through :meth:`record` (the ``HttpClient``
    metric callback), :meth:`record_checks` and :meth:`record_iteration`.
    Two views are maintained:

    - **Interval**: raw observations since the last :meth:`flush`, turned
      into a per-tick :class:`MetricSnapshot` with numpy percentiles.
    - **Cumulative**: counters and HDR histograms for the whole run, read by
      :meth:`get_cumulative_snapshot`.

    All methods take an internal lock, so the collector can also be fed from
    threads other than the event loop's.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._interval = _Interval()
        self._totals = _Totals()
        self._last_flush_time = time.monotonic()

    @property
    def pending_count(self) -> int:
        """Number of request metrics not yet flushed."""
        with self._lock:
            return len(self._interval.requests)

    def record(self, metric: RequestMetric) -> None:
        """Record one request.  Suitable as ``HttpClient.metric_callback``."""
        key = endpoint_key(metric.group, metric.name)
        with self._lock:
            self._interval.requests.append(metric)

            totals = self._totals
            totals.requests += 1
            totals.overall.record(metric.latency_ms)
            if key not in totals.endpoints:
                totals.endpoints[key] = LatencyHistogram()
                totals.endpoint_meta[key] = (metric.group, metric.name)
            totals.endpoints[key].record(metric.latency_ms)
            totals.endpoint_counts[key] += 1

            if metric.failed:
                totals.errors += 1
                totals.endpoint_errors[key] += 1
                if metric.status_code >= 400:  # noqa: PLR2004
                    totals.errors_by_status[metric.status_code] += 1
                if metric.error is not None:
                    totals.errors_by_type[_error_type(metric.error)] += 1

    def record_checks(self, results: Iterable[CheckResult]) -> None:
        """Record check outcomes for one step execution."""
        with self._lock:
            for result in results:
                self._interval.checks.append(result)
                _tally_check(self._totals.checks, result)

    def record_iteration(self, duration_ms: float, *, completed: bool) -> None:
        """Record the end of one iteration.

        Args:
            duration_ms: Wall time of the iteration.
            completed: False if the iteration was cut short.
        """
        with self._lock:
            if completed:
                self._interval.iteration_durations.append(duration_ms)
                self._totals.iterations += 1
                self._totals.iteration_durations.record(duration_ms)
            else:
                self._interval.interrupted += 1
                self._totals.interrupted += 1

    def flush(self, elapsed_seconds: float, active_users: int) -> MetricSnapshot:
        """Drain interval observations into a :class:`MetricSnapshot`.

        Args:
            elapsed_seconds: Seconds since the run started.
            active_users: Current number of active virtual users.

        Returns:
            Snapshot of everything recorded since the previous flush.
        """
        with self._lock:
            interval, self._interval = self._interval, _Interval()
            now = time.monotonic()
            period = max(now - self._last_flush_time, 0.001)
            self._last_flush_time = now

        return self._build_interval_snapshot(interval, elapsed_seconds, active_users, period)

    def get_cumulative_snapshot(
        self,
        elapsed_seconds: float,
        active_users: int,
    ) -> MetricSnapshot:
        """Return a snapshot covering everything recorded since creation.

        Does not drain interval state.

        Args:
            elapsed_seconds: Total elapsed seconds, used for rates.
            active_users: Active virtual user count to report.

        Returns:
            Cumulative MetricSnapshot.
        """
        period = max(elapsed_seconds, 0.001)
        with self._lock:
            totals = self._totals
            endpoints = {
                key: EndpointMetrics(
                    name=name,
                    group=group,
                    request_count=totals.endpoint_counts[key],
                    error_count=totals.endpoint_errors[key],
                    error_rate=totals.endpoint_errors[key] / totals.endpoint_counts[key],
                    requests_per_second=totals.endpoint_counts[key] / period,
                    latency=totals.endpoints[key].stats(),
                )
                for key, (group, name) in totals.endpoint_meta.items()
            }
            checks = {
                key: CheckMetrics(c.name, c.group, c.passes, c.fails)
                for key, c in totals.checks.items()
            }
            return MetricSnapshot(
                timestamp=time.monotonic(),
                elapsed_seconds=elapsed_seconds,
                active_users=active_users,
                total_requests=totals.requests,
                requests_per_second=totals.requests / period,
                latency=totals.overall.stats(),
                total_errors=totals.errors,
                error_rate=totals.errors / totals.requests if totals.requests else 0.0,
                errors_by_status=dict(totals.errors_by_status),
                errors_by_type=dict(totals.errors_by_type),
                endpoints=endpoints,
                checks=checks,
                checks_passed=sum(c.passes for c in checks.values()),
                checks_failed=sum(c.fails for c in checks.values()),
                iterations=totals.iterations,
                iterations_interrupted=totals.interrupted,
                iteration_duration=totals.iteration_durations.stats(),
            )

    def _build_interval_snapshot(
        self,
        interval: _Interval,
        elapsed_seconds: float,
        active_users: int,
        period: float,
    ) -> MetricSnapshot:
        by_endpoint: dict[str, list[RequestMetric]] = defaultdict(list)
        errors_by_status: dict[int, int] = defaultdict(int)
        errors_by_type: dict[str, int] = defaultdict(int)
        total_errors = 0

        for metric in interval.requests:
            by_endpoint[endpoint_key(metric.group, metric.name)].append(metric)
            if metric.failed:
                total_errors += 1
                if metric.status_code >= 400:  # noqa: PLR2004
                    errors_by_status[metric.status_code] += 1
                if metric.error is not None:
                    errors_by_type[_error_type(metric.error)] += 1

        endpoints: dict[str, EndpointMetrics] = {}
        for key, metrics in by_endpoint.items():
            count = len(metrics)
            errors = sum(1 for m in metrics if m.failed)
            endpoints[key] = EndpointMetrics(
                name=metrics[0].name,
                group=metrics[0].group,
                request_count=count,
                error_count=errors,
                error_rate=errors / count,
                requests_per_second=count / period,
                latency=_compute_stats([m.latency_ms for m in metrics]),
            )

        checks: dict[str, CheckMetrics] = {}
        for result in interval.checks:
            _tally_check(checks, result)

        total_requests = len(interval.requests)
        passed = sum(1 for r in interval.checks if r.passed)
        return MetricSnapshot(
            timestamp=time.monotonic(),
            elapsed_seconds=elapsed_seconds,
            active_users=active_users,
            total_requests=total_requests,
            requests_per_second=total_requests / period,
            latency=_compute_stats([m.latency_ms for m in interval.requests]),
            total_errors=total_errors,
            error_rate=total_errors / total_requests if total_requests else 0.0,
            errors_by_status=dict(errors_by_status),
            errors_by_type=dict(errors_by_type),
            endpoints=endpoints,
            checks=checks,
            checks_passed=passed,
            checks_failed=len(interval.checks) - passed,
            iterations=len(interval.iteration_durations),
            iterations_interrupted=interval.interrupted,
            iteration_duration=_compute_stats(interval.iteration_durations),
        )


def _tally_check(checks: dict[str, CheckMetrics], result: CheckResult) -> None:
    key = endpoint_key(result.group, result.name)
    entry = checks.get(key)
    if entry is None:
        entry = checks[key] = CheckMetrics(name=result.name, group=result.group)
    if result.passed:
        entry.passes += 1
    else:
        entry.fails += 1


def _error_type(error: str) -> str:
    """Extract the exception type from ``"ClientConnectorError: ..."``."""
    return error.split(":", 1)[0].strip()
