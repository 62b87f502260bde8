"""Metric aggregation dataclasses for loadstage."""

from __future__ import annotations

from dataclasses import dataclass, field

# RequestMetric and CheckResult live next to the code that produces them;
# re-exported here so consumers can import every metric type from one place.
from loadstage.dsl.checks import CheckResult
from loadstage.dsl.http_client import RequestMetric

__all__ = [
    "CheckMetrics",
    "CheckResult",
    "EndpointMetrics",
    "LatencyStats",
    "MetricSnapshot",
    "RequestMetric",
    "TestResult",
    "endpoint_key",
]


def endpoint_key(group: str, name: str) -> str:
    """Return the key a request or check is aggregated under.

    Grouped names are prefixed k6-style, e.g. ``"::Public endpoints::list"``.
    """
    return f"::{group}::{name}" if group else name


@dataclass(frozen=True)
class LatencyStats:
    """Latency distribution summary, all values in milliseconds."""

    min: float = 0.0
    max: float = 0.0
    avg: float = 0.0
    p50: float = 0.0
    p75: float = 0.0
    p90: float = 0.0
    p95: float = 0.0
    p99: float = 0.0
    p999: float = 0.0


@dataclass
class EndpointMetrics:
    """Aggregated metrics for one step (logical request name) within a group.

    Attributes:
        name: Step name.
        group: Group name ("" when ungrouped).
        request_count: Requests sent.
        error_count: Transport failures plus responses with status >= 400.
        error_rate: ``error_count / request_count``.
        requests_per_second: Request rate over the aggregation interval.
        latency: Latency distribution.
    """

    name: str
    group: str = ""
    request_count: int = 0
    error_count: int = 0
    error_rate: float = 0.0
    requests_per_second: float = 0.0
    latency: LatencyStats = field(default_factory=LatencyStats)


@dataclass
class CheckMetrics:
    """Pass/fail counts for one named check within a group.

    Attributes:
        name: Check name, e.g. ``"status is 200"``.
        group: Group name ("" when ungrouped).
        passes: Number of evaluations that passed.
        fails: Number of evaluations that failed.
    """

    name: str
    group: str = ""
    passes: int = 0
    fails: int = 0

    @property
    def total(self) -> int:
        return self.passes + self.fails

    @property
    def pass_rate(self) -> float:
        """Fraction of evaluations that passed (1.0 when never evaluated)."""
        return self.passes / self.total if self.total else 1.0


@dataclass
class MetricSnapshot:
    """Aggregated metrics for one tick interval, or for the whole run.

    Attributes:
        timestamp: Monotonic timestamp of the snapshot.
        elapsed_seconds: Seconds since the run started.
        active_users: Virtual users active when the snapshot was taken.
        total_requests: Requests in the period.
        requests_per_second: Request rate in the period.
        latency: Overall latency distribution.
        total_errors: Failed requests in the period.
        error_rate: ``total_errors / total_requests``.
        errors_by_status: Failed request counts by HTTP status (>= 400).
        errors_by_type: Transport failure counts by exception type.
        endpoints: Per-step metrics keyed by :func:`endpoint_key`.
        checks: Per-check metrics keyed by :func:`endpoint_key`.
        checks_passed: Total passing check evaluations.
        checks_failed: Total failing check evaluations.
        iterations: Iterations that ran to completion.
        iterations_interrupted: Iterations cut short by a stop or an error.
        iteration_duration: Distribution of completed iteration durations.
    """

    timestamp: float
    elapsed_seconds: float
    active_users: int
    total_requests: int = 0
    requests_per_second: float = 0.0
    latency: LatencyStats = field(default_factory=LatencyStats)
    total_errors: int = 0
    error_rate: float = 0.0
    errors_by_status: dict[int, int] = field(default_factory=dict)
    errors_by_type: dict[str, int] = field(default_factory=dict)
    endpoints: dict[str, EndpointMetrics] = field(default_factory=dict)
    checks: dict[str, CheckMetrics] = field(default_factory=dict)
    checks_passed: int = 0
    checks_failed: int = 0
    iterations: int = 0
    iterations_interrupted: int = 0
    iteration_duration: LatencyStats = field(default_factory=LatencyStats)

    @property
    def check_pass_rate(self) -> float:
        """Fraction of check evaluations that passed (1.0 when none ran)."""
        total = self.checks_passed + self.checks_failed
        return self.checks_passed / total if total else 1.0


@dataclass
class TestResult:
    """Complete result of a load test run.

    Attributes:
        scenario_name: Name of the scenario that was executed.
        start_time: Monotonic time when the run started.
        end_time: Monotonic time when the run completed.
        duration_seconds: Wall-clock duration of the run.
        pattern_description: Human-readable description of the schedule.
        snapshots: Per-tick snapshots in chronological order.
        final_summary: Cumulative snapshot over the whole run.
        aborted: True if the run was stopped before its schedule ended.
    """

    __test__ = False  # not a pytest test class

    scenario_name: str
    start_time: float
    end_time: float
    duration_seconds: float
    pattern_description: str
    snapshots: list[MetricSnapshot] = field(default_factory=list)
    final_summary: MetricSnapshot | None = None
    aborted: bool = False
