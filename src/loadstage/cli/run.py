"""``loadstage run``: execute a scenario with live terminal output."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from loadstage._internal.durations import format_duration, parse_duration
from loadstage._internal.errors import ConfigError, LoadStageError
from loadstage.dsl.loader import load_scenario
from loadstage.engine.runner import LoadTestRunner
from loadstage.patterns.constant import ConstantPattern
from loadstage.patterns.stages import Stage, StagesPattern

if TYPE_CHECKING:
    from loadstage.metrics.models import MetricSnapshot, TestResult
    from loadstage.patterns.base import LoadPattern

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Pattern override from CLI flags
# ---------------------------------------------------------------------------


def build_pattern_override(
    stages: list[str] | None,
    vus: int | None,
    duration: str | None,
) -> LoadPattern | None:
    """Build a schedule from ``--stage`` or ``--vus``/``--duration`` flags.

    Args:
        stages: Compact stage strings such as ``"30s:20"``.
        vus: Constant virtual user count.
        duration: Constant run duration, e.g. ``"1m"``.

    Returns:
        The override pattern, or None to use the scenario's own.

    Raises:
        ConfigError: If the flags conflict or a value is invalid.
    """
    constant = vus is not None or duration is not None
    if stages and constant:
        msg = "use either --stage or --vus/--duration, not both"
        raise ConfigError(msg)

    if stages:
        return StagesPattern([Stage.parse(text) for text in stages])

    if constant:
        if vus is None or duration is None:
            msg = "--vus and --duration must be given together"
            raise ConfigError(msg)
        return ConstantPattern(users=vus, duration=parse_duration(duration))

    return None


# ---------------------------------------------------------------------------
# Rich output
# ---------------------------------------------------------------------------


def _make_live_table(snapshot: MetricSnapshot | None) -> Table:
    """Build the live table for the latest tick."""
    table = Table(show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    if snapshot is None:
        table.add_row("Status", "Starting...")
        return table

    table.add_row("Elapsed", f"{snapshot.elapsed_seconds:.0f}s")
    table.add_row("Active Users", str(snapshot.active_users))
    table.add_row("Requests/sec", f"{snapshot.requests_per_second:.1f}")
    table.add_row("p95 Latency", f"{snapshot.latency.p95:.1f}ms")
    table.add_row("Errors", str(snapshot.total_errors))
    table.add_row("Checks", f"{snapshot.checks_passed} passed, {snapshot.checks_failed} failed")
    table.add_row("Iterations", str(snapshot.iterations))
    return table


def _checks_table(summary: MetricSnapshot) -> Table:
    table = Table(title="Checks", show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Group")
    table.add_column("Check")
    table.add_column("Passed", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Rate", justify="right")

    for check in summary.checks.values():
        mark = "[green]✓[/green]" if check.fails == 0 else "[red]✗[/red]"
        table.add_row(
            check.group or "-",
            f"{mark} {check.name}",
            str(check.passes),
            str(check.fails),
            f"{check.pass_rate * 100:.2f}%",
        )
    return table


def _endpoints_table(summary: MetricSnapshot) -> Table:
    table = Table(title="Steps", show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Group")
    table.add_column("Step")
    table.add_column("Requests", justify="right")
    table.add_column("p50", justify="right")
    table.add_column("p95", justify="right")
    table.add_column("p99", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("Error %", justify="right")

    for ep in summary.endpoints.values():
        table.add_row(
            ep.group or "-",
            ep.name,
            str(ep.request_count),
            f"{ep.latency.p50:.1f}ms",
            f"{ep.latency.p95:.1f}ms",
            f"{ep.latency.p99:.1f}ms",
            str(ep.error_count),
            f"{ep.error_rate * 100:.2f}%",
        )
    return table


def _print_summary(result: TestResult) -> None:
    """Print the final summary, then per-check and per-step tables."""
    summary = result.final_summary
    table = Table(
        title="Test Aborted" if result.aborted else "Test Complete",
        show_header=True,
        header_style="bold green",
        expand=True,
    )
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Scenario", result.scenario_name)
    table.add_row("Pattern", result.pattern_description)
    table.add_row("Duration", f"{result.duration_seconds:.1f}s")

    if summary is not None:
        table.add_row("Total Requests", str(summary.total_requests))
        table.add_row("Avg Requests/sec", f"{summary.requests_per_second:.1f}")
        table.add_row("p50 Latency", f"{summary.latency.p50:.1f}ms")
        table.add_row("p95 Latency", f"{summary.latency.p95:.1f}ms")
        table.add_row("p99 Latency", f"{summary.latency.p99:.1f}ms")
        table.add_row("Error Rate", f"{summary.error_rate * 100:.2f}%")
        table.add_row("Check Pass Rate", f"{summary.check_pass_rate * 100:.2f}%")
        table.add_row(
            "Iterations",
            f"{summary.iterations} completed, {summary.iterations_interrupted} interrupted",
        )

    console.print(table)

    if summary is not None and summary.checks:
        console.print(_checks_table(summary))
    if summary is not None and summary.endpoints:
        console.print(_endpoints_table(summary))


def _threshold_failures(
    result: TestResult,
    fail_on_check_rate: float | None,
    fail_on_error_rate: float | None,
) -> list[str]:
    summary = result.final_summary
    if summary is None:
        return []

    failures = []
    if fail_on_check_rate is not None and summary.check_pass_rate < fail_on_check_rate:
        failures.append(
            f"Check pass rate {summary.check_pass_rate * 100:.2f}% "
            f"is below threshold {fail_on_check_rate * 100:.2f}%"
        )
    if fail_on_error_rate is not None and summary.error_rate > fail_on_error_rate:
        failures.append(
            f"Error rate {summary.error_rate * 100:.2f}% "
            f"exceeds threshold {fail_on_error_rate * 100:.2f}%"
        )
    return failures


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------


def run_cmd(
    scenario_file: Path = typer.Argument(
        ...,
        help="Scenario file (.py, .yaml, .yml or .json).",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    stage: list[str] | None = typer.Option(
        None,
        "--stage",
        "-s",
        help="Override the stages, e.g. --stage 30s:20 --stage 1m:20 --stage 10s:0.",
    ),
    vus: int | None = typer.Option(
        None,
        "--vus",
        help="Run a constant number of virtual users instead of the stages.",
        min=1,
    ),
    duration: str | None = typer.Option(
        None,
        "--duration",
        "-d",
        help="Duration for --vus, e.g. 30s or 1m30s.",
    ),
    fail_on_check_rate: float | None = typer.Option(
        None,
        "--fail-on-check-rate",
        help="Exit non-zero if the check pass rate falls below this (e.g., 0.95).",
        min=0.0,
        max=1.0,
    ),
    fail_on_error_rate: float | None = typer.Option(
        None,
        "--fail-on-error-rate",
        help="Exit non-zero if the error rate exceeds this (e.g., 0.05).",
        min=0.0,
        max=1.0,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose (DEBUG) logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Emit log lines as JSON.",
    ),
) -> None:
    """Execute a load test scenario with live terminal output."""
    try:
        scenario = load_scenario(scenario_file)
        override = build_pattern_override(stage, vus, duration)
    except LoadStageError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    pattern = override or scenario.pattern
    console.print(
        Panel(
            f"[bold]Scenario:[/bold] {scenario.name}\n"
            f"[bold]File:[/bold]     {scenario_file.name}\n"
            f"[bold]Pattern:[/bold]  {pattern.describe()}\n"
            f"[bold]Peak VUs:[/bold] {pattern.max_concurrency()}\n"
            f"[bold]Duration:[/bold] {format_duration(pattern.duration_seconds)}",
            title="loadstage",
            border_style="cyan",
        )
    )

    try:
        with Live(
            _make_live_table(None),
            console=console,
            refresh_per_second=2,
            transient=True,
        ) as live:
            test_runner = LoadTestRunner(
                scenario,
                pattern=override,
                on_snapshot=lambda snapshot: live.update(_make_live_table(snapshot)),
                log_level=logging.DEBUG if verbose else logging.INFO,
                json_logs=json_logs,
            )
            result = test_runner.run()
    except LoadStageError as exc:
        console.print(f"[red]Load test failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    _print_summary(result)

    failures = _threshold_failures(result, fail_on_check_rate, fail_on_error_rate)
    for failure in failures:
        console.print(f"[red]FAIL:[/red] {failure}")
    if failures:
        raise typer.Exit(code=1)

    console.print("[green]Load test completed successfully.[/green]")
