"""``loadstage inspect``: validate a scenario and show its plan without sending traffic."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.table import Table

from loadstage._internal.durations import format_duration
from loadstage._internal.errors import LoadStageError
from loadstage.dsl.loader import load_scenario
from loadstage.patterns.stages import StagesPattern

if TYPE_CHECKING:
    from loadstage.dsl.scenario import Scenario, Step

console = Console()


def _stage_table(pattern: StagesPattern) -> Table:
    table = Table(title="Stages", show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right")
    table.add_column("Starts at", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Users", justify="right")

    start = 0.0
    previous = pattern.concurrency_at(0.0)
    for index, stage in enumerate(pattern.stages, start=1):
        table.add_row(
            str(index),
            format_duration(start),
            format_duration(stage.duration),
            f"{previous} -> {stage.target}",
        )
        start += stage.duration
        previous = stage.target
    return table


def _describe_pause(bounds: tuple[float, float] | None) -> str:
    if bounds is None:
        return "-"
    low, high = bounds
    if low == high:
        return format_duration(low)
    return f"{format_duration(low)}-{format_duration(high)}"


def _describe_extract(step: Step) -> str:
    if not step.extract:
        return "-"
    return ", ".join(
        f"{var} <- {source if isinstance(source, str) else 'callable'}"
        for var, source in step.extract.items()
    )


def _steps_table(scenario: Scenario) -> Table:
    table = Table(title="Steps", show_header=True, header_style="bold cyan")
    table.add_column("Group")
    table.add_column("Step")
    table.add_column("Request")
    table.add_column("Checks")
    table.add_column("Extract")
    table.add_column("Pause", justify="right")

    for group in scenario.groups:
        label = group.name or "-"
        for step in group.steps:
            table.add_row(
                label,
                step.name,
                f"{step.method} {step.url}",
                "\n".join(check.name for check in step.checks) or "-",
                _describe_extract(step),
                _describe_pause(step.pause),
            )
        if group.pause is not None:
            table.add_row(label, "(group pause)", "", "", "", _describe_pause(group.pause))
    return table


def inspect_cmd(
    scenario_file: Path = typer.Argument(
        ...,
        help="Scenario file (.py, .yaml, .yml or .json).",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
) -> None:
    """Validate a scenario file and print its stage plan and steps."""
    try:
        scenario = load_scenario(scenario_file)
    except LoadStageError as exc:
        console.print(f"[red]Invalid scenario:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    pattern = scenario.pattern
    console.print(f"[bold]Scenario:[/bold] {scenario.name}")
    if scenario.base_url:
        console.print(f"[bold]Base URL:[/bold] {scenario.base_url}")
    console.print(f"[bold]Pattern:[/bold]  {pattern.describe()}")
    console.print(f"[bold]Peak VUs:[/bold] {pattern.max_concurrency()}")

    if isinstance(pattern, StagesPattern):
        console.print(_stage_table(pattern))
    console.print(_steps_table(scenario))
    console.print(
        f"[green]OK:[/green] {len(scenario.groups)} groups, {scenario.step_count} steps"
    )
