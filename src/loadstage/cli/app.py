"""Main Typer application, entry point for the ``loadstage`` CLI."""

from __future__ import annotations

import typer

from loadstage import __version__
from loadstage.cli.init_cmd import init_cmd
from loadstage.cli.inspect_cmd import inspect_cmd
from loadstage.cli.run import run_cmd

app = typer.Typer(
    name="loadstage",
    help="Run ramped load scenarios with grouped HTTP steps and checks.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command("run", help="Run a load test scenario.")(run_cmd)
app.command("init", help="Scaffold a new YAML scenario file.")(init_cmd)
app.command("inspect", help="Validate a scenario and show its plan.")(inspect_cmd)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"loadstage {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """loadstage: ramped load scenarios with grouped HTTP steps and checks."""
