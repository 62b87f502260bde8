"""``loadstage init``: scaffold a new YAML scenario from a template."""

from __future__ import annotations

from pathlib import Path
from string import Template

import typer
from rich.console import Console

console = Console(stderr=True)

_SCENARIO_TEMPLATE = Template("""\
# Load test scenario: $name
#
# Run with:
#     loadstage run $filename
#     loadstage run $filename --stage 10s:5 --stage 20s:5 --stage 5s:0

name: "$name"
base_url: http://localhost:8080

stages:
  - {duration: 30s, target: 20}
  - {duration: 1m, target: 20}
  - {duration: 10s, target: 0}

groups:
  - name: Public endpoints
    steps:
      - name: root
        url: /
        checks:
          - {name: status is 200, status: 200}
        think_time: 1s

  - name: Private endpoints
    steps:
      - name: login
        method: POST
        url: /auth/token/login/
        data: {username: test, password: test}
        checks:
          - {name: login status is 200, status: 200}
        extract:
          token: access
      - name: profile
        url: /me/
        headers:
          Authorization: "Bearer $${token}"
        checks:
          - {name: status is 200, status: 200}
        think_time: 1s
""")


def init_cmd(
    name: str = typer.Argument(
        "my_scenario",
        help="Name for the scenario (also used as the file name).",
    ),
) -> None:
    """Scaffold a new YAML scenario file in the current directory."""
    safe_name = "".join(c if c.isalnum() or c in "_-" else "_" for c in name).lower()
    if not safe_name.strip("_-"):
        safe_name = "scenario"

    filename = f"{safe_name}.yaml"
    display_name = safe_name.replace("_", " ").replace("-", " ").strip()

    target = Path.cwd() / filename
    if target.exists():
        console.print(f"[red]File already exists:[/red] {filename}")
        raise typer.Exit(code=1)

    content = _SCENARIO_TEMPLATE.substitute(name=display_name, filename=filename)
    target.write_text(content, encoding="utf-8")
    console.print(f"[green]Created scenario:[/green] {filename}")
