"""Config command group."""

from __future__ import annotations

import json

import typer

from cueplay.infra.logging import redact_value
from cueplay.infra.settings import load_settings

app = typer.Typer(help="Configuration operations")


@app.command("show")
def show(
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Print the effective settings and any timing problems."""
    settings = load_settings()
    values = redact_value(settings.model_dump())
    problems = settings.validate_timing()

    if json_output:
        typer.echo(json.dumps({"settings": values, "problems": problems}, indent=2))
        return

    width = max(len(name) for name in values)
    for name, value in values.items():
        typer.echo(f"{name.ljust(width)}  {value}")
    if problems:
        typer.echo("")
        for problem in problems:
            typer.echo(f"Problem: {problem}")
