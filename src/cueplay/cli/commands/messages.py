"""
Messages command group.

Offline checks for recorded daemon channel traffic: one JSON message per line.
"""

from __future__ import annotations

import json
from collections import Counter
from pathlib import Path

import typer

from cueplay.infra.exceptions import MalformedCommandError
from cueplay.runtime.commands import parse_command

app = typer.Typer(help="Daemon channel message operations")


def _format_human_output(result: dict) -> str:
    lines = [f"{result['valid']} valid, {len(result['malformed'])} malformed"]
    for message_type, count in sorted(result["types"].items()):
        lines.append(f"  {message_type}: {count}")
    for entry in result["malformed"]:
        lines.append(f"  line {entry['line']}: {entry['error']}")
    return "\n".join(lines)


@app.command("validate")
def validate(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="JSON-lines file"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Parse every message in a JSON-lines file and report malformed lines."""
    types: Counter[str] = Counter()
    malformed: list[dict] = []
    valid = 0
    with path.open(encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            if not line.strip():
                continue
            try:
                command = parse_command(line)
            except MalformedCommandError as e:
                malformed.append({"line": lineno, "error": str(e)})
                continue
            valid += 1
            types[command.type] += 1

    result = {
        "status": "ok" if not malformed else "error",
        "valid": valid,
        "types": dict(types),
        "malformed": malformed,
    }
    if json_output:
        typer.echo(json.dumps(result, indent=2))
    else:
        typer.echo(_format_human_output(result))
    if malformed:
        raise typer.Exit(1)
