"""
Main CLI application using Typer with router-based command dispatch.

All command groups are registered through the centralized CliRouter.
"""

from __future__ import annotations

import typer

from .commands import config, messages, player
from .router import get_router

app = typer.Typer(help="cueplay chunk playback runtime")

router = get_router(app)

router.register(
    "player",
    player.app,
    help_text="Run the playback runtime against the daemon",
)

router.register(
    "messages",
    messages.app,
    help_text="Inspect and validate daemon channel messages",
)

router.register(
    "config",
    config.app,
    help_text="Show the effective configuration",
)


@app.callback()
def main(ctx: typer.Context):
    """cueplay - timed chunk playback for a visual renderer."""
    ctx.ensure_object(dict)


def cli():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    cli()
