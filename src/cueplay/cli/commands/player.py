"""
Player command group.

Runs the playback runtime against the daemon channel until interrupted.
"""

from __future__ import annotations

import asyncio

import typer

from cueplay.infra.logging import configure_logging
from cueplay.infra.settings import load_settings
from cueplay.runtime.player import PlayerApp

app = typer.Typer(help="Playback runtime operations")


@app.command("start")
def start(
    url: str = typer.Option(None, "--url", help="Daemon WebSocket URL (default: CUEPLAY_DAEMON_URL)"),
    advance_mode: str = typer.Option(
        None, "--advance-mode", help="Advance policy: event or clock (default: CUEPLAY_ADVANCE_MODE)"
    ),
    debug: bool = typer.Option(False, "--debug", help="Log debug output and periodic playback snapshots"),
    keys: bool = typer.Option(
        False, "--keys", help="Read controls from stdin: p pauses/resumes, b/f seek 5s back/forward"
    ),
):
    """
    Start the player with a logging renderer.

    Connects to the daemon, plays whatever it sends and reconnects after
    connection loss. Stops on Ctrl+C.
    """
    overrides = {}
    if url:
        overrides["daemon_url"] = url
    if advance_mode:
        overrides["advance_mode"] = advance_mode
    settings = load_settings().model_copy(update=overrides)

    problems = settings.validate_timing()
    if problems:
        for problem in problems:
            typer.echo(f"Error: {problem}", err=True)
        raise typer.Exit(1)

    configure_logging("DEBUG" if debug else settings.log_level)
    player = PlayerApp(settings, debug=debug, keyboard=keys)
    typer.echo(f"Connecting to {settings.daemon_url} ({settings.advance_mode} mode)")
    if keys:
        typer.echo("Controls: p + Enter = pause/resume, b = back 5s, f = forward 5s")
    typer.echo("Press Ctrl+C to stop...")
    try:
        asyncio.run(player.run())
    except KeyboardInterrupt:
        typer.echo("\nShutting down...")
