"""CLI command groups. Each module exposes a Typer ``app``."""
