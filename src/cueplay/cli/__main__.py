#!/usr/bin/env python3
"""
CLI entry point for cueplay.cli module.

This allows running: python -m cueplay.cli
"""

from .main import cli

if __name__ == "__main__":
    cli()
