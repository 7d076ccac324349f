"""Command-line interface for cueplay."""
