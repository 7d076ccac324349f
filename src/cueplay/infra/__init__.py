"""
Infrastructure layer - settings, logging, and error types.

This layer holds the technical concerns shared by the runtime and the CLI.
"""
