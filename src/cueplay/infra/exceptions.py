"""
Custom exceptions for cueplay.

This module provides the exception classes raised across the runtime. None of
them is fatal to the player process: callers log and degrade.
"""

from __future__ import annotations


class CuePlayError(Exception):
    """Base exception for all cueplay errors."""

    pass


class MalformedCommandError(CuePlayError):
    """Raised when an inbound message cannot be parsed into a command."""

    def __init__(self, message: str, raw: object = None) -> None:
        super().__init__(message)
        self.raw_excerpt = _excerpt(raw)


class ChannelError(CuePlayError):
    """Raised when the daemon channel cannot be used."""

    pass


def _excerpt(raw: object, limit: int = 200) -> str:
    if raw is None:
        return ""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    text = raw if isinstance(raw, str) else repr(raw)
    return text if len(text) <= limit else text[:limit] + "..."
