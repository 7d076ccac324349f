"""
Renderer collaborator contracts.

The renderer performs a chunk visually. The controller only ever calls the
capabilities below; every call goes through :func:`guarded_call` so a failing
renderer degrades playback instead of aborting it.

Renderers that can report their lifecycle implement
:class:`SignalingRenderer`. Without it the completion detector falls back to
timer-only completion.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

Signal = Callable[[], None]
Unsubscribe = Callable[[], None]


@runtime_checkable
class Renderer(Protocol):
    """Effects the controller sends to the renderer."""

    def display(self, text: str) -> None:
        """Start performing ``text``."""

    def pause(self) -> None:
        ...

    def play(self) -> None:
        ...

    def rewind(self) -> None:
        """Set the current position back to 0."""


@runtime_checkable
class SignalingRenderer(Renderer, Protocol):
    """Renderer that reports render-start and render-end."""

    def subscribe(self, on_started: Signal, on_ended: Signal) -> Unsubscribe:
        """Register lifecycle callbacks; returns a callable that removes them."""


@runtime_checkable
class CaptureChannel(Protocol):
    """Recording side-channel paused in lockstep with playback."""

    @property
    def active(self) -> bool:
        ...

    def pause(self) -> None:
        ...

    def resume(self) -> None:
        ...


def guarded_call(target: Any, capability: str, *args: Any) -> bool:
    """Invoke ``target.capability(*args)``; log and swallow failures.

    Returns ``True`` when the call completed.
    """
    method = getattr(target, capability, None)
    if method is None:
        logger.debug("%s has no %s capability", type(target).__name__, capability)
        return False
    try:
        method(*args)
    except Exception:
        logger.warning(
            "renderer call %s.%s failed; continuing playback",
            type(target).__name__,
            capability,
            exc_info=True,
        )
        return False
    return True


class LogRenderer:
    """Renderer stub that logs every effect.

    It emits no lifecycle signals, so playback runs on the fallback timer.
    """

    def __init__(self, name: str = "log-renderer") -> None:
        self.name = name
        self.displayed: list[str] = []

    def display(self, text: str) -> None:
        self.displayed.append(text)
        logger.info("[%s] display %r", self.name, text[:80])

    def pause(self) -> None:
        logger.info("[%s] pause", self.name)

    def play(self) -> None:
        logger.info("[%s] play", self.name)

    def rewind(self) -> None:
        logger.debug("[%s] rewind", self.name)
