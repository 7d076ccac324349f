"""
Global test configuration for cueplay.

This module provides global pytest configuration and fixtures. Time in the
runtime tests is driven by a stepped clock and scheduler; nothing sleeps.
"""

import sys
from pathlib import Path

import pytest

# Ensure the project src directory is importable without relying on external environment.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from cueplay.runtime.chunk_queue import Chunk
from cueplay.runtime.clock import SteppedClock
from cueplay.runtime.controller import PlaybackController
from cueplay.runtime.timers import SteppedTimerScheduler

T0 = 1_700_000_000.0


class FakeRenderer:
    """Renderer double that records effects and emits lifecycle signals on demand."""

    def __init__(self, fail_on=()):
        self.effects = []
        self.fail_on = set(fail_on)
        self._listeners = []

    def _record(self, name, *args):
        self.effects.append((name, *args))
        if name in self.fail_on:
            raise RuntimeError(f"{name} failed")

    def display(self, text):
        self._record("display", text)

    def pause(self):
        self._record("pause")

    def play(self):
        self._record("play")

    def rewind(self):
        self._record("rewind")

    def subscribe(self, on_started, on_ended):
        entry = (on_started, on_ended)
        self._listeners.append(entry)

        def unsubscribe():
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    @property
    def subscribed(self):
        return len(self._listeners)

    @property
    def displayed(self):
        return [effect[1] for effect in self.effects if effect[0] == "display"]

    def emit_started(self):
        for on_started, _ in list(self._listeners):
            on_started()

    def emit_ended(self):
        for _, on_ended in list(self._listeners):
            on_ended()


class FakeCapture:
    def __init__(self, active=True):
        self.active = active
        self.calls = []

    def pause(self):
        self.calls.append("pause")

    def resume(self):
        self.calls.append("resume")


def chunks(*pairs):
    """Build chunks from (text, timestamp) pairs."""
    return [Chunk(text=text, timestamp=float(ts)) for text, ts in pairs]


@pytest.fixture
def clock():
    return SteppedClock(T0)


@pytest.fixture
def scheduler(clock):
    return SteppedTimerScheduler(clock)


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def make_controller(clock, scheduler, renderer):
    """Factory for controllers on the stepped clock; kwargs override defaults."""

    def _make(**kwargs):
        kwargs.setdefault("renderer", renderer)
        bound = kwargs.pop("renderer")
        return PlaybackController(clock, scheduler, bound, **kwargs)

    return _make
