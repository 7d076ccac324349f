"""Clock abstractions used by the playback runtime.

A :class:`Clock` supplies wall time in epoch seconds. Chunk timestamps are
relative to a session anchor (``start_time``) that the daemon may provide from
its own clock, so the runtime works in epoch seconds rather than monotonic
time.

:class:`PlaybackClock` maps wall time to the logical playback position and is
the only place where pause/resume/seek arithmetic happens.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Protocol, runtime_checkable

import time

TimeFn = Callable[[], float]


@runtime_checkable
class Clock(Protocol):
    """Protocol implemented by wall clock providers."""

    def now(self) -> float:
        """Return the current time in epoch seconds."""


@dataclass
class WallClock:
    """Clock backed by :func:`time.time`.

    Parameters
    ----------
    time_fn:
        Injectable time source, defaults to :func:`time.time`.
    """

    time_fn: TimeFn = field(default=time.time)

    def now(self) -> float:
        return self.time_fn()


class SteppedClock:
    """Deterministic clock used for tests and offline replay.

    Time advances only when :meth:`advance` or :meth:`set` is called.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._current = start
        self._lock = Lock()

    def now(self) -> float:
        with self._lock:
            return self._current

    def advance(self, seconds: float) -> float:
        """Advance the clock by ``seconds`` (must be non-negative)."""
        if seconds < 0.0:
            raise ValueError("seconds must be non-negative")
        with self._lock:
            self._current += seconds
            return self._current

    def set(self, value: float) -> None:
        """Move the clock to ``value``; never backwards."""
        with self._lock:
            if value < self._current:
                raise ValueError("clock cannot move backwards")
            self._current = value


class PlaybackClock:
    """Logical playback position derived from a wall clock.

    Elapsed playback time is ``now - start_time`` while playing and frozen at
    ``paused_at`` otherwise. Seeking rewrites both anchors so the two formulas
    agree at the moment of the seek.
    """

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self.start_time = 0.0
        self.paused_at = 0.0
        self.is_playing = False

    def start(self, t0: float | None = None) -> None:
        """Anchor playback at ``t0`` (epoch seconds) or now, and play."""
        self.start_time = t0 if t0 is not None else self._clock.now()
        self.paused_at = 0.0
        self.is_playing = True

    def pause(self) -> bool:
        """Freeze the position. Returns ``False`` if already paused."""
        if not self.is_playing:
            return False
        self.paused_at = self.elapsed()
        self.is_playing = False
        return True

    def resume(self) -> bool:
        """Continue from the frozen position. Returns ``False`` if playing."""
        if self.is_playing:
            return False
        self.start_time = self._clock.now() - self.paused_at
        self.is_playing = True
        return True

    def seek(self, t: float) -> None:
        """Jump to playback position ``t``; the playing flag is unchanged."""
        self.paused_at = t
        self.start_time = self._clock.now() - t

    def elapsed(self) -> float:
        if self.is_playing:
            return self._clock.now() - self.start_time
        return self.paused_at

    def reset(self) -> None:
        self.start_time = 0.0
        self.paused_at = 0.0
        self.is_playing = False
