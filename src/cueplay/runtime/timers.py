"""Cancellable timers for the playback runtime.

Every timer the controller uses lives in a :class:`TimerSlot`. A slot owns at
most one pending handle: scheduling into a slot cancels whatever was pending,
so a superseded callback can never fire against a changed session.

Two schedulers implement :class:`TimerScheduler`:

- :class:`AsyncioTimerScheduler` wraps ``loop.call_later`` for the live player.
  Callbacks run on the loop thread, serialized with channel message dispatch.
- :class:`SteppedTimerScheduler` fires timers only when :meth:`advance` is
  called, moving a :class:`~cueplay.runtime.clock.SteppedClock` to each
  deadline first. Tests and offline replay use it.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from typing import Callable, Protocol, runtime_checkable

from .clock import SteppedClock

Callback = Callable[[], None]

logger = logging.getLogger(__name__)


@runtime_checkable
class TimerHandle(Protocol):
    def cancel(self) -> None:
        """Cancel the pending callback; no-op if it already ran."""


@runtime_checkable
class TimerScheduler(Protocol):
    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        """Run ``callback`` once after ``delay`` seconds."""


class AsyncioTimerScheduler:
    """Scheduler backed by an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callback) -> asyncio.TimerHandle:
        return self._loop.call_later(max(0.0, delay), callback)


class _SteppedHandle:
    __slots__ = ("deadline", "seq", "callback", "cancelled")

    def __init__(self, deadline: float, seq: int, callback: Callback) -> None:
        self.deadline = deadline
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def __lt__(self, other: _SteppedHandle) -> bool:
        return (self.deadline, self.seq) < (other.deadline, other.seq)


class SteppedTimerScheduler:
    """Deterministic scheduler driven by a stepped clock.

    Timers due at the same instant fire in scheduling order. A callback that
    schedules a new timer inside the advanced window sees it fire within the
    same :meth:`advance` call.
    """

    def __init__(self, clock: SteppedClock) -> None:
        self.clock = clock
        self._heap: list[_SteppedHandle] = []
        self._seq = itertools.count()

    def call_later(self, delay: float, callback: Callback) -> _SteppedHandle:
        handle = _SteppedHandle(self.clock.now() + max(0.0, delay), next(self._seq), callback)
        heapq.heappush(self._heap, handle)
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for h in self._heap if not h.cancelled)

    def advance(self, seconds: float) -> int:
        """Advance time by ``seconds``, firing due timers. Returns the count fired."""
        if seconds < 0.0:
            raise ValueError("seconds must be non-negative")
        target = self.clock.now() + seconds
        fired = 0
        while self._heap and self._heap[0].deadline <= target:
            handle = heapq.heappop(self._heap)
            if handle.cancelled:
                continue
            if handle.deadline > self.clock.now():
                self.clock.set(handle.deadline)
            handle.cancelled = True
            handle.callback()
            fired += 1
        if target > self.clock.now():
            self.clock.set(target)
        return fired


class TimerSlot:
    """Single-owner holder for at most one pending timer."""

    def __init__(self, scheduler: TimerScheduler, name: str) -> None:
        self._scheduler = scheduler
        self.name = name
        self._handle: TimerHandle | None = None

    @property
    def active(self) -> bool:
        return self._handle is not None

    def schedule(self, delay: float, callback: Callback) -> None:
        """Cancel any pending timer and schedule ``callback`` after ``delay``."""
        self.cancel()

        def _fire() -> None:
            self._handle = None
            callback()

        self._handle = self._scheduler.call_later(delay, _fire)

    def cancel(self) -> bool:
        """Cancel the pending timer. Returns ``True`` if one was pending."""
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        logger.debug("timer %s cancelled", self.name)
        return True
