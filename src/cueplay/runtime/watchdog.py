"""
Idle watchdog for a playback session.

Polls the session at a fixed cadence and asks the controller to stop once
all three hold:

- no chunk has been received for longer than ``idle_timeout``;
- the queue is exhausted (the current chunk is the last one);
- nothing is animating.

Waiting for more input therefore never looks like "finished" while a chunk is
still on screen or still pending.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from . import constants
from .clock import Clock
from .timers import TimerScheduler, TimerSlot

if TYPE_CHECKING:
    from .controller import Session

logger = logging.getLogger(__name__)


class IdleWatchdog:
    """Stops an exhausted session after a quiet period."""

    def __init__(
        self,
        clock: Clock,
        scheduler: TimerScheduler,
        session: Callable[[], "Session"],
        on_idle: Callable[[float], None],
        *,
        idle_timeout: float = constants.IDLE_TIMEOUT,
        check_interval: float = constants.IDLE_CHECK_INTERVAL,
    ) -> None:
        if idle_timeout <= 0.0:
            raise ValueError("idle_timeout must be greater than zero")
        if check_interval <= 0.0:
            raise ValueError("check_interval must be greater than zero")
        self._clock = clock
        self._session = session
        self._on_idle = on_idle
        self.idle_timeout = idle_timeout
        self.check_interval = check_interval
        self._slot = TimerSlot(scheduler, "idle-check")
        self._running = False
        self.idle_seconds = 0.0

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._slot.schedule(self.check_interval, self._tick)

    def stop(self) -> None:
        self._running = False
        self._slot.cancel()

    def _tick(self) -> None:
        if not self._running:
            return
        self.check()
        if self._running:
            self._slot.schedule(self.check_interval, self._tick)

    def check(self) -> bool:
        """Run one idle check. Returns ``True`` if the stop was requested."""
        session = self._session()
        if not session.is_playing or session.last_chunk_received_at <= 0.0:
            return False
        self.idle_seconds = self._clock.now() - session.last_chunk_received_at
        if (
            self.idle_seconds > self.idle_timeout
            and session.is_exhausted
            and not session.is_animating
        ):
            logger.info("Idle timeout (%.0fs) - stopping playback", self.idle_timeout)
            self._on_idle(self.idle_seconds)
            return True
        return False
