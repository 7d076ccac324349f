"""
Completion detection for the chunk currently on the renderer.

Two triggers race for each armed chunk:

- the renderer's explicit end signal, ignored (deferred) while the chunk has
  been animating for less than ``min_animation_time``;
- a fallback timer that fires after ``max_animation_time``.

The first trigger to complete a chunk disarms the detector, so the other one
cannot produce a second advance. Each :meth:`CompletionDetector.arm` bumps a
generation counter; callbacks carrying an older generation are dropped.
"""

from __future__ import annotations

import logging
from typing import Callable

from . import constants
from .clock import Clock
from .renderer import Renderer, Unsubscribe, guarded_call
from .timers import TimerScheduler, TimerSlot

logger = logging.getLogger(__name__)

# (index, source) where source is "signal" or "fallback"
CompletionCallback = Callable[[int, str], None]


class CompletionDetector:
    """Derives "chunk finished" from renderer signals and a fallback timer."""

    def __init__(
        self,
        clock: Clock,
        scheduler: TimerScheduler,
        on_complete: CompletionCallback,
        *,
        min_animation_time: float = constants.MIN_ANIMATION_TIME,
        max_animation_time: float = constants.MAX_ANIMATION_TIME,
    ) -> None:
        if min_animation_time < 0.0:
            raise ValueError("min_animation_time must be non-negative")
        if max_animation_time <= 0.0:
            raise ValueError("max_animation_time must be greater than zero")
        self._clock = clock
        self._on_complete = on_complete
        self.min_animation_time = min_animation_time
        self.max_animation_time = max_animation_time
        self._fallback = TimerSlot(scheduler, "animation-fallback")

        self._renderer: Renderer | None = None
        self._unsubscribe: Unsubscribe | None = None

        self._index: int | None = None
        self._generation = 0
        self._started_at = 0.0
        self._suspended_at: float | None = None
        self.deferred_signals = 0

    # Renderer binding ---------------------------------------------------
    @property
    def renderer(self) -> Renderer | None:
        return self._renderer

    @property
    def has_signals(self) -> bool:
        return self._unsubscribe is not None

    def bind(self, renderer: Renderer | None) -> None:
        """Bind to ``renderer``, dropping any previous binding first."""
        self.unbind()
        self._renderer = renderer
        if renderer is None:
            return
        subscribe = getattr(renderer, "subscribe", None)
        if subscribe is None:
            logger.info(
                "renderer %s emits no lifecycle signals; using fallback timer only",
                type(renderer).__name__,
            )
            return
        try:
            self._unsubscribe = subscribe(self.on_render_started, self.on_render_ended)
        except Exception:
            logger.warning(
                "subscribing to %s failed; using fallback timer only",
                type(renderer).__name__,
                exc_info=True,
            )
            self._unsubscribe = None
            return
        logger.info("bound renderer %s", type(renderer).__name__)

    def unbind(self) -> None:
        if self._unsubscribe is not None:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            guarded_call(unsubscribe, "__call__")
        self._renderer = None

    # Arming -------------------------------------------------------------
    @property
    def armed_index(self) -> int | None:
        return self._index

    @property
    def animation_started_at(self) -> float:
        return self._started_at

    @property
    def suspended(self) -> bool:
        return self._suspended_at is not None

    def arm(self, index: int) -> None:
        """Watch chunk ``index``; replaces whatever was armed."""
        self._generation += 1
        self._index = index
        self._started_at = self._clock.now()
        self._suspended_at = None
        self._schedule_fallback(self.max_animation_time)

    def disarm(self) -> None:
        self._fallback.cancel()
        self._generation += 1
        self._index = None
        self._suspended_at = None

    def suspend(self) -> None:
        """Stop the fallback countdown (playback paused)."""
        if self._index is None or self._suspended_at is not None:
            return
        self._fallback.cancel()
        self._suspended_at = self._clock.now()

    def resume(self) -> None:
        """Restart the fallback countdown with the time that was left."""
        if self._index is None or self._suspended_at is None:
            return
        paused_for = self._clock.now() - self._suspended_at
        self._suspended_at = None
        self._started_at += paused_for
        remaining = self.max_animation_time - (self._clock.now() - self._started_at)
        self._schedule_fallback(remaining)

    def _schedule_fallback(self, delay: float) -> None:
        generation = self._generation
        self._fallback.schedule(max(0.0, delay), lambda: self._on_fallback(generation))

    # Signals ------------------------------------------------------------
    def on_render_started(self) -> None:
        if self._index is None or self._suspended_at is not None:
            return
        self._started_at = self._clock.now()
        logger.debug("render started for chunk %d", self._index + 1)

    def on_render_ended(self) -> None:
        if self._index is None:
            logger.debug("render end signal with nothing armed; ignored")
            return
        if self._suspended_at is not None:
            logger.debug("render end signal while paused; ignored")
            return
        animating_for = self._clock.now() - self._started_at
        if animating_for < self.min_animation_time:
            self.deferred_signals += 1
            logger.debug(
                "Waiting for min animation time (%.1fs < %.1fs) on chunk %d",
                animating_for,
                self.min_animation_time,
                self._index + 1,
            )
            return
        self._complete("signal")

    def _on_fallback(self, generation: int) -> None:
        if generation != self._generation or self._index is None:
            return
        logger.info(
            "Fallback timeout for chunk %d after %.1fs - advancing",
            self._index + 1,
            self.max_animation_time,
        )
        self._complete("fallback")

    def _complete(self, source: str) -> None:
        index = self._index
        if index is None:
            return
        self.disarm()
        self._on_complete(index, source)
