"""
Runtime constants for chunk playback timing.

These are the defaults behind the timing settings in
:mod:`cueplay.infra.settings`. Values are seconds.
"""

from __future__ import annotations

import logging

# An explicit end signal arriving sooner than this after the chunk's animation
# started is deferred instead of advancing.
MIN_ANIMATION_TIME = 2.0

# Fallback: force an advance when no end signal arrives within this window.
MAX_ANIMATION_TIME = 15.0

# Stop playback once the queue is exhausted and no chunk arrived for this long.
IDLE_TIMEOUT = 30.0

# Cadence of the idle check.
IDLE_CHECK_INTERVAL = 1.0

# Delay before reconnecting to the daemon after the channel closes.
RECONNECT_DELAY = 5.0

# Cadence of the clock-driven advance tick (advance_mode="clock").
TICK_INTERVAL = 0.1

DEFAULT_DAEMON_URL = "ws://localhost:8765"

ADVANCE_MODES = ("event", "clock")


def log_timing_constants(
    min_animation_time: float = MIN_ANIMATION_TIME,
    max_animation_time: float = MAX_ANIMATION_TIME,
    idle_timeout: float = IDLE_TIMEOUT,
) -> None:
    """Log the effective timing values at player startup."""
    logging.getLogger(__name__).info(
        "Playback timing: MIN_ANIMATION_TIME=%.1fs MAX_ANIMATION_TIME=%.1fs IDLE_TIMEOUT=%.1fs",
        min_animation_time,
        max_animation_time,
        idle_timeout,
    )
