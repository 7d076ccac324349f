"""
Player process: wires the daemon channel to a playback controller.

One :class:`PlayerApp` runs one event loop. Channel messages, renderer
signals and every playback timer are serialized on that loop, which is the
only concurrency guarantee the controller relies on.

With keyboard controls enabled, lines typed on stdin are sent to the daemon
through :class:`~cueplay.runtime.channel.PlaybackRemote`:

- ``p`` or an empty line toggles pause
- ``b`` seeks back 5 seconds, ``f`` seeks forward 5 seconds
"""

from __future__ import annotations

import asyncio
import sys
from typing import TYPE_CHECKING, TextIO

from cueplay.infra.exceptions import ChannelError
from cueplay.infra.logging import get_logger

from . import constants
from .channel import DaemonChannel, PlaybackRemote
from .clock import Clock, WallClock
from .controller import PlaybackController
from .renderer import CaptureChannel, LogRenderer, Renderer
from .timers import AsyncioTimerScheduler, TimerSlot

if TYPE_CHECKING:
    from cueplay.infra.settings import Settings

_log = get_logger(__name__)

DEBUG_SNAPSHOT_INTERVAL = 1.0

KEY_BINDINGS = {
    "": "toggle_pause",
    "p": "toggle_pause",
    "b": "seek_back",
    "f": "seek_forward",
}


class PlayerApp:
    """Runs the playback runtime against the daemon until stopped."""

    def __init__(
        self,
        settings: "Settings",
        *,
        renderer: Renderer | None = None,
        capture: CaptureChannel | None = None,
        clock: Clock | None = None,
        debug: bool = False,
        keyboard: bool = False,
    ) -> None:
        self.settings = settings
        self.renderer = renderer if renderer is not None else LogRenderer()
        self.capture = capture
        self.clock = clock if clock is not None else WallClock()
        self.debug = debug
        self.keyboard = keyboard
        self.controller: PlaybackController | None = None
        self.channel: DaemonChannel | None = None
        self.remote: PlaybackRemote | None = None
        self._debug_slot: TimerSlot | None = None
        self._key_tasks: set[asyncio.Task] = set()

    def build(self, loop: asyncio.AbstractEventLoop) -> PlaybackController:
        """Create the controller and channel bound to ``loop``."""
        scheduler = AsyncioTimerScheduler(loop)
        self.controller = PlaybackController.from_settings(
            self.settings, self.clock, scheduler, self.renderer, self.capture
        )
        self.channel = DaemonChannel(
            self.settings.daemon_url,
            self.controller.handle_message,
            reconnect_delay=self.settings.reconnect_delay,
        )
        self.remote = PlaybackRemote(self.channel, self.controller)
        if self.debug:
            self._debug_slot = TimerSlot(scheduler, "debug-snapshot")
            self._debug_slot.schedule(DEBUG_SNAPSHOT_INTERVAL, self._log_snapshot)
        return self.controller

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        self.build(loop)
        channel = self.channel
        if channel is None:
            raise ChannelError("daemon channel was not created")
        constants.log_timing_constants(
            self.settings.min_animation_time,
            self.settings.max_animation_time,
            self.settings.idle_timeout,
        )
        _log.info(
            "player_starting",
            daemon_url=self.settings.daemon_url,
            advance_mode=self.settings.advance_mode,
            renderer=type(self.renderer).__name__,
            keyboard=self.keyboard,
        )
        stdin = sys.stdin if self.keyboard else None
        if stdin is not None:
            loop.add_reader(stdin.fileno(), self._on_stdin, stdin)
        try:
            await channel.run()
        finally:
            if stdin is not None:
                loop.remove_reader(stdin.fileno())
            self.shutdown()

    async def handle_key(self, key: str) -> bool:
        """Send the remote command bound to ``key``. Returns ``True`` if sent."""
        action = KEY_BINDINGS.get(key.strip().lower())
        if action is None:
            _log.info("unknown_key", key=key.strip(), bindings="p, b, f")
            return False
        if self.remote is None:
            return False
        return await getattr(self.remote, action)()

    def _on_stdin(self, stream: TextIO) -> None:
        line = stream.readline()
        if not line:
            return
        task = asyncio.get_running_loop().create_task(self.handle_key(line))
        self._key_tasks.add(task)
        task.add_done_callback(self._key_tasks.discard)

    async def stop(self) -> None:
        if self.channel is not None:
            await self.channel.stop()

    def shutdown(self) -> None:
        if self._debug_slot is not None:
            self._debug_slot.cancel()
        if self.controller is not None:
            self.controller.shutdown()
            _log.info(
                "player_stopped",
                chunks_played=self.controller.advance_count,
                malformed_messages=self.controller.malformed_count,
            )

    def _log_snapshot(self) -> None:
        if self.controller is None or self._debug_slot is None:
            return
        _log.debug("playback_snapshot", **self.controller.snapshot().to_dict())
        self._debug_slot.schedule(DEBUG_SNAPSHOT_INTERVAL, self._log_snapshot)
