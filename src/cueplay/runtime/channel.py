"""
Daemon channel: WebSocket connection to the playback daemon.

The channel delivers inbound text frames, in arrival order, to a message
callback running on the same event loop as the controller. Losing the
connection is not an error: the channel logs it, waits ``reconnect_delay``
and connects again. Playback state is never touched by the channel itself.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable

import aiohttp

from cueplay.infra.exceptions import ChannelError

from . import constants

if TYPE_CHECKING:
    from .controller import PlaybackController

logger = logging.getLogger(__name__)

MessageCallback = Callable[[str], Any]
SleepFn = Callable[[float], Awaitable[None]]


class DaemonChannel:
    """Reconnecting aiohttp WebSocket client."""

    def __init__(
        self,
        url: str,
        on_message: MessageCallback,
        *,
        reconnect_delay: float = constants.RECONNECT_DELAY,
        heartbeat: float | None = 20.0,
        session_factory: Callable[[], aiohttp.ClientSession] | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        if not url.startswith(("ws://", "wss://")):
            raise ChannelError(f"daemon URL must use ws:// or wss:// (got {url!r})")
        if reconnect_delay <= 0.0:
            raise ValueError("reconnect_delay must be greater than zero")
        self.url = url
        self._on_message = on_message
        self.reconnect_delay = reconnect_delay
        self._heartbeat = heartbeat
        self._session_factory = session_factory or self._default_session
        self._sleep = sleep
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._running = False

        self.connected = False
        self.reconnect_count = 0
        self.messages_received = 0
        self.last_error: str | None = None

    @staticmethod
    def _default_session() -> aiohttp.ClientSession:
        return aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=None))

    @property
    def running(self) -> bool:
        return self._running

    async def run(self) -> None:
        """Connect and keep reconnecting until :meth:`stop` is called."""
        if self._running:
            logger.warning("Daemon channel is already running")
            return
        self._running = True
        try:
            while self._running:
                try:
                    await self._connect_once()
                except asyncio.CancelledError:
                    raise
                except (aiohttp.ClientError, OSError) as e:
                    self.last_error = str(e)
                    logger.error("Failed to connect to daemon: %s", e)

                if not self._running:
                    break
                self.reconnect_count += 1
                logger.info("Reconnecting to daemon in %.1fs", self.reconnect_delay)
                await self._sleep(self.reconnect_delay)
        finally:
            self._running = False
            self.connected = False
            self._ws = None

    async def _connect_once(self) -> None:
        async with self._session_factory() as session:
            async with session.ws_connect(self.url, heartbeat=self._heartbeat) as ws:
                self._ws = ws
                self.connected = True
                logger.info("Connected to daemon at %s", self.url)
                try:
                    async for msg in ws:
                        if msg.type == aiohttp.WSMsgType.TEXT:
                            self.messages_received += 1
                            self._deliver(msg.data)
                        elif msg.type == aiohttp.WSMsgType.ERROR:
                            self.last_error = str(ws.exception())
                            logger.error("WebSocket error: %s", self.last_error)
                            break
                        # Binary and control frames carry no commands.
                finally:
                    self._ws = None
                    self.connected = False
                    logger.info("Disconnected from daemon")

    def _deliver(self, data: str) -> None:
        try:
            self._on_message(data)
        except Exception:
            logger.exception("Message handler failed; message dropped")

    async def send(self, payload: dict[str, Any]) -> bool:
        """Send a JSON payload. Returns ``False`` when not connected."""
        ws = self._ws
        if ws is None or ws.closed:
            logger.warning("Not connected; %s not sent", payload.get("type"))
            return False
        await ws.send_json(payload)
        return True

    async def stop(self) -> None:
        self._running = False
        ws = self._ws
        if ws is not None and not ws.closed:
            await ws.close()


class PlaybackRemote:
    """Outbound playback controls sent to the daemon."""

    SEEK_STEP = 5.0

    def __init__(self, channel: DaemonChannel, controller: "PlaybackController") -> None:
        self._channel = channel
        self._controller = controller

    async def toggle_pause(self) -> bool:
        command = "PLAYBACK_PAUSE" if self._controller.session.is_playing else "PLAYBACK_RESUME"
        return await self._channel.send({"type": command})

    async def seek_by(self, delta: float) -> bool:
        target = max(0.0, self._controller.elapsed() + delta)
        return await self._channel.send({"type": "PLAYBACK_SEEK", "time": target})

    async def seek_back(self) -> bool:
        return await self.seek_by(-self.SEEK_STEP)

    async def seek_forward(self) -> bool:
        return await self.seek_by(self.SEEK_STEP)
