"""
Playback controller: the state machine that plays a chunk session.

Pattern: single owner. The controller owns the session (queue, position and
clock anchors) and every timer that acts on it. The completion detector and
the idle watchdog only read the session and call back into the controller.

All entry points (commands, renderer signals, timer callbacks) are expected
to run on one serialized loop; nothing here takes a lock.

States::

    IDLE --load/start--> PLAYING <--pause/resume--> PAUSED
      any --stop / idle timeout--> STOPPED --load--> PLAYING

Hard rules enforced here:
- the queue is sorted after every mutation and the current chunk keeps its
  identity across merges
- every transition that supersedes a timer cancels it first
- advancing onto the chunk that is already animating is a no-op
- running out of chunks never stops playback directly; the idle watchdog does
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable

from cueplay.infra.exceptions import MalformedCommandError

from . import constants
from .chunk_queue import Chunk, ChunkQueue
from .clock import Clock, PlaybackClock
from .commands import (
    Command,
    InfoMessage,
    PlaybackAppend,
    PlaybackPause,
    PlaybackQueue,
    PlaybackResume,
    PlaybackSeek,
    PlaybackStart,
    PlaybackStop,
    parse_command,
)
from .completion import CompletionDetector
from .renderer import CaptureChannel, Renderer, guarded_call
from .timers import TimerScheduler, TimerSlot
from .watchdog import IdleWatchdog

if TYPE_CHECKING:
    from cueplay.infra.settings import Settings

logger = logging.getLogger(__name__)


class PlaybackState(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    STOPPED = "stopped"


@dataclass
class Session:
    """Live playback state for one playback run."""

    clock: PlaybackClock
    queue: ChunkQueue = field(default_factory=ChunkQueue)
    current_index: int = -1
    is_animating: bool = False
    last_chunk_received_at: float = 0.0

    @property
    def is_playing(self) -> bool:
        return self.clock.is_playing

    @property
    def start_time(self) -> float:
        return self.clock.start_time

    @property
    def paused_at(self) -> float:
        return self.clock.paused_at

    @property
    def is_exhausted(self) -> bool:
        return self.current_index >= len(self.queue) - 1

    @property
    def current_chunk(self) -> Chunk | None:
        return self.queue.get(self.current_index)

    def elapsed(self) -> float:
        return self.clock.elapsed()


@dataclass
class PlaybackSnapshot:
    """Point-in-time view of the controller for status displays."""

    state: str
    is_playing: bool
    is_animating: bool
    current_index: int
    chunk_count: int
    current_text: str
    next_chunk_time: str
    elapsed: float
    idle_seconds: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state,
            "is_playing": self.is_playing,
            "is_animating": self.is_animating,
            "chunk": f"{self.current_index + 1}/{self.chunk_count}",
            "current_index": self.current_index,
            "chunk_count": self.chunk_count,
            "current_text": self.current_text,
            "next_chunk_time": self.next_chunk_time,
            "elapsed": round(self.elapsed, 3),
            "idle_seconds": round(self.idle_seconds, 3),
        }


class PlaybackController:
    """Plays a chunk session against a renderer."""

    def __init__(
        self,
        clock: Clock,
        scheduler: TimerScheduler,
        renderer: Renderer | None = None,
        *,
        min_animation_time: float = constants.MIN_ANIMATION_TIME,
        max_animation_time: float = constants.MAX_ANIMATION_TIME,
        idle_timeout: float = constants.IDLE_TIMEOUT,
        idle_check_interval: float = constants.IDLE_CHECK_INTERVAL,
        advance_mode: str = "event",
        tick_interval: float = constants.TICK_INTERVAL,
        capture: CaptureChannel | None = None,
    ) -> None:
        if advance_mode not in constants.ADVANCE_MODES:
            raise ValueError(f"advance_mode must be one of {constants.ADVANCE_MODES}")
        if tick_interval <= 0.0:
            raise ValueError("tick_interval must be greater than zero")
        self._clock = clock
        self.advance_mode = advance_mode
        self.tick_interval = tick_interval
        self.state = PlaybackState.IDLE
        self.session = Session(clock=PlaybackClock(clock))
        self.detector = CompletionDetector(
            clock,
            scheduler,
            self._on_chunk_complete,
            min_animation_time=min_animation_time,
            max_animation_time=max_animation_time,
        )
        self.watchdog = IdleWatchdog(
            clock,
            scheduler,
            lambda: self.session,
            self._on_idle,
            idle_timeout=idle_timeout,
            check_interval=idle_check_interval,
        )
        self._tick = TimerSlot(scheduler, "clock-advance")
        self._capture = capture
        self.advance_count = 0
        self.malformed_count = 0
        if renderer is not None:
            self.bind_renderer(renderer)

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        clock: Clock,
        scheduler: TimerScheduler,
        renderer: Renderer | None = None,
        capture: CaptureChannel | None = None,
    ) -> PlaybackController:
        return cls(
            clock,
            scheduler,
            renderer,
            min_animation_time=settings.min_animation_time,
            max_animation_time=settings.max_animation_time,
            idle_timeout=settings.idle_timeout,
            idle_check_interval=settings.idle_check_interval,
            advance_mode=settings.advance_mode,
            tick_interval=settings.tick_interval,
            capture=capture,
        )

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    @property
    def renderer(self) -> Renderer | None:
        return self.detector.renderer

    def bind_renderer(self, renderer: Renderer | None) -> None:
        """Make ``renderer`` the active renderer instance.

        The previous binding (and its signal subscription) is dropped first.
        A chunk in flight is re-armed against the new instance, so the old
        fallback countdown never fires.
        """
        if renderer is self.detector.renderer:
            return
        armed = self.detector.armed_index
        suspended = self.detector.suspended
        self.detector.bind(renderer)
        if armed is not None:
            self.detector.arm(armed)
            if suspended:
                self.detector.suspend()

    # ------------------------------------------------------------------
    # Inbound commands
    # ------------------------------------------------------------------

    def handle_message(self, raw: str | bytes | dict[str, Any]) -> Command | None:
        """Parse and apply one channel message; malformed ones are dropped."""
        try:
            command = parse_command(raw)
        except MalformedCommandError as e:
            self.malformed_count += 1
            logger.warning("Discarding malformed message: %s [%s]", e, e.raw_excerpt)
            return None
        logger.debug("Received %s", command.type)
        self.dispatch(command)
        return command

    def dispatch(self, command: Command) -> None:
        if isinstance(command, PlaybackQueue):
            self.load(command.chunks(), command.start_time)
        elif isinstance(command, PlaybackAppend):
            self.append(command.to_chunks())
        elif isinstance(command, PlaybackStart):
            self.start(command.start_time)
        elif isinstance(command, PlaybackPause):
            self.pause()
        elif isinstance(command, PlaybackResume):
            self.resume()
        elif isinstance(command, PlaybackSeek):
            self.seek(command.time)
        elif isinstance(command, PlaybackStop):
            self.stop("command")
        elif isinstance(command, InfoMessage):
            logger.info("%s: %s", command.type, command.message)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def load(self, chunks: Iterable[Chunk], start_time: float | None = None) -> None:
        """Replace the session with ``chunks`` and start playing them."""
        chunks = list(chunks)
        was_paused = self.state is PlaybackState.PAUSED
        self._cancel_timers()
        if was_paused:
            self._release_pause()
        session = self.session
        session.queue.replace(chunks)
        session.current_index = -1
        session.is_animating = False
        self.watchdog.idle_seconds = 0.0

        if not session.queue:
            session.clock.reset()
            session.last_chunk_received_at = 0.0
            self._set_state(PlaybackState.IDLE)
            logger.info("Loaded empty queue; nothing to play")
            return

        # A zero anchor means "not provided".
        session.clock.start(start_time or None)
        session.last_chunk_received_at = self._clock.now()
        self._set_state(PlaybackState.PLAYING)
        logger.info(
            "Loading queue with %d chunks, playback anchored at %.3f",
            len(session.queue),
            session.start_time,
        )
        self._begin_playback()

    def append(self, chunks: Iterable[Chunk]) -> None:
        """Merge ``chunks`` into the session; the current chunk stays current."""
        chunks = list(chunks)
        session = self.session
        if not session.queue and not session.is_playing:
            logger.info("No active playback - treating append as new queue")
            self.load(chunks)
            return

        current = session.current_chunk
        session.queue.merge(chunks)
        if current is not None:
            session.current_index = session.queue.locate(current)
        session.last_chunk_received_at = self._clock.now()
        logger.info(
            "Appended %d chunks; total %d, on chunk %d",
            len(chunks),
            len(session.queue),
            session.current_index + 1,
        )

        # Playback ran dry before this append: pick up the new chunks.
        if (
            self.state is PlaybackState.PLAYING
            and self.advance_mode == "event"
            and not session.is_animating
            and self.detector.armed_index is None
        ):
            self.advance("append")

    def start(self, start_time: float | None = None) -> None:
        """Restart playback of the current queue from the beginning."""
        was_paused = self.state is PlaybackState.PAUSED
        self._cancel_timers()
        if was_paused:
            self._release_pause()
        session = self.session
        session.clock.start(start_time or None)
        session.last_chunk_received_at = self._clock.now()
        session.current_index = -1
        session.is_animating = False
        self._set_state(PlaybackState.PLAYING)
        logger.info("Playback started at %.3f", session.start_time)
        self._begin_playback()

    def pause(self) -> bool:
        if self.state is not PlaybackState.PLAYING:
            logger.debug("pause ignored in state %s", self.state.value)
            return False
        session = self.session
        session.clock.pause()
        self.detector.suspend()
        self.watchdog.stop()
        self._tick.cancel()
        self._set_state(PlaybackState.PAUSED)
        logger.info("Playback paused at %.1fs", session.paused_at)
        guarded_call(self.renderer, "pause")
        if self._capture is not None and self._capture.active:
            guarded_call(self._capture, "pause")
        return True

    def resume(self) -> bool:
        if self.state is not PlaybackState.PAUSED:
            logger.debug("resume ignored in state %s", self.state.value)
            return False
        session = self.session
        session.clock.resume()
        self._set_state(PlaybackState.PLAYING)
        self.detector.resume()
        self.watchdog.start()
        self._start_tick()
        logger.info("Playback resumed from %.1fs", session.paused_at)
        self._release_pause()
        # Chunks appended while paused after the queue ran dry.
        if (
            self.advance_mode == "event"
            and not session.is_animating
            and self.detector.armed_index is None
            and not session.is_exhausted
        ):
            self.advance("resume")
        return True

    def seek(self, t: float) -> None:
        """Jump to playback position ``t`` and show the chunk due there."""
        session = self.session
        session.clock.seek(t)
        index = session.queue.find_index_at_time(t)
        session.current_index = index
        session.is_animating = False
        self.detector.disarm()
        if index < 0:
            logger.info("Seeked to %.1fs on an empty queue", t)
            return
        chunk = session.queue[index]
        logger.info("Seeked to %.1fs, displaying chunk %d: %r", t, index + 1, chunk.text)
        self._display(chunk)
        if self.state in (PlaybackState.PLAYING, PlaybackState.PAUSED):
            # Completion of the seeked chunk still advances playback.
            self.detector.arm(index)
            if self.state is PlaybackState.PAUSED:
                self.detector.suspend()

    def stop(self, reason: str = "command") -> None:
        was_paused = self.state is PlaybackState.PAUSED
        self._cancel_timers()
        if was_paused:
            # Renderer stays paused on its last frame.
            self._resume_capture()
        session = self.session
        session.queue.clear()
        session.current_index = -1
        session.is_animating = False
        session.last_chunk_received_at = 0.0
        session.clock.reset()
        self.watchdog.idle_seconds = 0.0
        self._set_state(PlaybackState.STOPPED)
        logger.info("Playback stopped (%s)", reason)

    def shutdown(self) -> None:
        """Cancel every timer and drop the renderer binding."""
        self._cancel_timers()
        self.detector.unbind()

    def elapsed(self) -> float:
        return self.session.elapsed()

    def find_index_at_time(self, t: float) -> int:
        return self.session.queue.find_index_at_time(t)

    def advance(self, source: str = "manual") -> bool:
        """Move to the next chunk. Returns ``True`` when a chunk was displayed."""
        if self.state is not PlaybackState.PLAYING:
            return False
        session = self.session
        if session.is_animating:
            animating_for = self._clock.now() - self.detector.animation_started_at
            if animating_for < self.detector.min_animation_time:
                logger.debug(
                    "Waiting for min animation time (%.1fs < %.1fs)",
                    animating_for,
                    self.detector.min_animation_time,
                )
                return False
        next_index = session.current_index + 1
        if next_index >= len(session.queue):
            logger.info("All chunks completed - waiting for more chunks or idle timeout")
            return False
        return self.play_chunk(next_index, source)

    def play_chunk(self, index: int, source: str = "manual") -> bool:
        session = self.session
        if index < 0 or index >= len(session.queue):
            return False
        if session.is_animating and index == session.current_index:
            logger.debug("chunk %d already animating; %s advance ignored", index + 1, source)
            return False
        session.current_index = index
        session.is_animating = True
        chunk = session.queue[index]
        logger.info(
            "Playing chunk %d/%d (%s): %r", index + 1, len(session.queue), source, chunk.text
        )
        self._display(chunk)
        self.detector.arm(index)
        self.advance_count += 1
        return True

    def snapshot(self) -> PlaybackSnapshot:
        session = self.session
        current = session.current_chunk
        text = ""
        if current is not None:
            text = current.text if len(current.text) <= 50 else current.text[:50] + "..."
        upcoming = session.queue.get(session.current_index + 1) if current is not None else None
        return PlaybackSnapshot(
            state=self.state.value,
            is_playing=session.is_playing,
            is_animating=session.is_animating,
            current_index=session.current_index,
            chunk_count=len(session.queue),
            current_text=text,
            next_chunk_time=f"{upcoming.timestamp:.1f}" if upcoming is not None else "end",
            elapsed=session.elapsed(),
            idle_seconds=self.watchdog.idle_seconds,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _set_state(self, state: PlaybackState) -> None:
        if state is not self.state:
            logger.debug("state %s -> %s", self.state.value, state.value)
        self.state = state

    def _release_pause(self) -> None:
        """Un-pause the renderer and capture channel paused by :meth:`pause`."""
        guarded_call(self.renderer, "play")
        self._resume_capture()

    def _resume_capture(self) -> None:
        if self._capture is not None and self._capture.active:
            guarded_call(self._capture, "resume")

    def _cancel_timers(self) -> None:
        self.detector.disarm()
        self.watchdog.stop()
        self._tick.cancel()

    def _begin_playback(self) -> None:
        self.watchdog.start()
        if self.advance_mode == "clock":
            self._start_tick()
        else:
            self.advance("start")

    def _display(self, chunk: Chunk) -> None:
        renderer = self.renderer
        if renderer is None:
            logger.warning("No renderer bound; chunk %r not displayed", chunk.text)
            return
        guarded_call(renderer, "rewind")
        guarded_call(renderer, "display", chunk.text)

    def _on_chunk_complete(self, index: int, source: str) -> None:
        session = self.session
        if self.state is not PlaybackState.PLAYING:
            return
        if index != session.current_index:
            logger.debug("stale completion for chunk %d ignored", index + 1)
            return
        logger.info("Animation ended for chunk %d (%s)", index + 1, source)
        session.is_animating = False
        if self.advance_mode == "event":
            self.advance(source)

    def _on_idle(self, idle_seconds: float) -> None:
        self.stop(f"idle {idle_seconds:.0f}s")

    def _start_tick(self) -> None:
        if self.advance_mode == "clock":
            self._tick.schedule(self.tick_interval, self._on_tick)

    def _on_tick(self) -> None:
        if self.state is not PlaybackState.PLAYING:
            return
        session = self.session
        upcoming = session.queue.get(session.current_index + 1)
        if upcoming is not None and session.elapsed() >= upcoming.timestamp:
            self.advance("clock")
        self._tick.schedule(self.tick_interval, self._on_tick)
