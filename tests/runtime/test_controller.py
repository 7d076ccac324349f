"""
PlaybackController behavior tests.

Time is driven by the stepped scheduler fixture; renderer lifecycle signals are
emitted by hand through FakeRenderer.
"""

from __future__ import annotations

import json
import logging

import pytest

from cueplay.runtime.chunk_queue import Chunk
from cueplay.runtime.controller import PlaybackController, PlaybackState
from cueplay.runtime.renderer import LogRenderer

from conftest import T0, FakeCapture, FakeRenderer, chunks


def _queue_message(pairs, start_time=None):
    payload = {
        "type": "PLAYBACK_QUEUE",
        "queue": [{"text": text, "timestamp": ts} for text, ts in pairs],
    }
    if start_time is not None:
        payload["start_time"] = start_time
    return json.dumps(payload)


# ---------------------------------------------------------------------------
# Load and advance
# ---------------------------------------------------------------------------


def test_load_plays_first_chunk_immediately(make_controller, renderer):
    controller = make_controller()
    controller.load(chunks(("b", 2), ("a", 0)))

    assert controller.state is PlaybackState.PLAYING
    assert renderer.displayed == ["a"]
    assert controller.session.current_index == 0
    assert controller.session.is_animating
    assert ("rewind",) in renderer.effects


def test_end_signal_advances_to_next_chunk(make_controller, renderer, scheduler):
    controller = make_controller()
    controller.load(chunks(("a", 0), ("b", 2)))
    scheduler.advance(3.0)
    renderer.emit_ended()

    assert renderer.displayed == ["a", "b"]
    assert controller.session.current_index == 1


def test_early_end_signal_does_not_advance(make_controller, renderer, scheduler):
    controller = make_controller()
    controller.load(chunks(("a", 0), ("b", 2)))
    scheduler.advance(1.0)
    renderer.emit_ended()

    assert renderer.displayed == ["a"]
    assert controller.detector.deferred_signals == 1


def test_fallback_then_idle_stop(make_controller, renderer, scheduler):
    controller = make_controller()
    controller.load(chunks(("a", 0), ("b", 2)))

    scheduler.advance(15.0)
    assert renderer.displayed == ["a", "b"]

    scheduler.advance(15.0)
    assert controller.state is PlaybackState.PLAYING
    assert not controller.session.is_animating
    assert controller.session.is_exhausted

    scheduler.advance(1.0)
    assert controller.state is PlaybackState.STOPPED
    assert len(controller.session.queue) == 0
    assert scheduler.pending == 0


def test_no_idle_stop_while_last_chunk_animates(make_controller, scheduler):
    controller = make_controller(max_animation_time=60.0)
    controller.load(chunks(("only", 0)))
    scheduler.advance(45.0)
    assert controller.state is PlaybackState.PLAYING
    assert controller.session.is_animating


def test_no_double_advance_when_signal_and_fallback_race(make_controller, renderer, scheduler):
    controller = make_controller()
    controller.load(chunks(("a", 0), ("b", 5), ("c", 10)))
    scheduler.advance(3.0)
    renderer.emit_ended()
    renderer.emit_ended()

    # The fallback for "a" would have fired at 15s; "b" is still on screen at 16s.
    scheduler.advance(13.0)
    assert renderer.displayed == ["a", "b"]
    assert controller.session.current_index == 1


def test_play_chunk_on_animating_chunk_is_noop(make_controller, renderer):
    controller = make_controller()
    controller.load(chunks(("a", 0), ("b", 5)))
    assert controller.play_chunk(0) is False
    assert renderer.displayed == ["a"]
    assert controller.play_chunk(7) is False


def test_reloading_same_queue_leaves_one_set_of_timers(make_controller, renderer, scheduler):
    controller = make_controller()
    queue = chunks(("a", 0), ("b", 5))
    controller.load(queue)
    controller.load(queue)

    # One fallback and one idle check.
    assert scheduler.pending == 2
    scheduler.advance(15.5)
    assert renderer.displayed.count("b") == 1


def test_load_empty_queue_is_idle(make_controller, renderer, scheduler):
    controller = make_controller()
    controller.load([])
    assert controller.state is PlaybackState.IDLE
    assert renderer.displayed == []
    assert scheduler.pending == 0


def test_load_anchors_on_daemon_start_time(make_controller, clock):
    controller = make_controller()
    controller.handle_message(_queue_message([("a", 0)], start_time=T0 - 8.0))
    assert controller.elapsed() == pytest.approx(8.0)


def test_start_restarts_current_queue(make_controller, renderer, scheduler):
    controller = make_controller()
    controller.load(chunks(("a", 0), ("b", 5)))
    scheduler.advance(15.0)
    controller.start()
    assert renderer.displayed == ["a", "b", "a"]
    assert controller.elapsed() == pytest.approx(0.0)


# ---------------------------------------------------------------------------
# Pause / resume
# ---------------------------------------------------------------------------


def test_pause_freezes_playback_and_resume_continues(make_controller, renderer, scheduler):
    controller = make_controller()
    controller.load(chunks(("a", 0), ("b", 5)))
    scheduler.advance(5.0)

    assert controller.pause() is True
    assert controller.state is PlaybackState.PAUSED
    assert ("pause",) in renderer.effects

    scheduler.advance(100.0)
    assert controller.elapsed() == pytest.approx(5.0)
    assert renderer.displayed == ["a"]
    assert controller.state is PlaybackState.PAUSED

    assert controller.resume() is True
    assert ("play",) in renderer.effects
    assert controller.elapsed() == pytest.approx(5.0)

    # Remaining fallback time is 10s.
    scheduler.advance(9.0)
    assert renderer.displayed == ["a"]
    scheduler.advance(1.5)
    assert renderer.displayed == ["a", "b"]


def test_end_signal_while_paused_is_ignored(make_controller, renderer, scheduler):
    controller = make_controller()
    controller.load(chunks(("a", 0), ("b", 5)))
    scheduler.advance(5.0)
    controller.pause()
    renderer.emit_ended()
    assert renderer.displayed == ["a"]


def test_pause_and_resume_guards(make_controller):
    controller = make_controller()
    assert controller.pause() is False
    assert controller.resume() is False
    controller.load(chunks(("a", 0)))
    assert controller.resume() is False
    controller.pause()
    assert controller.pause() is False


def test_capture_paused_in_lockstep(make_controller, scheduler):
    capture = FakeCapture(active=True)
    controller = make_controller(capture=capture)
    controller.load(chunks(("a", 0)))
    controller.pause()
    controller.resume()
    assert capture.calls == ["pause", "resume"]


def test_inactive_capture_is_left_alone(make_controller):
    capture = FakeCapture(active=False)
    controller = make_controller(capture=capture)
    controller.load(chunks(("a", 0)))
    controller.pause()
    controller.resume()
    assert capture.calls == []


# ---------------------------------------------------------------------------
# Seek
# ---------------------------------------------------------------------------


def test_seek_displays_chunk_at_target_time(make_controller, renderer, scheduler):
    controller = make_controller()
    controller.load(chunks(("a", 0), ("b", 5), ("c", 10)))
    controller.seek(7.0)

    assert controller.session.current_index == 1
    assert renderer.displayed[-1] == "b"
    assert controller.elapsed() == pytest.approx(7.0)
    assert not controller.session.is_animating

    # Completion of the seeked chunk still advances playback.
    scheduler.advance(3.0)
    renderer.emit_ended()
    assert renderer.displayed[-1] == "c"


def test_seek_before_first_chunk_clamps_to_first(make_controller, renderer):
    controller = make_controller()
    controller.load(chunks(("a", 3), ("b", 6)))
    controller.seek(1.0)
    assert controller.session.current_index == 0
    assert renderer.displayed[-1] == "a"


def test_seek_while_paused_stays_paused(make_controller, renderer, scheduler):
    controller = make_controller()
    controller.load(chunks(("a", 0), ("b", 5), ("c", 10), ("d", 20)))
    scheduler.advance(5.0)
    controller.pause()
    controller.seek(12.0)

    assert controller.state is PlaybackState.PAUSED
    assert renderer.displayed[-1] == "c"
    scheduler.advance(100.0)
    assert controller.elapsed() == pytest.approx(12.0)

    controller.resume()
    scheduler.advance(15.5)
    assert renderer.displayed[-1] == "d"
    assert controller.state is PlaybackState.PLAYING


# ---------------------------------------------------------------------------
# Append
# ---------------------------------------------------------------------------


def test_append_merges_in_order_without_interrupting(make_controller, renderer, scheduler):
    controller = make_controller()
    controller.load(chunks(("a", 0), ("b", 5)))
    scheduler.advance(1.0)
    controller.append(chunks(("c", 10), ("x", 2.5)))

    assert [c.text for c in controller.session.queue] == ["a", "x", "b", "c"]
    assert controller.session.current_chunk == Chunk("a", 0.0)
    assert renderer.displayed == ["a"]


def test_append_keeps_current_chunk_identity(make_controller, scheduler):
    controller = make_controller()
    controller.load(chunks(("a", 0), ("b", 5)))
    scheduler.advance(15.0)
    current = controller.session.current_chunk
    assert current.text == "b"

    controller.append(chunks(("early", 1)))
    assert controller.session.current_index == 2
    assert controller.session.current_chunk is current


def test_append_resets_idle_time(make_controller, scheduler):
    controller = make_controller()
    controller.load(chunks(("a", 0)))
    scheduler.advance(25.0)
    controller.append(chunks(("b", 20)))
    scheduler.advance(15.0)
    assert controller.state is PlaybackState.PLAYING


def test_append_after_queue_ran_dry_resumes_advancing(make_controller, renderer, scheduler):
    controller = make_controller()
    controller.load(chunks(("a", 0)))
    scheduler.advance(15.0)
    assert not controller.session.is_animating

    controller.append(chunks(("b", 20)))
    assert renderer.displayed == ["a", "b"]
    assert controller.session.is_animating


def test_append_without_session_acts_as_load(make_controller, renderer):
    controller = make_controller()
    controller.append(chunks(("b", 5), ("a", 0)))
    assert controller.state is PlaybackState.PLAYING
    assert renderer.displayed == ["a"]


def test_queue_stays_sorted_across_operations(make_controller, scheduler):
    controller = make_controller()
    controller.load(chunks(("c", 9), ("a", 1)))
    controller.append(chunks(("b", 4), ("d", 0.5)))
    scheduler.advance(3.0)
    controller.append(chunks(("e", 2)))
    timestamps = [c.timestamp for c in controller.session.queue]
    assert timestamps == sorted(timestamps)


# ---------------------------------------------------------------------------
# Stop and messages
# ---------------------------------------------------------------------------


def test_stop_message_clears_session(make_controller, scheduler):
    controller = make_controller()
    controller.load(chunks(("a", 0), ("b", 5)))
    controller.handle_message('{"type": "PLAYBACK_STOP"}')

    assert controller.state is PlaybackState.STOPPED
    assert len(controller.session.queue) == 0
    assert controller.session.current_index == -1
    assert scheduler.pending == 0

    controller.load(chunks(("z", 0)))
    assert controller.state is PlaybackState.PLAYING


def test_malformed_message_is_logged_and_dropped(make_controller, renderer, caplog):
    caplog.set_level(logging.WARNING)
    controller = make_controller()
    controller.load(chunks(("a", 0)))

    assert controller.handle_message("{not json") is None
    assert controller.handle_message('{"type": "PLAYBACK_SEEK", "time": "later"}') is None

    assert controller.malformed_count == 2
    assert "Discarding malformed message" in caplog.text
    assert controller.state is PlaybackState.PLAYING
    assert renderer.displayed == ["a"]


def test_full_message_flow(make_controller, renderer, scheduler):
    controller = make_controller()
    controller.handle_message(_queue_message([("a", 0), ("b", 5)]))
    controller.handle_message('{"type": "PLAYBACK_PAUSE"}')
    assert controller.state is PlaybackState.PAUSED
    controller.handle_message('{"type": "PLAYBACK_RESUME"}')
    controller.handle_message('{"type": "PLAYBACK_SEEK", "time": 6}')
    assert renderer.displayed[-1] == "b"
    assert controller.handle_message('{"type": "INFO", "message": "hello"}') is not None


# ---------------------------------------------------------------------------
# Renderer binding and failures
# ---------------------------------------------------------------------------


def test_failing_renderer_does_not_stop_playback(make_controller, scheduler, caplog):
    caplog.set_level(logging.WARNING)
    broken = FakeRenderer(fail_on={"display", "pause"})
    controller = make_controller(renderer=broken)
    controller.load(chunks(("a", 0), ("b", 5)))
    assert controller.state is PlaybackState.PLAYING
    assert "renderer call FakeRenderer.display failed" in caplog.text

    controller.pause()
    controller.resume()
    scheduler.advance(15.5)
    assert controller.session.current_index == 1


def test_renderer_without_signals_runs_on_fallback(make_controller, scheduler):
    log_renderer = LogRenderer()
    controller = make_controller(renderer=log_renderer)
    controller.load(chunks(("a", 0), ("b", 5)))
    assert not controller.detector.has_signals
    scheduler.advance(15.0)
    assert log_renderer.displayed == ["a", "b"]


def test_no_renderer_bound_still_advances(make_controller, scheduler):
    controller = make_controller(renderer=None)
    controller.load(chunks(("a", 0), ("b", 5)))
    scheduler.advance(15.0)
    assert controller.session.current_index == 1


def test_rebinding_renderer_rearms_chunk_in_flight(make_controller, renderer, scheduler):
    controller = make_controller()
    controller.load(chunks(("a", 0), ("b", 5)))
    scheduler.advance(10.0)

    replacement = FakeRenderer()
    controller.bind_renderer(replacement)
    assert renderer.subscribed == 0
    assert replacement.subscribed == 1

    # The old 15s countdown is gone; the new one runs from the rebind.
    scheduler.advance(6.0)
    assert controller.session.current_index == 0

    renderer.emit_ended()
    assert controller.session.current_index == 0
    replacement.emit_ended()
    assert controller.session.current_index == 1
    assert replacement.displayed == ["b"]


def test_binding_same_renderer_is_noop(make_controller, renderer):
    controller = make_controller()
    controller.bind_renderer(renderer)
    assert renderer.subscribed == 1


def test_shutdown_cancels_timers_and_unbinds(make_controller, renderer, scheduler):
    controller = make_controller()
    controller.load(chunks(("a", 0)))
    controller.shutdown()
    assert scheduler.pending == 0
    assert renderer.subscribed == 0


# ---------------------------------------------------------------------------
# Clock-driven advance
# ---------------------------------------------------------------------------


def test_clock_mode_advances_on_timestamps(make_controller, renderer, scheduler):
    controller = make_controller(advance_mode="clock")
    controller.load(chunks(("a", 0), ("b", 5), ("c", 10)))
    assert renderer.displayed == []

    scheduler.advance(0.15)
    assert renderer.displayed == ["a"]

    # Completion signals alone do not advance in clock mode.
    scheduler.advance(3.0)
    renderer.emit_ended()
    assert renderer.displayed == ["a"]
    assert not controller.session.is_animating

    scheduler.advance(2.0)
    assert renderer.displayed == ["a", "b"]


def test_clock_mode_pause_holds_position(make_controller, renderer, scheduler):
    controller = make_controller(advance_mode="clock")
    controller.load(chunks(("a", 0), ("b", 5)))
    scheduler.advance(1.0)
    controller.pause()
    scheduler.advance(30.0)
    assert renderer.displayed == ["a"]
    controller.resume()
    scheduler.advance(4.5)
    assert renderer.displayed == ["a", "b"]


def test_invalid_advance_mode_rejected(clock, scheduler):
    with pytest.raises(ValueError):
        PlaybackController(clock, scheduler, advance_mode="random")


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


def test_snapshot_reports_position(make_controller, scheduler):
    controller = make_controller()
    long_text = "x" * 60
    controller.load([Chunk(long_text, 0.0), Chunk("b", 5.5)])
    scheduler.advance(2.0)

    snap = controller.snapshot().to_dict()
    assert snap["state"] == "playing"
    assert snap["chunk"] == "1/2"
    assert snap["current_text"] == "x" * 50 + "..."
    assert snap["next_chunk_time"] == "5.5"
    assert snap["elapsed"] == pytest.approx(2.0)

    scheduler.advance(15.0)
    assert controller.snapshot().next_chunk_time == "end"


# ---------------------------------------------------------------------------
# Leaving pause through load / start / stop
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("transition", ["load", "start"])
def test_restart_while_paused_unpauses_renderer_and_capture(
    make_controller, renderer, scheduler, transition
):
    capture = FakeCapture(active=True)
    controller = make_controller(capture=capture)
    controller.load(chunks(("a", 0), ("b", 5)))
    scheduler.advance(1.0)
    controller.pause()
    renderer.effects.clear()

    if transition == "load":
        controller.load(chunks(("x", 0), ("y", 5)))
    else:
        controller.start()

    assert controller.state is PlaybackState.PLAYING
    assert renderer.effects[0] == ("play",)
    assert capture.calls == ["pause", "resume"]

    # End signals drive playback again.
    scheduler.advance(3.0)
    renderer.emit_ended()
    assert controller.session.current_index == 1


def test_stop_while_paused_resumes_capture_only(make_controller, renderer):
    capture = FakeCapture(active=True)
    controller = make_controller(capture=capture)
    controller.load(chunks(("a", 0)))
    controller.pause()
    renderer.effects.clear()

    controller.stop()

    assert controller.state is PlaybackState.STOPPED
    assert capture.calls == ["pause", "resume"]
    assert ("play",) not in renderer.effects


def test_restart_from_playing_sends_no_play(make_controller, renderer):
    capture = FakeCapture(active=True)
    controller = make_controller(capture=capture)
    controller.load(chunks(("a", 0)))
    controller.load(chunks(("b", 0)))
    controller.start()
    assert ("play",) not in renderer.effects
    assert capture.calls == []


def test_start_on_stopped_session_still_times_out(make_controller, scheduler):
    controller = make_controller()
    controller.load(chunks(("a", 0)))
    controller.stop()
    controller.start()
    assert controller.state is PlaybackState.PLAYING

    scheduler.advance(30.0)
    assert controller.state is PlaybackState.PLAYING
    scheduler.advance(1.0)
    assert controller.state is PlaybackState.STOPPED


# ---------------------------------------------------------------------------
# Invariants
# ---------------------------------------------------------------------------


def test_current_index_never_decreases_without_seek_or_reload(make_controller, renderer, scheduler):
    controller = make_controller()
    indexes = []

    def record():
        indexes.append(controller.session.current_index)

    controller.load(chunks(("a", 0), ("b", 5), ("c", 10), ("d", 15), ("e", 20)))
    record()
    scheduler.advance(3.0)
    renderer.emit_ended()
    record()
    renderer.emit_ended()  # early; deferred
    record()
    controller.append(chunks(("x", 1)))  # lands before the current chunk
    record()
    scheduler.advance(15.0)
    record()
    controller.pause()
    scheduler.advance(50.0)
    record()
    controller.resume()
    record()
    controller.append(chunks(("y", 30)))
    record()
    scheduler.advance(3.0)
    renderer.emit_ended()
    record()
    for _ in range(2):
        scheduler.advance(15.0)
        record()

    assert indexes == sorted(indexes)
    assert indexes[-1] == 6
    assert controller.session.current_chunk.text == "y"
    assert controller.state is PlaybackState.PLAYING


def test_non_finite_timestamps_are_rejected(make_controller):
    controller = make_controller()
    controller.load(chunks(("a", 0), ("b", 5)))

    raw = '{"type": "PLAYBACK_APPEND", "chunks": [{"text": "n", "timestamp": NaN}]}'
    assert controller.handle_message(raw) is None
    assert controller.handle_message('{"type": "PLAYBACK_SEEK", "time": Infinity}') is None

    assert controller.malformed_count == 2
    assert [c.timestamp for c in controller.session.queue] == [0.0, 5.0]
    assert controller.elapsed() == pytest.approx(0.0)
