import asyncio

import pytest

from livescribe.audio.segment_recorder import SegmentRecorder, TimerFired, TimerKind
from livescribe.audio.types import ActivityEvent, ActivityKind, RecorderState

from conftest import FakeEncoder, FakeStream, tone


def _recorder(scheduler, encoder=None, stream=None, **kwargs):
    segments = []
    states = []
    kwargs.setdefault("max_initial_segment", 10.0)
    kwargs.setdefault("max_segment", 30.0)
    kwargs.setdefault("health_check_interval", 15.0)
    kwargs.setdefault("restart_delay", 0.5)
    kwargs.setdefault("min_segment_bytes", 1000)
    recorder = SegmentRecorder(
        encoder or FakeEncoder(),
        scheduler,
        segments.append,
        stream,
        on_state_change=states.append,
        **kwargs,
    )
    return recorder, segments, states


def _started(at):
    return ActivityEvent(kind=ActivityKind.SPEECH_STARTED, at=at)


def _ended(at):
    return ActivityEvent(kind=ActivityKind.SPEECH_ENDED, at=at)


def test_start_begins_capture_and_arms_timers(scheduler):
    encoder = FakeEncoder()
    recorder, _, states = _recorder(scheduler, encoder)
    recorder.start()
    assert recorder.state is RecorderState.CAPTURING
    assert encoder.starts == 1
    assert states == [RecorderState.CAPTURING]
    assert recorder.pending_timers == ["health_check", "max_initial_segment"]


def test_start_twice_rejected(scheduler):
    recorder, _, _ = _recorder(scheduler)
    recorder.start()
    with pytest.raises(RuntimeError):
        recorder.start()


@pytest.mark.asyncio
async def test_speech_end_flushes_and_restarts_after_delay(scheduler):
    encoder = FakeEncoder()
    recorder, segments, _ = _recorder(scheduler, encoder)
    recorder.start()
    scheduler.advance(1.0)
    recorder.dispatch(_started(1.0))
    recorder.write(tone())
    scheduler.advance(4.0)
    recorder.dispatch(_ended(5.0))

    assert recorder.state is RecorderState.IDLE
    assert "restart" in recorder.pending_timers
    assert await recorder.wait_flushed(timeout=1.0)
    assert len(segments) == 1
    assert segments[0].started_at == 0.0
    assert segments[0].ended_at == 5.0
    assert segments[0].mime_type == "audio/webm"
    assert encoder.delivered == [segments[0].data]

    scheduler.advance(0.5)
    assert recorder.state is RecorderState.CAPTURING
    assert encoder.starts == 2


@pytest.mark.asyncio
async def test_speech_start_while_idle_cancels_restart_and_captures(scheduler):
    encoder = FakeEncoder()
    recorder, _, _ = _recorder(scheduler, encoder)
    recorder.start()
    recorder.dispatch(_started(0.0))
    recorder.dispatch(_ended(0.0))
    assert recorder.state is RecorderState.IDLE

    recorder.dispatch(_started(0.1))
    assert recorder.state is RecorderState.CAPTURING
    assert "restart" not in recorder.pending_timers
    scheduler.advance(1.0)
    assert encoder.starts == 2
    assert await recorder.wait_flushed(timeout=1.0)


@pytest.mark.asyncio
async def test_initial_segment_cut_when_silent(scheduler):
    recorder, segments, _ = _recorder(scheduler)
    recorder.start()
    scheduler.advance(10.0)
    assert recorder.state is RecorderState.IDLE
    assert await recorder.wait_flushed(timeout=1.0)
    assert len(segments) == 1
    assert segments[0].duration == 10.0
    scheduler.advance(0.5)
    assert recorder.state is RecorderState.CAPTURING


def test_initial_segment_not_cut_while_speaking(scheduler):
    recorder, segments, _ = _recorder(scheduler)
    recorder.start()
    scheduler.advance(2.0)
    recorder.dispatch(_started(2.0))
    scheduler.advance(9.0)
    assert segments == []
    assert recorder.state is RecorderState.CAPTURING


@pytest.mark.asyncio
async def test_initial_cut_cancelled_once_first_segment_flushes(scheduler):
    recorder, segments, _ = _recorder(scheduler)
    recorder.start()
    recorder.dispatch(_started(0.0))
    scheduler.advance(2.0)
    recorder.dispatch(_ended(2.0))
    assert "max_initial_segment" not in recorder.pending_timers

    # Capture restarted at 2.5s; nothing may cut it at the 10s mark
    scheduler.advance(9.0)
    assert await recorder.wait_flushed(timeout=1.0)
    assert len(segments) == 1
    assert recorder.state is RecorderState.CAPTURING


@pytest.mark.asyncio
async def test_restarted_segment_is_cut_at_max_length(scheduler):
    recorder, segments, _ = _recorder(scheduler)
    recorder.start()
    recorder.dispatch(_started(0.0))
    scheduler.advance(2.0)
    recorder.dispatch(_ended(2.0))
    scheduler.advance(0.5)
    assert "max_segment" in recorder.pending_timers

    # Long silence after the restart
    scheduler.advance(30.0)
    assert await recorder.wait_flushed(timeout=1.0)
    assert [(s.started_at, s.ended_at) for s in segments] == [(0.0, 2.0), (2.5, 32.5)]

    scheduler.advance(0.5)
    assert recorder.state is RecorderState.CAPTURING
    assert "max_segment" in recorder.pending_timers


@pytest.mark.asyncio
async def test_max_segment_cut_skipped_while_speaking(scheduler):
    recorder, segments, _ = _recorder(scheduler)
    recorder.start()
    recorder.dispatch(_ended(0.0))
    scheduler.advance(0.5)
    recorder.dispatch(_started(0.5))
    scheduler.advance(40.0)
    assert await recorder.wait_flushed(timeout=1.0)
    assert len(segments) == 1

    recorder.dispatch(_ended(40.5))
    assert await recorder.wait_flushed(timeout=1.0)
    assert [(s.started_at, s.ended_at) for s in segments][-1] == (0.5, 40.5)


@pytest.mark.asyncio
async def test_slow_encode_does_not_block_event_loop(scheduler):
    encoder = FakeEncoder(encode_delay=0.3)
    recorder, segments, _ = _recorder(scheduler, encoder)
    recorder.start()
    loop = asyncio.get_running_loop()
    lags = []

    async def ticker():
        for _ in range(20):
            before = loop.time()
            await asyncio.sleep(0.01)
            lags.append(loop.time() - before - 0.01)

    ticking = asyncio.create_task(ticker())
    await asyncio.sleep(0)
    scheduler.advance(10.0)
    # Cut happened, encoding is still running in the executor
    assert recorder.state is RecorderState.IDLE
    assert segments == []
    assert recorder.pending_flushes == 1

    assert await recorder.wait_flushed(timeout=2.0)
    await ticking
    assert len(segments) == 1
    assert max(lags) < 0.2


@pytest.mark.asyncio
async def test_segments_delivered_in_cut_order(scheduler):
    recorder, segments, _ = _recorder(scheduler, FakeEncoder(encode_delay=0.05))
    recorder.start()
    recorder.dispatch(_ended(0.0))
    scheduler.advance(0.5)
    scheduler.advance(1.0)
    recorder.dispatch(_ended(1.5))
    assert recorder.pending_flushes == 2
    assert await recorder.wait_flushed(timeout=2.0)
    assert [s.started_at for s in segments] == [0.0, 0.5]


@pytest.mark.asyncio
async def test_small_segment_is_discarded(scheduler):
    recorder, segments, _ = _recorder(scheduler, FakeEncoder(payload_size=999))
    recorder.start()
    recorder.dispatch(_started(0.0))
    recorder.dispatch(_ended(0.0))
    assert recorder.state is RecorderState.IDLE
    assert await recorder.wait_flushed(timeout=1.0)
    assert segments == []


def test_health_check_restarts_dead_capture(scheduler):
    encoder = FakeEncoder()
    recorder, segments, _ = _recorder(scheduler, encoder, max_initial_segment=100.0)
    recorder.start()
    # Encoder died without a stop event
    encoder.state = "inactive"
    scheduler.advance(15.0)
    assert encoder.aborts == 1
    assert encoder.starts == 2
    assert recorder.state is RecorderState.CAPTURING
    assert "max_initial_segment" not in recorder.pending_timers
    assert segments == []


@pytest.mark.asyncio
async def test_health_check_restarts_idle_capture_after_failed_restart(scheduler):
    encoder = FakeEncoder()
    recorder, _, _ = _recorder(scheduler, encoder, max_initial_segment=100.0)
    recorder.start()
    recorder.dispatch(_started(0.0))
    recorder.dispatch(_ended(0.0))
    encoder.fail_starts = 1
    scheduler.advance(0.5)
    assert recorder.state is RecorderState.IDLE

    scheduler.advance(14.5)
    assert recorder.state is RecorderState.CAPTURING
    assert encoder.starts == 2
    assert await recorder.wait_flushed(timeout=1.0)


def test_health_check_skipped_while_speaking(scheduler):
    encoder = FakeEncoder()
    recorder, _, _ = _recorder(scheduler, encoder, max_initial_segment=100.0)
    recorder.start()
    recorder.dispatch(_started(0.0))
    encoder.state = "inactive"
    scheduler.advance(15.0)
    assert encoder.aborts == 0
    assert encoder.starts == 1


def test_stop_cancels_timers_and_releases_stream(scheduler):
    encoder = FakeEncoder()
    stream = FakeStream()
    recorder, segments, states = _recorder(scheduler, encoder, stream)
    recorder.start()
    recorder.dispatch(_started(0.0))
    recorder.write(tone())
    recorder.stop()

    assert recorder.state is RecorderState.STOPPED
    assert recorder.pending_timers == []
    assert stream.release_calls == 1
    assert encoder.aborts == 1
    # Partial segment discarded
    assert segments == []
    assert recorder.pending_flushes == 0

    scheduler.advance(100.0)
    assert encoder.starts == 1
    assert segments == []
    assert states[-1] is RecorderState.STOPPED


@pytest.mark.asyncio
async def test_stop_after_restart_scheduled_prevents_restart(scheduler):
    encoder = FakeEncoder()
    recorder, segments, _ = _recorder(scheduler, encoder)
    recorder.start()
    recorder.dispatch(_started(0.0))
    recorder.dispatch(_ended(0.0))
    recorder.stop()
    scheduler.advance(1.0)
    assert encoder.starts == 1
    assert recorder.state is RecorderState.STOPPED
    # Cut before stop, so it is still delivered
    assert await recorder.wait_flushed(timeout=1.0)
    assert len(segments) == 1


def test_stop_is_idempotent_and_ignores_later_events(scheduler):
    stream = FakeStream()
    encoder = FakeEncoder()
    recorder, segments, _ = _recorder(scheduler, encoder, stream)
    recorder.start()
    recorder.stop()
    recorder.stop()
    assert stream.release_calls == 1

    recorder.dispatch(_started(1.0))
    recorder.dispatch(TimerFired(TimerKind.HEALTH_CHECK))
    recorder.dispatch(TimerFired(TimerKind.MAX_SEGMENT))
    recorder.write(tone())
    assert encoder.starts == 1
    assert encoder.frames == 0
    assert segments == []


def test_write_only_while_capturing(scheduler):
    encoder = FakeEncoder()
    recorder, _, _ = _recorder(scheduler, encoder)
    recorder.write(tone())
    assert encoder.frames == 0
    recorder.start()
    recorder.write(tone())
    recorder.write(tone())
    assert encoder.frames == 2
