import asyncio

import pytest

from livescribe.audio.capture import CaptureSource, PushCaptureSource
from livescribe.audio.encoder import WavEncoder
from livescribe.audio.types import RecorderState, Segment
from livescribe.audio.vad import FrameEnergyAnalyzer
from livescribe.diarization import DiarizationAssigner
from livescribe.errors import CaptureUnavailableError, SessionStartError
from livescribe.session import LiveSession, SessionStatus
from livescribe.transcription.client import TranscriptionClient
from livescribe.transcription.models import TranscriptFragment, TranscriptionResult

from conftest import ManualScheduler, silence, tone


class QueueClient(TranscriptionClient):
    """Returns queued results in order."""

    def __init__(self, *results: TranscriptionResult) -> None:
        self.results = list(results)
        self.segments: list[Segment] = []

    async def transcribe(self, segment: Segment) -> TranscriptionResult:
        self.segments.append(segment)
        return self.results.pop(0)


class UnavailableSource(CaptureSource):
    async def acquire(self, constraints=None):
        raise CaptureUnavailableError("permission denied")


def _session(client, scheduler, source=None, encoder_factory=None, **kwargs):
    return LiveSession(
        source or PushCaptureSource(),
        client,
        session_id="test-session",
        scheduler=scheduler,
        analyzer=FrameEnergyAnalyzer(detector=None, threshold=0.01),
        encoder_factory=encoder_factory or (lambda mime: WavEncoder(sample_rate=16000)),
        mime_probe=lambda mime: False,
        assigner=DiarizationAssigner(gap_sec=1.0, toggle_mode="any"),
        **kwargs,
    )


async def _speak(session, scheduler, frames=4, silence_seconds=3.0):
    for _ in range(frames):
        session.process_frame(tone(0.5))
    session.process_frame(silence())
    scheduler.advance(silence_seconds)
    assert await session.recorder.wait_flushed(timeout=1.0)


async def _settle(session):
    assert await session.recorder.wait_flushed(timeout=1.0)
    assert await session.dispatcher.drain(timeout=1.0)


@pytest.mark.asyncio
async def test_utterance_is_transcribed_and_diarized():
    scheduler = ManualScheduler()
    client = QueueClient(
        TranscriptionResult(
            text="Hello. How are you?",
            fragments=[TranscriptFragment("Hello.", 0.0, 0.5), TranscriptFragment("How are you?", 0.6, 1.0)],
        )
    )
    statuses = []
    session = _session(client, scheduler)
    session.add_status_listener(statuses.append)

    await session.start()
    assert session.status is SessionStatus.RECORDING
    await _speak(session, scheduler)
    assert SessionStatus.PROCESSING in statuses
    await _settle(session)

    assert len(client.segments) == 1
    assert client.segments[0].mime_type == "audio/wav"
    assert session.transcript.text == "[00:00] Speaker 1: Hello.\n[00:00] Speaker 1: How are you?"
    assert session.status is SessionStatus.READY
    assert session.diarization_state.last_fragment_ended_with_question

    await session.close(timeout=1.0)


@pytest.mark.asyncio
async def test_diarization_state_carries_between_segments():
    scheduler = ManualScheduler()
    client = QueueClient(
        TranscriptionResult(text="Ready?", fragments=[TranscriptFragment("Ready?", 0.0, 0.5)]),
        TranscriptionResult(text="Yes.", fragments=[TranscriptFragment("Yes.", 0.0, 0.5)]),
    )
    session = _session(client, scheduler)
    await session.start()

    await _speak(session, scheduler)
    await _settle(session)
    # Restart delay elapses, then a second utterance
    scheduler.advance(0.5)
    assert session.recorder.state is RecorderState.CAPTURING
    await _speak(session, scheduler)
    await _settle(session)

    lines = session.transcript.text.split("\n")
    assert lines[0] == "[00:00] Speaker 1: Ready?"
    # Second segment started 3.5s into the session
    assert lines[1] == "[00:03] Speaker 2: Yes."
    await session.close(timeout=1.0)


@pytest.mark.asyncio
async def test_result_without_fragments_appends_plain_text():
    scheduler = ManualScheduler()
    client = QueueClient(TranscriptionResult(text="no timestamps here"))
    session = _session(client, scheduler)
    await session.start()
    await _speak(session, scheduler)
    await _settle(session)
    assert session.transcript.text == "no timestamps here"
    await session.close(timeout=1.0)


@pytest.mark.asyncio
async def test_silence_only_produces_nothing_until_initial_cut():
    scheduler = ManualScheduler()
    client = QueueClient(TranscriptionResult(text=""))
    session = _session(client, scheduler)
    await session.start()
    for _ in range(10):
        session.process_frame(silence())
    scheduler.advance(9.0)
    assert client.segments == []

    scheduler.advance(1.0)
    await _settle(session)
    assert len(client.segments) == 1
    assert session.transcript.is_empty
    await session.close(timeout=1.0)


@pytest.mark.asyncio
async def test_stop_discards_partial_segment_and_cancels_timers():
    scheduler = ManualScheduler()
    client = QueueClient()
    source = PushCaptureSource()
    session = _session(client, scheduler, source=source)
    await session.start()
    session.process_frame(tone(0.5))
    session.stop()

    assert session.status is SessionStatus.STOPPED
    assert session.recorder.state is RecorderState.STOPPED
    assert session.recorder.pending_timers == []
    assert scheduler.pending == 0
    scheduler.advance(60.0)
    assert client.segments == []

    session.process_frame(tone(0.5))
    assert await session.drain(timeout=1.0)
    assert client.segments == []


@pytest.mark.asyncio
async def test_run_consumes_pushed_frames_until_stream_closes():
    scheduler = ManualScheduler()
    source = PushCaptureSource(frame_samples=2048)
    session = _session(QueueClient(), scheduler, source=source)
    await session.start()
    speaking = []
    session.add_activity_listener(speaking.append)

    runner = asyncio.create_task(session.run())
    loud = (tone(0.5) * 32767).astype("int16").tobytes()
    source.feed(loud)
    await asyncio.sleep(0)
    source.close()
    await asyncio.wait_for(runner, timeout=1.0)

    assert speaking == [True]
    await session.close(timeout=1.0)


@pytest.mark.asyncio
async def test_capture_unavailable_fails_start():
    scheduler = ManualScheduler()
    statuses = []
    session = _session(QueueClient(), scheduler, source=UnavailableSource())
    session.add_status_listener(statuses.append)
    with pytest.raises(SessionStartError):
        await session.start()
    assert statuses == [SessionStatus.STARTING, SessionStatus.ERROR]
    assert session.recorder is None


@pytest.mark.asyncio
async def test_encoder_failure_after_fallback_fails_start_and_releases_capture():
    scheduler = ManualScheduler()
    source = PushCaptureSource()
    attempts = []

    def factory(mime):
        attempts.append(mime)
        raise RuntimeError("no encoder")

    session = _session(QueueClient(), scheduler, source=source, encoder_factory=factory)
    with pytest.raises(SessionStartError):
        await session.start()
    assert attempts == [None, None]
    assert session.status is SessionStatus.ERROR
    # Capture was released, so it can be acquired again
    stream = await source.acquire()
    assert not stream.released


@pytest.mark.asyncio
async def test_session_start_resets_transcript():
    scheduler = ManualScheduler()
    session = _session(QueueClient(), scheduler)
    session.transcript.append_text("stale")
    await session.start()
    assert session.transcript.is_empty
    await session.close(timeout=1.0)


@pytest.mark.asyncio
async def test_capture_restart_keeps_transcription_status_visible():
    scheduler = ManualScheduler()
    release = asyncio.Event()

    class BlockingClient(TranscriptionClient):
        async def transcribe(self, segment):
            await release.wait()
            return TranscriptionResult(text="done")

    session = _session(BlockingClient(), scheduler)
    await session.start()
    assert session.transcription_status is None

    await _speak(session, scheduler)
    await asyncio.sleep(0)
    assert session.dispatcher.in_flight
    # Capture restarts while the call is still running
    scheduler.advance(0.5)
    assert session.capture_status is SessionStatus.RECORDING
    assert session.transcription_status is SessionStatus.TRANSCRIBING

    release.set()
    assert await session.dispatcher.drain(timeout=1.0)
    assert session.transcription_status is SessionStatus.READY
    assert session.capture_status is SessionStatus.RECORDING
    assert session.transcript.text == "done"
    await session.close(timeout=1.0)
    assert session.capture_status is SessionStatus.STOPPED
