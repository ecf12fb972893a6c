"""
LiveSession: one live transcription session.

start():  acquire capture -> pick MIME type -> create encoder (one fallback)
          -> wire analyzer, monitor, recorder, dispatcher -> begin capture.
run():    frame loop; each frame is analysed, fed to the monitor, then written
          to the recorder (so the frame that opened an utterance is kept).
stop():   cancel every timer, discard the partial segment, release capture.
drain():  wait for segments still encoding and outstanding transcription
          calls, then close the writer.

Capture status (Recording, Listening, ...) and transcription status
(Transcribing, Ready, Timeout, ...) are kept apart, so restarting capture
never hides a transcription in progress.

Transcription results are diarized with the state carried from the previous
result and appended to the session transcript.
"""
from __future__ import annotations

import logging
import uuid
from enum import Enum
from typing import Callable, Optional

import numpy as np

from livescribe.audio.activity_monitor import VoiceActivityMonitor
from livescribe.audio.capture import CaptureConstraints, CaptureSource, CaptureStream
from livescribe.audio.encoder import (
    EncoderFactory,
    create_encoder_with_fallback,
    select_mime_type,
    supports_mime_type,
)
from livescribe.audio.segment_recorder import SegmentRecorder
from livescribe.audio.timers import LoopScheduler, Scheduler
from livescribe.audio.types import ActivityEvent, ActivityKind, RecorderState, Segment
from livescribe.audio.vad import FrameEnergyAnalyzer, load_detector
from livescribe.diarization import DiarizationAssigner, DiarizationState
from livescribe.errors import CaptureUnavailableError, EncoderError, SessionStartError
from livescribe.transcript import NoOpTranscriptWriter, TranscriptAggregator, TranscriptWriterBase
from livescribe.transcription.client import TranscriptionClient
from livescribe.transcription.dispatcher import SegmentDispatcher
from livescribe.transcription.models import TranscriptionResult

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    STARTING = "Starting"
    RECORDING = "Recording"
    LISTENING = "Listening"
    PROCESSING = "Processing"
    TRANSCRIBING = "Transcribing"
    READY = "Ready"
    TIMEOUT = "Timeout"
    AUTH_ERROR = "AuthError"
    ERROR = "Error"
    STOPPED = "Stopped"


CAPTURE_STATUSES = frozenset(
    {SessionStatus.STARTING, SessionStatus.RECORDING, SessionStatus.LISTENING, SessionStatus.STOPPED}
)

StatusListener = Callable[[SessionStatus], None]
ActivityListener = Callable[[bool], None]


class LiveSession:
    def __init__(
        self,
        source: CaptureSource,
        client: TranscriptionClient,
        *,
        session_id: str | None = None,
        scheduler: Scheduler | None = None,
        analyzer: FrameEnergyAnalyzer | None = None,
        encoder_factory: EncoderFactory | None = None,
        mime_probe: Callable[[str], bool] | None = None,
        writer: TranscriptWriterBase | None = None,
        assigner: DiarizationAssigner | None = None,
        constraints: CaptureConstraints | None = None,
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self._source = source
        self._client = client
        self._scheduler = scheduler or LoopScheduler()
        self._analyzer = analyzer
        self._encoder_factory = encoder_factory
        self._mime_probe = mime_probe or supports_mime_type
        self._writer = writer or NoOpTranscriptWriter()
        self._assigner = assigner or DiarizationAssigner()
        self._constraints = constraints or CaptureConstraints()

        self.transcript = TranscriptAggregator()
        self._diarization_state = DiarizationState()
        self._status = SessionStatus.STARTING
        self._capture_status = SessionStatus.STARTING
        self._transcription_status: Optional[SessionStatus] = None
        self._status_listeners: list[StatusListener] = []
        self._activity_listeners: list[ActivityListener] = []

        self._stream: Optional[CaptureStream] = None
        self._monitor: Optional[VoiceActivityMonitor] = None
        self._recorder: Optional[SegmentRecorder] = None
        self._dispatcher: Optional[SegmentDispatcher] = None
        self._started_at: float = 0.0
        self._stopped = False

    # --- observers ---

    @property
    def status(self) -> SessionStatus:
        """Most recent status from either capture or transcription."""
        return self._status

    @property
    def capture_status(self) -> SessionStatus:
        """Starting, Recording, Listening, Stopped, or Error when start failed."""
        return self._capture_status

    @property
    def transcription_status(self) -> Optional[SessionStatus]:
        """Processing, Transcribing, Ready, Timeout, AuthError or Error; None before the first segment."""
        return self._transcription_status

    @property
    def diarization_state(self) -> DiarizationState:
        return self._diarization_state

    @property
    def recorder(self) -> Optional[SegmentRecorder]:
        return self._recorder

    @property
    def dispatcher(self) -> Optional[SegmentDispatcher]:
        return self._dispatcher

    @property
    def is_active(self) -> bool:
        return self._recorder is not None and self._recorder.is_active

    def add_status_listener(self, listener: StatusListener) -> None:
        self._status_listeners.append(listener)

    def add_activity_listener(self, listener: ActivityListener) -> None:
        self._activity_listeners.append(listener)

    def _set_status(self, status: SessionStatus, *, capture: bool | None = None) -> None:
        """Record status on its own field (capture or transcription), then notify."""
        if capture is None:
            capture = status in CAPTURE_STATUSES
        if capture:
            self._capture_status = status
        else:
            self._transcription_status = status
        self._status = status
        for listener in list(self._status_listeners):
            try:
                listener(status)
            except Exception:
                logger.exception("Status listener failed")

    # --- lifecycle ---

    async def start(self) -> None:
        """Raises SessionStartError when capture or the encoder is unavailable."""
        if self._recorder is not None:
            raise RuntimeError("Session already started")
        self._set_status(SessionStatus.STARTING)

        try:
            self._stream = await self._source.acquire(self._constraints)
        except CaptureUnavailableError as e:
            logger.error("Could not acquire audio capture: %s", e)
            self._set_status(SessionStatus.ERROR, capture=True)
            raise SessionStartError(f"Microphone unavailable: {e}") from e

        mime_type = select_mime_type(self._mime_probe)
        try:
            encoder = create_encoder_with_fallback(mime_type, self._encoder_factory)
        except EncoderError as e:
            logger.error("Could not create segment encoder: %s", e)
            self._release_stream()
            self._set_status(SessionStatus.ERROR, capture=True)
            raise SessionStartError(str(e)) from e

        if self._analyzer is None:
            self._analyzer = FrameEnergyAnalyzer(detector=load_detector())
        self._diarization_state = DiarizationState()
        self._transcription_status = None
        self.transcript.reset()
        self._dispatcher = SegmentDispatcher(self._client, self._on_result, self._on_dispatch_status)
        self._monitor = VoiceActivityMonitor(self._scheduler, self._on_activity)
        self._recorder = SegmentRecorder(
            encoder,
            self._scheduler,
            self._on_segment,
            self._stream,
            on_state_change=self._on_recorder_state,
        )
        self._started_at = self._scheduler.now()
        try:
            self._recorder.start()
        except Exception as e:
            logger.error("Could not start capture: %s", e)
            self._monitor.close()
            self._recorder.stop()
            self._set_status(SessionStatus.ERROR, capture=True)
            raise SessionStartError(f"Capture failed to start: {e}") from e

        await self._writer.start()
        self.transcript.add_listener(self._writer.on_transcript)
        logger.info("Session %s started (mime type %s)", self.session_id, encoder.mime_type)

    async def run(self) -> None:
        """Consume frames until the stream ends or the session stops."""
        if self._stream is None:
            raise RuntimeError("Session not started")
        async for frame in self._stream.frames():
            if not self.is_active:
                break
            self.process_frame(frame)

    def process_frame(self, frame: np.ndarray) -> None:
        if not self.is_active:
            return
        score = self._analyzer.analyze(frame)
        self._monitor.update(score.is_speaking)
        self._recorder.write(frame)

    def stop(self) -> None:
        """Stop capture immediately. Outstanding transcriptions still complete (see drain)."""
        if self._recorder is None or self._stopped:
            return
        self._stopped = True
        self._monitor.close()
        self._recorder.stop()
        self._stream = None
        self._set_status(SessionStatus.STOPPED)
        logger.info("Session %s stopped", self.session_id)

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for segments still encoding, queued and in-flight transcriptions, then close the writer."""
        drained = True
        if self._recorder is not None and not await self._recorder.wait_flushed(timeout):
            logger.warning("Session %s: segments still encoding after %ss", self.session_id, timeout)
            drained = False
        if self._dispatcher is not None:
            if not await self._dispatcher.drain(timeout):
                drained = False
                logger.warning("Session %s: transcriptions still pending after %ss; cancelling", self.session_id, timeout)
                await self._dispatcher.close()
        await self._writer.close()
        return drained

    async def close(self, timeout: float | None = None) -> bool:
        self.stop()
        return await self.drain(timeout)

    def _release_stream(self) -> None:
        if self._stream is None:
            return
        try:
            self._stream.release()
        except Exception as e:
            logger.warning("Releasing capture stream failed: %s", e)
        self._stream = None

    # --- callbacks ---

    def _on_activity(self, event: ActivityEvent) -> None:
        self._recorder.dispatch(event)
        speaking = event.kind is ActivityKind.SPEECH_STARTED
        for listener in list(self._activity_listeners):
            try:
                listener(speaking)
            except Exception:
                logger.exception("Activity listener failed")

    def _on_recorder_state(self, state: RecorderState) -> None:
        if state is RecorderState.CAPTURING:
            self._set_status(SessionStatus.RECORDING)
        elif state is RecorderState.IDLE:
            self._set_status(SessionStatus.LISTENING)

    def _on_segment(self, segment: Segment) -> None:
        if not self._stopped:
            self._set_status(SessionStatus.PROCESSING)
        self._dispatcher.submit(segment)

    def _on_dispatch_status(self, status: str) -> None:
        if self._stopped:
            logger.debug("Session %s stopped; transcription status %s not surfaced", self.session_id, status)
            return
        self._set_status(SessionStatus(status), capture=False)

    def _on_result(self, segment: Segment, result: TranscriptionResult) -> None:
        if result.fragments:
            base_offset = max(0.0, segment.started_at - self._started_at)
            diarized, self._diarization_state = self._assigner.assign(
                result.fragments, self._diarization_state, base_offset=base_offset
            )
            if diarized:
                self.transcript.append(diarized)
                return
        if result.text.strip():
            self.transcript.append_text(result.text)
