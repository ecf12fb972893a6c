"""
SegmentRecorder: the capture state machine (Idle -> Capturing -> Idle ... -> Stopped).

Inputs are tagged events, dispatched through one method:
- ActivityEvent(SPEECH_STARTED): start a new segment if not capturing.
- ActivityEvent(SPEECH_ENDED): stop capturing and flush the segment.
- TimerFired(MAX_INITIAL_SEGMENT): cut the first segment if nobody is speaking.
- TimerFired(MAX_SEGMENT): same cut for a segment started after a flush.
- TimerFired(HEALTH_CHECK): restart capture if it is not running (or died silently).
- TimerFired(RESTART): resume capture shortly after a flush.

Session start begins encoding immediately so the first word is not lost.
stop() is the only path that releases the audio stream; it closes the timer
set first, so a timer that was already due can never revive a stopped recorder.

Flushing detaches the raw PCM on the loop and encodes it in the default
executor; segments reach on_segment in cut order. A segment cut before stop()
is still delivered (wait_flushed() waits for it). Segments smaller than
MIN_SEGMENT_BYTES are discarded as noise.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

import numpy as np

from livescribe.audio.capture import CaptureStream
from livescribe.audio.encoder import STATE_RECORDING, SegmentEncoder
from livescribe.audio.timers import Scheduler, TimerSet
from livescribe.audio.types import ActivityEvent, ActivityKind, RecorderState, Segment
from livescribe.config import get_settings

logger = logging.getLogger(__name__)


class TimerKind(str, Enum):
    MAX_INITIAL_SEGMENT = "max_initial_segment"
    MAX_SEGMENT = "max_segment"
    HEALTH_CHECK = "health_check"
    RESTART = "restart"


@dataclass(frozen=True)
class TimerFired:
    kind: TimerKind


RecorderEvent = Union[ActivityEvent, TimerFired]


class SegmentRecorder:
    """
    Owns the encoder and the capture stream for one session.

    on_segment receives each completed Segment (ownership moves with it).
    """

    def __init__(
        self,
        encoder: SegmentEncoder,
        scheduler: Scheduler,
        on_segment: Callable[[Segment], None],
        stream: Optional[CaptureStream] = None,
        *,
        max_initial_segment: float | None = None,
        max_segment: float | None = None,
        health_check_interval: float | None = None,
        restart_delay: float | None = None,
        min_segment_bytes: int | None = None,
        on_state_change: Optional[Callable[[RecorderState], None]] = None,
    ) -> None:
        settings = get_settings()
        self._encoder = encoder
        self._scheduler = scheduler
        self._timers = TimerSet(scheduler)
        self._on_segment = on_segment
        self._stream = stream
        self._on_state_change = on_state_change
        self._max_initial_segment = (
            max_initial_segment if max_initial_segment is not None else settings.MAX_INITIAL_SEGMENT_SECONDS
        )
        self._max_segment = max_segment if max_segment is not None else settings.MAX_SEGMENT_SECONDS
        self._health_check_interval = (
            health_check_interval
            if health_check_interval is not None
            else settings.HEALTH_CHECK_INTERVAL_SECONDS
        )
        self._restart_delay = restart_delay if restart_delay is not None else settings.RESTART_DELAY_SECONDS
        self._min_segment_bytes = (
            min_segment_bytes if min_segment_bytes is not None else settings.MIN_SEGMENT_BYTES
        )

        self._state = RecorderState.IDLE
        self._started = False
        # True between SpeechStarted and SpeechEnded
        self._speaking = False
        self._segment_started_at: float | None = None
        self._flush_tasks: set[asyncio.Task] = set()
        self._last_flush: asyncio.Task | None = None

    # --- state ---

    @property
    def state(self) -> RecorderState:
        return self._state

    @property
    def is_active(self) -> bool:
        """Session started and not stopped."""
        return self._started and self._state is not RecorderState.STOPPED

    @property
    def is_capturing(self) -> bool:
        return self._state is RecorderState.CAPTURING

    @property
    def speaking(self) -> bool:
        return self._speaking

    @property
    def pending_timers(self) -> list[str]:
        return self._timers.pending

    @property
    def pending_flushes(self) -> int:
        return len(self._flush_tasks)

    def _set_state(self, state: RecorderState) -> None:
        if state is self._state:
            return
        self._state = state
        if self._on_state_change is not None:
            self._on_state_change(state)

    # --- lifecycle ---

    def start(self) -> None:
        """Idle -> Capturing. Encoding starts right away; encoder errors propagate."""
        if self._started:
            raise RuntimeError("SegmentRecorder already started")
        self._started = True
        self._encoder.start()
        self._segment_started_at = self._scheduler.now()
        self._set_state(RecorderState.CAPTURING)
        logger.info("Capture started (mime type %s)", self._encoder.mime_type)
        self._timers.arm(
            TimerKind.MAX_INITIAL_SEGMENT.value,
            self._max_initial_segment,
            lambda: self.dispatch(TimerFired(TimerKind.MAX_INITIAL_SEGMENT)),
        )
        self._timers.arm_periodic(
            TimerKind.HEALTH_CHECK.value,
            self._health_check_interval,
            lambda: self.dispatch(TimerFired(TimerKind.HEALTH_CHECK)),
        )

    def stop(self) -> None:
        """Cancel every timer, drop the partial segment, release the stream. Idempotent."""
        if self._state is RecorderState.STOPPED:
            return
        self._timers.close()
        if self._encoder.state == STATE_RECORDING:
            self._encoder.abort()
        self._segment_started_at = None
        self._speaking = False
        self._set_state(RecorderState.STOPPED)
        if self._stream is not None:
            try:
                self._stream.release()
            except Exception as e:
                logger.warning("Releasing capture stream failed: %s", e)
        logger.info("Capture stopped; resources released")

    async def wait_flushed(self, timeout: float | None = None) -> bool:
        """Wait for segments still being encoded. False on timeout."""
        tasks = list(self._flush_tasks)
        if not tasks:
            return True
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        return not pending

    def write(self, frame: np.ndarray) -> None:
        """Feed one captured frame to the encoder while capturing."""
        if self._state is RecorderState.CAPTURING:
            self._encoder.write(frame)

    # --- events ---

    def dispatch(self, event: RecorderEvent) -> None:
        if not self.is_active:
            return
        if isinstance(event, ActivityEvent):
            if event.kind is ActivityKind.SPEECH_STARTED:
                self._on_speech_started()
            elif event.kind is ActivityKind.SPEECH_ENDED:
                self._on_speech_ended()
        elif isinstance(event, TimerFired):
            if event.kind is TimerKind.MAX_INITIAL_SEGMENT:
                self._on_max_segment(self._max_initial_segment)
            elif event.kind is TimerKind.MAX_SEGMENT:
                self._on_max_segment(self._max_segment)
            elif event.kind is TimerKind.HEALTH_CHECK:
                self._on_health_check()
            elif event.kind is TimerKind.RESTART:
                self._on_restart_due()

    def _on_speech_started(self) -> None:
        self._speaking = True
        self._timers.cancel(TimerKind.RESTART.value)
        if self._state is RecorderState.IDLE:
            logger.debug("Speech started while idle; starting new segment")
            self._begin_capture()

    def _on_speech_ended(self) -> None:
        self._speaking = False
        if self._state is RecorderState.CAPTURING:
            logger.debug("Speech ended; flushing segment")
            self._end_capture()
            self._schedule_restart()

    def _on_max_segment(self, limit: float) -> None:
        if self._state is RecorderState.CAPTURING and not self._speaking:
            logger.debug("Cutting segment after %.1fs", limit)
            self._end_capture()
            self._schedule_restart()

    def _on_health_check(self) -> None:
        if self._speaking:
            return
        if self._state is RecorderState.CAPTURING and self._encoder.state != STATE_RECORDING:
            logger.warning("Health check: encoder stopped without a stop event; restarting capture")
            self._encoder.abort()
            self._cancel_segment_timers()
            self._segment_started_at = None
            self._set_state(RecorderState.IDLE)
        if self._state is RecorderState.IDLE:
            logger.info("Health check: capture not running; restarting")
            self._begin_capture()

    def _on_restart_due(self) -> None:
        if self._state is RecorderState.IDLE and not self._speaking:
            self._begin_capture()

    # --- capture ---

    def _cancel_segment_timers(self) -> None:
        self._timers.cancel(TimerKind.MAX_INITIAL_SEGMENT.value)
        self._timers.cancel(TimerKind.MAX_SEGMENT.value)

    def _begin_capture(self) -> None:
        try:
            self._encoder.start()
        except Exception as e:
            # Watchdog retries on the next health check
            logger.warning("Capture restart failed: %s", e)
            return
        self._segment_started_at = self._scheduler.now()
        self._set_state(RecorderState.CAPTURING)
        self._timers.arm(
            TimerKind.MAX_SEGMENT.value,
            self._max_segment,
            lambda: self.dispatch(TimerFired(TimerKind.MAX_SEGMENT)),
        )

    def _end_capture(self) -> None:
        started_at = self._segment_started_at if self._segment_started_at is not None else self._scheduler.now()
        self._cancel_segment_timers()
        try:
            pcm = self._encoder.detach()
        except Exception as e:
            logger.warning("Encoder stop failed, segment lost: %s", e)
            pcm = b""
        self._segment_started_at = None
        self._set_state(RecorderState.IDLE)
        if not pcm:
            logger.debug("Nothing captured; no segment to flush")
            return
        task = asyncio.get_running_loop().create_task(
            self._encode_and_flush(pcm, started_at, self._scheduler.now(), self._last_flush)
        )
        self._last_flush = task
        self._flush_tasks.add(task)
        task.add_done_callback(self._flush_tasks.discard)

    async def _encode_and_flush(
        self,
        pcm: bytes,
        started_at: float,
        ended_at: float,
        previous: asyncio.Task | None,
    ) -> None:
        loop = asyncio.get_running_loop()
        try:
            data = await loop.run_in_executor(None, self._encoder.encode, pcm)
        except Exception as e:
            logger.warning("Segment encoding failed, segment lost: %s", e)
            data = b""
        # Keep cut order when encodes overlap
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        self._encoder.deliver(data)
        self._flush(data, started_at, ended_at)

    def _flush(self, data: bytes, started_at: float, ended_at: float) -> None:
        if len(data) < self._min_segment_bytes:
            logger.debug("Discarding %d-byte segment (< %d bytes)", len(data), self._min_segment_bytes)
            return
        segment = Segment(
            data=data,
            mime_type=self._encoder.mime_type,
            started_at=started_at,
            ended_at=ended_at,
        )
        logger.debug("Segment flushed: %d bytes, %.2fs", segment.size, segment.duration)
        try:
            self._on_segment(segment)
        except Exception:
            logger.exception("Segment handler failed")

    def _schedule_restart(self) -> None:
        if self.is_active and not self._speaking:
            self._timers.arm(
                TimerKind.RESTART.value,
                self._restart_delay,
                lambda: self.dispatch(TimerFired(TimerKind.RESTART)),
            )
