"""
VoiceActivityMonitor: turns per-frame activity into SpeechStarted / SpeechEnded.

- activity true while silent: SpeechStarted (unless an utterance is still open),
  pending silence deadline cancelled.
- activity false while speaking: silence deadline scheduled SILENCE_DURATION ahead.
- deadline elapsed with no activity in between: SpeechEnded.

A short dip in energy cancels nothing downstream: the utterance stays open
until the deadline elapses, so events strictly alternate. The monitor never
starts or stops capture itself.
"""
from __future__ import annotations

import logging
from typing import Callable

from livescribe.audio.timers import Scheduler, TimerSet
from livescribe.audio.types import ActivityEvent, ActivityKind
from livescribe.config import get_settings

logger = logging.getLogger(__name__)

_SILENCE_TIMER = "silence"


class VoiceActivityMonitor:
    """Hysteresis plus silence debounce over a stream of boolean activity values."""

    def __init__(
        self,
        scheduler: Scheduler,
        on_event: Callable[[ActivityEvent], None],
        silence_duration: float | None = None,
    ) -> None:
        settings = get_settings()
        self._scheduler = scheduler
        self._timers = TimerSet(scheduler)
        self._on_event = on_event
        self._silence_duration = (
            silence_duration if silence_duration is not None else settings.SILENCE_DURATION_SECONDS
        )
        # Raw frame-level state
        self._is_speaking = False
        # Event-level state: True between SpeechStarted and SpeechEnded
        self._utterance_open = False
        self._closed = False

    @property
    def is_speaking(self) -> bool:
        """True while frames are active (raw, before debounce)."""
        return self._is_speaking

    @property
    def in_utterance(self) -> bool:
        """True between SpeechStarted and SpeechEnded."""
        return self._utterance_open

    @property
    def silence_pending(self) -> bool:
        return self._timers.is_pending(_SILENCE_TIMER)

    def update(self, active: bool) -> None:
        """Feed one frame's activity decision."""
        if self._closed:
            return
        if active and not self._is_speaking:
            self._is_speaking = True
            self._timers.cancel(_SILENCE_TIMER)
            if not self._utterance_open:
                self._utterance_open = True
                logger.debug("Voice activity detected - started speaking")
                self._emit(ActivityKind.SPEECH_STARTED)
        elif not active and self._is_speaking:
            self._is_speaking = False
            logger.debug("Voice activity ended; waiting %.1fs of silence", self._silence_duration)
            self._timers.arm(_SILENCE_TIMER, self._silence_duration, self._on_silence_elapsed)

    def _on_silence_elapsed(self) -> None:
        if self._closed or self._is_speaking or not self._utterance_open:
            return
        self._utterance_open = False
        logger.debug("Silence for %.1fs - speech ended", self._silence_duration)
        self._emit(ActivityKind.SPEECH_ENDED)

    def _emit(self, kind: ActivityKind) -> None:
        self._on_event(ActivityEvent(kind=kind, at=self._scheduler.now()))

    def close(self) -> None:
        """Cancel the pending silence deadline; no further events."""
        self._timers.close()
        self._closed = True
