"""
Value types shared by the segmentation pipeline.

- Frame: one analysis window of float32 samples in [-1, 1].
- ActivityScore: per-frame voice-activity decision.
- ActivityEvent: SpeechStarted / SpeechEnded transitions from the monitor.
- Segment: one encoded utterance handed to transcription.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np

# One analysis window (e.g. 2048 float32 samples)
Frame = np.ndarray


@dataclass(frozen=True)
class ActivityScore:
    """Score in [0, 1] plus the thresholded decision."""

    score: float
    is_speaking: bool


class ActivityKind(str, Enum):
    SPEECH_STARTED = "speech_started"
    SPEECH_ENDED = "speech_ended"


@dataclass(frozen=True)
class ActivityEvent:
    """Transition emitted by VoiceActivityMonitor. `at` is scheduler time in seconds."""

    kind: ActivityKind
    at: float


class RecorderState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    STOPPED = "stopped"


@dataclass(frozen=True)
class Segment:
    """
    One encoded utterance (or forced cut).

    started_at, ended_at: scheduler time in seconds.
    The recorder keeps no reference after handing it off.
    """

    data: bytes
    mime_type: str
    started_at: float
    ended_at: float

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def duration(self) -> float:
        return max(0.0, self.ended_at - self.started_at)
