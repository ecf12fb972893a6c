"""
ASREngine: abstract interface for the upstream Whisper-compatible service.

Implementations: LocalWhisperEngine (faster-whisper), CloudflareWhisperEngine,
OpenAIWhisperEngine. Input is one encoded audio file (wav/webm/ogg bytes).
All run heavy work off the event loop.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


class ASRError(Exception):
    """Upstream ASR call failed."""


class ASRAuthError(ASRError):
    """Upstream ASR rejected (or is missing) credentials."""


@dataclass
class SegmentTimestamp:
    """One segment: start/end in seconds, text."""

    start: float
    end: float
    text: str


@dataclass
class ASRResult:
    """Result of one ASR transcribe call."""

    text: str
    segments: list[SegmentTimestamp] | None = None  # when the backend reports timestamps


class ASREngine(ABC):
    """Abstract ASR engine. transcribe() is async and must not block the event loop."""

    @abstractmethod
    async def transcribe(self, audio: bytes, mime_type: str) -> ASRResult:
        """
        Transcribe one encoded audio file.
        Raises ASRAuthError on credential problems, ASRError otherwise.
        """
        ...
