"""Exceptions raised across the live transcription pipeline."""
from __future__ import annotations


class LiveScribeError(Exception):
    """Base for all livescribe errors."""


class CaptureUnavailableError(LiveScribeError):
    """Microphone denied, missing or busy. Fatal at session start."""


class EncoderError(LiveScribeError):
    """Segment encoder could not be created (after the one fallback attempt)."""


class SessionStartError(LiveScribeError):
    """Session could not start: capture or encoder failure."""


class TranscriptionError(LiveScribeError):
    """Transcription call failed (transport or service). Session keeps listening."""

    status = "Error"


class TranscriptionTimeout(TranscriptionError):
    """Transcription call exceeded its time budget."""

    status = "Timeout"


class TranscriptionAuthError(TranscriptionError):
    """Transcription service rejected credentials. Not retried automatically."""

    status = "AuthError"
