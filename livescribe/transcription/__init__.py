"""Transcription: client boundary, results, and the one-call-at-a-time dispatcher."""
from .client import EngineTranscriptionClient, HttpTranscriptionClient, TranscriptionClient
from .dispatcher import SegmentDispatcher
from .models import TranscriptFragment, TranscriptionResult, parse_transcription_payload

__all__ = [
    "EngineTranscriptionClient",
    "HttpTranscriptionClient",
    "SegmentDispatcher",
    "TranscriptFragment",
    "TranscriptionClient",
    "TranscriptionResult",
    "parse_transcription_payload",
]
