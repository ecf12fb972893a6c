"""Pydantic schemas for API request/response."""
from livescribe.schemas.transcription import (
    ErrorResponse,
    SessionTranscriptResponse,
    TranscribeResponse,
    TranscribeSegment,
    TranscriptEntryOut,
)

__all__ = [
    "ErrorResponse",
    "SessionTranscriptResponse",
    "TranscribeResponse",
    "TranscribeSegment",
    "TranscriptEntryOut",
]
