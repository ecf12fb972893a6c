"""
Schemas for the transcription API.

POST /transcribe responds with `{text, segments?}`; segments carry start/end
in seconds relative to the uploaded file. Errors are `{error, message?}`.
"""
from __future__ import annotations

from pydantic import BaseModel, Field


class TranscribeSegment(BaseModel):
    text: str
    start: float = Field(..., description="Start time in seconds, relative to the uploaded audio")
    end: float = Field(..., description="End time in seconds, relative to the uploaded audio")


class TranscribeResponse(BaseModel):
    """Response for POST /transcribe. segments omitted when the engine gives none."""

    text: str = ""
    segments: list[TranscribeSegment] | None = None


class ErrorResponse(BaseModel):
    error: str
    message: str | None = None


class TranscriptEntryOut(BaseModel):
    """One rendered transcript entry. speaker_id is None for unstructured text."""

    text: str
    speaker_id: int | None = None
    speaker_label: str | None = None
    formatted_time: str | None = None


class SessionTranscriptResponse(BaseModel):
    """Response for GET /api/sessions/{session_id}/transcript."""

    session_id: str
    status: str
    transcript: str
    entries: list[TranscriptEntryOut] = Field(default_factory=list)
    finalized: bool = False
