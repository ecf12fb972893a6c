"""Transcription results as seen by the live session."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TranscriptFragment:
    """Text with start/end offsets in seconds, relative to the Segment start."""

    text: str
    start_offset: float
    end_offset: float


@dataclass(frozen=True)
class TranscriptionResult:
    """
    text: full text of the segment.
    fragments: ordered timed fragments, or None when the service returned text only.
    """

    text: str
    fragments: list[TranscriptFragment] | None = None

    @property
    def is_empty(self) -> bool:
        return not self.text.strip() and not self.fragments


def parse_transcription_payload(payload: Any) -> TranscriptionResult:
    """
    Parse `{text, segments?: [{text, start, end}]}`.

    Never raises: malformed segment data drops to text-only, a non-dict
    payload gives an empty result.
    """
    if not isinstance(payload, dict):
        logger.warning("Unexpected transcription payload type %s", type(payload).__name__)
        return TranscriptionResult(text="")
    text = payload.get("text")
    text = text.strip() if isinstance(text, str) else ""
    raw_segments = payload.get("segments")
    if not raw_segments:
        return TranscriptionResult(text=text)
    fragments: list[TranscriptFragment] = []
    try:
        for seg in raw_segments:
            fragments.append(
                TranscriptFragment(
                    text=str(seg["text"]),
                    start_offset=float(seg["start"]),
                    end_offset=float(seg["end"]),
                )
            )
    except (KeyError, TypeError, ValueError) as e:
        logger.warning("Malformed segment data, using text only: %s", e)
        return TranscriptionResult(text=text)
    return TranscriptionResult(text=text, fragments=fragments)
