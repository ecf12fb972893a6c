"""
Speaker-aware transcription (heuristic diarization only).

- No audio separation; no voiceprints.
- Two speakers, toggled by inter-fragment pauses and question marks.
- State flows forward once per session (see DiarizationState).
"""
from __future__ import annotations

from livescribe.diarization.assigner import DiarizationAssigner, format_timestamp, speaker_label
from livescribe.diarization.models import DiarizationState, DiarizedFragment

__all__ = [
    "DiarizationAssigner",
    "DiarizationState",
    "DiarizedFragment",
    "format_timestamp",
    "speaker_label",
]
