"""
Speaker-attributed fragments and the state carried between transcription calls.

Limitations (heuristic diarization, single channel):
- Speaker identity is a two-way toggle driven by pauses and question marks.
- Speaker labels are approximate; we do not infer real identities.
"""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DiarizedFragment:
    """
    One transcript fragment with a speaker.

    start_offset, end_offset: seconds, relative to the segment start.
    formatted_time: MM:SS of the fragment start (session-relative when the
    assigner was given the segment's session offset).
    """

    text: str
    start_offset: float
    end_offset: float
    speaker_id: int
    speaker_label: str
    formatted_time: str

    def render(self) -> str:
        return f"[{self.formatted_time}] {self.speaker_label}: {self.text}"


@dataclass(frozen=True)
class DiarizationState:
    """
    Carried across transcription results within one session.

    last_fragment_end_time is None until the first fragment has been assigned.
    """

    current_speaker_id: int = 1
    last_fragment_end_time: float | None = None
    last_fragment_ended_with_question: bool = False
