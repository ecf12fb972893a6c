"""
DiarizationAssigner: speaker labels for timed fragments.

For each fragment, in order:
- a pause longer than DIARIZATION_SPEAKER_GAP_SEC since the previous fragment
  ended toggles the speaker (1 <-> 2);
- a previous fragment ending with "?" toggles the speaker.

How the two rules combine when both fire is DIARIZATION_TOGGLE_MODE:
- "any": toggle once.
- "independent": apply each rule in turn, so both firing flips back to the
  same speaker.

The state is a value passed in and returned; nothing is kept between calls.
"""
from __future__ import annotations

import logging
from typing import Iterable

from livescribe.config import get_settings
from livescribe.diarization.models import DiarizationState, DiarizedFragment
from livescribe.transcription.models import TranscriptFragment

logger = logging.getLogger(__name__)

SPEAKER_PREFIX = "Speaker "
TOGGLE_ANY = "any"
TOGGLE_INDEPENDENT = "independent"


def format_timestamp(seconds: float) -> str:
    """MM:SS with floored seconds: 75 -> "01:15", 5 -> "00:05"."""
    seconds = max(0.0, float(seconds))
    minutes = int(seconds // 60)
    remaining = int(seconds % 60)
    return f"{minutes:02d}:{remaining:02d}"


def speaker_label(speaker_id: int) -> str:
    return f"{SPEAKER_PREFIX}{speaker_id}"


def _other(speaker_id: int) -> int:
    return 2 if speaker_id == 1 else 1


class DiarizationAssigner:
    def __init__(self, gap_sec: float | None = None, toggle_mode: str | None = None) -> None:
        settings = get_settings()
        self._gap_sec = gap_sec if gap_sec is not None else settings.DIARIZATION_SPEAKER_GAP_SEC
        self._toggle_mode = toggle_mode or settings.DIARIZATION_TOGGLE_MODE
        if self._toggle_mode not in (TOGGLE_ANY, TOGGLE_INDEPENDENT):
            raise ValueError(f"Unknown toggle mode: {self._toggle_mode}")

    def assign(
        self,
        fragments: Iterable[TranscriptFragment],
        state: DiarizationState | None = None,
        base_offset: float = 0.0,
    ) -> tuple[list[DiarizedFragment], DiarizationState]:
        """
        Assign speakers to fragments from one transcription call.

        - state: carried from the previous call (None = fresh session).
        - base_offset: seconds from session start to this segment's start;
          added to fragment offsets for gap checks and formatted_time.
        Returns (diarized fragments, updated state).
        """
        state = state or DiarizationState()
        speaker = state.current_speaker_id
        last_end = state.last_fragment_end_time
        last_question = state.last_fragment_ended_with_question
        out: list[DiarizedFragment] = []

        for fragment in fragments:
            text = (fragment.text or "").strip()
            if not text:
                continue
            start = base_offset + fragment.start_offset
            pause_toggle = last_end is not None and start - last_end > self._gap_sec
            question_toggle = last_end is not None and last_question

            if self._toggle_mode == TOGGLE_INDEPENDENT:
                if pause_toggle:
                    speaker = _other(speaker)
                if question_toggle:
                    speaker = _other(speaker)
            elif pause_toggle or question_toggle:
                speaker = _other(speaker)

            out.append(
                DiarizedFragment(
                    text=text,
                    start_offset=fragment.start_offset,
                    end_offset=fragment.end_offset,
                    speaker_id=speaker,
                    speaker_label=speaker_label(speaker),
                    formatted_time=format_timestamp(start),
                )
            )
            last_end = base_offset + fragment.end_offset
            last_question = text.endswith("?")

        if out:
            logger.debug("Assigned speakers to %d fragments (now %s)", len(out), speaker_label(speaker))
        return out, DiarizationState(
            current_speaker_id=speaker,
            last_fragment_end_time=last_end,
            last_fragment_ended_with_question=last_question,
        )
