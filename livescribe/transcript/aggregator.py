"""
TranscriptAggregator: the session transcript, append-only.

- Diarized fragments render one line each: "[MM:SS] Speaker N: text".
- Results without fragment data are appended as an UnstructuredBlock, joined
  to the previous content with a single space unless it already ends in
  whitespace.
- Earlier content is never re-rendered; every append extends the text.
  reset() is for a new session only.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Union

from livescribe.diarization.models import DiarizedFragment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UnstructuredBlock:
    """Plain text from a result that carried no fragment timing."""

    text: str

    def render(self) -> str:
        return self.text


TranscriptEntry = Union[DiarizedFragment, UnstructuredBlock]
# (full transcript, chunk just appended)
TranscriptListener = Callable[[str, str], None]


def entry_to_dict(entry: TranscriptEntry) -> dict[str, Any]:
    """JSON-ready form of one entry; speaker fields are None for unstructured text."""
    if isinstance(entry, DiarizedFragment):
        return {
            "text": entry.text,
            "speaker_id": entry.speaker_id,
            "speaker_label": entry.speaker_label,
            "formatted_time": entry.formatted_time,
        }
    return {"text": entry.text, "speaker_id": None, "speaker_label": None, "formatted_time": None}


class TranscriptAggregator:
    def __init__(self) -> None:
        self._entries: list[TranscriptEntry] = []
        self._text = ""
        self._listeners: list[TranscriptListener] = []

    @property
    def text(self) -> str:
        return self._text

    @property
    def entries(self) -> list[TranscriptEntry]:
        return list(self._entries)

    @property
    def is_empty(self) -> bool:
        return not self._text

    def add_listener(self, listener: TranscriptListener) -> None:
        self._listeners.append(listener)

    def append(self, fragments: Iterable[DiarizedFragment]) -> str:
        """Append diarized fragments; returns the chunk added (may be "")."""
        fragments = [f for f in fragments if f.text]
        if not fragments:
            return ""
        lines = "\n".join(f.render() for f in fragments)
        chunk = lines if not self._text else "\n" + lines
        self._entries.extend(fragments)
        return self._extend(chunk)

    def append_text(self, text: str) -> str:
        """Append a result without fragment data as one unstructured block."""
        text = (text or "").strip()
        if not text:
            return ""
        if not self._text or self._text[-1].isspace():
            chunk = text
        else:
            chunk = " " + text
        self._entries.append(UnstructuredBlock(text))
        return self._extend(chunk)

    def reset(self) -> None:
        self._entries.clear()
        self._text = ""

    def _extend(self, chunk: str) -> str:
        self._text += chunk
        for listener in list(self._listeners):
            try:
                listener(self._text, chunk)
            except Exception:
                logger.exception("Transcript listener failed")
        return chunk
