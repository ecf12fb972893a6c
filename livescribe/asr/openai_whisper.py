"""
OpenAIWhisperEngine: OpenAI transcription API (whisper-1).

Requests verbose_json with segment timestamps, temperature 0 and a fixed
language for more deterministic results.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from livescribe.asr.base import ASRAuthError, ASREngine, ASRError, ASRResult, SegmentTimestamp
from livescribe.audio.encoder import filename_for_mime_type
from livescribe.config import get_settings

logger = logging.getLogger(__name__)


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


class OpenAIWhisperEngine(ASREngine):
    def __init__(self, client: Optional[Any] = None) -> None:
        settings = get_settings()
        if client is None:
            if not settings.OPENAI_API_KEY:
                raise ASRAuthError("ASR_BACKEND=openai but OPENAI_API_KEY is missing")
            from openai import AsyncOpenAI

            client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        self._client = client
        self._model = settings.OPENAI_WHISPER_MODEL
        self._language = settings.WHISPER_LANGUAGE or None

    async def transcribe(self, audio: bytes, mime_type: str) -> ASRResult:
        import openai

        try:
            transcription = await self._client.audio.transcriptions.create(
                file=(filename_for_mime_type(mime_type), audio, mime_type),
                model=self._model,
                temperature=0.0,
                language=self._language,
                response_format="verbose_json",
                timestamp_granularities=["segment"],
            )
        except openai.AuthenticationError as e:
            raise ASRAuthError(f"OpenAI authentication failed: {e}") from e
        except openai.OpenAIError as e:
            raise ASRError(f"OpenAI transcription failed: {e}") from e

        raw_segments = _field(transcription, "segments") or []
        segments = [
            SegmentTimestamp(
                start=float(_field(s, "start", 0.0)),
                end=float(_field(s, "end", 0.0)),
                text=str(_field(s, "text", "")),
            )
            for s in raw_segments
        ]
        logger.debug("OpenAI transcription received with %d segments", len(segments))
        return ASRResult(
            text=(_field(transcription, "text", "") or "").strip(),
            segments=segments or None,
        )
