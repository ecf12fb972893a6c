"""
LocalWhisperEngine: Whisper-compatible ASR using faster-whisper.

- Model loaded ONCE at startup (singleton, injected at construction).
- Accepts an encoded file; faster-whisper decodes it (PyAV) from a file-like object.
- Segment timestamps are always returned for diarization.
- Runs in executor so event loop stays responsive.
"""
from __future__ import annotations

import asyncio
import io
from typing import Any

from livescribe.asr.base import ASREngine, ASRError, ASRResult, SegmentTimestamp
from livescribe.config import get_settings

# Type for shared WhisperModel (loaded at startup)
WhisperModelT = Any


def load_whisper_model() -> WhisperModelT:
    """Load faster-whisper model once. Called at startup when ASR_BACKEND=local."""
    try:
        from faster_whisper import WhisperModel
    except ImportError as err:
        raise ImportError(
            "faster-whisper is required for ASR_BACKEND=local. "
            "Install with: pip install faster-whisper"
        ) from err
    settings = get_settings()
    return WhisperModel(
        settings.LOCAL_WHISPER_MODEL,
        device=settings.LOCAL_WHISPER_DEVICE,
        compute_type=settings.LOCAL_WHISPER_COMPUTE_TYPE,
    )


class LocalWhisperEngine(ASREngine):
    """Local Whisper via faster-whisper. Uses shared model (singleton)."""

    def __init__(self, model: WhisperModelT | None = None) -> None:
        """
        model: shared WhisperModel instance (loaded at app startup).
        If None, transcribe() raises until a model is provided.
        """
        self._model = model

    def _transcribe_sync(self, audio: bytes) -> ASRResult:
        if self._model is None:
            raise ASRError("Local Whisper model not loaded")
        settings = get_settings()
        try:
            segments, _ = self._model.transcribe(
                io.BytesIO(audio),
                beam_size=settings.LOCAL_WHISPER_BEAM_SIZE,
                temperature=0.0,
                language=settings.WHISPER_LANGUAGE or None,
            )
            parts: list[str] = []
            seg_ts: list[SegmentTimestamp] = []
            for seg in segments:
                t = (seg.text or "").strip()
                if t:
                    parts.append(t)
                    seg_ts.append(SegmentTimestamp(start=seg.start, end=seg.end, text=t))
        except Exception as e:
            raise ASRError(f"Local Whisper failed: {e}") from e

        return ASRResult(
            text=" ".join(parts).strip(),
            segments=seg_ts or None,
        )

    async def transcribe(self, audio: bytes, mime_type: str) -> ASRResult:
        """Run _transcribe_sync in executor so event loop is not blocked. Format is sniffed by the decoder."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._transcribe_sync, audio)
