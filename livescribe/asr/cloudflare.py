"""
CloudflareWhisperEngine: Whisper via Cloudflare Workers AI.

Sends the encoded file bytes; Workers AI returns text plus per-word timings,
which are grouped into sentence-like segments for diarization.
Runs HTTP call in executor to avoid blocking event loop.
"""
from __future__ import annotations

import asyncio
import logging

import httpx

from livescribe.asr.base import ASRAuthError, ASREngine, ASRError, ASRResult, SegmentTimestamp
from livescribe.config import get_settings

logger = logging.getLogger(__name__)

_SENTENCE_END = (".", "?", "!")


def _words_to_segments(words: list[dict]) -> list[SegmentTimestamp] | None:
    """Group word timings into segments that end at terminal punctuation."""
    segments: list[SegmentTimestamp] = []
    current: list[str] = []
    start: float | None = None
    end = 0.0
    for w in words:
        token = str(w.get("word", "")).strip()
        if not token:
            continue
        if start is None:
            start = float(w.get("start", 0.0))
        end = float(w.get("end", start))
        current.append(token)
        if token.endswith(_SENTENCE_END):
            segments.append(SegmentTimestamp(start=start, end=end, text=" ".join(current)))
            current, start = [], None
    if current and start is not None:
        segments.append(SegmentTimestamp(start=start, end=end, text=" ".join(current)))
    return segments or None


def _sync_transcribe_cloudflare(audio: bytes) -> ASRResult:
    """Blocking HTTP call; run in executor."""
    settings = get_settings()
    account_id = settings.CLOUDFLARE_ACCOUNT_ID
    token = settings.CLOUDFLARE_API_TOKEN
    if not account_id or not token:
        raise ASRAuthError("Cloudflare credentials are not configured")

    url = f"https://api.cloudflare.com/client/v4/accounts/{account_id}/ai/run/@cf/openai/whisper"
    headers = {"Authorization": f"Bearer {token}"}
    body = {"audio": list(audio)}

    try:
        with httpx.Client(timeout=settings.UPSTREAM_TIMEOUT_SECONDS) as client:
            resp = client.post(url, headers=headers, json=body)
    except httpx.HTTPError as e:
        raise ASRError(f"Cloudflare request failed: {e}") from e
    if resp.status_code in (401, 403):
        raise ASRAuthError(f"Cloudflare rejected credentials ({resp.status_code})")
    if resp.status_code != 200:
        raise ASRError(f"Cloudflare returned {resp.status_code}")

    data = resp.json()
    result = data.get("result", data)
    words: list[dict] = []
    if isinstance(result, dict):
        text = result.get("text", result.get("transcript", ""))
        words = result.get("words") or []
    elif isinstance(result, str):
        text = result
    else:
        text = ""
    return ASRResult(
        text=(text or "").strip(),
        segments=_words_to_segments(words) if words else None,
    )


class CloudflareWhisperEngine(ASREngine):
    """Remote Whisper via Cloudflare Workers AI."""

    async def transcribe(self, audio: bytes, mime_type: str) -> ASRResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, _sync_transcribe_cloudflare, audio)
