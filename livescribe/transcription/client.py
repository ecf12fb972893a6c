"""
TranscriptionClient: sends one Segment, returns a TranscriptionResult.

- HttpTranscriptionClient: multipart POST (field "audio") to a /transcribe server.
  400/500 -> TranscriptionError, 401 -> TranscriptionAuthError,
  504 or transport timeout -> TranscriptionTimeout.
- EngineTranscriptionClient: calls an ASREngine in-process (WebSocket sessions
  running inside the server).
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from livescribe.asr.base import ASRAuthError, ASREngine, ASRError
from livescribe.audio.encoder import filename_for_mime_type
from livescribe.audio.types import Segment
from livescribe.config import get_settings
from livescribe.errors import TranscriptionAuthError, TranscriptionError, TranscriptionTimeout
from livescribe.transcription.models import (
    TranscriptFragment,
    TranscriptionResult,
    parse_transcription_payload,
)

logger = logging.getLogger(__name__)


class TranscriptionClient(ABC):
    @abstractmethod
    async def transcribe(self, segment: Segment) -> TranscriptionResult:
        ...

    async def aclose(self) -> None:
        """Release transport resources. Default: nothing to do."""


class HttpTranscriptionClient(TranscriptionClient):
    """POST multipart/form-data to the transcription server."""

    def __init__(
        self,
        url: str | None = None,
        timeout: float | None = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        settings = get_settings()
        self._url = url or settings.TRANSCRIPTION_URL
        timeout = timeout if timeout is not None else settings.TRANSCRIPTION_TIMEOUT_SECONDS
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def transcribe(self, segment: Segment) -> TranscriptionResult:
        files = {"audio": (filename_for_mime_type(segment.mime_type), segment.data, segment.mime_type)}
        logger.debug("Sending %d-byte segment to %s", segment.size, self._url)
        try:
            resp = await self._client.post(self._url, files=files)
        except httpx.TimeoutException as e:
            raise TranscriptionTimeout(f"Transcription request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TranscriptionError(f"Transcription request failed: {e}") from e

        if resp.status_code == 401:
            raise TranscriptionAuthError(_error_message(resp, "Authentication error"))
        if resp.status_code == 504:
            raise TranscriptionTimeout(_error_message(resp, "Upstream timeout"))
        if resp.status_code != 200:
            raise TranscriptionError(
                f"Transcription failed ({resp.status_code}): {_error_message(resp, resp.reason_phrase)}"
            )
        try:
            payload = resp.json()
        except ValueError as e:
            raise TranscriptionError(f"Invalid transcription response: {e}") from e
        return parse_transcription_payload(payload)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _error_message(resp: httpx.Response, default: str) -> str:
    try:
        body = resp.json()
    except ValueError:
        return default
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or default)
    return default


class EngineTranscriptionClient(TranscriptionClient):
    """Call an ASREngine directly; maps ASR errors into the transcription taxonomy."""

    def __init__(self, engine: ASREngine) -> None:
        self._engine = engine

    async def transcribe(self, segment: Segment) -> TranscriptionResult:
        try:
            result = await self._engine.transcribe(segment.data, segment.mime_type)
        except ASRAuthError as e:
            raise TranscriptionAuthError(str(e)) from e
        except ASRError as e:
            raise TranscriptionError(str(e)) from e
        fragments = None
        if result.segments:
            fragments = [
                TranscriptFragment(text=s.text, start_offset=s.start, end_offset=s.end)
                for s in result.segments
            ]
        return TranscriptionResult(text=result.text, fragments=fragments)
