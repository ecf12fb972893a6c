"""
WebSocketManager: one WebSocket = one live transcription session.

The browser streams raw PCM 16-bit mono at SAMPLE_RATE (binary messages).
The server runs a LiveSession on that audio (analysis, segmentation,
transcription, diarization) and pushes JSON updates:

  {"type": "session", "session_id": "..."}
  {"type": "status", "status": <latest>, "capture": "Recording" | "Listening" | ...,
   "transcription": null | "Transcribing" | "Ready" | ...}
  {"type": "activity", "speaking": true | false}
  {"type": "transcript", "text": "...", "entries": [...]}

A text message {"type": "stop"} ends the session like a disconnect does.
Segments already flushed are still transcribed before the socket closes.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

from fastapi import WebSocket

from livescribe.asr.base import ASREngine
from livescribe.audio.capture import PushCaptureSource
from livescribe.errors import SessionStartError
from livescribe.session import LiveSession, SessionStatus
from livescribe.session_store import (
    ensure_session,
    generate_session_id,
    update_session_status,
    update_session_transcript,
)
from livescribe.transcript import create_transcript_writer, entry_to_dict
from livescribe.transcription.client import EngineTranscriptionClient

logger = logging.getLogger(__name__)

# Upper bound for finishing queued transcriptions after the client leaves
_DRAIN_TIMEOUT_SECONDS = 300.0


def _is_stop_message(text: str | None) -> bool:
    if not text:
        return False
    try:
        payload = json.loads(text)
    except ValueError:
        return False
    return isinstance(payload, dict) and payload.get("type") == "stop"


class WebSocketManager:
    def __init__(self, websocket: WebSocket, engine: ASREngine, session_id: str | None = None) -> None:
        self._ws = websocket
        self._source = PushCaptureSource()
        self._session_id = session_id or generate_session_id()
        self._session = LiveSession(
            self._source,
            EngineTranscriptionClient(engine),
            session_id=self._session_id,
            writer=create_transcript_writer(self._session_id),
        )
        self._outbox: asyncio.Queue[Optional[dict[str, Any]]] = asyncio.Queue()
        self._sender_task: asyncio.Task[Any] | None = None
        self._closed = False

    @property
    def session(self) -> LiveSession:
        return self._session

    def _enqueue(self, payload: dict[str, Any]) -> None:
        self._outbox.put_nowait(payload)

    async def _sender(self) -> None:
        """Send queued payloads in order. None = stop."""
        while True:
            payload = await self._outbox.get()
            if payload is None:
                break
            if self._closed:
                continue
            try:
                await self._ws.send_text(json.dumps(payload))
            except Exception:
                self._closed = True

    async def _finish_sender(self) -> None:
        if self._sender_task is None:
            return
        self._outbox.put_nowait(None)
        await self._sender_task
        self._sender_task = None

    def _on_status(self, status: SessionStatus) -> None:
        update_session_status(self._session_id, status.value)
        transcription = self._session.transcription_status
        self._enqueue(
            {
                "type": "status",
                "status": status.value,
                "capture": self._session.capture_status.value,
                "transcription": transcription.value if transcription is not None else None,
            }
        )

    def _on_activity(self, speaking: bool) -> None:
        self._enqueue({"type": "activity", "speaking": speaking})

    def _on_transcript(self, transcript: str, chunk: str) -> None:
        entries = [entry_to_dict(e) for e in self._session.transcript.entries]
        update_session_transcript(self._session_id, transcript, entries)
        self._enqueue({"type": "transcript", "text": transcript, "entries": entries})

    async def run(self) -> None:
        """Receive binary PCM until disconnect or stop; then drain and close."""
        ensure_session(self._session_id)
        self._session.add_status_listener(self._on_status)
        self._session.add_activity_listener(self._on_activity)
        self._session.transcript.add_listener(self._on_transcript)
        self._sender_task = asyncio.create_task(self._sender())
        self._enqueue({"type": "session", "session_id": self._session_id})

        try:
            await self._session.start()
        except SessionStartError as e:
            logger.error("Session %s failed to start: %s", self._session_id, e)
            self._enqueue({"type": "status", "status": SessionStatus.ERROR.value, "message": str(e)})
            await self._finish_sender()
            return

        frame_task = asyncio.create_task(self._session.run())
        try:
            while not self._closed:
                try:
                    msg = await self._ws.receive()
                except Exception:
                    break
                if msg.get("type") == "websocket.disconnect":
                    break
                data = msg.get("bytes")
                if data is None:
                    if _is_stop_message(msg.get("text")):
                        break
                    continue
                self._source.feed(data)
                # Let the frame loop consume what was just pushed
                await asyncio.sleep(0)
        finally:
            self._source.close()
            self._session.stop()
            try:
                await frame_task
            except Exception:
                logger.exception("Frame loop for session %s failed", self._session_id)
            await self._session.drain(timeout=_DRAIN_TIMEOUT_SECONDS)
            entries = [entry_to_dict(e) for e in self._session.transcript.entries]
            update_session_transcript(
                self._session_id,
                self._session.transcript.text,
                entries,
                transcript_finalized=True,
            )
            await self._finish_sender()
