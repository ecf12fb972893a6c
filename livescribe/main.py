"""
FastAPI app: transcription server and live sessions.

HTTP:
- POST /transcribe: multipart field "audio" (an encoded segment). Returns
  {"text", "segments"?}; 400 no file, 401 auth failure, 504 upstream timeout,
  500 anything else. Files under MIN_SEGMENT_BYTES return {"text": ""} without
  calling the engine.
- GET /api/sessions/{session_id}/transcript: read-only view of a live session.

WebSocket /ws/transcribe: client sends binary PCM 16-bit mono; server runs a
LiveSession and pushes JSON status, activity and transcript messages.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from livescribe.asr.base import ASRAuthError, ASREngine, ASRError
from livescribe.asr.cloudflare import CloudflareWhisperEngine
from livescribe.asr.local_whisper import LocalWhisperEngine, load_whisper_model
from livescribe.asr.openai_whisper import OpenAIWhisperEngine
from livescribe.config import configure_logging, get_settings
from livescribe.schemas.transcription import (
    ErrorResponse,
    SessionTranscriptResponse,
    TranscribeResponse,
    TranscribeSegment,
)
from livescribe.session_store import get_session
from livescribe.websocket_manager import WebSocketManager

logger = logging.getLogger(__name__)

# Set in lifespan so WebSocket route can get engine without Request
_current_app: FastAPI | None = None


def get_asr_engine(app: FastAPI | None = None) -> ASREngine:
    """Return ASR engine based on config. Local uses singleton model from app.state."""
    a = app or _current_app
    if a is None:
        raise RuntimeError("App not initialized (lifespan not run?)")
    settings = get_settings()
    if settings.ASR_BACKEND == "cloudflare":
        return CloudflareWhisperEngine()
    if settings.ASR_BACKEND == "openai":
        return OpenAIWhisperEngine()
    model = getattr(a.state, "whisper_model", None)
    return LocalWhisperEngine(model=model)


def asr_engine_dependency(request: Request) -> ASREngine:
    return get_asr_engine(request.app)


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _current_app
    _current_app = app
    settings = get_settings()
    configure_logging(settings)
    # Load Whisper model once at startup when using local backend (singleton)
    if settings.ASR_BACKEND == "local":
        app.state.whisper_model = load_whisper_model()
    else:
        app.state.whisper_model = None
    logger.info("ASR backend: %s", settings.ASR_BACKEND)
    yield
    app.state.whisper_model = None
    _current_app = None


app = FastAPI(
    title="Live Speech-to-Text",
    description="Segment transcription and live sessions with heuristic speaker labels",
    lifespan=lifespan,
)


def _error(status_code: int, error: str, message: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, message=message).model_dump(exclude_none=True),
    )


@app.exception_handler(ASRAuthError)
async def asr_auth_error_handler(request: Request, exc: ASRAuthError) -> JSONResponse:
    logger.error("Transcription authentication error: %s", exc)
    return _error(401, "Authentication failed", str(exc))


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.post(
    "/transcribe",
    response_model=TranscribeResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 504: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def transcribe(
    audio: UploadFile | None = File(None),
    engine: ASREngine = Depends(asr_engine_dependency),
):
    if audio is None:
        return _error(400, "No audio file provided")
    settings = get_settings()
    data = await audio.read()
    mime_type = audio.content_type or "application/octet-stream"
    if len(data) < settings.MIN_SEGMENT_BYTES:
        logger.debug("Ignoring %d-byte upload (< %d bytes)", len(data), settings.MIN_SEGMENT_BYTES)
        return TranscribeResponse(text="")

    logger.info("Transcribing %d bytes (%s)", len(data), mime_type)
    try:
        result = await asyncio.wait_for(
            engine.transcribe(data, mime_type),
            timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        logger.warning("Upstream transcription timed out after %.0fs", settings.UPSTREAM_TIMEOUT_SECONDS)
        return _error(504, "Transcription timed out")
    except ASRAuthError as e:
        logger.error("Transcription authentication error: %s", e)
        return _error(401, "Authentication failed", str(e))
    except ASRError as e:
        logger.warning("Transcription failed: %s", e)
        return _error(500, "Transcription failed", str(e))
    except Exception as e:
        logger.exception("Unexpected transcription failure: %s", e)
        return _error(500, "Transcription failed", str(e))

    segments = None
    if result.segments:
        segments = [TranscribeSegment(text=s.text, start=s.start, end=s.end) for s in result.segments]
    return TranscribeResponse(text=result.text, segments=segments)


@app.get("/api/sessions/{session_id}/transcript", response_model=SessionTranscriptResponse)
async def session_transcript(session_id: str) -> SessionTranscriptResponse:
    session = get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return SessionTranscriptResponse(
        session_id=session_id,
        status=session.get("status", ""),
        transcript=session.get("transcript_text", ""),
        entries=session.get("entries", []),
        finalized=session.get("transcript_finalized", False),
    )


@app.websocket("/ws/transcribe")
async def websocket_transcribe(websocket: WebSocket) -> None:
    """
    WebSocket: client sends raw PCM 16-bit mono (binary).
    Server sends JSON: {type: session | status | activity | transcript, ...}.
    """
    await websocket.accept()
    try:
        engine = get_asr_engine(websocket.app)
    except ASRAuthError as e:
        logger.error("Transcription authentication error: %s", e)
        await websocket.send_json({"type": "status", "status": "AuthError", "message": str(e)})
        await websocket.close()
        return
    manager = WebSocketManager(websocket, engine)
    try:
        await manager.run()
    except WebSocketDisconnect:
        return
    except Exception:
        logger.exception("WebSocket session failed")
    # Transcript is final once the socket closes
    try:
        await websocket.close()
    except Exception as e:
        logger.debug("WebSocket already closed: %s", e)
