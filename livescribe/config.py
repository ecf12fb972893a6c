"""Application configuration. Loads from env vars."""
from __future__ import annotations

import logging
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings. Override via environment variables."""

    # Audio: PCM 16-bit mono, 16kHz from the capture source
    SAMPLE_RATE: int = 16000

    # Analysis window: 2048 samples (~128ms @ 16kHz)
    FRAME_SAMPLES: int = 2048

    # Voice activity: "energy" = mean squared amplitude; "webrtc" = webrtcvad with energy fallback
    VAD_BACKEND: Literal["energy", "webrtc"] = "energy"
    VAD_THRESHOLD: float = 0.01
    VAD_SMOOTHING: float = 0.2  # plug-in detector only
    VAD_WEBRTC_AGGRESSIVENESS: int = 2  # 0 (least) to 3 (most aggressive)

    # Segmentation timers (seconds)
    SILENCE_DURATION_SECONDS: float = 3.0  # debounce before SpeechEnded
    MAX_INITIAL_SEGMENT_SECONDS: float = 10.0  # first segment is cut after this if nobody speaks
    MAX_SEGMENT_SECONDS: float = 30.0  # same cut for every segment after a restart
    HEALTH_CHECK_INTERVAL_SECONDS: float = 15.0
    RESTART_DELAY_SECONDS: float = 0.5  # capture restart after a flush

    # Segments smaller than this are noise and never sent
    MIN_SEGMENT_BYTES: int = 1000

    # Transcription: client-side budget, and the server's upstream budget
    TRANSCRIPTION_TIMEOUT_SECONDS: float = 30.0
    UPSTREAM_TIMEOUT_SECONDS: float = 25.0
    TRANSCRIPTION_URL: str = "http://localhost:8000/transcribe"

    # ASR backend behind POST /transcribe and the WebSocket session
    ASR_BACKEND: Literal["local", "cloudflare", "openai"] = "local"

    # Local Whisper (when ASR_BACKEND=local); model loaded once at startup
    LOCAL_WHISPER_MODEL: str = "base"  # base | small | medium | large-v3
    LOCAL_WHISPER_DEVICE: Literal["cpu", "cuda"] = "cpu"
    LOCAL_WHISPER_COMPUTE_TYPE: Literal["int8", "float16"] = "int8"
    LOCAL_WHISPER_BEAM_SIZE: int = 5

    # Cloudflare Workers AI Whisper (when ASR_BACKEND=cloudflare)
    CLOUDFLARE_ACCOUNT_ID: str = ""
    CLOUDFLARE_API_TOKEN: str = ""

    # OpenAI Whisper (when ASR_BACKEND=openai)
    OPENAI_API_KEY: str = ""
    OPENAI_WHISPER_MODEL: str = "whisper-1"
    WHISPER_LANGUAGE: str = "en"

    # Heuristic diarization: two speakers toggled by pause length and question marks.
    DIARIZATION_SPEAKER_GAP_SEC: float = 1.0
    # "any": one toggle when either rule fires. "independent": apply both rules (can double-toggle).
    DIARIZATION_TOGGLE_MODE: Literal["any", "independent"] = "any"

    # Session transcript storage: one .txt per session, append-only.
    TRANSCRIPT_SAVE_ENABLED: bool = False
    TRANSCRIPT_DIR: str = "./transcripts"

    # Logging: level (DEBUG, INFO, WARNING, ERROR); file path = also log to file (empty = console only).
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    class Config:
        env_file = ".env"
        extra = "ignore"


def get_settings() -> Settings:
    return Settings()


def configure_logging(settings: Settings | None = None) -> None:
    """Apply LOG_LEVEL and optional LOG_FILE to the root logger."""
    settings = settings or get_settings()
    level = getattr(logging, (settings.LOG_LEVEL or "INFO").upper(), logging.INFO)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.LOG_FILE:
        handlers.append(logging.FileHandler(settings.LOG_FILE, encoding="utf-8"))
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=handlers,
        force=True,
    )
