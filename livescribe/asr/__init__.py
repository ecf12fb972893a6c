"""ASR: swappable Whisper-compatible engines behind POST /transcribe."""
from .base import ASRAuthError, ASREngine, ASRError, ASRResult, SegmentTimestamp
from .cloudflare import CloudflareWhisperEngine
from .local_whisper import LocalWhisperEngine, load_whisper_model
from .openai_whisper import OpenAIWhisperEngine

__all__ = [
    "ASRAuthError",
    "ASREngine",
    "ASRError",
    "ASRResult",
    "SegmentTimestamp",
    "CloudflareWhisperEngine",
    "LocalWhisperEngine",
    "OpenAIWhisperEngine",
    "load_whisper_model",
]
