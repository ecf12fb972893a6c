"""
Segment encoders: accumulate PCM while recording, return one encoded blob on stop().

- WavEncoder: in-memory WAV. Always available; the default when nothing else is.
- PydubEncoder: container formats (webm/opus, ogg) via pydub + ffmpeg.

MIME selection probes supports() in preference order: opus-in-webm, webm,
ogg, else the unspecified default (WAV). Creating an encoder for the chosen
MIME type that fails gets exactly one retry with default options.
"""
from __future__ import annotations

import io
import logging
import wave
from abc import ABC, abstractmethod
from typing import Callable, Optional

import numpy as np

from livescribe.audio.vad import float32_to_pcm_bytes
from livescribe.config import get_settings
from livescribe.errors import EncoderError

logger = logging.getLogger(__name__)

SAMPLE_WIDTH = 2
NCHANNELS = 1

MIME_PREFERENCES: tuple[str, ...] = ("audio/webm;codecs=opus", "audio/webm", "audio/ogg")
DEFAULT_MIME_TYPE = "audio/wav"

# mime type -> (pydub/ffmpeg format, codec)
_CONTAINER_FORMATS: dict[str, tuple[str, str | None]] = {
    "audio/webm;codecs=opus": ("webm", "libopus"),
    "audio/webm": ("webm", None),
    "audio/ogg": ("ogg", None),
}

_EXTENSIONS = {
    "audio/webm": "webm",
    "audio/ogg": "ogg",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/wave": "wav",
    "audio/mpeg": "mp3",
}

STATE_RECORDING = "recording"
STATE_INACTIVE = "inactive"


def filename_for_mime_type(mime_type: str) -> str:
    """Upload filename for a MIME type: audio/webm;codecs=opus -> audio.webm"""
    base = (mime_type or "").split(";", 1)[0].strip().lower()
    return f"audio.{_EXTENSIONS.get(base, 'webm')}"


def _pcm_to_wav_bytes(pcm_bytes: bytes, sample_rate: int) -> bytes:
    """Wrap PCM in a WAV header: one open, set header once, write all frames, close once."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(NCHANNELS)
        wav.setsampwidth(SAMPLE_WIDTH)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm_bytes)
    return buf.getvalue()


class SegmentEncoder(ABC):
    """
    Encoder lifecycle: start() -> write(frame)* -> stop() -> bytes.
    state is "recording" between start and stop, else "inactive".

    stop() is detach() followed by encode(). Callers on the event loop use
    detach() and run encode() in an executor, since container encoding
    shells out to ffmpeg.
    """

    def __init__(
        self,
        sample_rate: int | None = None,
        on_data: Optional[Callable[[bytes], None]] = None,
    ) -> None:
        self._sample_rate = sample_rate or get_settings().SAMPLE_RATE
        self._on_data = on_data
        self._buffer = bytearray()
        self._state = STATE_INACTIVE

    @property
    def state(self) -> str:
        return self._state

    @property
    @abstractmethod
    def mime_type(self) -> str:
        ...

    @classmethod
    @abstractmethod
    def supports(cls, mime_type: str) -> bool:
        ...

    @abstractmethod
    def _encode(self, pcm_bytes: bytes) -> bytes:
        ...

    def start(self) -> None:
        self._buffer = bytearray()
        self._state = STATE_RECORDING

    def write(self, frame: np.ndarray) -> None:
        """Append one float32 frame. Ignored unless recording."""
        if self._state != STATE_RECORDING:
            return
        self._buffer.extend(float32_to_pcm_bytes(frame))

    def detach(self) -> bytes:
        """Stop recording and hand over the raw PCM without encoding it."""
        if self._state != STATE_RECORDING:
            return b""
        self._state = STATE_INACTIVE
        pcm = bytes(self._buffer)
        self._buffer = bytearray()
        return pcm

    def encode(self, pcm_bytes: bytes) -> bytes:
        """Encode detached PCM. Touches no encoder state, so it may run in an executor."""
        return self._encode(pcm_bytes) if pcm_bytes else b""

    def deliver(self, data: bytes) -> None:
        """Pass an encoded blob to on_data. Call from the event loop thread."""
        if self._on_data is not None and data:
            self._on_data(data)

    def stop(self) -> bytes:
        """Stop recording and encode in place. Returns b"" when nothing was captured."""
        data = self.encode(self.detach())
        self.deliver(data)
        return data

    def abort(self) -> None:
        """Drop buffered audio without encoding (e.g. after an external fault)."""
        self._buffer = bytearray()
        self._state = STATE_INACTIVE


class WavEncoder(SegmentEncoder):
    """PCM 16-bit mono WAV, built in memory."""

    @property
    def mime_type(self) -> str:
        return DEFAULT_MIME_TYPE

    @classmethod
    def supports(cls, mime_type: str) -> bool:
        return mime_type in (DEFAULT_MIME_TYPE, "audio/x-wav", "audio/wave")

    def _encode(self, pcm_bytes: bytes) -> bytes:
        return _pcm_to_wav_bytes(pcm_bytes, self._sample_rate)


class PydubEncoder(SegmentEncoder):
    """Container encoder via pydub. Needs ffmpeg on PATH."""

    def __init__(
        self,
        mime_type: str,
        sample_rate: int | None = None,
        on_data: Optional[Callable[[bytes], None]] = None,
    ) -> None:
        if mime_type not in _CONTAINER_FORMATS:
            raise EncoderError(f"Unsupported container mime type: {mime_type}")
        super().__init__(sample_rate=sample_rate, on_data=on_data)
        self._mime_type = mime_type
        self._format, self._codec = _CONTAINER_FORMATS[mime_type]

    @property
    def mime_type(self) -> str:
        return self._mime_type

    @classmethod
    def supports(cls, mime_type: str) -> bool:
        if mime_type not in _CONTAINER_FORMATS:
            return False
        try:
            from pydub.utils import which
        except ImportError:
            return False
        return which("ffmpeg") is not None

    def _encode(self, pcm_bytes: bytes) -> bytes:
        from pydub import AudioSegment

        segment = AudioSegment(
            data=pcm_bytes,
            sample_width=SAMPLE_WIDTH,
            frame_rate=self._sample_rate,
            channels=NCHANNELS,
        )
        out = io.BytesIO()
        segment.export(out, format=self._format, codec=self._codec)
        return out.getvalue()


def supports_mime_type(mime_type: str) -> bool:
    """Capability probe across all encoders."""
    return WavEncoder.supports(mime_type) or PydubEncoder.supports(mime_type)


def select_mime_type(probe: Callable[[str], bool] = supports_mime_type) -> str | None:
    """First supported MIME type in preference order; None = unspecified default."""
    for mime_type in MIME_PREFERENCES:
        if probe(mime_type):
            return mime_type
    return None


def create_encoder(mime_type: str | None = None, sample_rate: int | None = None) -> SegmentEncoder:
    """Encoder for mime_type; None gives the default (WAV). Raises EncoderError."""
    if mime_type is None or WavEncoder.supports(mime_type):
        return WavEncoder(sample_rate=sample_rate)
    if not PydubEncoder.supports(mime_type):
        raise EncoderError(f"No encoder available for {mime_type}")
    return PydubEncoder(mime_type, sample_rate=sample_rate)


EncoderFactory = Callable[[Optional[str]], SegmentEncoder]


def create_encoder_with_fallback(
    mime_type: str | None,
    factory: EncoderFactory | None = None,
) -> SegmentEncoder:
    """
    Create the encoder for mime_type. On failure, retry exactly once with
    default options (mime_type=None). A second failure is fatal (EncoderError).
    """
    factory = factory or (lambda m: create_encoder(m))
    try:
        encoder = factory(mime_type)
        logger.info("Encoder created with mime type %s", encoder.mime_type)
        return encoder
    except Exception as e:
        logger.warning("Encoder creation failed for %s: %s; trying default options", mime_type, e)
    try:
        encoder = factory(None)
    except Exception as e:
        raise EncoderError(f"Encoder creation failed with default options: {e}") from e
    logger.info("Encoder created with default mime type %s", encoder.mime_type)
    return encoder
