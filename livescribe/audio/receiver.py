"""
AudioReceiver: accepts raw PCM audio from WebSocket and yields analysis frames.

- Expects PCM 16-bit mono at SAMPLE_RATE.
- Emits fixed-size float32 frames (FRAME_SAMPLES, e.g. 2048) normalized to [-1, 1].
- Any remainder is kept for the next feed.
"""
from __future__ import annotations

import numpy as np

from livescribe.config import get_settings


def pcm_bytes_to_float32(pcm_bytes: bytes) -> np.ndarray:
    """Convert PCM 16-bit mono bytes to float32 [-1.0, 1.0]."""
    samples = np.frombuffer(pcm_bytes, dtype=np.int16)
    return samples.astype(np.float32) / 32768.0


class AudioReceiver:
    """Buffers incoming binary WebSocket messages into fixed-size frames."""

    def __init__(self, frame_samples: int | None = None, sample_width: int = 2) -> None:
        settings = get_settings()
        self._frame_samples = frame_samples or settings.FRAME_SAMPLES
        self._frame_bytes = self._frame_samples * sample_width
        self._buffer = bytearray()

    def feed(self, data: bytes) -> None:
        """Append raw PCM bytes. Call from WebSocket handler."""
        self._buffer.extend(data)

    def drain_frames(self) -> list[np.ndarray]:
        """
        Drain all complete frames from the buffer.
        Returns list of float32 frames; remainder stays in buffer.
        """
        out: list[np.ndarray] = []
        while len(self._buffer) >= self._frame_bytes:
            out.append(pcm_bytes_to_float32(bytes(self._buffer[: self._frame_bytes])))
            del self._buffer[: self._frame_bytes]
        return out

    def remaining_bytes(self) -> int:
        """Bytes left in buffer (incomplete frame)."""
        return len(self._buffer)
