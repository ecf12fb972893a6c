"""
Capture sources: where frames come from.

- PushCaptureSource: PCM pushed by a WebSocket handler (browser microphone).
- MicrophoneCaptureSource: local input device via sounddevice.

acquire() raises CaptureUnavailableError when the device is missing, denied
or busy; that aborts session start. Constraints (echo cancellation, noise
suppression, auto gain) are best effort and silently ignored where the
backend has no such control.
"""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import numpy as np

from livescribe.audio.receiver import AudioReceiver
from livescribe.config import get_settings
from livescribe.errors import CaptureUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaptureConstraints:
    echo_cancellation: bool = True
    noise_suppression: bool = True
    auto_gain_control: bool = True


class CaptureStream(ABC):
    """An open capture stream. frames() ends once release() is called."""

    @abstractmethod
    def frames(self) -> AsyncIterator[np.ndarray]:
        ...

    @abstractmethod
    def release(self) -> None:
        ...

    @property
    @abstractmethod
    def released(self) -> bool:
        ...


class CaptureSource(ABC):
    @abstractmethod
    async def acquire(self, constraints: CaptureConstraints | None = None) -> CaptureStream:
        ...


class QueueCaptureStream(CaptureStream):
    """Frames delivered through an asyncio.Queue; None marks the end."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Optional[np.ndarray]] = asyncio.Queue()
        self._released = False

    def push(self, frame: np.ndarray) -> None:
        if self._released:
            return
        self._queue.put_nowait(frame)

    async def frames(self) -> AsyncIterator[np.ndarray]:
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            yield frame

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._queue.put_nowait(None)

    @property
    def released(self) -> bool:
        return self._released


class PushCaptureSource(CaptureSource):
    """
    Source fed with raw PCM 16-bit mono bytes (e.g. from a WebSocket).
    One stream at a time; a second acquire while open means the device is busy.
    """

    def __init__(self, frame_samples: int | None = None) -> None:
        self._receiver = AudioReceiver(frame_samples=frame_samples)
        self._stream: QueueCaptureStream | None = None

    async def acquire(self, constraints: CaptureConstraints | None = None) -> CaptureStream:
        if self._stream is not None and not self._stream.released:
            raise CaptureUnavailableError("Capture source already in use")
        if constraints is not None:
            logger.debug("Push source: constraints are applied by the sender (%s)", constraints)
        self._stream = QueueCaptureStream()
        return self._stream

    def feed(self, data: bytes) -> None:
        """Append PCM bytes; complete frames go to the open stream."""
        self._receiver.feed(data)
        frames = self._receiver.drain_frames()
        if self._stream is None or self._stream.released:
            return
        for frame in frames:
            self._stream.push(frame)

    def close(self) -> None:
        """End of input (e.g. WebSocket closed)."""
        if self._stream is not None:
            self._stream.release()


class _SoundDeviceStream(QueueCaptureStream):
    def __init__(self, input_stream) -> None:
        super().__init__()
        self._input_stream = input_stream

    def release(self) -> None:
        if self.released:
            return
        try:
            self._input_stream.stop()
            self._input_stream.close()
        except Exception as e:
            logger.warning("Closing input device failed: %s", e)
        super().release()


class MicrophoneCaptureSource(CaptureSource):
    """
    Local microphone via sounddevice. The PortAudio callback runs on the audio
    thread; frames are handed to the event loop with call_soon_threadsafe.
    """

    def __init__(
        self,
        device: int | str | None = None,
        sample_rate: int | None = None,
        frame_samples: int | None = None,
    ) -> None:
        settings = get_settings()
        self._device = device
        self._sample_rate = sample_rate or settings.SAMPLE_RATE
        self._frame_samples = frame_samples or settings.FRAME_SAMPLES

    async def acquire(self, constraints: CaptureConstraints | None = None) -> CaptureStream:
        try:
            import sounddevice as sd
        except Exception as e:
            raise CaptureUnavailableError(f"sounddevice is not available: {e}") from e

        if constraints is not None and (
            constraints.echo_cancellation or constraints.noise_suppression or constraints.auto_gain_control
        ):
            logger.debug("Microphone source: processing constraints not supported by PortAudio; ignored")

        loop = asyncio.get_running_loop()
        holder: dict[str, _SoundDeviceStream] = {}

        def _callback(indata, frames, time_info, status) -> None:  # noqa: ARG001
            if status:
                logger.debug("Input status: %s", status)
            stream = holder.get("stream")
            if stream is None or stream.released:
                return
            frame = np.array(indata[:, 0], dtype=np.float32, copy=True)
            loop.call_soon_threadsafe(stream.push, frame)

        try:
            input_stream = sd.InputStream(
                device=self._device,
                samplerate=self._sample_rate,
                channels=1,
                dtype="float32",
                blocksize=self._frame_samples,
                callback=_callback,
            )
            stream = _SoundDeviceStream(input_stream)
            holder["stream"] = stream
            input_stream.start()
        except Exception as e:
            raise CaptureUnavailableError(f"Could not open microphone: {e}") from e
        logger.info("Microphone opened (device=%s, %d Hz)", self._device, self._sample_rate)
        return stream
