"""Pytest configuration helpers and shared fakes."""

from __future__ import annotations

import heapq
import sys
import time
from pathlib import Path
from typing import Callable

import numpy as np
import pytest


def _ensure_repo_on_path() -> None:
    """Allow tests to import from repo modules without installing the package."""
    repo_root = Path(__file__).resolve().parents[1]
    path_str = str(repo_root)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)


_ensure_repo_on_path()

from livescribe.audio.encoder import STATE_INACTIVE, STATE_RECORDING  # noqa: E402


class _ManualHandle:
    def __init__(self, when: float, callback: Callable[[], None]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic clock: callbacks run only inside advance(), in deadline order."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._queue: list[tuple[float, int, _ManualHandle]] = []
        self._seq = 0

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> _ManualHandle:
        handle = _ManualHandle(self._now + max(0.0, delay), callback)
        self._seq += 1
        heapq.heappush(self._queue, (handle.when, self._seq, handle))
        return handle

    def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            when, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = when
            handle.callback()
        self._now = target

    @property
    def pending(self) -> int:
        return sum(1 for _, _, h in self._queue if not h.cancelled)


class FakeEncoder:
    """Encoder double: encode() returns `payload_size` bytes, optionally after a blocking delay."""

    mime_type = "audio/webm"

    def __init__(self, payload_size: int = 4000, fail_starts: int = 0, encode_delay: float = 0.0) -> None:
        self.payload_size = payload_size
        self.fail_starts = fail_starts
        self.encode_delay = encode_delay
        self.state = STATE_INACTIVE
        self.starts = 0
        self.stops = 0
        self.aborts = 0
        self.frames = 0
        self.delivered: list[bytes] = []

    def start(self) -> None:
        if self.fail_starts > 0:
            self.fail_starts -= 1
            raise RuntimeError("encoder start failed")
        self.starts += 1
        self.frames = 0
        self.state = STATE_RECORDING

    def write(self, frame) -> None:
        if self.state == STATE_RECORDING:
            self.frames += 1

    def detach(self) -> bytes:
        if self.state != STATE_RECORDING:
            return b""
        self.state = STATE_INACTIVE
        self.stops += 1
        return b"\x00" * (self.frames + 1)

    def encode(self, pcm: bytes) -> bytes:
        if self.encode_delay:
            time.sleep(self.encode_delay)
        return b"x" * self.payload_size

    def deliver(self, data: bytes) -> None:
        self.delivered.append(data)

    def stop(self) -> bytes:
        return self.encode(self.detach())

    def abort(self) -> None:
        self.aborts += 1
        self.state = STATE_INACTIVE


class FakeStream:
    def __init__(self) -> None:
        self.release_calls = 0

    def release(self) -> None:
        self.release_calls += 1


def tone(amplitude: float = 0.5, samples: int = 2048) -> np.ndarray:
    return np.full(samples, amplitude, dtype=np.float32)


def silence(samples: int = 2048) -> np.ndarray:
    return np.zeros(samples, dtype=np.float32)


@pytest.fixture()
def scheduler() -> ManualScheduler:
    return ManualScheduler()
