"""
TranscriptWriter: session-based, append-only persistence of the transcript.

The writer is a TranscriptAggregator listener: every chunk the aggregator
appends is written to transcripts/{session_id}.txt exactly as appended, so the
file always equals the session transcript. The file is never truncated.
"""
from __future__ import annotations

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from typing import Optional

from livescribe.config import get_settings

logger = logging.getLogger(__name__)


class TranscriptWriterBase(ABC):
    """Base for session transcript writer."""

    @abstractmethod
    async def start(self) -> None:
        """Open file at session start. Call once."""
        ...

    @abstractmethod
    def on_transcript(self, transcript: str, chunk: str) -> None:
        """Aggregator listener. Non-blocking; queues the chunk."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Flush and close file. Safe to call from finally."""
        ...


class NoOpTranscriptWriter(TranscriptWriterBase):
    """When transcript saving is disabled. No file I/O."""

    async def start(self) -> None:
        pass

    def on_transcript(self, transcript: str, chunk: str) -> None:
        pass

    async def close(self) -> None:
        pass


class TranscriptWriter(TranscriptWriterBase):
    """
    One file per session: {transcript_dir}/{session_id}.txt.
    Worker task drains queue so we never block the frame loop.
    """

    def __init__(self, session_id: str, transcript_dir: Optional[str] = None) -> None:
        settings = get_settings()
        self._session_id = session_id
        self._transcript_dir = transcript_dir or settings.TRANSCRIPT_DIR
        self._path = os.path.join(self._transcript_dir, f"{session_id}.txt")
        self._file = None
        self._queue: asyncio.Queue[Optional[str]] = asyncio.Queue()
        self._worker_task: Optional[asyncio.Task] = None
        self._started = False

    @property
    def path(self) -> str:
        return self._path

    async def _worker(self) -> None:
        """Drain queue: write each chunk and flush. None = close. Log errors, never crash."""
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                break
            if self._file is None:
                continue
            try:
                self._file.write(chunk)
                self._file.flush()
            except OSError as e:
                logger.warning("Transcript write failed for %s: %s", self._path, e)
        try:
            if self._file is not None:
                self._file.close()
        except OSError as e:
            logger.warning("Transcript close failed for %s: %s", self._path, e)
        finally:
            self._file = None

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        try:
            os.makedirs(self._transcript_dir, exist_ok=True)
            self._file = open(self._path, "a", encoding="utf-8")
        except OSError as e:
            logger.warning("Transcript file open failed for %s: %s", self._path, e)
        self._worker_task = asyncio.create_task(self._worker())

    def on_transcript(self, transcript: str, chunk: str) -> None:
        if not chunk or not self._started:
            return
        self._queue.put_nowait(chunk)

    async def close(self) -> None:
        """Signal worker to stop and close file."""
        if not self._started or self._worker_task is None:
            return
        try:
            self._queue.put_nowait(None)
            await asyncio.wait_for(self._worker_task, timeout=5.0)
        except asyncio.TimeoutError:
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass
        self._worker_task = None


def create_transcript_writer(session_id: str) -> TranscriptWriterBase:
    """Create writer when TRANSCRIPT_SAVE_ENABLED is true; else no-op."""
    settings = get_settings()
    if not settings.TRANSCRIPT_SAVE_ENABLED:
        return NoOpTranscriptWriter()
    return TranscriptWriter(session_id=session_id)
