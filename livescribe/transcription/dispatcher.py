"""
SegmentDispatcher: forwards flushed segments to the TranscriptionClient.

Overlap guard: at most one call is outstanding per session. A segment
submitted while a call is in flight waits in the pending queue (FIFO) and is
sent when the in-flight call finishes; it is never dropped and never sent
concurrently.

Every call has a client-side timeout. Timeouts, auth failures and other
errors are reported through on_status and the session keeps listening.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Callable, Optional

from livescribe.audio.types import Segment
from livescribe.config import get_settings
from livescribe.errors import TranscriptionAuthError, TranscriptionError, TranscriptionTimeout
from livescribe.transcription.client import TranscriptionClient
from livescribe.transcription.models import TranscriptionResult

logger = logging.getLogger(__name__)


class SegmentDispatcher:
    def __init__(
        self,
        client: TranscriptionClient,
        on_result: Callable[[Segment, TranscriptionResult], None],
        on_status: Optional[Callable[[str], None]] = None,
        timeout: float | None = None,
    ) -> None:
        settings = get_settings()
        self._client = client
        self._on_result = on_result
        self._on_status = on_status
        self._timeout = timeout if timeout is not None else settings.TRANSCRIPTION_TIMEOUT_SECONDS
        self._pending: deque[Segment] = deque()
        self._in_flight: asyncio.Task | None = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False
        self.last_error: TranscriptionError | None = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def submit(self, segment: Segment) -> None:
        """Send now, or queue behind the outstanding call."""
        if self._closed:
            logger.debug("Dispatcher closed; dropping %d-byte segment", segment.size)
            return
        if self._in_flight is not None:
            self._pending.append(segment)
            logger.debug("Transcription already in progress; segment queued (%d pending)", len(self._pending))
            return
        self._start(segment)

    def _start(self, segment: Segment) -> None:
        self._idle.clear()
        self._in_flight = asyncio.get_running_loop().create_task(self._run(segment))

    async def _run(self, segment: Segment) -> None:
        self._status("Transcribing")
        try:
            result = await asyncio.wait_for(self._client.transcribe(segment), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("Transcription timed out after %.0fs; still listening", self._timeout)
            self.last_error = TranscriptionTimeout(f"timed out after {self._timeout}s")
            self._status(TranscriptionTimeout.status)
        except TranscriptionAuthError as e:
            logger.error("Transcription authentication error (check API credentials): %s", e)
            self.last_error = e
            self._status(e.status)
        except TranscriptionError as e:
            logger.warning("Transcription failed: %s; still listening", e)
            self.last_error = e
            self._status(e.status)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Unexpected transcription failure: %s", e)
            self.last_error = TranscriptionError(str(e))
            self._status(TranscriptionError.status)
        else:
            self.last_error = None
            try:
                self._on_result(segment, result)
            except Exception:
                logger.exception("Merging transcription result failed")
            self._status("Ready")
        finally:
            self._in_flight = None
            self._next()

    def _next(self) -> None:
        if self._pending and not self._closed:
            self._start(self._pending.popleft())
        elif not self._pending:
            self._idle.set()

    def _status(self, status: str) -> None:
        if self._on_status is not None:
            self._on_status(status)

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for the in-flight call and everything queued. False on timeout."""
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def close(self) -> None:
        """Cancel the in-flight call and drop queued segments."""
        self._closed = True
        self._pending.clear()
        task = self._in_flight
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._idle.set()
