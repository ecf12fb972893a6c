"""
Timers for the segmentation pipeline.

All timers are owned by one TimerSet per component, so a stop can cancel
every pending callback in one place. The Scheduler hides the clock: the
live pipeline uses the asyncio loop; tests drive a manual clock.
"""
from __future__ import annotations

import asyncio
from typing import Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Clock plus one-shot delayed callbacks. Times are seconds."""

    def now(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopScheduler:
    """Scheduler backed by the running asyncio loop (monotonic loop.time())."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return self.loop.call_later(max(0.0, delay), callback)


class TimerSet:
    """
    Named one-shot and periodic timers with a single cancel point.

    Arming a name that is already pending replaces it. After close(), arm()
    is a no-op so a late callback can never schedule new work.
    """

    def __init__(self, scheduler: Scheduler) -> None:
        self._scheduler = scheduler
        self._handles: dict[str, TimerHandle] = {}
        self._closed = False

    def arm(self, name: str, delay: float, callback: Callable[[], None]) -> None:
        if self._closed:
            return
        self.cancel(name)

        def _fire() -> None:
            self._handles.pop(name, None)
            if self._closed:
                return
            callback()

        self._handles[name] = self._scheduler.call_later(delay, _fire)

    def arm_periodic(self, name: str, interval: float, callback: Callable[[], None]) -> None:
        """Fire callback every `interval` seconds until cancelled."""

        def _tick() -> None:
            # Re-arm before the callback runs
            self.arm(name, interval, _tick)
            callback()

        self.arm(name, interval, _tick)

    def cancel(self, name: str) -> None:
        handle = self._handles.pop(name, None)
        if handle is not None:
            handle.cancel()

    def cancel_all(self) -> None:
        for name in list(self._handles):
            self.cancel(name)

    def close(self) -> None:
        """Cancel everything and refuse further arming."""
        self.cancel_all()
        self._closed = True

    def is_pending(self, name: str) -> bool:
        return name in self._handles

    @property
    def pending(self) -> list[str]:
        return sorted(self._handles)
