from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable

from domain.ports.sync import ScheduledCall, Scheduler

logger = logging.getLogger(__name__)


class _LoopCall(ScheduledCall):
    def __init__(self) -> None:
        self._handle: asyncio.TimerHandle | None = None
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def attach(self, handle: asyncio.TimerHandle) -> None:
        self._handle = handle

    def cancel(self) -> None:
        self._cancelled.set()
        if self._handle is not None:
            self._handle.cancel()


class AsyncioScheduler(Scheduler):
    """Runs debounced callbacks on an event loop, off-loading the blocking work to its executor."""

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        call = _LoopCall()

        def fire() -> None:
            if call.cancelled:
                return
            future = self._loop.run_in_executor(None, callback)
            future.add_done_callback(_log_failure)

        def arm() -> None:
            if not call.cancelled:
                call.attach(self._loop.call_later(delay, fire))

        if _running_loop() is self._loop:
            arm()
        else:
            self._loop.call_soon_threadsafe(arm)
        return call


class ThreadingScheduler(Scheduler):
    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def _log_failure(future: asyncio.Future[None]) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("Scheduled callback failed", exc_info=exc)
