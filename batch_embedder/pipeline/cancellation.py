"""Cooperative cancellation shared by every batch task of one run."""

import asyncio
import threading
from typing import Set, Tuple

import structlog

logger = structlog.get_logger("pipeline.cancellation")


class CancellationSignal:
    """Set-once flag readable by all in-flight work.

    ``cancel()`` may be called from any task or from another thread (for
    example a UI stop button). It never interrupts a running provider call;
    it only stops new attempts from starting. Sleepers waiting out a backoff
    are woken immediately.
    """

    def __init__(self):
        self._flag = threading.Event()
        self._lock = threading.Lock()
        self._waiters: Set[Tuple[asyncio.AbstractEventLoop, asyncio.Event]] = set()

    def cancel(self) -> None:
        """Set the flag. Calling it again is a no-op."""
        with self._lock:
            if self._flag.is_set():
                return
            self._flag.set()
            waiters = list(self._waiters)

        logger.info("Cancellation requested", waiting_tasks=len(waiters))
        for loop, event in waiters:
            if loop.is_closed():
                continue
            loop.call_soon_threadsafe(event.set)

    def is_cancelled(self) -> bool:
        return self._flag.is_set()

    async def sleep(self, delay: float) -> bool:
        """Wait ``delay`` seconds or until cancelled.

        Returns ``True`` when the signal is set by the time the wait ends.
        """
        if self.is_cancelled():
            return True
        if delay <= 0:
            await asyncio.sleep(0)
            return self.is_cancelled()

        entry = (asyncio.get_running_loop(), asyncio.Event())
        with self._lock:
            if self._flag.is_set():
                return True
            self._waiters.add(entry)

        try:
            await asyncio.wait_for(entry[1].wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
        finally:
            with self._lock:
                self._waiters.discard(entry)

        return self.is_cancelled()

    def __repr__(self) -> str:
        return f"CancellationSignal(cancelled={self.is_cancelled()})"
