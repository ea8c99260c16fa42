"""Bounded concurrency for provider calls."""

import asyncio
import itertools
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

import structlog

from ..common.errors import GateTimeoutError
from ..common.metrics import MetricsCollector

logger = structlog.get_logger("pipeline.gate")

DEFAULT_GATE_TIMEOUT = 600.0


@dataclass
class GatePermit:
    """Proof of a held slot; hand it back to ``ConcurrencyGate.release``."""
    permit_id: int
    batch_index: Optional[int]
    acquired_at: float = field(default_factory=time.monotonic)
    released: bool = False


class ConcurrencyGate:
    """Counting semaphore bounding simultaneous in-flight batch calls.

    Parameters
    - capacity: Maximum permits held at once
    - acquire_timeout: Ceiling on how long ``acquire`` may wait; a stuck
      permit holder surfaces as ``GateTimeoutError`` instead of a hang
    - metrics: Optional collector for in-flight and wait-time metrics
    """

    def __init__(
        self,
        capacity: int = 3,
        acquire_timeout: float = DEFAULT_GATE_TIMEOUT,
        metrics: Optional[MetricsCollector] = None
    ):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        if acquire_timeout <= 0:
            raise ValueError("acquire_timeout must be positive")

        self.capacity = capacity
        self.acquire_timeout = acquire_timeout
        self.metrics = metrics
        self._semaphore = asyncio.Semaphore(capacity)
        self._ids = itertools.count(1)
        self._in_flight = 0
        self._peak_in_flight = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def peak_in_flight(self) -> int:
        return self._peak_in_flight

    async def acquire(self, batch_index: Optional[int] = None) -> GatePermit:
        """Wait for a free slot, at most ``acquire_timeout`` seconds."""
        started = time.monotonic()
        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=self.acquire_timeout)
        except asyncio.TimeoutError:
            logger.error(
                "Timed out waiting for gate permit",
                batch_index=batch_index,
                timeout_seconds=self.acquire_timeout,
                in_flight=self._in_flight
            )
            raise GateTimeoutError(self.acquire_timeout, batch_index=batch_index) from None

        self._in_flight += 1
        self._peak_in_flight = max(self._peak_in_flight, self._in_flight)
        if self.metrics:
            self.metrics.record_gate_wait(time.monotonic() - started)
            self.metrics.set_gate_in_flight(self._in_flight)

        return GatePermit(permit_id=next(self._ids), batch_index=batch_index)

    def release(self, permit: GatePermit) -> None:
        """Return a permit. Releasing twice raises ``RuntimeError``."""
        if permit.released:
            raise RuntimeError(f"Gate permit {permit.permit_id} already released")

        permit.released = True
        self._in_flight -= 1
        self._semaphore.release()
        if self.metrics:
            self.metrics.set_gate_in_flight(self._in_flight)

    @asynccontextmanager
    async def slot(self, batch_index: Optional[int] = None) -> AsyncIterator[GatePermit]:
        """Hold a permit for the duration of the block, released on every exit path."""
        permit = await self.acquire(batch_index)
        try:
            yield permit
        finally:
            self.release(permit)
