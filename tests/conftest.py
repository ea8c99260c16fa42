"""Shared fixtures: a scriptable in-memory provider and fast pipeline config."""

import asyncio
from typing import Callable, Dict, List, Optional

import pytest
from prometheus_client import CollectorRegistry

from batch_embedder.common.config import PipelineConfig, ServiceConfig
from batch_embedder.common.metrics import MetricsCollector
from batch_embedder.pipeline.models import Batch, BatchVector
from batch_embedder.providers.base import EmbeddingProvider


class FakeProvider(EmbeddingProvider):
    """Provider that embeds item ``i`` as ``[i, 1, 1, ...]``.

    Parameters
    - dimensions: Vector length
    - batch_size: Reported ``max_batch_size``
    - errors: Per ``batch_index`` queue of exceptions raised on successive
      calls; once empty the batch succeeds
    - always_fail: Per ``batch_index`` factory raising on every call
    - delay: Seconds each call takes
    - before_return: Hook called with the batch right before a call returns
    """

    def __init__(
        self,
        dimensions: int = 4,
        batch_size: int = 5,
        errors: Optional[Dict[int, List[BaseException]]] = None,
        always_fail: Optional[Dict[int, Callable[[], BaseException]]] = None,
        delay: float = 0.0,
        before_return: Optional[Callable[[Batch], None]] = None,
        reverse: bool = False
    ):
        self._dimensions = dimensions
        self._batch_size = batch_size
        self.errors = {k: list(v) for k, v in (errors or {}).items()}
        self.always_fail = always_fail or {}
        self.delay = delay
        self.before_return = before_return
        self.reverse = reverse
        self.calls: List[Batch] = []
        self.in_flight = 0
        self.peak_in_flight = 0
        self.closed = False

    @property
    def provider_id(self) -> str:
        return "fake"

    @property
    def display_name(self) -> str:
        return "Fake provider"

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def max_batch_size(self) -> int:
        return self._batch_size

    def is_configured(self) -> bool:
        return True

    def calls_for(self, batch_index: int) -> int:
        return sum(1 for batch in self.calls if batch.batch_index == batch_index)

    async def call(self, batch: Batch) -> List[BatchVector]:
        self.calls.append(batch)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            else:
                await asyncio.sleep(0)

            if batch.batch_index in self.always_fail:
                raise self.always_fail[batch.batch_index]()
            queue = self.errors.get(batch.batch_index)
            if queue:
                raise queue.pop(0)

            vectors = [
                BatchVector(
                    item_index=local,
                    vector=[float(item.index)] + [1.0] * (self._dimensions - 1),
                    token_count=1
                )
                for local, item in enumerate(batch.items)
            ]
            if self.reverse:
                vectors.reverse()
            if self.before_return is not None:
                self.before_return(batch)
            return vectors
        finally:
            self.in_flight -= 1

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def fast_config():
    """Default limits with zero backoff so retries do not sleep."""
    return PipelineConfig(embed_initial_backoff=0.0, embed_max_backoff=0.0)


@pytest.fixture
def fast_service_config():
    return ServiceConfig(
        embed_initial_backoff=0.0,
        embed_max_backoff=0.0,
        embed_log_format="console"
    )


@pytest.fixture
def metrics():
    return MetricsCollector("test-service", registry=CollectorRegistry())
