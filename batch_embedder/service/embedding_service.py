"""Entry point used by callers that need embeddings.

``EmbeddingService`` owns one provider and one ``BatchEmbeddingPipeline`` and
exposes the small surface the rest of an application needs: embed many
texts, embed one text, and cancel work in progress.
"""

import uuid
from typing import Dict, List, Optional, Sequence

import structlog

from ..common.config import ServiceConfig
from ..common.metrics import MetricsCollector
from ..pipeline.cancellation import CancellationSignal
from ..pipeline.models import PipelineResult
from ..pipeline.orchestrator import BatchEmbeddingPipeline
from ..providers.base import EmbeddingProvider
from ..providers.factory import create_provider_from_config

logger = structlog.get_logger("service.embedding_service")


class EmbeddingService:
    """Embeds texts through the batch pipeline.

    Every call returns as many vectors as texts were given, in the same
    order. Items whose batch failed or was cancelled come back as zero
    vectors; use ``embed_with_report`` to tell them apart.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        config: Optional[ServiceConfig] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        self.config = config or ServiceConfig()
        self.provider = provider
        self.metrics = metrics
        self.pipeline = BatchEmbeddingPipeline(provider, self.config, metrics=metrics)
        self._requests: Dict[str, CancellationSignal] = {}

    @classmethod
    def from_config(
        cls,
        config: Optional[ServiceConfig] = None,
        metrics: Optional[MetricsCollector] = None
    ) -> "EmbeddingService":
        """Build the provider named in ``config`` and wrap it."""
        config = config or ServiceConfig()
        return cls(create_provider_from_config(config), config, metrics=metrics)

    @property
    def dimensions(self) -> int:
        return self.provider.dimensions

    @property
    def active_requests(self) -> List[str]:
        return list(self._requests)

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed ``texts`` and return one vector per text."""
        result = await self.embed_with_report(texts)
        return result.vectors()

    async def embed_one(self, text: str) -> List[float]:
        """Embed a single text.

        Goes through the single-batch path, so a failure yields a zero vector
        rather than an exception.
        """
        result = await self.embed_with_report([text])
        return result.results[0].vector

    async def embed_with_report(
        self,
        texts: Sequence[str],
        request_id: Optional[str] = None
    ) -> PipelineResult:
        """Embed ``texts`` and keep the per-batch report.

        Parameters
        - texts: Texts in the order their vectors should come back
        - request_id: Handle for ``cancel(request_id)``; generated when omitted
        """
        request_id = request_id or uuid.uuid4().hex
        if request_id in self._requests:
            raise ValueError(f"Request {request_id} is already in progress")

        signal = CancellationSignal()
        self._requests[request_id] = signal
        log = logger.bind(request_id=request_id)
        log.info("Embedding request started", texts=len(texts), provider=self.provider.provider_id)

        try:
            result = await self.pipeline.run_with_report(list(texts), cancellation=signal)
        finally:
            self._requests.pop(request_id, None)

        if result.report.has_failures:
            log.warning(
                "Embedding request completed with placeholders",
                placeholders=len(result.report.placeholder_indices),
                failed_batches=result.report.failed_batches,
                skipped_batches=result.report.skipped_batches
            )
        else:
            log.info("Embedding request completed", texts=len(texts))
        return result

    def cancel(self, request_id: Optional[str] = None) -> bool:
        """Cancel one request, or every request when ``request_id`` is None.

        Returns ``False`` when the named request is not running.
        """
        if request_id is None:
            self.pipeline.cancel()
            return True

        signal = self._requests.get(request_id)
        if signal is None:
            logger.info("Cancel requested for unknown request", request_id=request_id)
            return False
        signal.cancel()
        return True

    async def health_check(self) -> bool:
        return await self.provider.health_check()

    async def close(self) -> None:
        """Cancel outstanding work and release the provider."""
        if self._requests:
            self.cancel()
        await self.provider.close()
        logger.info("Embedding service closed")
