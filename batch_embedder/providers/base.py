"""Base embedding provider interface.

Defines the single-batch contract the pipeline depends on, independent of the
backing service (OpenAI-compatible HTTP APIs, a local Ollama daemon, etc.).

A provider embeds exactly one batch per ``call``. It does not retry, throttle
or reorder; those concerns belong to ``BatchEmbeddingPipeline``.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..pipeline.models import Batch, BatchVector


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers.

    Implementations must raise a ``ProviderError`` subclass on failure so the
    retry policy can classify it, and must return vectors whose
    ``item_index`` refers to the position inside the batch.
    """

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Stable identifier used in logs and metric labels."""
        pass

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable name including the model."""
        pass

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Vector length produced by the configured model."""
        pass

    @property
    def dimensions_declared(self) -> bool:
        """True when ``dimensions`` is authoritative.

        When False, ``dimensions`` is only a guess from the model name; the
        pipeline then takes the length from the first valid response instead
        of rejecting vectors that do not match it.
        """
        return True

    @property
    def max_batch_size(self) -> int:
        """Largest number of texts accepted in one request."""
        return 5

    @property
    def max_tokens(self) -> int:
        """Approximate per-text token limit of the model."""
        return 8192

    @abstractmethod
    async def call(self, batch: Batch) -> List[BatchVector]:
        """Embed every text of ``batch`` in one request.

        Returns
        - One ``BatchVector`` per item with batch-local ``item_index``

        Raises
        - ``ProviderError`` (or a subclass) describing the failure
        """
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """True when the provider has what it needs to make requests."""
        pass

    async def health_check(self) -> bool:
        """Report whether the backend is reachable."""
        return self.is_configured()

    async def close(self) -> None:
        """Release network resources."""
        pass

    def describe(self) -> Dict[str, Any]:
        """Summary used by the service's status endpoints."""
        return {
            "provider": self.provider_id,
            "name": self.display_name,
            "dimensions": self.dimensions,
            "dimensions_declared": self.dimensions_declared,
            "max_batch_size": self.max_batch_size,
            "max_tokens": self.max_tokens,
            "configured": self.is_configured(),
        }


def split_tokens(total_tokens: Optional[int], count: int) -> List[int]:
    """Spread a request-level token count evenly across ``count`` items."""
    if count <= 0:
        return []
    if not total_tokens or total_tokens < 0:
        return [0] * count
    per_item, remainder = divmod(total_tokens, count)
    return [per_item + (1 if i < remainder else 0) for i in range(count)]
