"""Ollama embeddings provider for locally hosted models."""

import time
from typing import Any, Dict, List, Optional

import httpx
import structlog

from ..common.errors import ParseError, ProviderError
from ..common.security import TextSanitizer
from ..pipeline.models import Batch, BatchVector
from .base import split_tokens
from .http import HttpEmbeddingProvider

logger = structlog.get_logger("providers.ollama")

DEFAULT_API_URL = "http://localhost:11434"
DEFAULT_MODEL = "nomic-embed-text"
DEFAULT_TIMEOUT = 60.0
DEFAULT_BATCH_SIZE = 5
AVAILABILITY_CACHE_TTL = 30.0

MODEL_DIMENSIONS = {
    "nomic-embed-text": 768,
    "all-minilm": 384,
    "bge-small": 384,
    "mxbai-embed-large": 1024,
}


def dimensions_for_model(model: str) -> int:
    for family, size in MODEL_DIMENSIONS.items():
        if family in model:
            return size
    return 768


class OllamaEmbeddingProvider(HttpEmbeddingProvider):
    """Embeds batches with a local Ollama daemon via ``POST /api/embed``.

    Availability is probed through ``GET /api/tags`` and cached for
    ``AVAILABILITY_CACHE_TTL`` seconds so health checks stay cheap.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
        timeout: Optional[float] = None,
        batch_size: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
        sanitizer: Optional[TextSanitizer] = None,
        clock=time.monotonic
    ):
        super().__init__(
            api_url or DEFAULT_API_URL,
            timeout or DEFAULT_TIMEOUT,
            client=client,
            sanitizer=sanitizer
        )
        self.model = model or DEFAULT_MODEL
        self._dimensions_declared = dimensions is not None
        self._dimensions = dimensions or dimensions_for_model(self.model)
        self._batch_size = batch_size or DEFAULT_BATCH_SIZE
        self._clock = clock
        self._available: Optional[bool] = None
        self._checked_at = 0.0

    @property
    def provider_id(self) -> str:
        return "ollama"

    @property
    def display_name(self) -> str:
        return f"Ollama ({self.model})"

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def dimensions_declared(self) -> bool:
        return self._dimensions_declared

    @property
    def max_batch_size(self) -> int:
        return self._batch_size

    @property
    def max_tokens(self) -> int:
        return 2048

    def is_configured(self) -> bool:
        """Needs no credentials; only an endpoint and a model."""
        return bool(self.api_url and self.model)

    async def call(self, batch: Batch) -> List[BatchVector]:
        texts = self.sanitizer.sanitize_texts(batch.texts)
        response = await self._request(
            "POST",
            "/api/embed",
            json={"model": self.model, "input": texts}
        )
        body = self._parse_json(response)

        embeddings = body.get("embeddings")
        if not isinstance(embeddings, list) or not embeddings:
            raise ParseError(
                "Ollama returned no embeddings for batch request",
                provider=self.provider_id
            )

        tokens = split_tokens(body.get("prompt_eval_count"), len(embeddings))
        vectors = []
        for index, embedding in enumerate(embeddings):
            if not isinstance(embedding, list):
                raise ParseError(
                    f"Embedding {index} is not a list",
                    provider=self.provider_id
                )
            try:
                vector = [float(value) for value in embedding]
            except (TypeError, ValueError) as e:
                raise ParseError(
                    f"Embedding {index} contains non-numeric values",
                    provider=self.provider_id
                ) from e
            vectors.append(BatchVector(item_index=index, vector=vector, token_count=tokens[index]))
        return vectors

    async def health_check(self) -> bool:
        """True when the daemon answers and has the configured model pulled."""
        now = self._clock()
        if self._available is not None and now - self._checked_at < AVAILABILITY_CACHE_TTL:
            return self._available

        self._available = await self._probe()
        self._checked_at = now
        return self._available

    async def _probe(self) -> bool:
        try:
            response = await self._request("GET", "/api/tags")
            body = self._parse_json(response)
        except ProviderError as e:
            logger.warning("Ollama availability check failed", url=self.api_url, error=str(e))
            return False

        names = [model.get("name", "") for model in body.get("models", []) if isinstance(model, dict)]
        found = self._has_model(names)
        if not found:
            logger.warning("Ollama model not pulled", model=self.model, available=names)
        return found

    def _has_model(self, names: List[str]) -> bool:
        return any(name == self.model or name.startswith(self.model + ":") for name in names)

    def describe(self) -> Dict[str, Any]:
        summary = super().describe()
        summary["available"] = self._available
        return summary
