"""OpenAI-compatible embeddings provider.

Works against api.openai.com and any service exposing the same
``POST /embeddings`` contract (Azure-style gateways, DashScope, vLLM, etc.).
"""

from typing import Any, Dict, List, Optional

import httpx
import structlog

from ..common.errors import ParseError
from ..common.security import TextSanitizer
from ..pipeline.models import Batch, BatchVector
from .base import split_tokens
from .http import HttpEmbeddingProvider

logger = structlog.get_logger("providers.openai")

DEFAULT_API_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "text-embedding-3-small"
DEFAULT_DIMENSIONS = 1536
DEFAULT_TIMEOUT = 180.0
DEFAULT_BATCH_SIZE = 5


def dimensions_for_model(model: str) -> int:
    """Vector size for well-known model families."""
    if "text-embedding-v" in model:
        return 1024
    if "large" in model:
        return 3072
    return DEFAULT_DIMENSIONS


class OpenAIEmbeddingProvider(HttpEmbeddingProvider):
    """Embeds batches through an OpenAI-compatible HTTP API.

    Parameters
    - api_key: Bearer token; optional for self-hosted endpoints
    - api_url: Base URL, ``https://api.openai.com/v1`` by default
    - model: Embedding model name
    - dimensions: Override for the model-derived vector size
    - batch_size: Texts per request accepted by the endpoint
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
        timeout: Optional[float] = None,
        batch_size: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
        sanitizer: Optional[TextSanitizer] = None
    ):
        super().__init__(
            api_url or DEFAULT_API_URL,
            timeout or DEFAULT_TIMEOUT,
            client=client,
            sanitizer=sanitizer
        )
        self.api_key = api_key
        self.model = model or DEFAULT_MODEL
        self._dimensions_declared = dimensions is not None
        self._dimensions = dimensions or dimensions_for_model(self.model)
        self._batch_size = batch_size or DEFAULT_BATCH_SIZE

    @property
    def provider_id(self) -> str:
        return "openai"

    @property
    def display_name(self) -> str:
        return f"OpenAI ({self.model})"

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def dimensions_declared(self) -> bool:
        return self._dimensions_declared

    @property
    def max_batch_size(self) -> int:
        return self._batch_size

    def is_configured(self) -> bool:
        """A key is set, or a non-default endpoint that may not need one."""
        if self.api_key:
            return True
        return self.api_url != DEFAULT_API_URL.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def call(self, batch: Batch) -> List[BatchVector]:
        texts = self.sanitizer.sanitize_texts(batch.texts)
        logger.debug(
            "Sending embedding request",
            batch_index=batch.batch_index,
            texts=len(texts),
            model=self.model
        )
        response = await self._request(
            "POST",
            "/embeddings",
            json={"model": self.model, "input": texts}
        )
        return self._parse_response(self._parse_json(response), len(texts))

    def _parse_response(self, body: Dict[str, Any], expected: int) -> List[BatchVector]:
        data = body.get("data")
        if not isinstance(data, list):
            raise ParseError(
                "Response is missing the 'data' array",
                provider=self.provider_id
            )

        usage = body.get("usage") or {}
        tokens = split_tokens(usage.get("total_tokens"), len(data))

        vectors = []
        for position, entry in enumerate(data):
            if not isinstance(entry, dict) or not isinstance(entry.get("embedding"), list):
                raise ParseError(
                    f"Entry {position} has no embedding",
                    provider=self.provider_id
                )
            index = entry.get("index", position)
            if not isinstance(index, int):
                raise ParseError(
                    f"Entry {position} has a non-integer index",
                    provider=self.provider_id
                )
            try:
                vector = [float(value) for value in entry["embedding"]]
            except (TypeError, ValueError) as e:
                raise ParseError(
                    f"Entry {position} contains non-numeric values",
                    provider=self.provider_id
                ) from e
            vectors.append(BatchVector(item_index=index, vector=vector, token_count=tokens[position]))

        if len(vectors) != expected:
            logger.warning(
                "Provider returned unexpected number of embeddings",
                expected=expected,
                received=len(vectors)
            )
        return vectors

    async def health_check(self) -> bool:
        """Configured providers are assumed healthy; no request is spent."""
        return self.is_configured()
