"""Provider factory.

Centralizes creation of concrete ``EmbeddingProvider`` backends so callers
depend only on the base interface. The provider is always chosen explicitly
by configuration; there is no auto-detection.
"""

from enum import Enum
from typing import Any, Optional

import httpx
import structlog

from ..common.config import ProviderConfig
from ..common.errors import ConfigurationError
from ..common.security import TextSanitizer
from .base import EmbeddingProvider
from .ollama import OllamaEmbeddingProvider
from .openai import OpenAIEmbeddingProvider

logger = structlog.get_logger("providers.factory")


class ProviderType(Enum):
    """Supported provider types."""
    OPENAI = "openai"
    OLLAMA = "ollama"


class ProviderFactory:
    """Factory for creating provider instances."""

    @staticmethod
    def create(
        provider_type: ProviderType,
        config: ProviderConfig,
        client: Optional[httpx.AsyncClient] = None,
        **kwargs: Any
    ) -> EmbeddingProvider:
        """Create a provider instance.

        Parameters
        - provider_type: A ``ProviderType`` enum value
        - config: Connection settings
        - client: Optional shared ``httpx.AsyncClient``
        - kwargs: Overrides forwarded to the implementation
        """
        sanitizer = TextSanitizer(max_chars=config.embed_max_chars_per_text)
        common = dict(
            api_url=config.embed_api_url,
            model=config.embed_model,
            dimensions=config.embed_dimensions,
            timeout=config.embed_request_timeout,
            batch_size=config.embed_provider_batch_size,
            client=client,
            sanitizer=sanitizer,
        )
        common.update(kwargs)

        if provider_type == ProviderType.OPENAI:
            return OpenAIEmbeddingProvider(api_key=config.embed_api_key, **common)
        elif provider_type == ProviderType.OLLAMA:
            return OllamaEmbeddingProvider(**common)
        else:
            raise ConfigurationError(f"Unsupported provider type: {provider_type}", key="embed_provider")


def create_provider_from_config(
    config: Optional[ProviderConfig] = None,
    client: Optional[httpx.AsyncClient] = None
) -> EmbeddingProvider:
    """Create the provider named by ``config.embed_provider``.

    Raises
    - ``ConfigurationError`` for an unknown provider name or when the
      resulting provider is not usable (e.g. OpenAI without a key)
    """
    config = config or ProviderConfig()
    name = config.embed_provider.strip().lower()
    try:
        provider_type = ProviderType(name)
    except ValueError:
        raise ConfigurationError(
            f"Unsupported provider type: {config.embed_provider}",
            key="embed_provider"
        ) from None

    provider = ProviderFactory.create(provider_type, config, client=client)
    if not provider.is_configured():
        raise ConfigurationError(
            f"{provider.display_name} is not configured; set EMBED_API_KEY or EMBED_API_URL",
            key="embed_api_key"
        )

    logger.info(
        "Embedding provider created",
        provider=provider.provider_id,
        name=provider.display_name,
        dimensions=provider.dimensions,
        max_batch_size=provider.max_batch_size
    )
    return provider
