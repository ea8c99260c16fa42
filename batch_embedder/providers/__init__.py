"""Embedding provider adapters."""

from .base import EmbeddingProvider
from .factory import ProviderFactory, ProviderType, create_provider_from_config
from .ollama import OllamaEmbeddingProvider
from .openai import OpenAIEmbeddingProvider

__all__ = [
    "EmbeddingProvider",
    "OllamaEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "ProviderFactory",
    "ProviderType",
    "create_provider_from_config",
]
