"""HTTP surface and caller-facing entry point."""

from .embedding_service import EmbeddingService

__all__ = ["EmbeddingService"]
