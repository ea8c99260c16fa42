"""Batched, concurrency-bounded, retrying embedding pipeline.

Subpackages:
- ``batch_embedder.common``: configuration, logging, metrics, errors, and text
  sanitizing shared by every layer.
- ``batch_embedder.pipeline``: planner, retry policy, concurrency gate,
  cancellation signal, result assembler, and the orchestrating pipeline.
- ``batch_embedder.providers``: single-batch callers for OpenAI-compatible and
  Ollama endpoints plus a small factory.
- ``batch_embedder.service``: ``EmbeddingService`` entry point and FastAPI app.

Notes:
- The pipeline is provider-agnostic; anything implementing
  ``providers.base.EmbeddingProvider`` can be plugged in.
"""

__version__ = "0.1.0"
