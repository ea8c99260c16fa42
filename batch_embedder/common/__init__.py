"""Common utilities shared across the embedder.

Includes:
- ``config``: pydantic-settings configuration read from environment variables.
- ``logging``: structured logging setup with structlog.
- ``metrics``: Prometheus collectors for pipeline and HTTP activity.
- ``errors``: the exception taxonomy used by providers and the pipeline.
- ``security``: text sanitizing for embedding input and log masking.

Import pattern:
- from batch_embedder.common.config import PipelineConfig
- from batch_embedder.common.logging import configure_logging
"""
