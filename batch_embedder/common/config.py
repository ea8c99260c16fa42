"""Configuration management for the batch embedder.

Centralizes environment-driven configuration for the pipeline, the provider
adapters, and the HTTP service. It builds on ``pydantic_settings.BaseSettings``
so values can be provided via environment variables, ``.env`` files, or
defaults. Field names double as (case-insensitive) environment variable names.

Highlights
- Strongly-typed settings with range validation
- One place to discover every tunable the pipeline reads
- Small purpose-specific subclasses to keep concerns clear

Usage
- ``config = PipelineConfig()`` in code that builds a pipeline
- Or select dynamically: ``config = get_config("provider")``
"""

from typing import Any, Optional

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError


class BaseConfig(BaseSettings):
    """Base configuration shared by every component.

    Notes
    - Add new shared settings here so the specialised configs inherit them.
    - Prefer declaring a field over reading ``os.environ`` directly.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    embed_env: str = Field(default="local")

    # Logging
    embed_log_level: str = Field(default="INFO")
    embed_log_format: str = Field(default="json")


class PipelineConfig(BaseConfig):
    """Batching, concurrency, and retry knobs for ``BatchEmbeddingPipeline``."""

    embed_max_batch_size: int = Field(default=5, ge=1)
    embed_max_concurrent_requests: int = Field(default=3, ge=1)
    embed_max_retries: int = Field(default=3, ge=0)
    embed_initial_backoff: float = Field(default=1.0, ge=0.0)
    embed_max_backoff: float = Field(default=30.0, ge=0.0)
    embed_jitter_ratio: float = Field(default=0.2, ge=0.0, le=1.0)
    embed_gate_timeout: float = Field(default=600.0, gt=0.0)

    @model_validator(mode="after")
    def _check_backoff_bounds(self) -> "PipelineConfig":
        if self.embed_max_backoff < self.embed_initial_backoff:
            raise ValueError("embed_max_backoff must be >= embed_initial_backoff")
        return self


class ProviderConfig(BaseConfig):
    """Selection and connection settings for the embedding provider.

    ``embed_dimensions`` overrides the model-derived vector size; it is also
    what placeholder vectors are sized from.
    """

    embed_provider: str = Field(default="openai")
    embed_api_url: Optional[str] = Field(default=None)
    embed_api_key: Optional[str] = Field(default=None)
    embed_model: Optional[str] = Field(default=None)
    embed_dimensions: Optional[int] = Field(default=None, ge=1)
    embed_request_timeout: Optional[float] = Field(default=None, gt=0.0)
    embed_provider_batch_size: Optional[int] = Field(default=None, ge=1)
    embed_max_chars_per_text: int = Field(default=8000, ge=1)


class ServiceConfig(PipelineConfig, ProviderConfig):
    """Configuration for the HTTP embedding service."""

    embed_service_port: int = Field(default=9006)
    embed_service_name: str = Field(default="embedding-service")


def get_config(name: str, **overrides: Any) -> BaseConfig:
    """Get configuration by logical name.

    Parameters
    - name: ``pipeline``, ``provider``, or ``service``
    - overrides: Field values taking precedence over the environment

    Raises
    - ``ConfigurationError`` when values fail validation
    """
    config_map = {
        "pipeline": PipelineConfig,
        "provider": ProviderConfig,
        "service": ServiceConfig,
    }

    config_class = config_map.get(name, BaseConfig)
    return load_config(config_class, **overrides)


def load_config(config_class: type, **overrides: Any) -> Any:
    """Instantiate ``config_class`` translating validation failures."""
    try:
        return config_class(**overrides)
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        key = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ConfigurationError(f"Invalid configuration: {exc}", key=key) from exc
