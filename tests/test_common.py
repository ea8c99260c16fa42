"""Tests for common utilities."""

import pytest
from prometheus_client import CollectorRegistry

from batch_embedder.common.config import (
    BaseConfig,
    PipelineConfig,
    ProviderConfig,
    ServiceConfig,
    get_config,
)
from batch_embedder.common.errors import (
    AuthError,
    BadRequestError,
    ConfigurationError,
    ProviderTimeoutError,
    RateLimitedError,
    ServerError,
    error_from_status,
)
from batch_embedder.common.logging import configure_logging, log_performance
from batch_embedder.common.metrics import MetricsCollector
from batch_embedder.common.security import EMPTY_TEXT_MARKER, DataMasker, TextSanitizer


def test_config_loading():
    """Test configuration loading."""
    config = BaseConfig()
    assert config.embed_env == "local"
    assert config.embed_log_level == "INFO"
    assert config.embed_log_format == "json"


def test_pipeline_config_defaults():
    """Test pipeline configuration defaults."""
    config = PipelineConfig()
    assert config.embed_max_batch_size == 5
    assert config.embed_max_concurrent_requests == 3
    assert config.embed_max_retries == 3
    assert config.embed_initial_backoff == 1.0
    assert config.embed_max_backoff == 30.0
    assert config.embed_gate_timeout == 600.0


def test_pipeline_config_from_env(monkeypatch):
    """Environment variables are read case-insensitively."""
    monkeypatch.setenv("EMBED_MAX_BATCH_SIZE", "8")
    monkeypatch.setenv("EMBED_MAX_RETRIES", "1")
    config = PipelineConfig()
    assert config.embed_max_batch_size == 8
    assert config.embed_max_retries == 1


def test_invalid_config_raises_configuration_error():
    with pytest.raises(ConfigurationError):
        get_config("pipeline", embed_max_batch_size=0)

    with pytest.raises(ConfigurationError):
        get_config("pipeline", embed_initial_backoff=10.0, embed_max_backoff=1.0)


def test_service_config_combines_pipeline_and_provider():
    config = get_config("service")
    assert isinstance(config, ServiceConfig)
    assert isinstance(config, PipelineConfig)
    assert isinstance(config, ProviderConfig)
    assert config.embed_service_port == 9006
    assert config.embed_provider == "openai"
    assert config.embed_max_chars_per_text == 8000


@pytest.mark.parametrize(
    "status, error_type, expected",
    [
        (408, None, ProviderTimeoutError),
        (429, None, RateLimitedError),
        (400, "rate_limit_exceeded", RateLimitedError),
        (500, None, ServerError),
        (503, None, ServerError),
        (401, None, AuthError),
        (403, None, AuthError),
        (400, None, BadRequestError),
        (413, None, BadRequestError),
    ],
)
def test_error_from_status(status, error_type, expected):
    error = error_from_status(status, "boom", error_type=error_type, provider="openai")
    assert type(error) is expected
    assert error.status_code == status
    assert error.provider == "openai"


def test_logging_configuration():
    """Test logging configuration."""
    # This should not raise an exception
    configure_logging("test-service", "INFO", "json")
    configure_logging("test-service", "debug", "console")
    log_performance("unit_test", 1.5, items=3)


def test_metrics_collector():
    """Test metrics collector."""
    collector = MetricsCollector("test-service", registry=CollectorRegistry())
    assert collector.service_name == "test-service"

    collector.record_http_request("POST", "/api/v1/embed", 200, 0.1)
    collector.record_pipeline_run("fake", "batched", 0.2)
    collector.record_batch_outcome("fake", "failed", 0.05)
    collector.record_attempt("fake", "error")
    collector.record_retry("fake", "ServerError")
    collector.record_placeholders("fake", 5)
    collector.set_gate_in_flight(2)
    collector.record_gate_wait(0.01)

    metrics = collector.get_metrics()
    assert isinstance(metrics, str)
    assert "http_requests_total" in metrics
    sample = collector.registry.get_sample_value
    assert sample("embedding_batch_outcomes_total", {"provider": "fake", "status": "failed"}) == 1.0
    assert sample("embedding_placeholder_items_total", {"provider": "fake"}) == 5.0


def test_text_sanitizer_preserves_count():
    sanitizer = TextSanitizer(max_chars=10)
    cleaned = sanitizer.sanitize_texts(["hello", "", "   ", None, "a\x00b\ufffdc", "x" * 25])
    assert cleaned == [
        "hello",
        EMPTY_TEXT_MARKER,
        EMPTY_TEXT_MARKER,
        EMPTY_TEXT_MARKER,
        "abc",
        "x" * 10,
    ]


def test_text_sanitizer_rejects_non_strings():
    with pytest.raises(ValueError):
        TextSanitizer().sanitize_text(42)


def test_data_masker():
    masker = DataMasker(max_body_chars=20)
    masked = masker.mask_sensitive_data({"api_key": "sk-123", "nested": {"token": "t"}, "model": "m"})
    assert masked["api_key"] == "***MASKED***"
    assert masked["nested"]["token"] == "***MASKED***"
    assert masked["model"] == "m"

    assert "sk-" not in masker.mask_sensitive_data("Authorization: Bearer sk-abcdef")
    assert masker.truncate_body("y " * 50).endswith("...")
