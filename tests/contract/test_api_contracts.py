"""Contract tests for the embedding service's OpenAPI schema."""

import pytest

from batch_embedder.service.main import create_app


@pytest.fixture
def openapi():
    """Generated OpenAPI document; no lifespan or provider needed."""
    return create_app().openapi()


def _schema(openapi, name):
    return openapi["components"]["schemas"][name]


@pytest.mark.contract
class TestAPIContracts:
    """Public endpoints and payload shapes stay stable across releases."""

    def test_paths_are_published(self, openapi):
        paths = openapi["paths"]
        assert "post" in paths["/api/v1/embed"]
        assert "post" in paths["/api/v1/embed/one"]
        assert "post" in paths["/api/v1/embed/{request_id}/cancel"]
        assert "post" in paths["/api/v1/cancel"]
        for probe in ("/health", "/live", "/metrics", "/"):
            assert "get" in paths[probe]

    def test_embed_request_contract(self, openapi):
        schema = _schema(openapi, "EmbedRequest")
        assert schema["required"] == ["texts"]
        assert schema["properties"]["texts"]["type"] == "array"
        assert "request_id" in schema["properties"]

    def test_embed_response_contract(self, openapi):
        schema = _schema(openapi, "EmbedResponse")
        assert set(schema["required"]) >= {
            "request_id",
            "results",
            "count",
            "placeholder_indices",
            "failed_batches",
            "skipped_batches",
            "cancelled",
            "latency_ms",
        }

        item = _schema(openapi, "EmbeddingItem")
        assert set(item["properties"]) == {"index", "vector", "token_count", "placeholder"}

    def test_cancel_response_contract(self, openapi):
        schema = _schema(openapi, "CancelResponse")
        assert schema["required"] == ["cancelled"]
