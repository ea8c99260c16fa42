"""Tests for ``EmbeddingService`` and the FastAPI application."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from batch_embedder.common.config import ServiceConfig
from batch_embedder.common.errors import ServerError
from batch_embedder.service.embedding_service import EmbeddingService
from batch_embedder.service.main import create_app

from .conftest import FakeProvider


def _server_error():
    return ServerError("Internal Server Error", status_code=500)


@pytest.mark.asyncio
async def test_embed_returns_one_vector_per_text(fast_service_config):
    service = EmbeddingService(FakeProvider(), fast_service_config)

    vectors = await service.embed([f"t{i}" for i in range(12)])

    assert len(vectors) == 12
    assert [v[0] for v in vectors] == [float(i) for i in range(12)]


@pytest.mark.asyncio
async def test_embed_one(fast_service_config):
    provider = FakeProvider()
    service = EmbeddingService(provider, fast_service_config)

    vector = await service.embed_one("hello")

    assert vector == [0.0, 1.0, 1.0, 1.0]
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_embed_one_failure_yields_placeholder(fast_service_config):
    provider = FakeProvider(always_fail={0: _server_error})
    service = EmbeddingService(provider, fast_service_config)

    assert await service.embed_one("hello") == [0.0] * 4
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_cancel_named_request(fast_service_config):
    provider = FakeProvider(delay=0.02)
    service = EmbeddingService(provider, fast_service_config)

    task = asyncio.create_task(
        service.embed_with_report([f"t{i}" for i in range(30)], request_id="job-1")
    )
    while "job-1" not in service.active_requests:
        await asyncio.sleep(0)

    assert service.cancel("job-1") is True
    result = await task

    assert result.report.cancelled
    assert result.report.skipped_batches > 0
    assert len(result.results) == 30
    assert service.active_requests == []
    assert service.cancel("job-1") is False


@pytest.mark.asyncio
async def test_cancel_all_requests(fast_service_config):
    service = EmbeddingService(FakeProvider(delay=0.02), fast_service_config)

    tasks = [
        asyncio.create_task(service.embed_with_report([f"t{i}" for i in range(30)], request_id=name))
        for name in ("a", "b")
    ]
    while service.pipeline.active_runs < 2:
        await asyncio.sleep(0)

    service.cancel()
    results = await asyncio.gather(*tasks)

    assert all(result.report.cancelled for result in results)


@pytest.mark.asyncio
async def test_duplicate_request_id_rejected(fast_service_config):
    service = EmbeddingService(FakeProvider(delay=0.02), fast_service_config)
    task = asyncio.create_task(service.embed_with_report(["a"] * 10, request_id="dup"))
    while "dup" not in service.active_requests:
        await asyncio.sleep(0)

    with pytest.raises(ValueError):
        await service.embed_with_report(["b"], request_id="dup")
    await task


@pytest.mark.asyncio
async def test_close_releases_provider(fast_service_config):
    provider = FakeProvider()
    service = EmbeddingService(provider, fast_service_config)
    await service.close()
    assert provider.closed


@pytest.fixture
def client(fast_service_config, metrics):
    provider = FakeProvider(always_fail={1: _server_error})
    service = EmbeddingService(provider, fast_service_config, metrics=metrics)
    app = create_app(service=service, config=fast_service_config, metrics=metrics)
    with TestClient(app) as test_client:
        yield test_client


def test_embed_endpoint(client):
    response = client.post("/api/v1/embed", json={"texts": [f"t{i}" for i in range(12)], "request_id": "r1"})

    assert response.status_code == 200
    assert "X-Process-Time" in response.headers
    data = response.json()
    assert data["request_id"] == "r1"
    assert data["provider"] == "fake"
    assert data["count"] == 12
    assert data["dimensions"] == 4
    assert [item["index"] for item in data["results"]] == list(range(12))
    assert data["placeholder_indices"] == [5, 6, 7, 8, 9]
    assert data["failed_batches"] == 1
    assert data["skipped_batches"] == 0
    assert data["cancelled"] is False
    assert data["results"][5]["placeholder"] is True
    assert data["results"][5]["vector"] == [0.0] * 4


def test_embed_endpoint_generates_request_id(client):
    data = client.post("/api/v1/embed", json={"texts": []}).json()
    assert data["count"] == 0
    assert data["request_id"]


def test_embed_endpoint_validates_payload(client):
    assert client.post("/api/v1/embed", json={"texts": "not a list"}).status_code == 422


def test_embed_one_endpoint(client):
    response = client.post("/api/v1/embed/one", json={"text": "hello"})
    assert response.status_code == 200
    assert response.json()["dimensions"] == 4


def test_cancel_endpoints(client):
    assert client.post("/api/v1/embed/unknown/cancel").status_code == 404
    response = client.post("/api/v1/cancel")
    assert response.status_code == 200
    assert response.json()["cancelled"] is True


def test_probes_and_metrics(client):
    assert client.get("/health").json()["status"] == "healthy"
    assert client.get("/live").json()["status"] == "alive"
    assert client.get("/").json()["service"] == "embedding-service"
    assert client.get("/api/v1/provider").json()["provider"] == "fake"

    client.post("/api/v1/embed", json={"texts": ["a", "b"]})
    metrics_text = client.get("/metrics").text
    assert "http_requests_total" in metrics_text
    assert "embedding_pipeline_runs_total" in metrics_text


def test_unconfigured_provider_returns_503(metrics):
    config = ServiceConfig(embed_provider="openai", embed_api_key=None, embed_api_url=None)
    app = create_app(config=config, metrics=metrics)

    with TestClient(app) as test_client:
        assert test_client.get("/health").status_code == 503
        response = test_client.post("/api/v1/embed", json={"texts": ["a"]})
        assert response.status_code == 503
        assert test_client.get("/live").status_code == 200
