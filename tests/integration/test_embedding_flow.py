"""End-to-end flow: service -> pipeline -> provider adapters -> mocked HTTP."""

import json

import httpx
import pytest
from prometheus_client import CollectorRegistry

from batch_embedder.common.config import PipelineConfig, ServiceConfig
from batch_embedder.common.metrics import MetricsCollector
from batch_embedder.pipeline.orchestrator import BatchEmbeddingPipeline
from batch_embedder.providers.factory import create_provider_from_config
from batch_embedder.providers.ollama import OllamaEmbeddingProvider
from batch_embedder.service.embedding_service import EmbeddingService


class EmbeddingsBackend:
    """Fake ``/embeddings`` endpoint failing requests that contain given texts."""

    def __init__(self, failing_text=None, status=500, dimensions=8):
        self.failing_text = failing_text
        self.status = status
        self.dimensions = dimensions
        self.requests = []

    def __call__(self, request):
        body = json.loads(request.content)
        self.requests.append(body["input"])

        if self.failing_text is not None and self.failing_text in body["input"]:
            return httpx.Response(self.status, json={"error": {"type": "server_error", "message": "upstream failed"}})

        return httpx.Response(200, json={
            "data": [
                {"index": i, "embedding": [float(text.split()[-1])] * self.dimensions}
                for i, text in enumerate(body["input"])
            ],
            "usage": {"total_tokens": 2 * len(body["input"])},
        })


def _service(backend, **overrides):
    config = ServiceConfig(
        embed_provider="openai",
        embed_api_key="sk-integration",
        embed_dimensions=backend.dimensions,
        embed_initial_backoff=0.0,
        embed_max_backoff=0.0,
        **overrides
    )
    client = httpx.AsyncClient(transport=httpx.MockTransport(backend))
    provider = create_provider_from_config(config, client=client)
    metrics = MetricsCollector("integration", registry=CollectorRegistry())
    return EmbeddingService(provider, config, metrics=metrics)


@pytest.mark.asyncio
async def test_twelve_texts_with_failing_middle_batch():
    backend = EmbeddingsBackend(failing_text="text 7")
    service = _service(backend, embed_max_concurrent_requests=2)

    result = await service.embed_with_report([f"text {i}" for i in range(12)])

    assert len(backend.requests) == 6
    assert [r.item_index for r in result.results] == list(range(12))
    assert result.report.placeholder_indices == [5, 6, 7, 8, 9]
    for index in (0, 4, 10, 11):
        assert result.results[index].vector == [float(index)] * 8
    assert result.results[7].vector == [0.0] * 8
    assert result.report.total_tokens == 14


@pytest.mark.asyncio
async def test_auth_failure_is_not_retried():
    backend = EmbeddingsBackend(failing_text="text 0", status=401)
    service = _service(backend)

    vectors = await service.embed([f"text {i}" for i in range(10)])

    assert len(backend.requests) == 2
    assert vectors[0] == [0.0] * 8
    assert vectors[9] == [9.0] * 8


@pytest.mark.asyncio
async def test_embed_one_round_trip():
    backend = EmbeddingsBackend()
    service = _service(backend)

    assert await service.embed_one("text 3") == [3.0] * 8
    assert backend.requests == [["text 3"]]


class OllamaBackend:
    """Fake ``/api/embed`` endpoint returning vectors of a fixed length."""

    def __init__(self, dimensions, failing_text=None):
        self.dimensions = dimensions
        self.failing_text = failing_text
        self.requests = []

    def __call__(self, request):
        body = json.loads(request.content)
        self.requests.append(body["input"])

        if self.failing_text is not None and self.failing_text in body["input"]:
            return httpx.Response(500, json={"error": "model crashed"})

        return httpx.Response(200, json={
            "model": body["model"],
            "embeddings": [[float(text.split()[-1])] * self.dimensions for text in body["input"]],
            "prompt_eval_count": len(body["input"]),
        })


def _ollama_pipeline(backend, model):
    client = httpx.AsyncClient(transport=httpx.MockTransport(backend))
    provider = OllamaEmbeddingProvider(model=model, client=client)
    config = PipelineConfig(embed_initial_backoff=0.0, embed_max_backoff=0.0, embed_max_retries=0)
    return provider, BatchEmbeddingPipeline(provider, config)


@pytest.mark.asyncio
async def test_ollama_model_without_known_size_keeps_real_vectors():
    backend = OllamaBackend(dimensions=1024)
    provider, pipeline = _ollama_pipeline(backend, "bge-m3")

    result = await pipeline.run_with_report([f"text {i}" for i in range(12)])

    assert provider.dimensions == 768
    assert not provider.dimensions_declared
    assert len(backend.requests) == 3
    assert result.report.placeholder_indices == []
    assert result.report.errors() == []
    assert result.report.dimensions == 1024
    assert [r.vector for r in result.results] == [[float(i)] * 1024 for i in range(12)]


@pytest.mark.asyncio
async def test_ollama_placeholders_use_learned_size():
    backend = OllamaBackend(dimensions=1024, failing_text="text 7")
    _, pipeline = _ollama_pipeline(backend, "snowflake-arctic-embed")

    result = await pipeline.run_with_report([f"text {i}" for i in range(12)], max_concurrency=1)

    assert result.report.placeholder_indices == [5, 6, 7, 8, 9]
    assert result.results[7].vector == [0.0] * 1024
    assert result.results[11].vector == [11.0] * 1024


@pytest.mark.asyncio
async def test_service_reports_learned_size():
    backend = OllamaBackend(dimensions=1024)
    client = httpx.AsyncClient(transport=httpx.MockTransport(backend))
    config = ServiceConfig(embed_provider="ollama", embed_model="bge-m3")
    service = EmbeddingService(create_provider_from_config(config, client=client), config)

    vector = await service.embed_one("text 2")

    assert vector == [2.0] * 1024
