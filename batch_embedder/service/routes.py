"""API routes for the embedding service."""

import time
import uuid
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from .embedding_service import EmbeddingService

logger = structlog.get_logger("service.api")

router = APIRouter()


class EmbedRequest(BaseModel):
    """Request model for the batch embedding endpoint."""
    texts: List[str] = Field(..., description="Texts to embed, in order")
    request_id: Optional[str] = Field(None, description="Handle for cancelling this request")


class EmbedOneRequest(BaseModel):
    """Request model for the single-text endpoint."""
    text: str = Field(..., description="Text to embed")


class EmbeddingItem(BaseModel):
    index: int = Field(..., description="Position of the text in the request")
    vector: List[float] = Field(..., description="Embedding vector")
    token_count: int = Field(0, description="Tokens attributed to this text")
    placeholder: bool = Field(False, description="True when the vector is a zero placeholder")


class EmbedResponse(BaseModel):
    """Response model for the batch embedding endpoint."""
    request_id: str = Field(..., description="Request handle")
    provider: str = Field(..., description="Provider that produced the vectors")
    dimensions: int = Field(..., description="Vector length")
    results: List[EmbeddingItem] = Field(..., description="One entry per input text")
    count: int = Field(..., description="Number of results")
    placeholder_indices: List[int] = Field(..., description="Positions that received zero vectors")
    failed_batches: int = Field(..., description="Batches that failed")
    skipped_batches: int = Field(..., description="Batches skipped after cancellation")
    cancelled: bool = Field(..., description="Whether the request was cancelled")
    latency_ms: float = Field(..., description="Processing latency in milliseconds")


class EmbedOneResponse(BaseModel):
    vector: List[float] = Field(..., description="Embedding vector")
    dimensions: int = Field(..., description="Vector length")
    latency_ms: float = Field(..., description="Processing latency in milliseconds")


class CancelResponse(BaseModel):
    cancelled: bool = Field(..., description="Whether a cancellation was delivered")
    request_id: Optional[str] = Field(None, description="Cancelled request, if one was named")


def get_embedding_service(request: Request) -> EmbeddingService:
    """Get the embedding service from application state."""
    service = getattr(request.app.state, "embedding_service", None)
    if service is None:
        error = getattr(request.app.state, "startup_error", "Embedding service not initialized")
        raise HTTPException(status_code=503, detail=error)
    return service


@router.post("/embed", response_model=EmbedResponse)
async def embed(
    request: EmbedRequest,
    service: EmbeddingService = Depends(get_embedding_service)
):
    """Embed a list of texts, keeping their order."""
    start_time = time.time()
    request_id = request.request_id or uuid.uuid4().hex

    try:
        result = await service.embed_with_report(request.texts, request_id=request_id)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))

    report = result.report
    latency_ms = (time.time() - start_time) * 1000
    logger.info(
        "Embed request served",
        count=len(result.results),
        placeholders=len(report.placeholder_indices),
        latency_ms=latency_ms
    )

    return EmbedResponse(
        request_id=request_id,
        provider=service.provider.provider_id,
        dimensions=report.dimensions,
        results=[
            EmbeddingItem(
                index=item.item_index,
                vector=item.vector,
                token_count=item.token_count,
                placeholder=item.is_placeholder
            )
            for item in result.results
        ],
        count=len(result.results),
        placeholder_indices=report.placeholder_indices,
        failed_batches=report.failed_batches,
        skipped_batches=report.skipped_batches,
        cancelled=report.cancelled,
        latency_ms=latency_ms
    )


@router.post("/embed/one", response_model=EmbedOneResponse)
async def embed_one(
    request: EmbedOneRequest,
    service: EmbeddingService = Depends(get_embedding_service)
):
    """Embed a single text."""
    start_time = time.time()
    vector = await service.embed_one(request.text)
    return EmbedOneResponse(
        vector=vector,
        dimensions=len(vector),
        latency_ms=(time.time() - start_time) * 1000
    )


@router.post("/embed/{request_id}/cancel", response_model=CancelResponse)
async def cancel_request(
    request_id: str,
    service: EmbeddingService = Depends(get_embedding_service)
):
    """Cancel one in-progress request."""
    if not service.cancel(request_id):
        raise HTTPException(status_code=404, detail=f"Request {request_id} is not running")
    return CancelResponse(cancelled=True, request_id=request_id)


@router.post("/cancel", response_model=CancelResponse)
async def cancel_all(service: EmbeddingService = Depends(get_embedding_service)):
    """Cancel every in-progress request."""
    service.cancel()
    return CancelResponse(cancelled=True)


@router.get("/provider")
async def provider_info(service: EmbeddingService = Depends(get_embedding_service)):
    """Describe the configured provider."""
    info = service.provider.describe()
    info["active_requests"] = len(service.active_requests)
    return info
