"""Batching, retry, concurrency, and reassembly for embedding requests."""

from .assembler import ResultAssembler, assemble
from .cancellation import CancellationSignal
from .gate import ConcurrencyGate, GatePermit
from .models import (
    Batch,
    BatchOutcome,
    BatchState,
    BatchVector,
    EmbeddingResult,
    Failed,
    InputItem,
    PipelineReport,
    PipelineResult,
    RetryState,
    Skipped,
    Success,
    make_items,
)
from .orchestrator import BatchEmbeddingPipeline
from .planner import plan, plan_texts
from .retry_handler import ErrorClass, RetryConfig, RetryHandler, RetryPolicy, classify_error, compute_backoff

__all__ = [
    "Batch",
    "BatchEmbeddingPipeline",
    "BatchOutcome",
    "BatchState",
    "BatchVector",
    "CancellationSignal",
    "ConcurrencyGate",
    "EmbeddingResult",
    "ErrorClass",
    "Failed",
    "GatePermit",
    "InputItem",
    "PipelineReport",
    "PipelineResult",
    "ResultAssembler",
    "RetryConfig",
    "RetryHandler",
    "RetryPolicy",
    "RetryState",
    "Skipped",
    "Success",
    "assemble",
    "classify_error",
    "compute_backoff",
    "make_items",
    "plan",
    "plan_texts",
]
