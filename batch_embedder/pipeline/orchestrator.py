"""Batch embedding pipeline.

Turns an ordered list of texts into an equally long, equally ordered list of
vectors using a provider that embeds one small batch per request.

Flow for one invocation
- Empty input returns immediately without planning or network calls
- Input that fits into one batch is sent with exactly one direct call
- Otherwise every batch runs as its own task: check cancellation, acquire a
  gate permit, call with retries, release the permit, record the outcome
- Outcomes are assembled back into input order; failed or skipped batches
  contribute zero-vector placeholders

Batch failures never escape ``run``. The caller learns about them through
placeholders and the ``PipelineReport``.
"""

import asyncio
import random
import time
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Set, Tuple, Union

import structlog

from ..common.config import PipelineConfig
from ..common.errors import ConfigurationError, ParseError, PipelineCancelledError
from ..common.logging import log_performance
from ..common.metrics import MetricsCollector
from .assembler import ResultAssembler
from .cancellation import CancellationSignal
from .gate import ConcurrencyGate
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
from .planner import plan
from .retry_handler import RetryConfig, RetryHandler, RetryPolicy

if TYPE_CHECKING:
    from ..providers.base import EmbeddingProvider

logger = structlog.get_logger("pipeline.orchestrator")

Inputs = Union[Sequence[str], Sequence[InputItem]]


class RunDimensions:
    """Vector length shared by every batch of one run.

    Starts from the provider's size when it is declared; otherwise the first
    valid response fixes it and later responses must match.
    """

    def __init__(self, declared: Optional[int] = None):
        self.declared = declared
        self.observed: Optional[int] = None

    @property
    def value(self) -> Optional[int]:
        return self.declared if self.declared is not None else self.observed

    def resolve(self, fallback: int) -> int:
        """Length to use for placeholders and the report."""
        value = self.value
        return value if value is not None else fallback


class BatchEmbeddingPipeline:
    """Coordinates planning, bounded concurrency, retries, and reassembly.

    Parameters
    - provider: Single-batch caller
    - config: Batching, concurrency, retry, and gate settings
    - metrics: Optional Prometheus collector
    - rng: Optional random source for backoff jitter (tests pin it)
    """

    def __init__(
        self,
        provider: "EmbeddingProvider",
        config: Optional[PipelineConfig] = None,
        metrics: Optional[MetricsCollector] = None,
        rng: Optional[random.Random] = None
    ):
        if provider is None:
            raise ConfigurationError("An embedding provider is required", key="embed_provider")

        self.provider = provider
        self.config = config or PipelineConfig()
        self.metrics = metrics
        self.retry_policy = RetryPolicy(
            RetryConfig(
                max_retries=self.config.embed_max_retries,
                base_delay=self.config.embed_initial_backoff,
                max_delay=self.config.embed_max_backoff,
                jitter_ratio=self.config.embed_jitter_ratio
            ),
            rng=rng
        )
        self.assembler = ResultAssembler()
        self._active_signals: Set[CancellationSignal] = set()

    @property
    def provider_name(self) -> str:
        return self.provider.provider_id

    @property
    def active_runs(self) -> int:
        return len(self._active_signals)

    def cancel(self) -> None:
        """Cancel every invocation currently in progress.

        In-flight provider calls finish; no new attempt starts afterwards.
        """
        signals = list(self._active_signals)
        logger.info("Cancelling active pipeline runs", runs=len(signals))
        for signal in signals:
            signal.cancel()

    async def run(
        self,
        items: Inputs,
        max_batch_size: Optional[int] = None,
        max_concurrency: Optional[int] = None,
        retry_policy: Optional[RetryPolicy] = None,
        cancellation: Optional[CancellationSignal] = None
    ) -> List[EmbeddingResult]:
        """Embed ``items`` and return one result per item, in input order."""
        result = await self.run_with_report(
            items,
            max_batch_size=max_batch_size,
            max_concurrency=max_concurrency,
            retry_policy=retry_policy,
            cancellation=cancellation
        )
        return result.results

    async def run_with_report(
        self,
        items: Inputs,
        max_batch_size: Optional[int] = None,
        max_concurrency: Optional[int] = None,
        retry_policy: Optional[RetryPolicy] = None,
        cancellation: Optional[CancellationSignal] = None
    ) -> PipelineResult:
        """Like ``run`` but also returns the ``PipelineReport``.

        Raises
        - ``ConfigurationError`` for a non-positive batch size or concurrency
        """
        started = time.perf_counter()
        batch_size = self._effective_batch_size(max_batch_size)
        concurrency = self._effective_concurrency(max_concurrency)
        items = self._coerce_items(items)

        if not items:
            self._record_run("empty", started)
            report = PipelineReport(
                total_items=0,
                dimensions=self.provider.dimensions,
                batch_size=batch_size
            )
            return PipelineResult(results=[], report=report)

        policy = retry_policy or self.retry_policy
        signal = cancellation or CancellationSignal()
        dimensions = RunDimensions(self.provider.dimensions if self.provider.dimensions_declared else None)

        batches = plan(items, batch_size)
        logger.info(
            "Batches planned",
            provider=self.provider_name,
            items=len(items),
            batches=len(batches),
            batch_size=batch_size,
            concurrency=concurrency
        )

        self._active_signals.add(signal)
        try:
            if len(batches) == 1:
                mode = "single"
                outcomes = [await self._run_single(batches[0], signal, dimensions)]
            else:
                mode = "batched"
                gate = ConcurrencyGate(
                    capacity=concurrency,
                    acquire_timeout=self.config.embed_gate_timeout,
                    metrics=self.metrics
                )
                handler = RetryHandler(policy, metrics=self.metrics, provider_name=self.provider_name)
                outcomes = list(await asyncio.gather(
                    *(self._run_batch(batch, gate, handler, signal, dimensions) for batch in batches)
                ))
        finally:
            self._active_signals.discard(signal)

        vector_size = dimensions.resolve(self.provider.dimensions)
        by_index: Dict[int, BatchOutcome] = {outcome.batch_index: outcome for outcome in outcomes}
        results = self.assembler.assemble(batches, by_index, len(items), vector_size)

        report = PipelineReport(
            total_items=len(items),
            outcomes=sorted(outcomes, key=lambda outcome: outcome.batch_index),
            placeholder_indices=[result.item_index for result in results if result.is_placeholder],
            total_tokens=sum(result.token_count for result in results),
            duration_ms=(time.perf_counter() - started) * 1000,
            cancelled=signal.is_cancelled(),
            dimensions=vector_size,
            batch_size=batch_size
        )

        self._record_run(mode, started)
        if self.metrics:
            self.metrics.record_placeholders(self.provider_name, len(report.placeholder_indices))
        log_performance(
            "embedding_pipeline",
            report.duration_ms,
            provider=self.provider_name,
            mode=mode,
            items=report.total_items,
            batches=report.batch_count,
            failed_batches=report.failed_batches,
            skipped_batches=report.skipped_batches,
            placeholders=len(report.placeholder_indices),
            cancelled=report.cancelled
        )
        return PipelineResult(results=results, report=report)

    async def _run_single(
        self,
        batch: Batch,
        signal: CancellationSignal,
        dimensions: RunDimensions
    ) -> BatchOutcome:
        """One direct call: no gate, no retry. Failure is still contained."""
        if signal.is_cancelled():
            return self._skipped(batch, "before call")

        started = time.perf_counter()
        self._transition(batch, BatchState.RUNNING)
        try:
            vectors = await self._call_validated(batch, dimensions)
        except Exception as e:
            self._record_attempt("error")
            return self._failed(batch, Failed(batch.batch_index, e, attempts=1), started)

        self._record_attempt("success")
        return self._succeeded(batch, Success(batch.batch_index, vectors, attempts=1), started)

    async def _run_batch(
        self,
        batch: Batch,
        gate: ConcurrencyGate,
        handler: RetryHandler,
        signal: CancellationSignal,
        dimensions: RunDimensions
    ) -> BatchOutcome:
        if signal.is_cancelled():
            return self._skipped(batch, "before gate")

        started = time.perf_counter()
        state = RetryState()
        try:
            async with gate.slot(batch.batch_index):
                if signal.is_cancelled():
                    return self._skipped(batch, "after gate")

                self._transition(batch, BatchState.RUNNING)
                vectors = await handler.execute_with_retry(
                    self._call_validated,
                    batch,
                    dimensions,
                    operation_name=f"embed_batch_{batch.batch_index}",
                    cancellation=signal,
                    state=state,
                    on_retry=lambda retry_state: self._transition(
                        batch, BatchState.RETRYING, attempt=retry_state.attempt
                    )
                )
        except Exception as e:
            if isinstance(e, PipelineCancelledError) and state.attempt == 0:
                return self._skipped(batch, "before first attempt")
            outcome = Failed(
                batch.batch_index,
                e,
                attempts=state.attempt,
                abandoned_by_cancellation=state.abandoned_by_cancellation
            )
            return self._failed(batch, outcome, started)

        return self._succeeded(batch, Success(batch.batch_index, vectors, attempts=state.attempt), started)

    async def _call_validated(self, batch: Batch, dimensions: RunDimensions) -> Tuple[BatchVector, ...]:
        """Call the provider and reject malformed responses as ``ParseError``."""
        vectors = await self.provider.call(batch)

        if len(vectors) != len(batch):
            raise ParseError(
                f"Expected {len(batch)} embeddings, received {len(vectors)}",
                provider=self.provider_name
            )

        seen = set()
        for vector in vectors:
            if not 0 <= vector.item_index < len(batch) or vector.item_index in seen:
                raise ParseError(
                    f"Invalid or duplicate item index {vector.item_index} in response",
                    provider=self.provider_name
                )
            seen.add(vector.item_index)

        lengths = {len(vector.vector) for vector in vectors}
        if len(lengths) != 1 or 0 in lengths:
            raise ParseError(
                f"Vectors in one response must share a non-zero length, got {sorted(lengths)}",
                provider=self.provider_name
            )

        length = lengths.pop()
        expected = dimensions.value
        if expected is None:
            dimensions.observed = length
            if length != self.provider.dimensions:
                logger.info(
                    "Vector size taken from response",
                    provider=self.provider_name,
                    guessed=self.provider.dimensions,
                    received=length
                )
        elif length != expected:
            raise ParseError(
                f"Expected dimension {expected}, received {length}",
                provider=self.provider_name
            )

        return tuple(vectors)

    def _succeeded(self, batch: Batch, outcome: Success, started: float) -> Success:
        self._transition(batch, BatchState.SUCCEEDED, attempts=outcome.attempts)
        self._record_outcome(outcome, started)
        return outcome

    def _failed(self, batch: Batch, outcome: Failed, started: float) -> Failed:
        logger.error(
            "Batch failed",
            provider=self.provider_name,
            batch_index=batch.batch_index,
            first_item=batch.first_index,
            items=len(batch),
            attempts=outcome.attempts,
            abandoned_by_cancellation=outcome.abandoned_by_cancellation,
            error_type=type(outcome.last_error).__name__,
            error=str(outcome.last_error)
        )
        self._record_outcome(outcome, started)
        return outcome

    def _skipped(self, batch: Batch, stage: str) -> Skipped:
        logger.info(
            "Batch skipped after cancellation",
            provider=self.provider_name,
            batch_index=batch.batch_index,
            items=len(batch),
            stage=stage
        )
        outcome = Skipped(batch.batch_index)
        self._record_outcome(outcome, None)
        return outcome

    def _transition(self, batch: Batch, state: BatchState, **kwargs) -> None:
        logger.debug(
            "Batch state changed",
            batch_index=batch.batch_index,
            state=state.value,
            **kwargs
        )

    def _record_outcome(self, outcome: BatchOutcome, started: Optional[float]) -> None:
        if self.metrics:
            duration = time.perf_counter() - started if started is not None else None
            self.metrics.record_batch_outcome(self.provider_name, outcome.state.value, duration)

    def _record_attempt(self, result: str) -> None:
        if self.metrics:
            self.metrics.record_attempt(self.provider_name, result)

    def _record_run(self, mode: str, started: float) -> None:
        if self.metrics:
            self.metrics.record_pipeline_run(self.provider_name, mode, time.perf_counter() - started)

    def _effective_batch_size(self, override: Optional[int]) -> int:
        size = override if override is not None else self.config.embed_max_batch_size
        if size < 1:
            raise ConfigurationError(f"max_batch_size must be >= 1, got {size}", key="embed_max_batch_size")
        limit = self.provider.max_batch_size
        if size > limit:
            logger.warning(
                "Batch size lowered to provider limit",
                provider=self.provider_name,
                requested=size,
                limit=limit
            )
            return limit
        return size

    def _effective_concurrency(self, override: Optional[int]) -> int:
        concurrency = override if override is not None else self.config.embed_max_concurrent_requests
        if concurrency < 1:
            raise ConfigurationError(
                f"max_concurrency must be >= 1, got {concurrency}",
                key="embed_max_concurrent_requests"
            )
        return concurrency

    @staticmethod
    def _coerce_items(items: Inputs) -> List[InputItem]:
        """Accept raw texts or pre-indexed items whose indices match positions."""
        items = list(items)
        if not items or not isinstance(items[0], InputItem):
            return make_items(items)

        for position, item in enumerate(items):
            if not isinstance(item, InputItem) or item.index != position:
                raise ValueError(f"Input item at position {position} must carry index {position}")
        return items
