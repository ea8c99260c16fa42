"""Retry handler with exponential backoff for single-batch provider calls."""

import asyncio
import random
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import httpx
import structlog

from ..common.errors import (
    PipelineCancelledError,
    ProviderConnectionError,
    ProviderError,
    ProviderTimeoutError,
)
from ..common.metrics import MetricsCollector
from .cancellation import CancellationSignal
from .models import RetryState

logger = structlog.get_logger("pipeline.retry_handler")


class ErrorClass(Enum):
    """Whether a failure is worth another attempt."""
    RETRYABLE = "retryable"
    FATAL = "fatal"


def classify_error(error: BaseException) -> ErrorClass:
    """Classify ``error`` as retryable or fatal.

    Retryable: timeouts, connection failures/resets, HTTP 408, HTTP 429 (or a
    ``rate_limit_exceeded`` error type), HTTP 5xx. Everything else is fatal,
    including cancellation and unknown exceptions.
    """
    if isinstance(error, PipelineCancelledError):
        return ErrorClass.FATAL

    if isinstance(error, (ProviderTimeoutError, ProviderConnectionError)):
        return ErrorClass.RETRYABLE

    if isinstance(error, ProviderError):
        status = error.status_code
        if status == 408 or error.is_rate_limit_error or 500 <= status < 600:
            return ErrorClass.RETRYABLE
        return ErrorClass.FATAL

    # Raw transport errors from callers that do not wrap them
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return ErrorClass.RETRYABLE
    if isinstance(error, (httpx.TimeoutException, httpx.TransportError)):
        return ErrorClass.RETRYABLE

    return ErrorClass.FATAL


def compute_backoff(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter_ratio: float = 0.2,
    rng: Optional[random.Random] = None
) -> float:
    """Delay before retry number ``attempt`` (0-based).

    ``base_delay * 2**attempt`` plus uniform jitter in
    ``[0, jitter_ratio * delay]``, then capped at ``max_delay``.
    """
    if attempt < 0:
        raise ValueError("attempt must be >= 0")

    delay = base_delay * (2 ** attempt)
    uniform = rng.uniform if rng is not None else random.uniform
    if jitter_ratio > 0 and delay > 0:
        delay += uniform(0, jitter_ratio * delay)
    return min(delay, max_delay)


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        jitter_ratio: float = 0.2
    ):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter_ratio = jitter_ratio

    @property
    def max_attempts(self) -> int:
        """First attempt plus ``max_retries`` retries."""
        return 1 + self.max_retries


class RetryPolicy:
    """Classifies failures and computes backoff for one pipeline."""

    def __init__(self, config: Optional[RetryConfig] = None, rng: Optional[random.Random] = None):
        self.config = config or RetryConfig()
        self._rng = rng

    @property
    def max_attempts(self) -> int:
        return self.config.max_attempts

    def classify(self, error: BaseException) -> ErrorClass:
        return classify_error(error)

    def next_delay(self, attempt: int) -> float:
        return compute_backoff(
            attempt,
            base_delay=self.config.base_delay,
            max_delay=self.config.max_delay,
            jitter_ratio=self.config.jitter_ratio,
            rng=self._rng
        )

    def should_retry(self, error: BaseException, attempts_made: int) -> bool:
        """True when ``error`` is retryable and attempts remain."""
        return (
            attempts_made < self.max_attempts
            and self.classify(error) is ErrorClass.RETRYABLE
        )


class RetryHandler:
    """Runs a coroutine function with retries, backoff, and cancellation.

    The handler re-raises the last observed error when the policy gives up,
    the error is fatal, or the cancellation signal is set between attempts.
    ``state`` is updated in place so callers can report attempt counts.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        metrics: Optional[MetricsCollector] = None,
        provider_name: str = "unknown"
    ):
        self.policy = policy
        self.metrics = metrics
        self.provider_name = provider_name

    async def execute_with_retry(
        self,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        operation_name: str = "unknown",
        cancellation: Optional[CancellationSignal] = None,
        state: Optional[RetryState] = None,
        on_retry: Optional[Callable[[RetryState], None]] = None,
        **kwargs: Any
    ) -> Any:
        """Execute ``func`` until it succeeds or retrying must stop."""
        state = state if state is not None else RetryState()

        while True:
            if cancellation is not None and cancellation.is_cancelled():
                state.abandoned_by_cancellation = True
                if state.last_error is not None:
                    raise state.last_error
                raise PipelineCancelledError(f"{operation_name} cancelled before attempt {state.attempt + 1}")

            state.attempt += 1
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                state.last_error = e
                self._record_attempt("error")
                error_class = self.policy.classify(e)

                if error_class is ErrorClass.FATAL:
                    logger.error(
                        "Operation failed with non-retryable error",
                        operation=operation_name,
                        attempt=state.attempt,
                        error_type=type(e).__name__,
                        error=str(e)
                    )
                    raise

                if state.attempt >= self.policy.max_attempts:
                    logger.error(
                        "Operation failed after all retries",
                        operation=operation_name,
                        attempts=state.attempt,
                        error=str(e)
                    )
                    raise

                if cancellation is not None and cancellation.is_cancelled():
                    state.abandoned_by_cancellation = True
                    logger.warning(
                        "Retry abandoned after cancellation",
                        operation=operation_name,
                        attempts=state.attempt,
                        error=str(e)
                    )
                    raise

                state.next_delay = self.policy.next_delay(state.attempt - 1)
                logger.warning(
                    "Operation failed, retrying",
                    operation=operation_name,
                    attempt=state.attempt,
                    total_attempts=self.policy.max_attempts,
                    delay_seconds=round(state.next_delay, 3),
                    error=str(e)
                )
                if self.metrics:
                    self.metrics.record_retry(self.provider_name, type(e).__name__)
                if on_retry is not None:
                    on_retry(state)

                if cancellation is not None:
                    if await cancellation.sleep(state.next_delay):
                        state.abandoned_by_cancellation = True
                        logger.warning(
                            "Retry abandoned during backoff",
                            operation=operation_name,
                            attempts=state.attempt,
                            error=str(e)
                        )
                        raise
                else:
                    await asyncio.sleep(state.next_delay)
                continue

            self._record_attempt("success")
            if state.attempt > 1:
                logger.info(
                    "Operation succeeded after retry",
                    operation=operation_name,
                    attempt=state.attempt,
                    total_attempts=self.policy.max_attempts
                )
            return result

    def _record_attempt(self, result: str) -> None:
        if self.metrics:
            self.metrics.record_attempt(self.provider_name, result)
