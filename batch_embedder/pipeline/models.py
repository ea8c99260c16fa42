"""Data model for one pipeline invocation.

Every object here is created at the start of a run and discarded at its end;
nothing is cached across runs.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union


@dataclass(frozen=True)
class InputItem:
    """One text at its 0-based position in the original request."""
    index: int
    text: str


@dataclass(frozen=True)
class Batch:
    """Contiguous slice of the input sent as one provider request."""
    batch_index: int
    items: Tuple[InputItem, ...]

    def __len__(self) -> int:
        return len(self.items)

    @property
    def texts(self) -> List[str]:
        return [item.text for item in self.items]

    @property
    def first_index(self) -> int:
        return self.items[0].index if self.items else -1


@dataclass(frozen=True)
class BatchVector:
    """A vector as returned by a provider; ``item_index`` is batch-local."""
    item_index: int
    vector: List[float]
    token_count: int = 0


@dataclass(frozen=True)
class EmbeddingResult:
    """Final per-item result; ``item_index`` is the global input position."""
    item_index: int
    vector: List[float]
    token_count: int = 0
    is_placeholder: bool = False

    @property
    def dimension(self) -> int:
        return len(self.vector)

    @classmethod
    def placeholder(cls, item_index: int, dimensions: int) -> "EmbeddingResult":
        """Zero vector standing in for an item whose batch did not succeed."""
        return cls(item_index=item_index, vector=[0.0] * dimensions, token_count=0, is_placeholder=True)


class BatchState(Enum):
    """Lifecycle of a batch task.

    ``PENDING -> RUNNING -> (SUCCEEDED | RETRYING -> RUNNING | FAILED | SKIPPED)``
    """
    PENDING = "pending"
    RUNNING = "running"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (BatchState.SUCCEEDED, BatchState.FAILED, BatchState.SKIPPED)


@dataclass(frozen=True)
class Success:
    batch_index: int
    vectors: Tuple[BatchVector, ...]
    attempts: int = 1

    @property
    def state(self) -> BatchState:
        return BatchState.SUCCEEDED


@dataclass(frozen=True)
class Failed:
    """Batch ended without vectors.

    ``abandoned_by_cancellation`` is set when retrying stopped because the
    run was cancelled rather than because the provider kept failing.
    """
    batch_index: int
    last_error: BaseException
    attempts: int = 0
    abandoned_by_cancellation: bool = False

    @property
    def state(self) -> BatchState:
        return BatchState.FAILED


@dataclass(frozen=True)
class Skipped:
    """Batch never attempted because the run was cancelled first."""
    batch_index: int

    @property
    def state(self) -> BatchState:
        return BatchState.SKIPPED


BatchOutcome = Union[Success, Failed, Skipped]


@dataclass
class RetryState:
    """Per-batch retry bookkeeping, owned by exactly one batch task."""
    attempt: int = 0
    next_delay: float = 0.0
    last_error: Optional[BaseException] = None
    abandoned_by_cancellation: bool = False


@dataclass
class PipelineReport:
    """Aggregate summary of one invocation.

    ``dimensions`` is the vector length of the run: the provider's declared
    size, or the length learned from the first valid response. ``batch_size``
    is the effective batch size after the provider limit is applied.
    """
    total_items: int
    outcomes: List[BatchOutcome] = field(default_factory=list)
    placeholder_indices: List[int] = field(default_factory=list)
    total_tokens: int = 0
    duration_ms: float = 0.0
    cancelled: bool = False
    dimensions: int = 0
    batch_size: int = 0

    def _count(self, state: BatchState) -> int:
        return sum(1 for outcome in self.outcomes if outcome.state is state)

    @property
    def batch_count(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded_batches(self) -> int:
        return self._count(BatchState.SUCCEEDED)

    @property
    def failed_batches(self) -> int:
        return self._count(BatchState.FAILED)

    @property
    def skipped_batches(self) -> int:
        return self._count(BatchState.SKIPPED)

    @property
    def total_attempts(self) -> int:
        return sum(getattr(outcome, "attempts", 0) for outcome in self.outcomes)

    @property
    def has_failures(self) -> bool:
        return bool(self.placeholder_indices)

    def errors(self) -> List[Tuple[int, BaseException]]:
        """``(batch_index, last_error)`` for every failed batch."""
        return [
            (outcome.batch_index, outcome.last_error)
            for outcome in self.outcomes
            if isinstance(outcome, Failed)
        ]


@dataclass
class PipelineResult:
    """Ordered results plus the report that explains them."""
    results: List[EmbeddingResult]
    report: PipelineReport

    def vectors(self) -> List[List[float]]:
        return [result.vector for result in self.results]


def make_items(texts: Sequence[str]) -> List[InputItem]:
    """Tag texts with their original positions."""
    return [InputItem(index=i, text=text) for i, text in enumerate(texts)]
