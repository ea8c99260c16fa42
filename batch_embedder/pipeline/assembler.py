"""Reassembles per-batch outcomes into one ordered result list.

Callers consume the output by position, so the invariant
``len(output) == total_item_count and output[i].item_index == i`` holds no
matter how many batches failed or were skipped. Batch-local indices reported
by a provider are translated back to global positions here, never inline.
"""

from typing import Dict, List, Mapping, Optional, Sequence

import structlog

from ..common.errors import AssemblyError
from .models import Batch, BatchOutcome, EmbeddingResult, Success

logger = structlog.get_logger("pipeline.assembler")


class ResultAssembler:
    """Builds the final ``EmbeddingResult`` list for one run."""

    def assemble(
        self,
        batches: Sequence[Batch],
        outcomes: Mapping[int, BatchOutcome],
        total_item_count: int,
        placeholder_dimensions: int
    ) -> List[EmbeddingResult]:
        """Emit one result per input item in original order.

        Parameters
        - batches: Planned batches, in any order
        - outcomes: Terminal outcome per ``batch_index``; a missing entry is
          treated like a failure
        - total_item_count: Length of the original input
        - placeholder_dimensions: Size of zero vectors for unsuccessful items
        """
        output: List[EmbeddingResult] = []

        for batch in sorted(batches, key=lambda b: b.batch_index):
            outcome = outcomes.get(batch.batch_index)
            if isinstance(outcome, Success):
                output.extend(self._from_success(batch, outcome, placeholder_dimensions))
            else:
                if outcome is None:
                    logger.error("No outcome recorded for batch", batch_index=batch.batch_index)
                output.extend(
                    EmbeddingResult.placeholder(item.index, placeholder_dimensions)
                    for item in batch.items
                )

        self._check_invariant(output, total_item_count)
        return output

    def _from_success(
        self,
        batch: Batch,
        outcome: Success,
        placeholder_dimensions: int
    ) -> List[EmbeddingResult]:
        by_local_index: Dict[int, EmbeddingResult] = {}

        for vector in outcome.vectors:
            local = vector.item_index
            if not 0 <= local < len(batch.items):
                logger.warning(
                    "Ignoring vector with out-of-range batch index",
                    batch_index=batch.batch_index,
                    local_index=local,
                    batch_size=len(batch.items)
                )
                continue
            if local in by_local_index:
                logger.warning(
                    "Ignoring duplicate vector for batch item",
                    batch_index=batch.batch_index,
                    local_index=local
                )
                continue
            by_local_index[local] = EmbeddingResult(
                item_index=batch.items[local].index,
                vector=list(vector.vector),
                token_count=vector.token_count
            )

        results = []
        missing = 0
        for local, item in enumerate(batch.items):
            result: Optional[EmbeddingResult] = by_local_index.get(local)
            if result is None:
                missing += 1
                result = EmbeddingResult.placeholder(item.index, placeholder_dimensions)
            results.append(result)

        if missing:
            logger.warning(
                "Successful batch did not cover every item",
                batch_index=batch.batch_index,
                missing=missing
            )
        return results

    @staticmethod
    def _check_invariant(output: Sequence[EmbeddingResult], total_item_count: int) -> None:
        if len(output) != total_item_count:
            raise AssemblyError(
                f"Assembled {len(output)} results for {total_item_count} input items"
            )
        for position, result in enumerate(output):
            if result.item_index != position:
                raise AssemblyError(
                    f"Result at position {position} carries item_index {result.item_index}"
                )


def assemble(
    batches: Sequence[Batch],
    outcomes: Mapping[int, BatchOutcome],
    total_item_count: int,
    placeholder_dimensions: int
) -> List[EmbeddingResult]:
    """Module-level shortcut for ``ResultAssembler().assemble``."""
    return ResultAssembler().assemble(batches, outcomes, total_item_count, placeholder_dimensions)
