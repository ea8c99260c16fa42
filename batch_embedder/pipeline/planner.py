"""Splits ordered input into provider-sized batches."""

from typing import List, Sequence

from .models import Batch, InputItem, make_items


def plan(items: Sequence[InputItem], max_batch_size: int) -> List[Batch]:
    """Split ``items`` into contiguous batches of at most ``max_batch_size``.

    The last batch may be smaller. Empty input yields no batches; callers
    must short-circuit before touching the network in that case.
    """
    if max_batch_size < 1:
        raise ValueError(f"max_batch_size must be >= 1, got {max_batch_size}")

    return [
        Batch(batch_index=batch_index, items=tuple(items[start:start + max_batch_size]))
        for batch_index, start in enumerate(range(0, len(items), max_batch_size))
    ]


def plan_texts(texts: Sequence[str], max_batch_size: int) -> List[Batch]:
    """Convenience wrapper: index ``texts`` then plan them."""
    return plan(make_items(texts), max_batch_size)
