"""Split an ordered stop list into bounded batches."""

from __future__ import annotations

from typing import Sequence

from ...models.domain import Coordinate, Stop
from .models import Batch


def create_batches(start: Coordinate, stops: Sequence[Stop], batch_size: int) -> list[Batch]:
    """Chunk ``stops`` into batches of at most ``batch_size``, keeping order.

    Batch 0 is anchored at ``start``; every later batch is anchored at the
    last stop of the batch before it so each routed segment picks up where
    the previous one ended.
    """
    if batch_size < 1:
        raise ValueError(f"Batch size must be at least 1, got {batch_size}.")

    chunks = [tuple(stops[i : i + batch_size]) for i in range(0, len(stops), batch_size)]
    total = len(chunks)

    batches: list[Batch] = []
    anchor = start
    for index, chunk in enumerate(chunks):
        batches.append(Batch(index=index, total=total, stops=chunk, anchor=anchor))
        anchor = chunk[-1].coordinate
    return batches
