"""Partitioning of ASIN lists into Keepa-sized, paced batch jobs."""

from __future__ import annotations

from typing import Iterator, List, Sequence, TypeVar

from .errors import AsinCountExceededError
from .models import BatchJob

T = TypeVar("T")

# Keepa accepts at most 20 ASINs per product call at our token budget.
DEFAULT_BATCH_SIZE = 20
MAX_ASINS_PER_REQUEST = 100
BATCH_PACING_SECONDS = 1.0


def make_batches(items: Sequence[T], batch_size: int = DEFAULT_BATCH_SIZE) -> List[List[T]]:
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    return [list(items[i : i + batch_size]) for i in range(0, len(items), batch_size)]


def check_request_size(items: Sequence[object], limit: int = MAX_ASINS_PER_REQUEST) -> None:
    if len(items) > limit:
        raise AsinCountExceededError(len(items), limit)


def iter_batch_jobs(
    asins: Sequence[str],
    batch_size: int = DEFAULT_BATCH_SIZE,
    pacing_seconds: float = BATCH_PACING_SECONDS,
) -> Iterator[BatchJob]:
    """Yield one job per batch; every job but the last asks for a pause afterwards."""
    batches = make_batches(asins, batch_size)
    pause = max(0.0, float(pacing_seconds))
    for index, batch in enumerate(batches):
        is_last = index == len(batches) - 1
        yield BatchJob(index=index, asins=tuple(batch), delay_after=0.0 if is_last else pause)
