"""Split target identifiers into request-sized batches."""

from __future__ import annotations

from typing import Sequence

from leadpilot.config import settings

BATCH_SIZE = max(1, settings.ENRICH_BATCH_SIZE)


def plan_batches(ids: Sequence[str], batch_size: int = BATCH_SIZE) -> list[list[str]]:
    """Return ``ids`` as consecutive chunks of at most ``batch_size``, order preserved."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    items = list(ids)
    return [items[start:start + batch_size] for start in range(0, len(items), batch_size)]
