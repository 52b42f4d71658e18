"""Per-relationship sampling caps."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")

# A cap of None means "keep everything"
UNBOUNDED = None


def limit(items: Sequence[T], cap: int | None = UNBOUNDED) -> list[T]:
    """Keep the first ``min(cap, len(items))`` items, in their original order.

    Args:
        items: Ordered children of one parent (or the top-level patient list).
        cap: Maximum number to keep; ``UNBOUNDED`` keeps all of them.

    Raises:
        ValueError: if *cap* is negative.
    """
    if cap is UNBOUNDED:
        return list(items)
    if cap < 0:
        raise ValueError(f"Sampling cap must be >= 0, got {cap}")
    return list(items[:cap])
