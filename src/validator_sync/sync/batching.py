"""Batching and backoff helpers shared by the reconcilers."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from typing import TypeVar

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most `size` items."""
    if size <= 0:
        raise ValueError(f"size must be positive, got {size}")
    for start in range(0, len(items), size):
        yield items[start : start + size]


def backoff_delay(attempt: int, base: float, cap: float) -> float:
    """
    Exponential backoff for the given retry attempt.

    The first retry (attempt 1) waits 2 * base; each further retry doubles it,
    never exceeding the cap.
    """
    return min(base * (2**attempt), cap)
