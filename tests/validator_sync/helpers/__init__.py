"""Test helpers for validator sync unit tests."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import TypeVar

from .builders import (
    FAST_CONFIG,
    NOW,
    T0,
    make_address,
    make_addresses,
    make_chain_info,
    make_page,
    make_peer,
    make_stats,
    make_stats_response,
)
from .mocks import FakeChain, FakeCrawler, FakeTelemetry, MockOrchestrator, RecordingStore

_T = TypeVar("_T")


def run_async(coro: Coroutine[object, object, _T]) -> _T:
    """Run an async coroutine synchronously."""
    return asyncio.run(coro)


__all__ = [
    # Constants
    "FAST_CONFIG",
    "NOW",
    "T0",
    # Builders
    "make_address",
    "make_addresses",
    "make_chain_info",
    "make_page",
    "make_peer",
    "make_stats",
    "make_stats_response",
    # Mocks
    "FakeChain",
    "FakeCrawler",
    "FakeTelemetry",
    "MockOrchestrator",
    "RecordingStore",
    # Utilities
    "run_async",
]
