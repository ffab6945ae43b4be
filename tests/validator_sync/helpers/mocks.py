"""
Mock collaborators for testing the sync engine.

Each mock provides minimal implementations for isolated testing.
The store mock wraps a real in-memory SQLite store so reads reflect writes.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from validator_sync.chain import ChainInfo
from validator_sync.sources import PeerPage, ValidatorsStatsResponse
from validator_sync.storage import (
    DEFAULT_SCAN_PAGE_SIZE,
    FieldUpdate,
    NetworkStatsSnapshot,
    ScanPage,
    SQLiteRecordStore,
    ValidatorHistoryEntry,
)
from validator_sync.sync import SyncCheckpoint, SyncConfig, SyncReport
from validator_sync.types import ThrottlingError

from .builders import FAST_CONFIG, NOW


class RecordingStore:
    """
    RecordStore backed by in-memory SQLite that records every call.

    Supports failure injection per operation:

    - ensure_errors: address -> exception raised on every ensure_exists
    - throttle_ensures: number of ensure_exists calls that raise ThrottlingError
    - scan_errors: exceptions raised by successive paginated_scan calls
    - history_errors: address -> exception raised on insert_history
    - snapshot_error: exception raised on upsert_snapshot
    """

    def __init__(self) -> None:
        """Initialize with an empty in-memory store and no injected failures."""
        self.inner = SQLiteRecordStore(":memory:", time_fn=lambda: NOW)
        self.calls: list[tuple[str, object]] = []
        self.ensure_errors: dict[str, Exception] = {}
        self.throttle_ensures = 0
        self.scan_errors: list[Exception] = []
        self.history_errors: dict[str, Exception] = {}
        self.snapshot_error: Exception | None = None

    WRITE_OPERATIONS = frozenset(
        {"ensure_exists", "batch_update", "insert_history", "upsert_snapshot"}
    )

    @property
    def writes(self) -> list[tuple[str, object]]:
        """Recorded write calls, in order."""
        return [call for call in self.calls if call[0] in self.WRITE_OPERATIONS]

    def calls_to(self, operation: str) -> list[object]:
        """Arguments of every call to one operation."""
        return [argument for name, argument in self.calls if name == operation]

    def reset_calls(self) -> None:
        """Forget recorded calls."""
        self.calls.clear()

    async def ensure_exists(self, address: str) -> bool:
        """Record the call, apply injected failures, then delegate."""
        self.calls.append(("ensure_exists", address))
        await asyncio.sleep(0)
        if self.throttle_ensures > 0:
            self.throttle_ensures -= 1
            raise ThrottlingError("Throughput exceeds the current capacity")
        if address in self.ensure_errors:
            raise self.ensure_errors[address]
        return await self.inner.ensure_exists(address)

    async def batch_update(self, updates: Sequence[FieldUpdate]) -> int:
        """Record the call, then delegate."""
        self.calls.append(("batch_update", list(updates)))
        return await self.inner.batch_update(updates)

    async def paginated_scan(
        self,
        token: str | None = None,
        page_size: int = DEFAULT_SCAN_PAGE_SIZE,
    ) -> ScanPage:
        """Record the call, apply injected failures, then delegate."""
        self.calls.append(("paginated_scan", token))
        if self.scan_errors:
            raise self.scan_errors.pop(0)
        return await self.inner.paginated_scan(token, page_size)

    async def get_latest_history_slot(self, address: str) -> int | None:
        """Record the call, then delegate."""
        self.calls.append(("get_latest_history_slot", address))
        return await self.inner.get_latest_history_slot(address)

    async def get_latest_history_slots(self, addresses: Sequence[str]) -> dict[str, int | None]:
        """Record the call, then delegate."""
        self.calls.append(("get_latest_history_slots", list(addresses)))
        return await self.inner.get_latest_history_slots(addresses)

    async def insert_history(
        self,
        address: str,
        entries: Sequence[ValidatorHistoryEntry],
    ) -> int:
        """Record the call, apply injected failures, then delegate."""
        self.calls.append(("insert_history", (address, list(entries))))
        if address in self.history_errors:
            raise self.history_errors[address]
        return await self.inner.insert_history(address, entries)

    async def get_history(self, address: str) -> list[ValidatorHistoryEntry]:
        """Delegate without recording."""
        return await self.inner.get_history(address)

    async def upsert_snapshot(self, epoch: int, snapshot: NetworkStatsSnapshot) -> None:
        """Record the call, apply injected failures, then delegate."""
        self.calls.append(("upsert_snapshot", epoch))
        if self.snapshot_error is not None:
            raise self.snapshot_error
        await self.inner.upsert_snapshot(epoch, snapshot)

    async def get_snapshot(self, epoch: int) -> NetworkStatsSnapshot | None:
        """Delegate without recording."""
        return await self.inner.get_snapshot(epoch)

    def close(self) -> None:
        """Close the wrapped store."""
        self.inner.close()


class FakeTelemetry:
    """
    Telemetry client returning queued responses.

    The last response repeats once the queue is drained.
    """

    def __init__(self, *responses: ValidatorsStatsResponse) -> None:
        """Initialize with responses to return in order."""
        self._responses = list(responses) or [ValidatorsStatsResponse()]
        self.calls = 0
        self.error: Exception | None = None

    async def fetch_stats(self) -> ValidatorsStatsResponse:
        """Return the next queued response or raise the injected error."""
        self.calls += 1
        if self.error is not None:
            raise self.error
        if len(self._responses) > 1:
            return self._responses.pop(0)
        return self._responses[0]


class FakeCrawler:
    """
    Peer crawler serving pages keyed by pagination token.

    The first page is served for token None.
    """

    def __init__(self, pages: dict[str | None, PeerPage] | None = None) -> None:
        """Initialize with a token -> page map."""
        self.pages: dict[str | None, PeerPage] = pages or {None: PeerPage()}
        self.calls: list[tuple[int, str | None]] = []
        self.error: Exception | None = None

    async def list_peers(self, page_size: int, token: str | None = None) -> PeerPage:
        """Return the page for a token or raise the injected error."""
        self.calls.append((page_size, token))
        if self.error is not None:
            raise self.error
        return self.pages[token]


class FakeChain:
    """Chain reader with settable epoch, validator set and slot."""

    def __init__(self, epoch: int = 1, validators: Sequence[str] = (), slot: int = 100) -> None:
        """Initialize with the chain state to report."""
        self.epoch = epoch
        self.validators = list(validators)
        self.slot = slot
        self.epoch_reads = 0
        self.error: Exception | None = None

    async def current_epoch(self) -> int:
        """Return the configured epoch or raise the injected error."""
        self.epoch_reads += 1
        if self.error is not None:
            raise self.error
        return self.epoch

    async def current_validator_set(self) -> list[str]:
        """Return the configured validator set."""
        return list(self.validators)

    async def current_slot(self) -> int:
        """Return the configured slot."""
        return self.slot


class MockOrchestrator:
    """
    Orchestrator stand-in for epoch monitor tests.

    Records every sync call. Can block until released or fail on demand.
    """

    def __init__(
        self,
        store: RecordingStore | None = None,
        config: SyncConfig = FAST_CONFIG,
    ) -> None:
        """Initialize with an optional store used for checkpoint rebuild."""
        self.store = store or RecordingStore()
        self.config = config
        self.synced: list[ChainInfo] = []
        self.error: Exception | None = None
        self.release: asyncio.Event | None = None

    async def sync(self, chain_info: ChainInfo, checkpoint: SyncCheckpoint) -> SyncReport:
        """Record the call, optionally wait for release, then succeed or fail."""
        self.synced.append(chain_info)
        if self.release is not None:
            await self.release.wait()
        if self.error is not None:
            raise self.error
        return SyncReport(epoch=chain_info.epoch)
