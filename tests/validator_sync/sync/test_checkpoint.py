"""Tests for checkpoint rebuild and full store scans."""

from __future__ import annotations

import pytest

from tests.validator_sync.helpers import RecordingStore, make_addresses
from validator_sync.sync import rebuild_checkpoint, scan_all_records
from validator_sync.types import StoreError, ThrottlingError


class TestScanAllRecords:
    """Tests for walking every page of the store."""

    async def test_collects_every_page(self, store: RecordingStore) -> None:
        """All records are returned across several pages."""
        addresses = make_addresses(7)
        for address in addresses:
            await store.ensure_exists(address)
        store.reset_calls()

        records = await scan_all_records(store, page_size=3)

        assert [record.validator_address for record in records] == addresses
        assert len(store.calls_to("paginated_scan")) == 3

    async def test_retries_throttled_page(self, store: RecordingStore) -> None:
        """A throttled page is retried instead of aborting the scan."""
        await store.ensure_exists(make_addresses(1)[0])
        store.scan_errors = [ThrottlingError("Throughput exceeds the current capacity")]

        records = await scan_all_records(store, page_size=10)

        assert len(records) == 1

    async def test_gives_up_after_repeated_throttling(self, store: RecordingStore) -> None:
        """A page throttled on every attempt fails the scan."""
        store.scan_errors = [ThrottlingError("slow down") for _ in range(3)]

        with pytest.raises(ThrottlingError):
            await scan_all_records(store, page_size=10)

    async def test_other_errors_propagate_immediately(self, store: RecordingStore) -> None:
        """Non-throttle failures are not retried."""
        store.scan_errors = [StoreError("corrupt page")]

        with pytest.raises(StoreError):
            await scan_all_records(store, page_size=10)
        assert len(store.calls_to("paginated_scan")) == 1


class TestRebuildCheckpoint:
    """Tests for startup checkpoint rebuild."""

    async def test_known_set_matches_store(self, store: RecordingStore) -> None:
        """Every stored address is known after rebuild. Other markers start empty."""
        addresses = make_addresses(4)
        for address in addresses:
            await store.ensure_exists(address)

        checkpoint = await rebuild_checkpoint(store, page_size=2, throttle_delay=0.0)

        assert checkpoint.known_addresses == set(addresses)
        assert checkpoint.last_telemetry_slot is None
        assert checkpoint.last_peer_seen is None

    async def test_failure_yields_empty_checkpoint(self, store: RecordingStore) -> None:
        """A store that cannot be scanned leaves the checkpoint empty rather than raising."""
        await store.ensure_exists(make_addresses(1)[0])
        store.scan_errors = [StoreError("unavailable")]

        checkpoint = await rebuild_checkpoint(store, throttle_delay=0.0)

        assert checkpoint.known_addresses == set()

    async def test_empty_store(self, store: RecordingStore) -> None:
        """An empty store rebuilds to an empty known set."""
        checkpoint = await rebuild_checkpoint(store, throttle_delay=0.0)

        assert checkpoint.known_addresses == set()
