"""Tests for the statistics aggregator."""

from __future__ import annotations

import dataclasses

import pytest

from tests.validator_sync.helpers import (
    FAST_CONFIG,
    NOW,
    RecordingStore,
    make_addresses,
    make_chain_info,
    make_peer,
)
from validator_sync.storage import CountryCount, FieldUpdate, IspCount, ValidatorRecord
from validator_sync.sync import StatisticsAggregator, compute_network_stats
from validator_sync.types import StoreError, ThrottlingError

DAY = 24 * 60 * 60


def record(index: int, **fields: object) -> ValidatorRecord:
    """Build a validator record with overrides."""
    address = make_addresses(1, start=index)[0]
    return ValidatorRecord(validator_address=address, **fields)  # type: ignore[arg-type]


class TestComputeNetworkStats:
    """Tests for the pure snapshot computation."""

    def test_zero_slot_validators_give_zero_rates(self) -> None:
        """With no validator observed over any slot both miss rates are exactly 0.0."""
        records = [record(1), record(2, missed_attestations_count=3)]

        snapshot = compute_network_stats(make_chain_info(), records, [], NOW)

        assert snapshot.network_attestation_miss_rate == 0.0
        assert snapshot.network_proposal_miss_rate == 0.0

    def test_miss_rate_averages_only_observed_validators(self) -> None:
        """Validators with zero total slots are left out of the average."""
        records = [
            record(1, total_slots=10, missed_attestations_count=1, missed_proposals_count=0),
            record(2, total_slots=10, missed_attestations_count=3, missed_proposals_count=1),
            record(3, total_slots=0, missed_attestations_count=9),
        ]

        snapshot = compute_network_stats(make_chain_info(), records, [], NOW)

        assert snapshot.network_attestation_miss_rate == pytest.approx(0.2)
        assert snapshot.network_proposal_miss_rate == pytest.approx(0.05)

    def test_counts(self) -> None:
        """Set size, known records and the 24 hour counters are tallied."""
        records = [
            record(1, has_attested_24h=True, node_operator_id="op", peer_id="p1"),
            record(2, has_attested_24h=True, last_proposal_timestamp=int(NOW) - 100),
            record(3, last_proposal_timestamp=int(NOW) - DAY - 1),
        ]
        chain_info = make_chain_info(epoch=4, validators=make_addresses(5), slot=321)

        snapshot = compute_network_stats(chain_info, records, [make_peer("p1")], NOW)

        assert snapshot.epoch_number == 4
        assert snapshot.timestamp == int(NOW * 1000)
        assert snapshot.current_slot == 321
        assert snapshot.total_validators_in_set == 5
        assert snapshot.total_validators_known == 3
        assert snapshot.active_validators == 2
        assert snapshot.validators_attested_24h == 2
        assert snapshot.validators_proposed_24h == 1
        assert snapshot.validators_with_operator == 1
        assert snapshot.validators_with_peers == 1
        assert snapshot.total_peers_in_network == 1

    def test_distributions_and_leaders(self) -> None:
        """Country, client and ISP tallies come from the peer listing."""
        peers = [
            make_peer("a", country="Germany", client="aztec/v1", as_name="Hetzner"),
            make_peer("b", country="Germany", client="aztec/v2", as_name="OVH"),
            make_peer("c", country="France", client="aztec/v2", as_name="OVH"),
            make_peer("d", country="Finland", client="aztec/v2", as_name="OVH"),
            make_peer("e", country="Japan", client=None, with_address=False),
        ]

        snapshot = compute_network_stats(make_chain_info(), [], peers, NOW)

        assert snapshot.country_distribution == {"Germany": 2, "France": 1, "Finland": 1}
        assert snapshot.top_country == CountryCount(country="Germany", count=2)
        assert [entry.country for entry in snapshot.top3_countries] == [
            "Germany",
            "France",
            "Finland",
        ]
        assert [entry.count for entry in snapshot.top3_countries] == [2, 1, 1]
        assert snapshot.client_distribution == {"aztec/v1": 1, "aztec/v2": 3}
        assert snapshot.top_client == "aztec/v2"
        assert snapshot.isp_distribution == {"Hetzner": 1, "OVH": 3}
        assert snapshot.top_isp == IspCount(isp="OVH", count=3)

    def test_empty_network(self) -> None:
        """No records and no peers produce an all-zero snapshot."""
        snapshot = compute_network_stats(make_chain_info(), [], [], NOW)

        assert snapshot.total_validators_known == 0
        assert snapshot.top_country is None
        assert snapshot.top3_countries == []
        assert snapshot.top_isp is None
        assert snapshot.country_distribution == {}


class TestStatisticsAggregator:
    """Tests for storing the per-epoch snapshot."""

    async def test_snapshot_is_stored_by_epoch(self, store: RecordingStore) -> None:
        """The computed snapshot is written under the epoch number."""
        for address in make_addresses(3):
            await store.ensure_exists(address)
        aggregator = StatisticsAggregator(store=store, config=FAST_CONFIG, time_fn=lambda: NOW)

        snapshot = await aggregator.aggregate(make_chain_info(epoch=12), [make_peer("p1")])

        stored = await store.get_snapshot(12)
        assert stored == snapshot
        assert stored is not None
        assert stored.total_validators_known == 3

    async def test_recomputing_replaces_snapshot(self, store: RecordingStore) -> None:
        """A second aggregation for the same epoch overwrites the first."""
        address = make_addresses(1)[0]
        await store.ensure_exists(address)
        aggregator = StatisticsAggregator(store=store, config=FAST_CONFIG, time_fn=lambda: NOW)
        await aggregator.aggregate(make_chain_info(epoch=12), [])

        await store.inner.batch_update([FieldUpdate(address, {"has_attested_24h": True})])
        await aggregator.aggregate(make_chain_info(epoch=12), [])

        stored = await store.get_snapshot(12)
        assert stored is not None
        assert stored.validators_attested_24h == 1

    async def test_write_failure_propagates(self, store: RecordingStore) -> None:
        """A failed snapshot write surfaces to the caller."""
        store.snapshot_error = StoreError("unavailable")
        aggregator = StatisticsAggregator(store=store, config=FAST_CONFIG, time_fn=lambda: NOW)

        with pytest.raises(StoreError):
            await aggregator.aggregate(make_chain_info(epoch=1), [])

    async def test_throttled_scan_waits_before_retry(
        self, store: RecordingStore, sleeps: list[float]
    ) -> None:
        """A throttled store scan pauses for the configured delay, then the snapshot is stored."""
        await store.ensure_exists(make_addresses(1)[0])
        store.scan_errors = [ThrottlingError("slow down")]
        config = dataclasses.replace(FAST_CONFIG, scan_throttle_delay=0.5)
        aggregator = StatisticsAggregator(store=store, config=config, time_fn=lambda: NOW)

        snapshot = await aggregator.aggregate(make_chain_info(epoch=4), [])

        assert sleeps == [0.5]
        assert snapshot.total_validators_known == 1
