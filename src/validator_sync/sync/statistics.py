"""
Statistics aggregator.

Derives one network-wide snapshot per epoch from the validator records and
the peer listing. Snapshots are disposable: each is recomputed from scratch
and replaces any earlier snapshot for the same epoch.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from validator_sync.chain.reader import ChainInfo
from validator_sync.sources import PeerData
from validator_sync.storage import (
    CountryCount,
    IspCount,
    NetworkStatsSnapshot,
    RecordStore,
    ValidatorRecord,
)

from .checkpoint import scan_all_records
from .config import ATTESTATION_WINDOW_SECONDS, SyncConfig, default_sync_config

logger = logging.getLogger(__name__)


def _average_rate(pairs: Sequence[tuple[int, int]]) -> float:
    """Mean of missed/total over pairs with a nonzero total. 0.0 when there are none."""
    rates = [missed / total for missed, total in pairs if total > 0]
    if not rates:
        return 0.0
    return sum(rates) / len(rates)


def compute_network_stats(
    chain_info: ChainInfo,
    records: Sequence[ValidatorRecord],
    peers: Sequence[PeerData],
    now: float,
) -> NetworkStatsSnapshot:
    """
    Compute the network snapshot for an epoch.

    Miss rates average only validators with a nonzero total slot count.

    Args:
        chain_info: Epoch, slot and on-chain set at the time of the sync.
        records: Every validator record in the store.
        peers: Peer listing fetched during this sync.
        now: Current Unix time in seconds.
    """
    cutoff = int(now) - ATTESTATION_WINDOW_SECONDS

    attested = sum(1 for record in records if record.has_attested_24h)
    proposed = sum(
        1
        for record in records
        if record.last_proposal_timestamp is not None and record.last_proposal_timestamp >= cutoff
    )
    with_slots = [record for record in records if record.total_slots > 0]

    countries: Counter[str] = Counter()
    clients: Counter[str] = Counter()
    isps: Counter[str] = Counter()
    for peer in peers:
        if peer.client:
            clients[peer.client] += 1
        info = peer.primary_ip_info
        if info is None:
            continue
        if info.country_name:
            countries[info.country_name] += 1
        if info.as_name:
            isps[info.as_name] += 1

    top3_countries = [
        CountryCount(country=name, count=count) for name, count in countries.most_common(3)
    ]
    top_client = clients.most_common(1)
    top_isp = [IspCount(isp=name, count=count) for name, count in isps.most_common(1)]

    return NetworkStatsSnapshot(
        epoch_number=chain_info.epoch,
        timestamp=int(now * 1000),
        total_validators_in_set=len(chain_info.validators),
        total_validators_known=len(records),
        active_validators=attested,
        validators_attested_24h=attested,
        validators_proposed_24h=proposed,
        validators_with_operator=sum(1 for record in records if record.node_operator_id),
        validators_with_peers=sum(1 for record in records if record.peer_id),
        total_peers_in_network=len(peers),
        network_attestation_miss_rate=_average_rate(
            [(record.missed_attestations_count, record.total_slots) for record in with_slots]
        ),
        network_proposal_miss_rate=_average_rate(
            [(record.missed_proposals_count, record.total_slots) for record in with_slots]
        ),
        country_distribution=dict(countries),
        top_country=top3_countries[0] if top3_countries else None,
        top3_countries=top3_countries,
        client_distribution=dict(clients),
        top_client=top_client[0][0] if top_client else None,
        isp_distribution=dict(isps),
        top_isp=top_isp[0] if top_isp else None,
        current_slot=chain_info.slot,
    )


@dataclass(slots=True)
class StatisticsAggregator:
    """Computes and stores the per-epoch network snapshot."""

    store: RecordStore
    """Record store to scan and write the snapshot to."""

    config: SyncConfig = field(default_factory=default_sync_config)
    """Scan page size and throttle delay."""

    time_fn: Callable[[], float] = time.time
    """Wall clock for the snapshot timestamp and the 24 hour window."""

    async def aggregate(
        self,
        chain_info: ChainInfo,
        peers: Sequence[PeerData],
    ) -> NetworkStatsSnapshot:
        """Re-scan the store, compute the snapshot and upsert it by epoch."""
        records = await scan_all_records(
            self.store,
            self.config.scan_page_size,
            self.config.scan_throttle_delay,
        )
        snapshot = compute_network_stats(chain_info, records, peers, self.time_fn())
        await self.store.upsert_snapshot(chain_info.epoch, snapshot)
        logger.info(
            "Statistics: epoch %d snapshot stored (%d known, %d attested 24h, %d peers)",
            chain_info.epoch,
            snapshot.total_validators_known,
            snapshot.validators_attested_24h,
            snapshot.total_peers_in_network,
        )
        return snapshot
