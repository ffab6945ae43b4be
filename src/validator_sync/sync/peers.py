"""
Peer reconciler.

Refreshes geographic and client metadata for validators linked to a p2p peer.

The crawler listing is large and mostly unchanged between passes. A peer
only matters if the crawler saw it after the previous pass did, so each
peer's last-seen timestamp is compared against the checkpoint and older
peers are dropped before any store write.

The checkpoint advances to the newest last-seen among the peers merged on
this pass, never backwards. It tracks upstream timestamps only, so a peer
seen while a pass is running is still newer than it on the next pass.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from validator_sync import metrics
from validator_sync.sources import PeerCrawlerClient, PeerData
from validator_sync.storage import FieldUpdate, RecordStore

from .checkpoint import SyncCheckpoint, scan_all_records
from .config import SyncConfig, default_sync_config

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PeerResult:
    """Outcome of one peer pass."""

    listing: list[PeerData] = field(default_factory=list, repr=False)
    """Full crawler listing fetched on this pass. Empty when the pass was a no-op."""

    included: int = 0
    """Peers newer than the checkpoint."""

    updated: int = 0
    """Validator records whose peer metadata was rewritten."""


def derive_peer_fields(peer: PeerData) -> dict[str, Any]:
    """
    Flatten a crawler peer into validator record fields.

    Geo fields come from the first geo entry of the first listed address.
    """
    info = peer.primary_ip_info
    return {
        "peer_client": peer.client,
        "peer_country": info.country_name if info else None,
        "peer_city": info.city_name if info else None,
        "peer_ip_address": info.ip_address if info else None,
        "peer_port": info.port if info else None,
        "peer_is_synced": peer.is_synced,
        "peer_block_height": peer.block_height,
        "peer_last_seen": peer.last_seen,
    }


@dataclass(slots=True)
class PeerReconciler:
    """Merges crawler metadata into validators that carry a peer id."""

    store: RecordStore
    """Record store to read from and write to."""

    crawler: PeerCrawlerClient
    """Paginated peer listing."""

    config: SyncConfig = field(default_factory=default_sync_config)
    """Page size and page ceiling."""

    async def reconcile(self, checkpoint: SyncCheckpoint) -> PeerResult:
        """
        Run one peer pass.

        Raises:
            PeerCrawlerError: If a crawler page cannot be fetched.
            StoreError: If the store scan or the batched write fails.
        """
        records = await scan_all_records(
            self.store,
            self.config.scan_page_size,
            self.config.scan_throttle_delay,
        )
        validators_by_peer: dict[str, list[str]] = defaultdict(list)
        for record in records:
            if record.peer_id:
                validators_by_peer[record.peer_id].append(record.validator_address)

        if not validators_by_peer:
            logger.info("Peers: no validators carry a peer id, skipping pass")
            return PeerResult()

        listing = await self.fetch_all_peers()
        since = checkpoint.last_peer_seen
        included = [peer for peer in listing if since is None or peer.last_seen > since]

        updates = [
            FieldUpdate(address, derive_peer_fields(peer))
            for peer in included
            for address in validators_by_peer.get(peer.id, ())
        ]
        updated = await self.store.batch_update(updates) if updates else 0

        if included:
            newest = max(peer.last_seen for peer in included)
            if since is None or newest > since:
                checkpoint.last_peer_seen = newest

        metrics.peer_updates.inc(updated)
        logger.info(
            "Peers: %d listed, %d newer than checkpoint, %d validators updated",
            len(listing),
            len(included),
            updated,
        )
        return PeerResult(listing=listing, included=len(included), updated=updated)

    async def fetch_all_peers(self) -> list[PeerData]:
        """
        Walk the crawler listing page by page.

        Stops at the last page or after the configured page ceiling,
        whichever comes first.
        """
        peers: list[PeerData] = []
        token: str | None = None
        for _ in range(self.config.peer_max_pages):
            page = await self.crawler.list_peers(self.config.peer_page_size, token)
            peers.extend(page.peers)
            token = page.next_pagination_token
            if not token:
                break
        else:
            logger.warning(
                "Peers: listing truncated after %d pages (%d peers)",
                self.config.peer_max_pages,
                len(peers),
            )
        return peers
