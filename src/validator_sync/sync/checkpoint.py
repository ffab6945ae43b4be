"""
Process-lifetime sync checkpoint.

The checkpoint is the minimal memory each reconciler needs to tell what
is new since the previous pass:

- Registry: which addresses are already known to exist in the store
- Telemetry: the last slot the node had processed
- Peers: the newest last-seen timestamp already merged

It is owned by the epoch monitor and passed explicitly into every stage.
Nothing here is persisted. After a restart the known-address set is
rebuilt from the store and the other markers start empty, which makes the
first pass a full sync for those sources.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime

from validator_sync.storage import RecordStore, ValidatorRecord
from validator_sync.types import is_throttling_error

from .config import SCAN_PAGE_SIZE, SCAN_THROTTLE_DELAY

logger = logging.getLogger(__name__)

MAX_SCAN_PAGE_ATTEMPTS = 3
"""Attempts per throttled scan page before the rebuild gives up."""


@dataclass(slots=True)
class SyncCheckpoint:
    """Differential-sync state for one running instance."""

    known_addresses: set[str] = field(default_factory=set)
    """Canonical addresses known to have a record. Only the registry stage adds to it."""

    last_telemetry_slot: int | None = None
    """Last processed slot reported by telemetry. Used only for the no-progress guard."""

    last_peer_seen: datetime | None = None
    """Newest peer last-seen already merged. None means the next peer pass is a full one."""

    def is_known(self, address: str) -> bool:
        """Check whether an address is known to exist in the store."""
        return address in self.known_addresses


async def scan_all_records(
    store: RecordStore,
    page_size: int = SCAN_PAGE_SIZE,
    throttle_delay: float = 0.0,
) -> list[ValidatorRecord]:
    """
    Read every validator record by walking the paginated scan.

    A throttled page is retried after `throttle_delay` seconds, up to
    MAX_SCAN_PAGE_ATTEMPTS times. Any other failure propagates.
    """
    records: list[ValidatorRecord] = []
    token: str | None = None
    while True:
        attempt = 0
        while True:
            try:
                page = await store.paginated_scan(token, page_size)
                break
            except Exception as exc:
                attempt += 1
                if not is_throttling_error(exc) or attempt >= MAX_SCAN_PAGE_ATTEMPTS:
                    raise
                logger.warning("Scan throttled, retrying page in %.1fs", throttle_delay)
                await asyncio.sleep(throttle_delay)

        records.extend(page.items)
        if page.next_token is None:
            return records
        token = page.next_token


async def rebuild_checkpoint(
    store: RecordStore,
    page_size: int = SCAN_PAGE_SIZE,
    throttle_delay: float = SCAN_THROTTLE_DELAY,
) -> SyncCheckpoint:
    """
    Rebuild the checkpoint from the store on startup.

    Never raises. If the store cannot be scanned, the returned checkpoint
    is empty and the first pass treats every address as new.
    """
    try:
        records = await scan_all_records(store, page_size, throttle_delay)
    except Exception as exc:
        logger.warning("Checkpoint rebuild failed, first pass will be a full sync: %s", exc)
        return SyncCheckpoint()

    checkpoint = SyncCheckpoint(
        known_addresses={record.validator_address for record in records},
    )
    logger.info("Checkpoint rebuilt with %d known validators", len(checkpoint.known_addresses))
    return checkpoint
