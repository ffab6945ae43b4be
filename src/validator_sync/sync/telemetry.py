"""
Telemetry reconciler.

Refreshes per-validator performance counters and appends new duty history.

The Core Problem
----------------
The telemetry node returns a snapshot of every validator at once, including
a sliding window of recent history. Consecutive snapshots overlap heavily:
most of the window was already ingested on the previous pass. Blindly
inserting it again would duplicate history and burn store write capacity.

How It Works
------------
1. One fetch of the full stats payload.
2. If the node's last processed slot has not advanced since the previous
   pass, stop. Nothing upstream changed.
3. Derive flat stats for every known address and write them in one batch.
4. For validators that reported history, read each one's highest stored
   slot in one batched read and insert only entries strictly above it.

Step 4 is what makes replays idempotent. The global slot marker from step 2
is only a short-circuit and never drives per-validator filtering.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from validator_sync import metrics
from validator_sync.sources import HistoryItem, TelemetryClient, ValidatorStats
from validator_sync.storage import FieldUpdate, RecordStore, ValidatorHistoryEntry
from validator_sync.types import unique_addresses

from .batching import chunked
from .checkpoint import SyncCheckpoint
from .config import ATTESTATION_WINDOW_SECONDS, SyncConfig, default_sync_config
from .registry import ensure_in_batches

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TelemetryResult:
    """Counts produced by one telemetry pass."""

    skipped: bool = False
    """True when the pass short-circuited because telemetry had not advanced."""

    updated: int = 0
    """Validator records whose stats were rewritten."""

    ensure_failures: int = 0
    """Addresses skipped because their record could not be ensured."""

    history_inserted: int = 0
    """History entries written."""

    history_failures: int = 0
    """Validators whose history insert failed."""

    last_processed_slot: int | None = None
    """Slot marker reported by telemetry on this pass."""


def derive_validator_stats(
    raw: ValidatorStats | None,
    now: float,
    epoch: int | None = None,
) -> dict[str, Any]:
    """
    Flatten raw telemetry into validator record fields.

    Every field is present in the output. A validator with no telemetry gets
    zero counters and absent timestamps, so stale values are overwritten.

    Args:
        raw: Telemetry for the validator, or None if the node reported nothing.
        now: Current Unix time in seconds.
        epoch: Epoch stamped on the record.
    """
    fields: dict[str, Any] = {
        "epoch": epoch,
        "has_attested_24h": False,
        "last_attestation_slot": None,
        "last_attestation_timestamp": None,
        "last_attestation_date": None,
        "last_proposal_slot": None,
        "last_proposal_timestamp": None,
        "last_proposal_date": None,
        "missed_attestations_count": 0,
        "missed_proposals_count": 0,
        "total_slots": 0,
    }
    if raw is None:
        return fields

    if raw.last_attestation is not None:
        cutoff = int(now) - ATTESTATION_WINDOW_SECONDS
        fields["has_attested_24h"] = raw.last_attestation.timestamp >= cutoff
        fields["last_attestation_slot"] = raw.last_attestation.slot
        fields["last_attestation_timestamp"] = raw.last_attestation.timestamp
        fields["last_attestation_date"] = raw.last_attestation.date

    if raw.last_proposal is not None:
        fields["last_proposal_slot"] = raw.last_proposal.slot
        fields["last_proposal_timestamp"] = raw.last_proposal.timestamp
        fields["last_proposal_date"] = raw.last_proposal.date

    fields["missed_attestations_count"] = raw.missed_attestations.count
    fields["missed_proposals_count"] = raw.missed_proposals.count
    fields["total_slots"] = raw.total_slots
    return fields


def select_new_history(
    items: Sequence[HistoryItem],
    high_water: int | None,
) -> list[ValidatorHistoryEntry]:
    """
    Pick the history entries that still need to be stored.

    With no stored history every entry is new. Otherwise only entries whose
    slot is strictly greater than the stored high-water mark qualify.
    Duplicate slots in the incoming slice collapse to their first occurrence.

    Returns:
        New entries in slot order.
    """
    selected: dict[int, ValidatorHistoryEntry] = {}
    for item in items:
        if high_water is not None and item.slot <= high_water:
            continue
        if item.slot not in selected:
            selected[item.slot] = ValidatorHistoryEntry(slot=item.slot, status=item.status)
    return [selected[slot] for slot in sorted(selected)]


@dataclass(slots=True)
class TelemetryReconciler:
    """Merges telemetry stats and history into the store."""

    store: RecordStore
    """Record store to write to."""

    telemetry: TelemetryClient
    """Source of per-validator stats."""

    config: SyncConfig = field(default_factory=default_sync_config)
    """Batch sizes and delays."""

    time_fn: Callable[[], float] = time.time
    """Wall clock used for the 24 hour attestation cutoff."""

    async def reconcile(
        self,
        addresses: Sequence[str],
        checkpoint: SyncCheckpoint,
        epoch: int | None = None,
    ) -> TelemetryResult:
        """
        Run one telemetry pass.

        Args:
            addresses: Every validator address known to the store.
            checkpoint: Checkpoint holding the telemetry slot marker.
            epoch: Epoch stamped on refreshed records.

        Raises:
            TelemetryError: If the source is unreachable or malformed.
            StoreError: If the batched stats write or history read fails.
        """
        stats = await self.telemetry.fetch_stats()
        reported = stats.last_processed_slot
        previous = checkpoint.last_telemetry_slot

        # Primary incremental guard: nothing new upstream, nothing to write.
        if previous is not None and reported is not None and reported <= previous:
            logger.info(
                "Telemetry: last processed slot %d has not advanced, skipping pass",
                reported,
            )
            return TelemetryResult(skipped=True, last_processed_slot=reported)

        by_address = stats.by_address()
        now = self.time_fn()
        targets = unique_addresses(addresses)

        # Addresses the registry stage never ensured still need a record before the update.
        unknown = [address for address in targets if not checkpoint.is_known(address)]
        missing = await self._ensure_unknown(unknown)

        updates: list[FieldUpdate] = []
        with_history: dict[str, list[HistoryItem]] = {}
        for address in targets:
            if address in missing:
                continue
            raw = by_address.get(address)
            updates.append(FieldUpdate(address, derive_validator_stats(raw, now, epoch)))
            if raw is not None and raw.history:
                with_history[address] = raw.history

        updated = await self.store.batch_update(updates) if updates else 0
        logger.info("Telemetry: updated stats for %d validators", updated)

        inserted, history_failures = await self._merge_history(with_history)

        if reported is not None:
            checkpoint.last_telemetry_slot = reported
            metrics.telemetry_last_processed_slot.set(reported)

        return TelemetryResult(
            updated=updated,
            ensure_failures=len(missing),
            history_inserted=inserted,
            history_failures=history_failures,
            last_processed_slot=reported,
        )

    async def _ensure_unknown(self, addresses: Sequence[str]) -> set[str]:
        """
        Ensure records for addresses outside the known set.

        Uses the registry's pacing and throttle backoff.

        Returns:
            Addresses whose existence could not be ensured.
        """
        if not addresses:
            return set()
        _, failed = await ensure_in_batches(self.store, addresses, self.config, stage="Telemetry")
        if failed:
            logger.warning("Telemetry: could not ensure %d validators, skipping them", len(failed))
        return set(failed)

    async def _merge_history(
        self,
        with_history: Mapping[str, list[HistoryItem]],
    ) -> tuple[int, int]:
        """
        Append new history entries with bounded concurrency.

        Returns:
            Entries inserted and validators whose insert failed.
        """
        if not with_history:
            return 0, 0

        latest = await self.store.get_latest_history_slots(list(with_history))
        fresh = sum(1 for address in with_history if latest.get(address) is None)
        logger.info(
            "Telemetry: merging history for %d validators (%d without stored history)",
            len(with_history),
            fresh,
        )

        inserted = 0
        failures = 0
        work = list(with_history.items())
        for index, batch in enumerate(chunked(work, self.config.history_batch_size)):
            if index > 0 and self.config.history_batch_delay > 0:
                await asyncio.sleep(self.config.history_batch_delay)

            outcomes = await asyncio.gather(
                *(
                    self._insert_new_entries(address, items, latest.get(address))
                    for address, items in batch
                ),
                return_exceptions=True,
            )
            for (address, _), outcome in zip(batch, outcomes, strict=True):
                if isinstance(outcome, BaseException):
                    logger.warning("Telemetry: history insert failed for %s: %s", address, outcome)
                    failures += 1
                else:
                    inserted += outcome

        metrics.history_entries_inserted.inc(inserted)
        logger.info("Telemetry: inserted %d history entries (%d failures)", inserted, failures)
        return inserted, failures

    async def _insert_new_entries(
        self,
        address: str,
        items: Sequence[HistoryItem],
        high_water: int | None,
    ) -> int:
        entries = select_new_history(items, high_water)
        if not entries:
            logger.debug("Telemetry: history for %s already up to date", address)
            return 0
        return await self.store.insert_history(address, entries)
