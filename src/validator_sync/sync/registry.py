"""
Registry reconciler.

Makes sure every validator in the on-chain set has a record in the store.

Existence checks are the expensive part: the store charges a write for
every upsert and throttles callers that go too fast. Two mechanisms keep
the cost down:

1. **Known-address cache**: an address that was ensured once is never
   checked again for the lifetime of the process.
2. **Paced batches**: new addresses are ensured in small concurrent
   batches with a fixed pause between batches.

Throttling
----------
A throttled call means the whole batch went out too fast. The batch is
retried as a unit with exponential backoff. When the retry budget runs
out, every address in the batch counts as failed and stays out of the
known set, so the next epoch retries it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from validator_sync import metrics
from validator_sync.storage import FieldUpdate, RecordStore, ValidatorRecord
from validator_sync.types import is_throttling_error, unique_addresses

from .batching import backoff_delay, chunked
from .checkpoint import SyncCheckpoint
from .config import SyncConfig, default_sync_config

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RegistryResult:
    """Counts produced by one registry pass."""

    ensured: int = 0
    """New addresses whose record is now known to exist."""

    failed: int = 0
    """New addresses that could not be ensured this pass."""

    skipped: int = 0
    """Addresses already in the known set."""

    activity_updates: int = 0
    """Records whose active flag changed."""

    addresses: list[str] = field(default_factory=list, repr=False)
    """Every address in the store after the pass."""


async def ensure_in_batches(
    store: RecordStore,
    addresses: Sequence[str],
    config: SyncConfig,
    stage: str = "Registry",
) -> tuple[list[str], list[str]]:
    """
    Ensure records exist for `addresses` in paced, concurrent batches.

    Batches are separated by `registry_batch_delay`. A throttled batch is
    retried whole with exponential backoff. When the retry budget runs out,
    every address in the batch counts as failed.

    Args:
        store: Record store to write to.
        addresses: Addresses to ensure, in order.
        config: Batch size, delay and retry budget.
        stage: Name used in log messages.

    Returns:
        Addresses that were ensured and addresses that failed.
    """
    batches = list(chunked(addresses, config.registry_batch_size))
    succeeded: list[str] = []
    failed: list[str] = []
    for index, batch in enumerate(batches):
        # Pace batches to stay under the store's write-rate limit.
        if index > 0 and config.registry_batch_delay > 0:
            await asyncio.sleep(config.registry_batch_delay)

        batch_succeeded, batch_failed = await _ensure_batch(
            store, batch, config, stage, index + 1, len(batches)
        )
        succeeded.extend(batch_succeeded)
        failed.extend(batch_failed)
    return succeeded, failed


async def _ensure_batch(
    store: RecordStore,
    batch: Sequence[str],
    config: SyncConfig,
    stage: str,
    number: int,
    total: int,
) -> tuple[list[str], list[str]]:
    attempt = 0
    while True:
        outcomes = await asyncio.gather(
            *(store.ensure_exists(address) for address in batch),
            return_exceptions=True,
        )
        throttled = any(
            isinstance(outcome, BaseException) and is_throttling_error(outcome)
            for outcome in outcomes
        )
        if not throttled:
            break

        attempt += 1
        if attempt > config.max_throttle_attempts:
            logger.error(
                "%s batch %d/%d still throttled after %d retries, "
                "counting %d addresses as failed",
                stage,
                number,
                total,
                config.max_throttle_attempts,
                len(batch),
            )
            return [], list(batch)

        delay = backoff_delay(attempt, config.backoff_base, config.backoff_cap)
        logger.warning(
            "%s batch %d/%d throttled, retry %d/%d in %.1fs",
            stage,
            number,
            total,
            attempt,
            config.max_throttle_attempts,
            delay,
        )
        await asyncio.sleep(delay)

    succeeded: list[str] = []
    failed: list[str] = []
    for address, outcome in zip(batch, outcomes, strict=True):
        if isinstance(outcome, BaseException):
            logger.warning("%s: failed to ensure %s: %s", stage, address, outcome)
            failed.append(address)
        else:
            succeeded.append(address)
    return succeeded, failed


@dataclass(slots=True)
class RegistryReconciler:
    """Ensures on-chain validators exist in the store."""

    store: RecordStore
    """Record store to write to."""

    config: SyncConfig = field(default_factory=default_sync_config)
    """Batch sizes, delays and retry budget."""

    async def reconcile(
        self,
        on_chain_addresses: Sequence[str],
        checkpoint: SyncCheckpoint,
    ) -> RegistryResult:
        """
        Ensure records exist for on-chain addresses not yet known.

        Never raises for partial failure. Successfully ensured addresses are
        added to the checkpoint's known set.

        Args:
            on_chain_addresses: Current on-chain validator set.
            checkpoint: Checkpoint whose known-address set is consulted and grown.

        Returns:
            Counts of ensured, failed and skipped addresses.
        """
        candidates = unique_addresses(on_chain_addresses)
        new_addresses = [address for address in candidates if not checkpoint.is_known(address)]
        skipped = len(candidates) - len(new_addresses)

        if not new_addresses:
            logger.info("Registry: all %d on-chain validators already known", skipped)
            return RegistryResult(skipped=skipped)

        logger.info(
            "Registry: ensuring %d new validators in batches of %d (%d already known)",
            len(new_addresses),
            self.config.registry_batch_size,
            skipped,
        )

        succeeded, failed = await ensure_in_batches(self.store, new_addresses, self.config)
        checkpoint.known_addresses.update(succeeded)

        metrics.validators_ensured.inc(len(succeeded))
        metrics.validators_failed.inc(len(failed))
        logger.info("Registry: %d ensured, %d failed", len(succeeded), len(failed))
        return RegistryResult(ensured=len(succeeded), failed=len(failed), skipped=skipped)

    async def refresh_active_flags(
        self,
        records: Sequence[ValidatorRecord],
        on_chain_addresses: Sequence[str],
    ) -> int:
        """
        Mark each stored validator active iff it is in the on-chain set.

        Only records whose flag actually changes are written.

        Returns:
            Number of records updated.
        """
        on_chain = set(unique_addresses(on_chain_addresses))
        updates = [
            FieldUpdate(
                address=record.validator_address,
                fields={"is_active": record.validator_address in on_chain},
            )
            for record in records
            if record.is_active != (record.validator_address in on_chain)
        ]
        if not updates:
            return 0

        updated = await self.store.batch_update(updates)
        logger.info("Registry: refreshed active flag on %d validators", updated)
        return updated
