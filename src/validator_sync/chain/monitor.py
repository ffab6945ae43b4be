"""
Epoch monitor that drives the sync engine.

The Epoch Problem
-----------------
The validator set and duty schedule only change at epoch boundaries. Syncing
more often than once per epoch wastes upstream and store capacity; syncing
less often leaves the store stale. Nothing on chain pushes a notification
when an epoch starts, so the monitor polls.

How It Works
------------
1. Rebuild the sync checkpoint from the store (once, non-fatal)
2. Every poll interval, start a tick in the background
3. A tick reads the current epoch and returns if it was already synced
4. Otherwise it reads the validator set and slot and runs the orchestrator
5. Only a successful orchestration marks the epoch as synced

Ticks run as background tasks so a slow sync never delays the timer.
An in-flight flag keeps ticks from overlapping: a tick that finds a sync
still running logs a warning and returns.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from validator_sync import metrics
from validator_sync.sync import (
    EPOCH_POLL_INTERVAL,
    SyncCheckpoint,
    SyncOrchestrator,
    SyncReport,
    rebuild_checkpoint,
)
from validator_sync.types import SyncError, unique_addresses

from .reader import ChainInfo, ChainReader

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EpochMonitor:
    """
    Polls the chain and runs one orchestration per epoch transition.

    The monitor owns the sync checkpoint and hands it to the orchestrator
    on every run. No error raised during a tick escapes the monitor.
    """

    chain: ChainReader
    """Source of the epoch number, validator set and slot."""

    orchestrator: SyncOrchestrator
    """Runs the sync stages for a new epoch."""

    poll_interval: float = EPOCH_POLL_INTERVAL
    """Seconds between ticks."""

    time_fn: Callable[[], float] = time.monotonic
    """Clock used to measure sync duration."""

    checkpoint: SyncCheckpoint = field(default_factory=SyncCheckpoint)
    """Differential-sync state shared with every stage."""

    _last_synced_epoch: int | None = field(default=None, repr=False)
    """Most recent epoch whose orchestration succeeded."""

    _in_flight: bool = field(default=False, repr=False)
    """Whether a tick is currently running."""

    _initialized: bool = field(default=False, repr=False)
    """Whether the checkpoint has been rebuilt."""

    _running: bool = field(default=False, repr=False)
    """Whether the run loop is active."""

    _tasks: set[asyncio.Task[SyncReport | None]] = field(default_factory=set, repr=False)
    """Tick tasks still running. Holds references so tasks are not collected."""

    async def initialize(self) -> None:
        """
        Rebuild the checkpoint from the store before the first tick.

        Rebuild failure is absorbed by rebuild_checkpoint: the checkpoint stays
        empty and the first orchestration behaves as a full sync.
        """
        config = self.orchestrator.config
        self.checkpoint = await rebuild_checkpoint(
            self.orchestrator.store,
            page_size=config.scan_page_size,
            throttle_delay=config.scan_throttle_delay,
        )
        self._initialized = True

    async def tick(self) -> SyncReport | None:
        """
        Check the epoch and sync if it changed.

        Returns:
            The sync report if an orchestration ran and succeeded, None otherwise.
        """
        if self._in_flight:
            logger.warning("Previous sync still in flight, skipping tick")
            return None

        self._in_flight = True
        try:
            return await self._tick()
        except SyncError as exc:
            logger.error("Epoch sync failed, will retry next tick: %s", exc)
            return None
        except Exception:
            logger.exception("Unexpected error during epoch sync, will retry next tick")
            return None
        finally:
            self._in_flight = False

    async def _tick(self) -> SyncReport | None:
        epoch = await self.chain.current_epoch()
        if epoch == self._last_synced_epoch:
            logger.debug("Epoch %d already synced", epoch)
            return None

        validators = unique_addresses(await self.chain.current_validator_set())
        slot = await self.chain.current_slot()
        chain_info = ChainInfo(epoch=epoch, validators=validators, slot=slot)
        logger.info(
            "Epoch changed %s -> %d, syncing %d validators",
            self._last_synced_epoch,
            epoch,
            len(validators),
        )

        started = self.time_fn()
        try:
            report = await self.orchestrator.sync(chain_info, self.checkpoint)
        finally:
            elapsed = self.time_fn() - started
            if elapsed > self.poll_interval:
                metrics.sync_overruns.inc()
                logger.warning(
                    "Sync for epoch %d took %.1fs, longer than the %.1fs poll interval",
                    epoch,
                    elapsed,
                    self.poll_interval,
                )

        self._last_synced_epoch = epoch
        metrics.epochs_synced.inc()
        metrics.last_synced_epoch.set(epoch)
        return report

    async def run(self) -> None:
        """
        Main loop - start a tick every poll interval.

        The first tick runs immediately. The loop continues until the
        monitor is stopped, then waits for any tick still running.
        """
        self._running = True
        if not self._initialized:
            await self.initialize()

        while self._running:
            task = asyncio.create_task(self.tick())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

            await asyncio.sleep(self.poll_interval)

        if self._tasks:
            await asyncio.gather(*self._tasks)

    def stop(self) -> None:
        """
        Stop the monitor.

        Sets the running flag to False, causing the run() loop to exit
        after completing its current sleep. A sync in flight is not canceled.
        """
        self._running = False

    @property
    def is_running(self) -> bool:
        """Check if the monitor loop is currently running."""
        return self._running

    @property
    def is_syncing(self) -> bool:
        """Check if an orchestration is in flight."""
        return self._in_flight

    @property
    def last_synced_epoch(self) -> int | None:
        """Most recent epoch synced successfully, or None before the first success."""
        return self._last_synced_epoch
