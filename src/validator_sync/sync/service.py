"""
Sync orchestrator.

This is the main entry point for one epoch's synchronization.

The Core Problem
----------------
Three sources describe the same validators from different angles:

1. **Chain**: which validators exist right now
2. **Telemetry**: how each validator has been performing
3. **Crawler**: where each validator's node runs and what it runs

They share no transaction boundary and disagree on identifiers. The store
is the only place they meet, so every stage reads what the previous stage
wrote instead of passing state along.

How It Works
------------
Stages run strictly in sequence::

    registry --> telemetry --> peers --> statistics
     FATAL        FATAL        FATAL    BEST_EFFORT

- **registry**: ensure on-chain validators exist, then re-scan the store and
  refresh every record's active flag against the on-chain set.
- **telemetry**: refresh stats and history for every address the re-scan found.
- **peers**: refresh peer metadata for validators with a peer id.
- **statistics**: derive the network snapshot for the epoch.

A fatal stage failure aborts the epoch. The next epoch retries from scratch.
A best-effort failure is logged and the epoch still counts as synced.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from validator_sync import metrics
from validator_sync.chain.reader import ChainInfo
from validator_sync.sources import PeerCrawlerClient, TelemetryClient
from validator_sync.storage import RecordStore
from validator_sync.types import StageFailedError

from .checkpoint import SyncCheckpoint, scan_all_records
from .config import SyncConfig, default_sync_config
from .peers import PeerReconciler, PeerResult
from .registry import RegistryReconciler, RegistryResult
from .stages import StageKind, StageResult, SyncReport
from .statistics import StatisticsAggregator
from .telemetry import TelemetryReconciler

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SyncOrchestrator:
    """
    Runs the four reconciliation stages for one epoch transition.

    All collaborators are injected. The orchestrator holds no sync state of
    its own: the checkpoint is passed in by the caller on every run.
    """

    store: RecordStore
    """Record store shared by every stage."""

    telemetry: TelemetryClient
    """Source of per-validator stats and history."""

    crawler: PeerCrawlerClient
    """Source of peer metadata."""

    config: SyncConfig = field(default_factory=default_sync_config)
    """Batch sizes, delays and limits for every stage."""

    time_fn: Callable[[], float] = time.time
    """Wall clock passed to stages that compute time windows."""

    _registry: RegistryReconciler = field(init=False, repr=False)
    """Registry stage."""

    _telemetry: TelemetryReconciler = field(init=False, repr=False)
    """Telemetry stage."""

    _peers: PeerReconciler = field(init=False, repr=False)
    """Peer stage."""

    _statistics: StatisticsAggregator = field(init=False, repr=False)
    """Statistics stage."""

    def __post_init__(self) -> None:
        """Initialize stage components."""
        self._init_components()

    def _init_components(self) -> None:
        """
        Create the stage components with shared dependencies.

        Every stage gets the same store and config.
        """
        self._registry = RegistryReconciler(store=self.store, config=self.config)
        self._telemetry = TelemetryReconciler(
            store=self.store,
            telemetry=self.telemetry,
            config=self.config,
            time_fn=self.time_fn,
        )
        self._peers = PeerReconciler(store=self.store, crawler=self.crawler, config=self.config)
        self._statistics = StatisticsAggregator(
            store=self.store,
            config=self.config,
            time_fn=self.time_fn,
        )

    async def sync(self, chain_info: ChainInfo, checkpoint: SyncCheckpoint) -> SyncReport:
        """
        Run every stage for one epoch.

        Args:
            chain_info: Epoch, slot and on-chain validator set.
            checkpoint: Differential-sync state, mutated in place by the stages.

        Returns:
            Per-stage timings and results.

        Raises:
            StageFailedError: If a fatal stage fails. Later stages do not run.
        """
        report = SyncReport(epoch=chain_info.epoch)
        logger.info(
            "Starting sync for epoch %d (%d validators on chain)",
            chain_info.epoch,
            len(chain_info.validators),
        )

        registry: RegistryResult = await self._run_stage(
            report,
            "registry",
            StageKind.FATAL,
            lambda: self._reconcile_registry(chain_info, checkpoint),
        )
        await self._run_stage(
            report,
            "telemetry",
            StageKind.FATAL,
            lambda: self._telemetry.reconcile(registry.addresses, checkpoint, chain_info.epoch),
        )
        peers: PeerResult = await self._run_stage(
            report,
            "peers",
            StageKind.FATAL,
            lambda: self._peers.reconcile(checkpoint),
        )
        await self._run_stage(
            report,
            "statistics",
            StageKind.BEST_EFFORT,
            lambda: self._statistics.aggregate(chain_info, peers.listing),
        )

        logger.info(
            "Sync for epoch %d finished in %.2fs (failed stages: %s)",
            chain_info.epoch,
            report.duration,
            report.failed_stages or "none",
        )
        return report

    async def _reconcile_registry(
        self,
        chain_info: ChainInfo,
        checkpoint: SyncCheckpoint,
    ) -> RegistryResult:
        """Ensure on-chain validators exist, then refresh active flags from a fresh scan."""
        result = await self._registry.reconcile(chain_info.validators, checkpoint)

        # Re-query: the registry pass may have created records.
        records = await scan_all_records(
            self.store,
            self.config.scan_page_size,
            self.config.scan_throttle_delay,
        )
        activity_updates = await self._registry.refresh_active_flags(records, chain_info.validators)

        return dataclasses.replace(
            result,
            activity_updates=activity_updates,
            addresses=[record.validator_address for record in records],
        )

    async def _run_stage(
        self,
        report: SyncReport,
        name: str,
        kind: StageKind,
        stage: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Run one stage, timing it and applying its failure policy.

        Returns:
            The stage result, or None if a best-effort stage failed.
        """
        started = time.perf_counter()
        try:
            result = await stage()
        except Exception as exc:
            duration = time.perf_counter() - started
            metrics.stage_duration.labels(stage=name).observe(duration)
            metrics.stage_failures.labels(stage=name).inc()
            report.stages.append(StageResult(name, kind, duration, error=exc))

            if kind is StageKind.FATAL:
                logger.error(
                    "Stage %s failed after %.2fs, aborting epoch %d: %s",
                    name,
                    duration,
                    report.epoch,
                    exc,
                )
                raise StageFailedError(name, exc) from exc

            logger.warning("Best-effort stage %s failed after %.2fs: %s", name, duration, exc)
            return None

        duration = time.perf_counter() - started
        metrics.stage_duration.labels(stage=name).observe(duration)
        report.stages.append(StageResult(name, kind, duration, result=result))
        logger.info("Stage %s completed in %.2fs", name, duration)
        return result
