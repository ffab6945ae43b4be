"""
Differential sync engine.

Reconciles the record store against the on-chain registry, the telemetry
node and the peer crawler, one epoch at a time.

Each source has its own checkpoint in SyncCheckpoint:

- Registry: the set of addresses known to exist
- Telemetry: the last processed slot, plus per-validator history high-water
  marks read from the store
- Peers: the newest last-seen timestamp already merged

SyncOrchestrator runs the stages in order. The epoch monitor in
validator_sync.chain.monitor decides when to run it.
"""

from __future__ import annotations

from .batching import backoff_delay, chunked
from .checkpoint import SyncCheckpoint, rebuild_checkpoint, scan_all_records
from .config import (
    BACKOFF_BASE,
    BACKOFF_CAP,
    EPOCH_POLL_INTERVAL,
    HISTORY_BATCH_DELAY,
    HISTORY_BATCH_SIZE,
    MAX_THROTTLE_ATTEMPTS,
    PEER_MAX_PAGES,
    PEER_PAGE_SIZE,
    REGISTRY_BATCH_DELAY,
    REGISTRY_BATCH_SIZE,
    SyncConfig,
    default_sync_config,
)
from .peers import PeerReconciler, PeerResult, derive_peer_fields
from .registry import RegistryReconciler, RegistryResult
from .service import SyncOrchestrator
from .stages import StageKind, StageResult, SyncReport
from .statistics import StatisticsAggregator, compute_network_stats
from .telemetry import (
    TelemetryReconciler,
    TelemetryResult,
    derive_validator_stats,
    select_new_history,
)

__all__ = [
    # Main service
    "SyncOrchestrator",
    "SyncReport",
    "StageKind",
    "StageResult",
    # Checkpoint
    "SyncCheckpoint",
    "rebuild_checkpoint",
    "scan_all_records",
    # Stages
    "RegistryReconciler",
    "RegistryResult",
    "TelemetryReconciler",
    "TelemetryResult",
    "derive_validator_stats",
    "select_new_history",
    "PeerReconciler",
    "PeerResult",
    "derive_peer_fields",
    "StatisticsAggregator",
    "compute_network_stats",
    # Helpers
    "chunked",
    "backoff_delay",
    # Configuration
    "SyncConfig",
    "default_sync_config",
    "EPOCH_POLL_INTERVAL",
    "REGISTRY_BATCH_SIZE",
    "REGISTRY_BATCH_DELAY",
    "MAX_THROTTLE_ATTEMPTS",
    "BACKOFF_BASE",
    "BACKOFF_CAP",
    "HISTORY_BATCH_SIZE",
    "HISTORY_BATCH_DELAY",
    "PEER_PAGE_SIZE",
    "PEER_MAX_PAGES",
]
