"""
Metrics module for observability.

Provides counters, gauges, and histograms for tracking sync engine behavior.
Exposes metrics in Prometheus text format.
"""

from .registry import (
    REGISTRY,
    epochs_synced,
    generate_metrics,
    history_entries_inserted,
    last_synced_epoch,
    peer_updates,
    stage_duration,
    stage_failures,
    sync_overruns,
    telemetry_last_processed_slot,
    validators_ensured,
    validators_failed,
)

__all__ = [
    "REGISTRY",
    "epochs_synced",
    "generate_metrics",
    "history_entries_inserted",
    "last_synced_epoch",
    "peer_updates",
    "stage_duration",
    "stage_failures",
    "sync_overruns",
    "telemetry_last_processed_slot",
    "validators_ensured",
    "validators_failed",
]
