"""
Metric registry using prometheus_client.

Provides pre-defined metrics for the sync engine.
Exposes metrics in Prometheus text format via the /metrics endpoint.
"""

from __future__ import annotations

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Create a dedicated registry for sync engine metrics.
#
# Using a dedicated registry avoids pollution from default Python process metrics.
REGISTRY = CollectorRegistry()

# -----------------------------------------------------------------------------
# Epoch Progress
# -----------------------------------------------------------------------------

epochs_synced = Counter(
    "validator_sync_epochs_synced_total",
    "Epochs whose sync completed",
    registry=REGISTRY,
)

last_synced_epoch = Gauge(
    "validator_sync_last_synced_epoch",
    "Most recent epoch synced successfully",
    registry=REGISTRY,
)

sync_overruns = Counter(
    "validator_sync_overruns_total",
    "Syncs that took longer than the poll interval",
    registry=REGISTRY,
)

# -----------------------------------------------------------------------------
# Stages
# -----------------------------------------------------------------------------

stage_duration = Histogram(
    "validator_sync_stage_seconds",
    "Sync stage duration",
    ["stage"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
    registry=REGISTRY,
)

stage_failures = Counter(
    "validator_sync_stage_failures_total",
    "Sync stage failures",
    ["stage"],
    registry=REGISTRY,
)

# -----------------------------------------------------------------------------
# Reconciliation Counts
# -----------------------------------------------------------------------------

validators_ensured = Counter(
    "validator_sync_validators_ensured_total",
    "New validator records ensured by the registry stage",
    registry=REGISTRY,
)

validators_failed = Counter(
    "validator_sync_validators_failed_total",
    "Validator existence checks that failed in the registry stage",
    registry=REGISTRY,
)

history_entries_inserted = Counter(
    "validator_sync_history_entries_inserted_total",
    "Validator history entries written",
    registry=REGISTRY,
)

telemetry_last_processed_slot = Gauge(
    "validator_sync_telemetry_last_processed_slot",
    "Last processed slot reported by telemetry",
    registry=REGISTRY,
)

peer_updates = Counter(
    "validator_sync_peer_updates_total",
    "Validator records updated with peer metadata",
    registry=REGISTRY,
)


def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics output.

    Returns:
        Prometheus text format output as bytes.
    """
    return generate_latest(REGISTRY)
