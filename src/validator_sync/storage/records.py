"""
Persisted record types.

Three collections live in the record store:

- Validators, keyed by canonical address
- Validator history, keyed by (address, slot)
- Network statistics snapshots, keyed by epoch number

All records serialize with camel case keys so stored documents match the
shape consumed by the dashboards reading the same store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from validator_sync.types import CamelModel


class ValidatorRecord(CamelModel):
    """
    One validator tracked by the sync engine.

    The address is the identity and never changes once created.
    Every other field is overwritten by the stage that owns it.
    """

    validator_address: str
    """Canonical lower-cased validator address."""

    node_operator_id: str | None = None
    """Operator that registered this validator, if known."""

    is_active: bool = False
    """Whether the validator is in the current on-chain set."""

    epoch: int | None = None
    """Last epoch in which telemetry refreshed this record."""

    # Telemetry-derived fields.

    has_attested_24h: bool = False
    """Whether the latest attestation falls within the last 24 hours."""

    last_attestation_slot: int | None = None
    last_attestation_timestamp: int | None = None
    last_attestation_date: str | None = None

    last_proposal_slot: int | None = None
    last_proposal_timestamp: int | None = None
    last_proposal_date: str | None = None

    missed_attestations_count: int = 0
    missed_proposals_count: int = 0

    total_slots: int = 0
    """Total slots the telemetry source observed for this validator."""

    # Peer-derived fields.

    peer_id: str | None = None
    """Peer identity on the p2p network, assigned outside this engine."""

    peer_client: str | None = None
    peer_country: str | None = None
    peer_city: str | None = None
    peer_ip_address: str | None = None
    peer_port: int | None = None
    peer_is_synced: bool | None = None
    peer_block_height: int | None = None
    peer_last_seen: datetime | None = None

    created_at: int = 0
    """Creation time in milliseconds since the Unix epoch."""

    updated_at: int = 0
    """Last write time in milliseconds since the Unix epoch."""


IMMUTABLE_FIELDS: frozenset[str] = frozenset({"validator_address", "created_at"})
"""Record fields that a batch update may never touch."""


class ValidatorHistoryEntry(CamelModel):
    """A single per-slot duty outcome. Append-only."""

    slot: int
    """Slot number of the duty."""

    status: str
    """Outcome, e.g. attestation-sent, attestation-missed, block-proposed."""


class CountryCount(CamelModel):
    """Peer count for one country."""

    country: str
    count: int


class IspCount(CamelModel):
    """Peer count for one network operator."""

    isp: str
    count: int


class NetworkStatsSnapshot(CamelModel):
    """
    Network-wide statistics derived once per epoch.

    A snapshot is fully recomputable from the store and the peer listing,
    so writes replace any earlier snapshot for the same epoch.
    """

    epoch_number: int
    timestamp: int
    """Computation time in milliseconds since the Unix epoch."""

    total_validators_in_set: int = 0
    total_validators_known: int = 0
    active_validators: int = 0
    validators_attested_24h: int = 0
    validators_proposed_24h: int = 0
    validators_with_operator: int = 0
    validators_with_peers: int = 0
    total_peers_in_network: int = 0

    network_attestation_miss_rate: float = 0.0
    network_proposal_miss_rate: float = 0.0

    country_distribution: dict[str, int] = {}
    top_country: CountryCount | None = None
    top3_countries: list[CountryCount] = []

    client_distribution: dict[str, int] = {}
    top_client: str | None = None

    isp_distribution: dict[str, int] = {}
    top_isp: IspCount | None = None

    current_slot: int | None = None


@dataclass(frozen=True, slots=True)
class FieldUpdate:
    """A set of field overwrites for one validator record."""

    address: str
    """Canonical address of the record to update."""

    fields: dict[str, Any] = field(default_factory=dict)
    """Field name to new value. Names use the Python attribute spelling."""


@dataclass(frozen=True, slots=True)
class ScanPage:
    """One page of a paginated validator scan."""

    items: list[ValidatorRecord]
    """Records on this page, ordered by address."""

    next_token: str | None = None
    """Continuation token for the next page, or None on the last page."""
