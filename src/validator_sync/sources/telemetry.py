"""
Attestation telemetry client.

The telemetry node tracks every validator's duties over a sliding window of
slots and exposes the result through a single JSON-RPC method. One call
returns stats for all validators at once, plus a global marker of the last
slot the node has processed.

Payload Shape
-------------
::

    {
        "stats": {
            "<address>": {
                "address": "<address>",
                "lastAttestation": {"timestamp": ..., "slot": ..., "date": ...},
                "lastProposal": {...},
                "totalSlots": 120,
                "missedAttestations": {"count": 3, "rate": 0.025},
                "missedProposals": {"count": 0, "rate": 0},
                "history": [{"slot": "100", "status": "attestation-sent"}]
            }
        },
        "lastProcessedSlot": 1234,
        "initialSlot": 1000,
        "slotWindow": 234
    }

Numbers may arrive as JSON strings. The models coerce them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx
from pydantic import ValidationError

from validator_sync.types import CamelModel, TelemetryError, normalize_address

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
"""HTTP request timeout in seconds. The stats payload grows with the validator set."""

STATS_METHOD = "node_getValidatorsStats"
"""JSON-RPC method returning stats for every validator."""


class SlotEvent(CamelModel):
    """The most recent attestation or proposal of a validator."""

    timestamp: int
    """Unix time of the event in seconds."""

    slot: int
    """Slot in which the event happened."""

    date: str | None = None
    """Human-readable rendering of the timestamp."""


class MissedDuties(CamelModel):
    """Missed duty counter over the telemetry window."""

    count: int = 0
    rate: float | None = None


class HistoryItem(CamelModel):
    """One entry of a validator's recent duty history."""

    slot: int
    status: str


class ValidatorStats(CamelModel):
    """Raw telemetry for a single validator."""

    address: str | None = None
    last_attestation: SlotEvent | None = None
    last_proposal: SlotEvent | None = None
    total_slots: int = 0
    missed_attestations: MissedDuties = MissedDuties()
    missed_proposals: MissedDuties = MissedDuties()
    history: list[HistoryItem] = []


class ValidatorsStatsResponse(CamelModel):
    """Telemetry for every validator the node has observed."""

    stats: dict[str, ValidatorStats] = {}
    """Per-validator stats keyed by address as reported by the node."""

    last_processed_slot: int | None = None
    """Highest slot the node has processed. Absent on a freshly started node."""

    initial_slot: int | None = None
    slot_window: int | None = None

    def by_address(self) -> dict[str, ValidatorStats]:
        """Return the stats keyed by canonical address."""
        return {normalize_address(address): stats for address, stats in self.stats.items()}


class TelemetryClient(Protocol):
    """
    Source of per-validator attestation and proposal stats.

    Implementations raise TelemetryError when the source is unreachable
    or answers with something that is not a stats payload.
    """

    async def fetch_stats(self) -> ValidatorsStatsResponse:
        """Fetch stats for all validators in one call."""
        ...


@dataclass(slots=True)
class JsonRpcTelemetryClient:
    """Telemetry client speaking JSON-RPC over HTTP to a node."""

    url: str
    """Node RPC endpoint, e.g. http://localhost:8080."""

    timeout: float = DEFAULT_TIMEOUT
    """Request timeout in seconds."""

    transport: httpx.AsyncBaseTransport | None = None
    """Optional transport override. Tests inject an httpx.MockTransport."""

    async def fetch_stats(self) -> ValidatorsStatsResponse:
        """
        Call node_getValidatorsStats and parse the result.

        Raises:
            TelemetryError: On network failure, HTTP error, JSON-RPC error
                or a malformed result.
        """
        payload = {"jsonrpc": "2.0", "method": STATS_METHOD, "params": [], "id": 1}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.url, json=payload)
                response.raise_for_status()
                body = response.json()
        except httpx.RequestError as exc:
            raise TelemetryError(
                f"Network error while connecting to {exc.request.url}: {exc}"
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise TelemetryError(
                f"HTTP error {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except ValueError as exc:
            raise TelemetryError(f"Response is not valid JSON: {exc}") from exc

        if not isinstance(body, dict):
            raise TelemetryError(f"Unexpected JSON-RPC envelope: {type(body).__name__}")
        if body.get("error") is not None:
            raise TelemetryError(f"JSON-RPC error from {STATS_METHOD}: {body['error']}")

        result = body.get("result")
        if result is None:
            raise TelemetryError(f"{STATS_METHOD} returned no result")

        try:
            stats = ValidatorsStatsResponse.model_validate(result)
        except ValidationError as exc:
            raise TelemetryError(f"Malformed stats payload: {exc}") from exc

        logger.debug(
            "Fetched telemetry for %d validators (last processed slot %s)",
            len(stats.stats),
            stats.last_processed_slot,
        )
        return stats
