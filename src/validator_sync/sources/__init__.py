"""
Upstream data sources.

Clients for the telemetry node and the peer crawler, with the pydantic
models for their payloads.
"""

from .crawler import (
    HttpPeerCrawlerClient,
    PeerCrawlerClient,
    PeerData,
    PeerIpInfo,
    PeerMultiAddress,
    PeerPage,
)
from .telemetry import (
    HistoryItem,
    JsonRpcTelemetryClient,
    MissedDuties,
    SlotEvent,
    TelemetryClient,
    ValidatorsStatsResponse,
    ValidatorStats,
)

__all__ = [
    # Telemetry
    "TelemetryClient",
    "JsonRpcTelemetryClient",
    "ValidatorsStatsResponse",
    "ValidatorStats",
    "SlotEvent",
    "MissedDuties",
    "HistoryItem",
    # Peer crawler
    "PeerCrawlerClient",
    "HttpPeerCrawlerClient",
    "PeerPage",
    "PeerData",
    "PeerMultiAddress",
    "PeerIpInfo",
]
