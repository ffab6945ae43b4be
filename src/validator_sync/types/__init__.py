"""Reusable type definitions for the validator sync engine."""

from .address import normalize_address, unique_addresses
from .base import CamelModel
from .exceptions import (
    ChainReaderError,
    PeerCrawlerError,
    SourceError,
    StageFailedError,
    StoreError,
    SyncError,
    TelemetryError,
    ThrottlingError,
    is_throttling_error,
)

__all__ = [
    # Models
    "CamelModel",
    # Addresses
    "normalize_address",
    "unique_addresses",
    # Exceptions
    "SyncError",
    "StoreError",
    "ThrottlingError",
    "SourceError",
    "ChainReaderError",
    "TelemetryError",
    "PeerCrawlerError",
    "StageFailedError",
    "is_throttling_error",
]
