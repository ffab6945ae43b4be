"""
Database namespace definitions for storage tables.

Defines table names and schema constants for SQLite storage.
Each namespace represents one record collection.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ValidatorNamespace:
    """
    Namespace for validator records.

    Records are stored as camel case JSON documents keyed by address.
    """

    TABLE_NAME: str = "validators"
    """Table name for validator storage."""

    CREATE_TABLE: str = """
        CREATE TABLE IF NOT EXISTS validators (
            address TEXT PRIMARY KEY,
            data TEXT NOT NULL
        )
    """
    """SQL to create validators table."""


@dataclass(frozen=True, slots=True)
class HistoryNamespace:
    """
    Namespace for validator history.

    One row per (address, slot). The composite primary key makes
    duplicate inserts a no-op under INSERT OR IGNORE.
    """

    TABLE_NAME: str = "validator_history"
    """Table name for history storage."""

    CREATE_TABLE: str = """
        CREATE TABLE IF NOT EXISTS validator_history (
            address TEXT NOT NULL,
            slot INTEGER NOT NULL,
            status TEXT NOT NULL,
            PRIMARY KEY (address, slot)
        )
    """
    """SQL to create history table."""


@dataclass(frozen=True, slots=True)
class NetworkStatsNamespace:
    """
    Namespace for network statistics snapshots.

    One document per epoch, replaced wholesale on every write.
    """

    TABLE_NAME: str = "network_stats"
    """Table name for snapshot storage."""

    CREATE_TABLE: str = """
        CREATE TABLE IF NOT EXISTS network_stats (
            epoch INTEGER PRIMARY KEY,
            data TEXT NOT NULL
        )
    """
    """SQL to create network stats table."""


# Singleton instances for convenient access
VALIDATORS = ValidatorNamespace()
HISTORY = HistoryNamespace()
NETWORK_STATS = NetworkStatsNamespace()

ALL_NAMESPACES = [VALIDATORS, HISTORY, NETWORK_STATS]
"""All namespace definitions for schema initialization."""
