"""
Storage module for validator, history and snapshot records.

Provides the record store abstraction shared by every sync stage.
Ships a SQLite implementation for standalone runs and tests.
"""

from .database import DEFAULT_SCAN_PAGE_SIZE, RecordStore
from .records import (
    CountryCount,
    FieldUpdate,
    IspCount,
    NetworkStatsSnapshot,
    ScanPage,
    ValidatorHistoryEntry,
    ValidatorRecord,
)
from .sqlite import SQLiteRecordStore

__all__ = [
    "DEFAULT_SCAN_PAGE_SIZE",
    "RecordStore",
    "SQLiteRecordStore",
    "FieldUpdate",
    "ScanPage",
    "ValidatorRecord",
    "ValidatorHistoryEntry",
    "NetworkStatsSnapshot",
    "CountryCount",
    "IspCount",
]
