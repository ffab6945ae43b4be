"""
SQLite record store implementation.

This module provides persistent storage for the sync engine:

- Validator records as camel case JSON documents keyed by address
- Validator history rows keyed by (address, slot)
- Network statistics snapshots keyed by epoch number

Used for standalone runs and tests. Production deployments may point the
engine at any store satisfying the RecordStore protocol.
"""

from __future__ import annotations

import sqlite3
import time
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path

from pydantic import ValidationError

from validator_sync.types import StoreError, ThrottlingError, normalize_address

from .database import DEFAULT_SCAN_PAGE_SIZE
from .namespaces import ALL_NAMESPACES, HISTORY, NETWORK_STATS, VALIDATORS
from .records import (
    IMMUTABLE_FIELDS,
    FieldUpdate,
    NetworkStatsSnapshot,
    ScanPage,
    ValidatorHistoryEntry,
    ValidatorRecord,
)

MAX_SQL_PARAMS = 500
"""Upper bound on bound parameters per IN (...) query."""


class SQLiteRecordStore:
    """
    SQLite implementation of the RecordStore protocol.

    Stores all collections in a single SQLite file.
    Each write commits immediately, so a crash never leaves a half-applied batch.

    The async methods run sqlite3 calls directly on the event loop, so
    concurrent calls from a gathered batch execute one after another.
    """

    def __init__(
        self,
        path: Path | str,
        time_fn: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the SQLite record store.

        Creates database file and tables if they don't exist.

        Args:
            path: Path to SQLite database file.
                  Use ":memory:" for in-memory database.
            time_fn: Wall clock used for created/updated timestamps.
        """
        self._path = Path(path) if isinstance(path, str) else path
        self._time_fn = time_fn

        # The event loop is single-threaded, but executors may still touch
        # the connection from another thread during shutdown.
        self._conn = sqlite3.connect(
            str(self._path),
            check_same_thread=False,
        )

        # Row factory enables dict-like access: row["column_name"].
        self._conn.row_factory = sqlite3.Row

        self._init_schema()

    def _init_schema(self) -> None:
        """Create tables if they don't exist."""
        cursor = self._conn.cursor()
        for namespace in ALL_NAMESPACES:
            cursor.execute(namespace.CREATE_TABLE)
        self._conn.commit()

    def _now_ms(self) -> int:
        return int(self._time_fn() * 1000)

    @contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        """
        Map sqlite3 failures onto the store error taxonomy.

        A locked database is the SQLite equivalent of a write throttle.
        """
        try:
            yield
        except sqlite3.OperationalError as exc:
            self._conn.rollback()
            if "database is locked" in str(exc):
                raise ThrottlingError(f"{operation}: {exc}") from exc
            raise StoreError(f"{operation}: {exc}") from exc
        except sqlite3.Error as exc:
            self._conn.rollback()
            raise StoreError(f"{operation}: {exc}") from exc

    # -------------------------------------------------------------------------
    # Validator Operations
    # -------------------------------------------------------------------------

    async def ensure_exists(self, address: str) -> bool:
        """Create an empty validator record if none exists."""
        canonical = normalize_address(address)
        now = self._now_ms()
        record = ValidatorRecord(validator_address=canonical, created_at=now, updated_at=now)

        with self._translate_errors(f"ensure_exists({canonical})"):
            cursor = self._conn.cursor()

            # INSERT OR IGNORE leaves an existing record untouched.
            cursor.execute(
                f"INSERT OR IGNORE INTO {VALIDATORS.TABLE_NAME} (address, data) VALUES (?, ?)",
                (canonical, record.model_dump_json(by_alias=True)),
            )
            created = cursor.rowcount == 1
            self._conn.commit()
        return created

    async def batch_update(self, updates: Sequence[FieldUpdate]) -> int:
        """Overwrite fields on existing validator records in one transaction."""
        if not updates:
            return 0

        for update in updates:
            forbidden = IMMUTABLE_FIELDS & update.fields.keys()
            unknown = update.fields.keys() - ValidatorRecord.model_fields.keys()
            if forbidden or unknown:
                raise StoreError(
                    f"Invalid fields for {update.address}: {sorted(forbidden | unknown)}"
                )

        now = self._now_ms()
        updated = 0
        with self._translate_errors(f"batch_update({len(updates)} records)"):
            cursor = self._conn.cursor()
            for update in updates:
                canonical = normalize_address(update.address)
                cursor.execute(
                    f"SELECT data FROM {VALIDATORS.TABLE_NAME} WHERE address = ?",
                    (canonical,),
                )
                row = cursor.fetchone()
                if row is None:
                    continue

                # Fields are overwritten, never merged.
                current = ValidatorRecord.model_validate_json(row["data"])
                try:
                    merged = ValidatorRecord.model_validate(
                        current.model_dump() | update.fields | {"updated_at": now}
                    )
                except ValidationError as exc:
                    self._conn.rollback()
                    raise StoreError(f"Invalid field values for {canonical}: {exc}") from exc

                cursor.execute(
                    f"UPDATE {VALIDATORS.TABLE_NAME} SET data = ? WHERE address = ?",
                    (merged.model_dump_json(by_alias=True), canonical),
                )
                updated += 1

            self._conn.commit()
        return updated

    async def paginated_scan(
        self,
        token: str | None = None,
        page_size: int = DEFAULT_SCAN_PAGE_SIZE,
    ) -> ScanPage:
        """Read one page of validator records in address order."""
        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")

        with self._translate_errors("paginated_scan"):
            cursor = self._conn.cursor()

            # Keyset pagination: the token is the last address of the previous page.
            #
            # Fetch one extra row to learn whether another page exists.
            cursor.execute(
                f"""
                SELECT address, data FROM {VALIDATORS.TABLE_NAME}
                WHERE address > ?
                ORDER BY address
                LIMIT ?
                """,
                (token or "", page_size + 1),
            )
            rows = cursor.fetchall()

        has_more = len(rows) > page_size
        rows = rows[:page_size]
        items = [ValidatorRecord.model_validate_json(row["data"]) for row in rows]
        next_token = rows[-1]["address"] if has_more else None
        return ScanPage(items=items, next_token=next_token)

    async def get_validator(self, address: str) -> ValidatorRecord | None:
        """Get a single validator record by address."""
        with self._translate_errors("get_validator"):
            cursor = self._conn.cursor()
            cursor.execute(
                f"SELECT data FROM {VALIDATORS.TABLE_NAME} WHERE address = ?",
                (normalize_address(address),),
            )
            row = cursor.fetchone()
        if row is None:
            return None
        return ValidatorRecord.model_validate_json(row["data"])

    # -------------------------------------------------------------------------
    # History Operations
    # -------------------------------------------------------------------------

    async def get_latest_history_slot(self, address: str) -> int | None:
        """Get the highest stored history slot for a validator."""
        latest = await self.get_latest_history_slots([address])
        return latest[normalize_address(address)]

    async def get_latest_history_slots(self, addresses: Sequence[str]) -> dict[str, int | None]:
        """Get the highest stored history slot for many validators at once."""
        canonical = [normalize_address(address) for address in addresses]
        result: dict[str, int | None] = dict.fromkeys(canonical)

        with self._translate_errors("get_latest_history_slots"):
            cursor = self._conn.cursor()

            # SQLite caps bound parameters per statement.
            for start in range(0, len(canonical), MAX_SQL_PARAMS):
                chunk = canonical[start : start + MAX_SQL_PARAMS]
                placeholders = ", ".join("?" for _ in chunk)
                cursor.execute(
                    f"""
                    SELECT address, MAX(slot) AS slot FROM {HISTORY.TABLE_NAME}
                    WHERE address IN ({placeholders})
                    GROUP BY address
                    """,
                    chunk,
                )
                for row in cursor.fetchall():
                    result[row["address"]] = row["slot"]
        return result

    async def insert_history(
        self,
        address: str,
        entries: Sequence[ValidatorHistoryEntry],
    ) -> int:
        """Append history entries. Existing (address, slot) pairs are left untouched."""
        if not entries:
            return 0

        canonical = normalize_address(address)
        with self._translate_errors(f"insert_history({canonical})"):
            before = self._conn.total_changes
            self._conn.executemany(
                f"""
                INSERT OR IGNORE INTO {HISTORY.TABLE_NAME} (address, slot, status)
                VALUES (?, ?, ?)
                """,
                [(canonical, entry.slot, entry.status) for entry in entries],
            )
            self._conn.commit()
            return self._conn.total_changes - before

    async def get_history(self, address: str) -> list[ValidatorHistoryEntry]:
        """Get every stored history entry for a validator, ordered by slot."""
        with self._translate_errors("get_history"):
            cursor = self._conn.cursor()
            cursor.execute(
                f"SELECT slot, status FROM {HISTORY.TABLE_NAME} WHERE address = ? ORDER BY slot",
                (normalize_address(address),),
            )
            rows = cursor.fetchall()
        return [ValidatorHistoryEntry(slot=row["slot"], status=row["status"]) for row in rows]

    # -------------------------------------------------------------------------
    # Snapshot Operations
    # -------------------------------------------------------------------------

    async def upsert_snapshot(self, epoch: int, snapshot: NetworkStatsSnapshot) -> None:
        """Store a snapshot for an epoch, replacing any existing one."""
        with self._translate_errors(f"upsert_snapshot({epoch})"):
            self._conn.execute(
                f"""
                INSERT OR REPLACE INTO {NETWORK_STATS.TABLE_NAME} (epoch, data)
                VALUES (?, ?)
                """,
                (epoch, snapshot.model_dump_json(by_alias=True)),
            )
            self._conn.commit()

    async def get_snapshot(self, epoch: int) -> NetworkStatsSnapshot | None:
        """Get the snapshot for an epoch, or None if absent."""
        with self._translate_errors(f"get_snapshot({epoch})"):
            cursor = self._conn.cursor()
            cursor.execute(
                f"SELECT data FROM {NETWORK_STATS.TABLE_NAME} WHERE epoch = ?",
                (epoch,),
            )
            row = cursor.fetchone()
        if row is None:
            return None
        return NetworkStatsSnapshot.model_validate_json(row["data"])

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close database connection."""
        self._conn.close()

    def __enter__(self) -> SQLiteRecordStore:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()
