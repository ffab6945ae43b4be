"""
Abstract record store interface.

Defines the Protocol that all record store implementations must follow.
Uses structural subtyping for flexibility.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .records import (
        FieldUpdate,
        NetworkStatsSnapshot,
        ScanPage,
        ValidatorHistoryEntry,
    )

DEFAULT_SCAN_PAGE_SIZE = 100
"""Records returned per paginated scan page unless the caller asks otherwise."""


class RecordStore(Protocol):
    """
    Protocol for the record store shared by every sync stage.

    All implementations must provide these methods.
    Uses structural subtyping - any class with matching methods satisfies the protocol.

    Write Semantics
    ---------------
    Every write is an idempotent upsert keyed by a natural key:

    - Validators: address
    - History: (address, slot)
    - Snapshots: epoch number

    Concurrent writers therefore degrade to last-writer-wins, never corruption.

    Errors
    ------
    Rate-limited requests raise ThrottlingError. Any other failure raises StoreError.
    """

    # -------------------------------------------------------------------------
    # Validator Operations
    # -------------------------------------------------------------------------

    async def ensure_exists(self, address: str) -> bool:
        """
        Create an empty validator record if none exists.

        Args:
            address: Canonical validator address.

        Returns:
            True if a record was created, False if it already existed.
        """
        ...

    async def batch_update(self, updates: Sequence[FieldUpdate]) -> int:
        """
        Overwrite fields on existing validator records.

        Updates for unknown addresses are skipped.

        Args:
            updates: One field update per validator.

        Returns:
            Number of records actually updated.
        """
        ...

    async def paginated_scan(
        self,
        token: str | None = None,
        page_size: int = DEFAULT_SCAN_PAGE_SIZE,
    ) -> ScanPage:
        """
        Read one page of validator records in address order.

        Args:
            token: Continuation token from the previous page, or None to start.
            page_size: Maximum records on the page.

        Returns:
            The page, carrying the next token when more records remain.
        """
        ...

    # -------------------------------------------------------------------------
    # History Operations
    # -------------------------------------------------------------------------

    async def get_latest_history_slot(self, address: str) -> int | None:
        """
        Get the highest stored history slot for a validator.

        Returns:
            Highest slot, or None if the validator has no history.
        """
        ...

    async def get_latest_history_slots(self, addresses: Sequence[str]) -> dict[str, int | None]:
        """
        Batched form of get_latest_history_slot.

        Returns:
            Mapping from every requested address to its highest slot or None.
        """
        ...

    async def insert_history(
        self,
        address: str,
        entries: Sequence[ValidatorHistoryEntry],
    ) -> int:
        """
        Append history entries for a validator.

        Entries whose (address, slot) already exists are ignored.

        Returns:
            Number of entries actually written.
        """
        ...

    async def get_history(self, address: str) -> list[ValidatorHistoryEntry]:
        """Get every stored history entry for a validator, ordered by slot."""
        ...

    # -------------------------------------------------------------------------
    # Snapshot Operations
    # -------------------------------------------------------------------------

    async def upsert_snapshot(self, epoch: int, snapshot: NetworkStatsSnapshot) -> None:
        """Store a snapshot for an epoch, replacing any existing one."""
        ...

    async def get_snapshot(self, epoch: int) -> NetworkStatsSnapshot | None:
        """Get the snapshot for an epoch, or None if absent."""
        ...

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Release underlying resources."""
        ...
