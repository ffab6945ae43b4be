"""
On-chain registry reader interface.

The rollup contract is the source of truth for the epoch number and the
set of validators currently allowed to attest.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


@dataclass(frozen=True, slots=True)
class ChainInfo:
    """What the chain looked like when an epoch transition was detected."""

    epoch: int
    """Current epoch number."""

    validators: list[str] = field(default_factory=list)
    """Canonical addresses of the current on-chain validator set."""

    slot: int | None = None
    """Current slot, if the reader could provide it."""


class ChainReader(Protocol):
    """
    Read-only view of the on-chain validator registry.

    Implementations raise ChainReaderError when the chain cannot be reached.
    """

    async def current_epoch(self) -> int:
        """Return the current epoch number."""
        ...

    async def current_validator_set(self) -> list[str]:
        """Return the addresses of the current validator set."""
        ...

    async def current_slot(self) -> int:
        """Return the current slot number."""
        ...
