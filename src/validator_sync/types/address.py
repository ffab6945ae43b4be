"""
Validator address handling.

Addresses arrive from three sources that disagree on casing: the chain
reader returns checksummed hex, the telemetry node returns lower case,
and operators type whatever they like. Every comparison and every store
key uses the canonical lower-cased form.
"""

from __future__ import annotations

from collections.abc import Iterable


def normalize_address(address: str) -> str:
    """Return the canonical form of an address: stripped and lower-cased."""
    return address.strip().lower()


def unique_addresses(addresses: Iterable[str]) -> list[str]:
    """
    Normalize a sequence of addresses and drop duplicates.

    First-seen order is preserved so batches stay deterministic.
    """
    seen: set[str] = set()
    result: list[str] = []
    for address in addresses:
        canonical = normalize_address(address)
        if canonical and canonical not in seen:
            seen.add(canonical)
            result.append(canonical)
    return result
