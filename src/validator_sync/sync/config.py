"""
Sync engine configuration constants.

Operational parameters for synchronization: batch sizes, delays, retry
ceilings and page limits. The delays exist to stay under the record
store's write-rate limit, not for correctness.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from validator_sync.config import SYNC_ENV

EPOCH_POLL_INTERVAL: Final[float] = 30.0
"""Seconds between epoch checks."""

REGISTRY_BATCH_SIZE: Final[int] = 20
"""Addresses ensured concurrently per registry batch."""

REGISTRY_BATCH_DELAY: Final[float] = 0.25
"""Seconds to wait between registry batches."""

MAX_THROTTLE_ATTEMPTS: Final[int] = 3
"""Retries of a throttled batch before the whole batch counts as failed."""

BACKOFF_BASE: Final[float] = 1.0
"""First backoff step in seconds. Doubles on every retry."""

BACKOFF_CAP: Final[float] = 15.0
"""Ceiling on a single backoff sleep in seconds."""

HISTORY_BATCH_SIZE: Final[int] = 3
"""Validators whose history is inserted concurrently."""

HISTORY_BATCH_DELAY: Final[float] = 0.2
"""Seconds to wait between history batches."""

PEER_PAGE_SIZE: Final[int] = 2000
"""Peers requested per crawler page."""

PEER_MAX_PAGES: Final[int] = 50
"""Crawler pages fetched per pass. Guarantees termination against a misbehaving upstream."""

SCAN_PAGE_SIZE: Final[int] = 100
"""Records per paginated store scan page."""

SCAN_THROTTLE_DELAY: Final[float] = 1.0
"""Seconds to wait before retrying a throttled store scan page."""

ATTESTATION_WINDOW_SECONDS: Final[int] = 24 * 60 * 60
"""Window for the has-attested-recently flag."""


@dataclass(frozen=True, slots=True)
class SyncConfig:
    """
    Tunables for one sync engine instance.

    Defaults mirror the module constants. Tests zero out the delays.
    """

    registry_batch_size: int = REGISTRY_BATCH_SIZE
    registry_batch_delay: float = REGISTRY_BATCH_DELAY
    max_throttle_attempts: int = MAX_THROTTLE_ATTEMPTS
    backoff_base: float = BACKOFF_BASE
    backoff_cap: float = BACKOFF_CAP
    history_batch_size: int = HISTORY_BATCH_SIZE
    history_batch_delay: float = HISTORY_BATCH_DELAY
    peer_page_size: int = PEER_PAGE_SIZE
    peer_max_pages: int = PEER_MAX_PAGES
    scan_page_size: int = SCAN_PAGE_SIZE
    scan_throttle_delay: float = SCAN_THROTTLE_DELAY

    def __post_init__(self) -> None:
        """Reject sizes that would make a stage loop forever or never run."""
        for name in (
            "registry_batch_size",
            "history_batch_size",
            "peer_page_size",
            "peer_max_pages",
            "scan_page_size",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.max_throttle_attempts < 0:
            raise ValueError("max_throttle_attempts must not be negative")


PROD_SYNC_CONFIG = SyncConfig()
"""Production tunables, paced for a rate-limited store."""

TEST_SYNC_CONFIG = SyncConfig(
    registry_batch_delay=0.0,
    history_batch_delay=0.0,
    backoff_base=0.0,
    backoff_cap=0.0,
    scan_throttle_delay=0.0,
)
"""Production sizes with every delay removed."""

SYNC_ENV_TO_CONFIG: Final[dict[str, SyncConfig]] = {
    "prod": PROD_SYNC_CONFIG,
    "test": TEST_SYNC_CONFIG,
}
"""Default tunables per SYNC_ENV."""


def default_sync_config() -> SyncConfig:
    """Tunables for the environment selected by SYNC_ENV."""
    return SYNC_ENV_TO_CONFIG[SYNC_ENV]
