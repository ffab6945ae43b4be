"""
Peer crawler client.

A third-party crawler walks the p2p network and records every peer it can
reach, enriched with geo-IP and client metadata. The listing is unbounded,
so it is served in pages linked by an opaque pagination token.

Peers are identified by their p2p peer id. Validators are linked to peers
outside this engine, by storing the peer id on the validator record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

import httpx
from pydantic import ValidationError, field_validator

from validator_sync.types import CamelModel, PeerCrawlerError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
"""HTTP request timeout in seconds."""


class PeerIpInfo(CamelModel):
    """Geo-IP resolution of one peer address."""

    ip_address: str | None = None
    port: int | None = None
    as_name: str | None = None
    """Autonomous system name, i.e. the ISP or hosting provider."""

    as_number: int | None = None
    city_name: str | None = None
    country_name: str | None = None
    country_iso: str | None = None
    continent_name: str | None = None
    continent_code: str | None = None
    latitude: float | None = None
    longitude: float | None = None


class PeerMultiAddress(CamelModel):
    """One advertised network address of a peer."""

    maddr: str | None = None
    ip_info: list[PeerIpInfo] = []


class PeerData(CamelModel):
    """A single peer as reported by the crawler."""

    id: str
    """p2p peer id."""

    last_seen: datetime
    """When the crawler last reached this peer."""

    created_at: datetime | None = None
    client: str | None = None
    multi_addresses: list[PeerMultiAddress] = []
    block_height: int | None = None
    spec_version: str | None = None
    is_synced: bool | None = None

    @field_validator("last_seen", "created_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        """Treat naive timestamps as UTC so checkpoint comparisons never mix offsets."""
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def primary_ip_info(self) -> PeerIpInfo | None:
        """Geo entry of the first listed address, if any."""
        for address in self.multi_addresses[:1]:
            for info in address.ip_info[:1]:
                return info
        return None


class PeerPage(CamelModel):
    """One page of the crawler listing."""

    peers: list[PeerData] = []
    next_pagination_token: str | None = None
    """Token for the next page. None on the last page."""


class PeerCrawlerClient(Protocol):
    """
    Paginated source of network peers.

    Implementations raise PeerCrawlerError when a page cannot be fetched or parsed.
    """

    async def list_peers(self, page_size: int, token: str | None = None) -> PeerPage:
        """Fetch one page of the peer listing."""
        ...


@dataclass(slots=True)
class HttpPeerCrawlerClient:
    """Peer crawler client for the HTTP listing endpoint."""

    url: str
    """Listing endpoint, e.g. https://crawler.example/api/private/peers."""

    auth_token: str
    """Credential sent as HTTP Basic authorization."""

    timeout: float = DEFAULT_TIMEOUT
    """Request timeout in seconds."""

    transport: httpx.AsyncBaseTransport | None = None
    """Optional transport override. Tests inject an httpx.MockTransport."""

    def __post_init__(self) -> None:
        """Reject a missing credential up front. The crawler refuses anonymous requests."""
        if not self.auth_token:
            raise ValueError("Peer crawler requires an auth token")

    async def list_peers(self, page_size: int, token: str | None = None) -> PeerPage:
        """
        Fetch one page of the latest peer listing.

        Args:
            page_size: Peers per page.
            token: Pagination token from the previous page.

        Raises:
            PeerCrawlerError: On network failure, HTTP error or malformed page.
        """
        params = {"page_size": str(page_size), "latest": "true"}
        if token:
            params["pagination_token"] = token
        headers = {"Authorization": f"Basic {self.auth_token}"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(self.url, params=params, headers=headers)
                response.raise_for_status()
                page = PeerPage.model_validate(response.json())
        except httpx.RequestError as exc:
            raise PeerCrawlerError(
                f"Network error while connecting to {exc.request.url}: {exc}"
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise PeerCrawlerError(
                f"HTTP error {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except ValidationError as exc:
            raise PeerCrawlerError(f"Malformed peer page: {exc}") from exc
        except ValueError as exc:
            raise PeerCrawlerError(f"Response is not valid JSON: {exc}") from exc

        logger.debug(
            "Fetched %d peers (more pages: %s)",
            len(page.peers),
            page.next_pagination_token is not None,
        )
        return page
