"""Tests for the HTTP peer crawler client."""

from __future__ import annotations

from collections.abc import Callable
from datetime import timezone

import httpx
import pytest

from validator_sync.sources import HttpPeerCrawlerClient, PeerData
from validator_sync.types import PeerCrawlerError

CRAWLER_URL = "https://crawler.test/api/private/peers"

PEER = {
    "id": "16Uiu2HAm",
    "lastSeen": "2024-05-01T12:00:00",
    "client": "aztec/v1.0.0",
    "multiAddresses": [
        {
            "maddr": "/ip4/10.0.0.1/tcp/40400",
            "ipInfo": [
                {
                    "ipAddress": "10.0.0.1",
                    "port": 40400,
                    "asName": "Hetzner Online GmbH",
                    "cityName": "Berlin",
                    "countryName": "Germany",
                }
            ],
        }
    ],
    "blockHeight": 1000,
    "isSynced": True,
}


def client_for(handler: Callable[[httpx.Request], httpx.Response]) -> HttpPeerCrawlerClient:
    """Build a client whose requests are answered by `handler`."""
    return HttpPeerCrawlerClient(CRAWLER_URL, "secret", transport=httpx.MockTransport(handler))


class TestListPeers:
    """Tests for fetching a crawler page."""

    async def test_request_shape(self) -> None:
        """Page size, latest flag, token and Basic credential are sent."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"peers": []})

        await client_for(handler).list_peers(500, "next-1")

        (request,) = seen
        assert request.method == "GET"
        assert request.url.params["page_size"] == "500"
        assert request.url.params["latest"] == "true"
        assert request.url.params["pagination_token"] == "next-1"
        assert request.headers["Authorization"] == "Basic secret"

    async def test_first_page_has_no_token(self) -> None:
        """The first request omits the pagination token."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"peers": []})

        await client_for(handler).list_peers(500)

        assert "pagination_token" not in seen[0].url.params

    async def test_parses_page(self) -> None:
        """Peers and the continuation token are parsed."""
        client = client_for(
            lambda _request: httpx.Response(
                200,
                json={"peers": [PEER], "nextPaginationToken": "abc"},
            )
        )

        page = await client.list_peers(10)

        assert page.next_pagination_token == "abc"
        (peer,) = page.peers
        assert peer.id == "16Uiu2HAm"
        info = peer.primary_ip_info
        assert info is not None
        assert info.country_name == "Germany"
        assert info.as_name == "Hetzner Online GmbH"

    async def test_naive_timestamps_are_utc(self) -> None:
        """Timestamps without an offset are read as UTC."""
        peer = PeerData.model_validate(PEER)

        assert peer.last_seen.tzinfo == timezone.utc

    def test_peer_without_addresses_has_no_geo(self) -> None:
        """A peer that advertises no address has no primary geo entry."""
        peer = PeerData.model_validate({"id": "p", "lastSeen": "2024-05-01T12:00:00Z"})

        assert peer.primary_ip_info is None


class TestListPeersErrors:
    """Tests for failures surfacing as PeerCrawlerError."""

    def test_empty_token_rejected(self) -> None:
        """The crawler refuses anonymous requests, so the client does too."""
        with pytest.raises(ValueError):
            HttpPeerCrawlerClient(CRAWLER_URL, "")

    async def test_http_error(self) -> None:
        """A rejected credential is a crawler failure."""
        client = client_for(lambda _request: httpx.Response(401, text="unauthorized"))

        with pytest.raises(PeerCrawlerError, match="401"):
            await client.list_peers(10)

    async def test_network_error(self) -> None:
        """An unreachable crawler is a crawler failure."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(PeerCrawlerError, match="Network error"):
            await client_for(handler).list_peers(10)

    async def test_malformed_page(self) -> None:
        """A peer without an id is a crawler failure."""
        client = client_for(
            lambda _request: httpx.Response(200, json={"peers": [{"lastSeen": "x"}]})
        )

        with pytest.raises(PeerCrawlerError, match="Malformed"):
            await client.list_peers(10)

    async def test_invalid_json(self) -> None:
        """A body that is not JSON is a crawler failure."""
        client = client_for(lambda _request: httpx.Response(200, text="not json"))

        with pytest.raises(PeerCrawlerError, match="not valid JSON"):
            await client.list_peers(10)
