"""
Metrics and health server.

Provides HTTP endpoints for:
- /health - Health check with the last synced epoch
- /metrics - Prometheus metrics endpoint

The sync engine has no API of its own. This server only exposes its
observability surface.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from aiohttp import web

from validator_sync.metrics import generate_metrics

logger = logging.getLogger(__name__)

SERVICE_NAME = "validator-sync"
"""Fixed service identifier returned by the health endpoint."""


def _no_epoch() -> int | None:
    """Default epoch getter that returns None."""
    return None


async def _handle_metrics(_request: web.Request) -> web.Response:
    """Handle Prometheus metrics endpoint."""
    return web.Response(
        body=generate_metrics(),
        content_type="text/plain; version=0.0.4",
        charset="utf-8",
    )


@dataclass(frozen=True, slots=True)
class MetricsServerConfig:
    """Configuration for the metrics server."""

    host: str = "0.0.0.0"
    """Host address to bind to."""

    port: int = 9464
    """Port to listen on."""

    enabled: bool = True
    """Whether the metrics server is enabled."""


@dataclass(slots=True)
class MetricsServer:
    """
    HTTP server for health checks and Prometheus scraping.

    Uses aiohttp to handle HTTP protocol details efficiently.
    """

    config: MetricsServerConfig
    """Server configuration."""

    epoch_getter: Callable[[], int | None] = _no_epoch
    """Callable that returns the last synced epoch."""

    _runner: web.AppRunner | None = field(default=None, init=False)
    """The aiohttp application runner."""

    _site: web.TCPSite | None = field(default=None, init=False)
    """The TCP site for the server."""

    async def start(self) -> None:
        """Start the server in the background."""
        if not self.config.enabled:
            logger.info("Metrics server is disabled")
            return

        app = web.Application()
        app.add_routes(
            [
                web.get("/health", self._handle_health),
                web.get("/metrics", _handle_metrics),
            ]
        )

        self._runner = web.AppRunner(app)
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self.config.host, self.config.port)
        await self._site.start()

        logger.info("Metrics server listening on %s:%d", self.config.host, self.config.port)

    def stop(self) -> None:
        """Request graceful shutdown."""
        if self._runner is not None:
            asyncio.create_task(self.shutdown())

    async def shutdown(self) -> None:
        """Gracefully stop the server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
            logger.info("Metrics server stopped")

    async def _handle_health(self, _request: web.Request) -> web.Response:
        """
        Handle health check endpoint.

        Response format:
        {
            "status": "healthy",
            "service": "validator-sync",
            "lastSyncedEpoch": <epoch or null>
        }
        """
        return web.json_response(
            {
                "status": "healthy",
                "service": SERVICE_NAME,
                "lastSyncedEpoch": self.epoch_getter(),
            }
        )
