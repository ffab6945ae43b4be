"""
Validator sync CLI entry point.

Run the epoch-triggered sync engine against a rollup contract, a telemetry
node and a peer crawler, storing records in a local SQLite database.

Usage::

    python -m validator_sync --rpc-url http://localhost:8545 --rollup-address 0xabc...
    python -m validator_sync --telemetry-url http://localhost:8080 --database ./validators.db
    python -m validator_sync --poll-interval 12 --metrics-port 0 --verbose

Options:
    --rpc-url          Ethereum RPC endpoint (env ETHEREUM_HOST)
    --rollup-address   Rollup contract address (env ROLLUP_CONTRACT_ADDRESS)
    --telemetry-url    Telemetry node RPC endpoint (env AZTEC_NODE_URL)
    --crawler-url      Peer crawler listing endpoint (env PEER_CRAWLER_URL)
    --crawler-token    Peer crawler credential (env PEER_CRAWLER_AUTH_TOKEN)
    --poll-interval    Seconds between epoch checks (env EPOCH_POLL_INTERVAL, milliseconds)
    --database         SQLite database path (default: validators.db)
    --metrics-port     Port for /health and /metrics, 0 to disable (default: 9464)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from pathlib import Path

from validator_sync.api import MetricsServer, MetricsServerConfig
from validator_sync.chain import Web3ChainReader
from validator_sync.chain.monitor import EpochMonitor
from validator_sync.sources import HttpPeerCrawlerClient, JsonRpcTelemetryClient
from validator_sync.storage import SQLiteRecordStore
from validator_sync.sync import EPOCH_POLL_INTERVAL, SyncOrchestrator

DEFAULT_TELEMETRY_URL = "http://localhost:8080"
"""Telemetry node endpoint when neither flag nor environment sets one."""

DEFAULT_CRAWLER_URL = "https://aztec.nethermind.io/api/private/peers"
"""Peer crawler endpoint when neither flag nor environment sets one."""

logger = logging.getLogger(__name__)


class ColoredFormatter(logging.Formatter):
    """Logging formatter with ANSI colors for different log levels."""

    # ANSI color codes
    GREY = "\x1b[38;5;244m"
    BLUE = "\x1b[38;5;39m"
    GREEN = "\x1b[38;5;40m"
    YELLOW = "\x1b[38;5;220m"
    RED = "\x1b[38;5;196m"
    BOLD_RED = "\x1b[38;5;196;1m"
    CYAN = "\x1b[38;5;51m"
    RESET = "\x1b[0m"

    LEVEL_COLORS = {
        logging.DEBUG: GREY,
        logging.INFO: GREEN,
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: BOLD_RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors."""
        color = self.LEVEL_COLORS.get(record.levelno, self.RESET)

        timestamp = self.formatTime(record, self.datefmt)
        colored_time = f"{self.CYAN}{timestamp}{self.RESET}"
        levelname = f"{color}{record.levelname:8}{self.RESET}"
        name = f"{self.BLUE}{record.name}{self.RESET}"
        message = record.getMessage()

        formatted = f"{colored_time} {levelname} {name}: {message}"
        if record.exc_info:
            formatted = f"{formatted}\n{self.formatException(record.exc_info)}"
        return formatted


def setup_logging(verbose: bool = False, no_color: bool = False) -> None:
    """Configure logging for the sync engine with optional colors."""
    level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    handler.setLevel(level)

    # Use colored formatter unless disabled
    if no_color:
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        formatter = ColoredFormatter(datefmt="%Y-%m-%d %H:%M:%S")

    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(handler)

    # Transport libraries log every request at INFO.
    for noisy in ("httpx", "httpcore", "web3", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def default_poll_interval() -> float:
    """
    Poll interval from the environment, in seconds.

    EPOCH_POLL_INTERVAL is expressed in milliseconds.
    """
    raw = os.environ.get("EPOCH_POLL_INTERVAL")
    if raw is None:
        return EPOCH_POLL_INTERVAL
    return float(raw) / 1000


async def run_sync(
    rpc_url: str,
    rollup_address: str,
    telemetry_url: str,
    crawler_url: str,
    crawler_token: str,
    database_path: Path,
    poll_interval: float = EPOCH_POLL_INTERVAL,
    metrics_port: int = 9464,
) -> None:
    """
    Wire up the sync engine and run it until interrupted.

    Args:
        rpc_url: Ethereum RPC endpoint.
        rollup_address: Rollup contract address.
        telemetry_url: Telemetry node RPC endpoint.
        crawler_url: Peer crawler listing endpoint.
        crawler_token: Peer crawler credential.
        database_path: SQLite database file.
        poll_interval: Seconds between epoch checks.
        metrics_port: Port for the metrics server, 0 to disable.
    """
    store = SQLiteRecordStore(database_path)
    orchestrator = SyncOrchestrator(
        store=store,
        telemetry=JsonRpcTelemetryClient(telemetry_url),
        crawler=HttpPeerCrawlerClient(crawler_url, crawler_token),
    )
    monitor = EpochMonitor(
        chain=Web3ChainReader(rpc_url, rollup_address),
        orchestrator=orchestrator,
        poll_interval=poll_interval,
    )
    server = MetricsServer(
        config=MetricsServerConfig(port=metrics_port, enabled=metrics_port > 0),
        epoch_getter=lambda: monitor.last_synced_epoch,
    )

    logger.info(
        "Starting validator sync (rollup %s, poll every %.1fs, database %s)",
        rollup_address,
        poll_interval,
        database_path,
    )
    await server.start()
    try:
        await monitor.run()
    finally:
        monitor.stop()
        await server.shutdown()
        store.close()


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Epoch-triggered validator sync engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--rpc-url",
        default=os.environ.get("ETHEREUM_HOST"),
        help="Ethereum RPC endpoint (env ETHEREUM_HOST)",
    )
    parser.add_argument(
        "--rollup-address",
        default=os.environ.get("ROLLUP_CONTRACT_ADDRESS"),
        help="Rollup contract address (env ROLLUP_CONTRACT_ADDRESS)",
    )
    parser.add_argument(
        "--telemetry-url",
        default=os.environ.get("AZTEC_NODE_URL", DEFAULT_TELEMETRY_URL),
        help=f"Telemetry node RPC endpoint (default: {DEFAULT_TELEMETRY_URL})",
    )
    parser.add_argument(
        "--crawler-url",
        default=os.environ.get("PEER_CRAWLER_URL", DEFAULT_CRAWLER_URL),
        help="Peer crawler listing endpoint (env PEER_CRAWLER_URL)",
    )
    parser.add_argument(
        "--crawler-token",
        default=os.environ.get("PEER_CRAWLER_AUTH_TOKEN"),
        help="Peer crawler credential (env PEER_CRAWLER_AUTH_TOKEN)",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=default_poll_interval(),
        help=f"Seconds between epoch checks (default: {EPOCH_POLL_INTERVAL})",
    )
    parser.add_argument(
        "--database",
        type=Path,
        default=Path("validators.db"),
        help="SQLite database path (default: validators.db)",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=9464,
        help="Port for /health and /metrics, 0 to disable (default: 9464)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored logging output",
    )

    args = parser.parse_args()

    missing = [
        flag
        for flag, value in (
            ("--rpc-url", args.rpc_url),
            ("--rollup-address", args.rollup_address),
            ("--crawler-token", args.crawler_token),
        )
        if not value
    ]
    if missing:
        parser.error(f"missing required settings: {', '.join(missing)}")
    if args.poll_interval <= 0:
        parser.error("--poll-interval must be positive")

    setup_logging(args.verbose, args.no_color)

    try:
        asyncio.run(
            run_sync(
                args.rpc_url,
                args.rollup_address,
                args.telemetry_url,
                args.crawler_url,
                args.crawler_token,
                args.database,
                args.poll_interval,
                args.metrics_port,
            )
        )
    except KeyboardInterrupt:
        # asyncio.run() handles task cancellation, but we log for clarity.
        logger.info("Shutting down...")


if __name__ == "__main__":
    main()
