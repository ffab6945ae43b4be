"""
Rollup contract reader backed by web3.

Only three view functions of the rollup contract are needed, so the ABI
below is a minimal excerpt rather than the full contract interface.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Final

import aiohttp
from web3 import AsyncWeb3
from web3.exceptions import Web3Exception

from validator_sync.types import ChainReaderError, unique_addresses

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT: Final = 10.0
"""RPC request timeout in seconds."""

ROLLUP_ABI: Final[list[dict[str, Any]]] = [
    {
        "type": "function",
        "name": "getAttesters",
        "inputs": [],
        "outputs": [{"name": "", "type": "address[]", "internalType": "address[]"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "getCurrentEpoch",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256", "internalType": "Epoch"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "getCurrentSlot",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256", "internalType": "Slot"}],
        "stateMutability": "view",
    },
]
"""View functions of the rollup contract used by the reader."""

_RPC_ERRORS = (Web3Exception, aiohttp.ClientError, TimeoutError, ValueError)
"""Failures raised by web3 and its transport for an unreachable or erroring node."""


@dataclass(slots=True)
class Web3ChainReader:
    """ChainReader over an Ethereum JSON-RPC endpoint."""

    rpc_url: str
    """Ethereum execution node RPC endpoint."""

    rollup_address: str
    """Address of the rollup contract."""

    timeout: float = DEFAULT_TIMEOUT
    """Request timeout in seconds."""

    _contract: Any = field(init=False, repr=False)
    """Bound contract instance."""

    def __post_init__(self) -> None:
        """Bind the rollup contract on a fresh async provider."""
        provider = AsyncWeb3.AsyncHTTPProvider(
            self.rpc_url,
            request_kwargs={"timeout": aiohttp.ClientTimeout(total=self.timeout)},
        )
        w3 = AsyncWeb3(provider)
        self._contract = w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(self.rollup_address),
            abi=ROLLUP_ABI,
        )

    async def _call(self, function_name: str) -> Any:
        try:
            function = getattr(self._contract.functions, function_name)
            return await function().call()
        except _RPC_ERRORS as exc:
            raise ChainReaderError(f"{function_name}() failed on {self.rpc_url}: {exc}") from exc

    async def current_epoch(self) -> int:
        """Return the current epoch number."""
        return int(await self._call("getCurrentEpoch"))

    async def current_validator_set(self) -> list[str]:
        """Return the canonical addresses of the current attester set."""
        attesters = await self._call("getAttesters")
        return unique_addresses(attesters)

    async def current_slot(self) -> int:
        """Return the current slot number."""
        return int(await self._call("getCurrentSlot"))
