"""On-chain registry access and the epoch-driven sync trigger."""

from .reader import ChainInfo, ChainReader
from .web3_reader import Web3ChainReader

__all__ = [
    "ChainInfo",
    "ChainReader",
    "Web3ChainReader",
]
