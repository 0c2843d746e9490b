"""Chain access: RPC clients, registry, nonce-keeping signer and balances."""

from intent_solver.chain.balances import AssetBalanceChecker, Shortfall, TokenInfo
from intent_solver.chain.client import ChainClient, LogEntry, TxReceipt, Web3ChainClient
from intent_solver.chain.registry import ChainMetadata, ChainRegistry
from intent_solver.chain.signer import ChainSigner, NonceKeeperSigner, NonceLedger

__all__ = [
    "AssetBalanceChecker",
    "ChainClient",
    "ChainMetadata",
    "ChainRegistry",
    "ChainSigner",
    "LogEntry",
    "NonceKeeperSigner",
    "NonceLedger",
    "Shortfall",
    "TokenInfo",
    "TxReceipt",
    "Web3ChainClient",
]
