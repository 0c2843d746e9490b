"""Read/write handles for a single chain.

`ChainClient` is the seam between the solver and the RPC node. The web3
implementation talks to a real node; tests supply an in-memory fake with
the same methods.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import structlog
from web3 import AsyncHTTPProvider, AsyncWeb3

logger = structlog.get_logger()


@dataclass(frozen=True)
class LogEntry:
    """A raw event log as returned by eth_getLogs."""

    address: str
    topics: tuple[str, ...]
    data: bytes
    block_number: int
    log_index: int = 0
    transaction_hash: str | None = None


@dataclass(frozen=True)
class TxReceipt:
    """The parts of a transaction receipt the solver looks at."""

    tx_hash: str
    block_number: int | None
    status: int

    @property
    def success(self) -> bool:
        return self.status == 1


class ChainClient(Protocol):
    """Protocol for per-chain RPC access."""

    chain_id: int

    async def block_number(self) -> int:
        """Current head block number."""
        ...

    async def transaction_count(self, address: str) -> int:
        """Pending transaction count for `address` (the next nonce)."""
        ...

    async def native_balance(self, address: str) -> int:
        """Native asset balance of `address` in wei."""
        ...

    async def call(self, address: str, abi: list[dict], fn_name: str, *args: Any) -> Any:
        """Execute a read-only contract call."""
        ...

    async def get_logs(
        self,
        address: str,
        topics: Sequence[str | None],
        from_block: int,
        to_block: int,
    ) -> list[LogEntry]:
        """Fetch logs emitted by `address` in an inclusive block range."""
        ...

    async def build_transaction(
        self,
        address: str,
        abi: list[dict],
        fn_name: str,
        args: Sequence[Any],
        params: dict[str, Any],
    ) -> dict[str, Any]:
        """Encode a contract call into an unsigned transaction dict (no nonce)."""
        ...

    async def send_raw_transaction(self, raw: bytes) -> str:
        """Broadcast a signed transaction and return its hash."""
        ...

    async def wait_for_receipt(self, tx_hash: str, timeout: float | None = None) -> TxReceipt:
        """Wait for a transaction to be mined."""
        ...


def _to_hex(value: bytes | str) -> str:
    if isinstance(value, str):
        return value if value.startswith("0x") else "0x" + value
    return "0x" + bytes(value).hex()


class Web3ChainClient:
    """ChainClient backed by web3's AsyncWeb3 over HTTP JSON-RPC."""

    def __init__(self, rpc_url: str, chain_id: int, receipt_timeout: float = 300.0):
        """Initialize the client.

        Args:
            rpc_url: HTTP RPC URL (e.g., "https://mainnet.base.org")
            chain_id: Chain id the RPC is expected to serve
            receipt_timeout: Default seconds to wait for a receipt
        """
        self.chain_id = chain_id
        self.receipt_timeout = receipt_timeout
        self.w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))

    def _contract(self, address: str, abi: list[dict]) -> Any:
        return self.w3.eth.contract(address=AsyncWeb3.to_checksum_address(address), abi=abi)

    async def block_number(self) -> int:
        return int(await self.w3.eth.block_number)

    async def transaction_count(self, address: str) -> int:
        return int(
            await self.w3.eth.get_transaction_count(
                AsyncWeb3.to_checksum_address(address), "pending"
            )
        )

    async def native_balance(self, address: str) -> int:
        return int(await self.w3.eth.get_balance(AsyncWeb3.to_checksum_address(address)))

    async def call(self, address: str, abi: list[dict], fn_name: str, *args: Any) -> Any:
        contract = self._contract(address, abi)
        return await getattr(contract.functions, fn_name)(*args).call()

    async def get_logs(
        self,
        address: str,
        topics: Sequence[str | None],
        from_block: int,
        to_block: int,
    ) -> list[LogEntry]:
        raw_logs = await self.w3.eth.get_logs(
            {
                "address": AsyncWeb3.to_checksum_address(address),
                "topics": list(topics),
                "fromBlock": from_block,
                "toBlock": to_block,
            }
        )
        logger.debug(
            "get_logs",
            chain_id=self.chain_id,
            from_block=from_block,
            to_block=to_block,
            count=len(raw_logs),
        )
        return [
            LogEntry(
                address=str(log["address"]).lower(),
                topics=tuple(_to_hex(t) for t in log["topics"]),
                data=bytes(log["data"]),
                block_number=int(log["blockNumber"]),
                log_index=int(log.get("logIndex", 0)),
                transaction_hash=_to_hex(log["transactionHash"])
                if log.get("transactionHash") is not None
                else None,
            )
            for log in raw_logs
        ]

    async def build_transaction(
        self,
        address: str,
        abi: list[dict],
        fn_name: str,
        args: Sequence[Any],
        params: dict[str, Any],
    ) -> dict[str, Any]:
        contract = self._contract(address, abi)
        tx = await getattr(contract.functions, fn_name)(*args).build_transaction(params)
        return dict(tx)

    async def send_raw_transaction(self, raw: bytes) -> str:
        tx_hash = await self.w3.eth.send_raw_transaction(raw)
        return _to_hex(tx_hash)

    async def wait_for_receipt(self, tx_hash: str, timeout: float | None = None) -> TxReceipt:
        receipt = await self.w3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=timeout or self.receipt_timeout
        )
        return TxReceipt(
            tx_hash=_to_hex(receipt["transactionHash"]),
            block_number=receipt.get("blockNumber"),
            status=int(receipt.get("status", 0)),
        )


__all__ = [
    "ChainClient",
    "LogEntry",
    "TxReceipt",
    "Web3ChainClient",
]
