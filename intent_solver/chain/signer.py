"""Nonce-serializing transaction signer.

Many legs from many intents are submitted concurrently from a single key.
Letting each submission ask the node for the next nonce races: two callers
read the same pending count and one transaction is dropped. Instead the
signer seeds a local ledger once per chain and hands out nonces from it
under a per-chain lock. Allocation is decoupled from confirmation, so
transactions pipeline.

The ledger is never persisted. A restart re-seeds from the chain's pending
count, which reflects what the node has actually accepted.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING, Any

import structlog

from intent_solver.errors import NonceError, TransactionFailed

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount

    from intent_solver.chain.client import ChainClient, TxReceipt

logger = structlog.get_logger()

# Substrings nodes use when rejecting a transaction for its nonce
NONCE_ERROR_MARKERS = (
    "nonce too low",
    "nonce too high",
    "invalid nonce",
    "nonce has already been used",
    "replacement transaction underpriced",
    "already known",
)


def is_nonce_error(err: BaseException) -> bool:
    message = str(err).lower()
    return any(marker in message for marker in NONCE_ERROR_MARKERS)


class NonceLedger:
    """In-memory map chain_id -> next nonce to hand out.

    Reads and increments must happen while holding `lock(chain_id)`.
    """

    def __init__(self) -> None:
        self._next: dict[int, int] = {}
        self._locks: dict[int, asyncio.Lock] = {}

    def lock(self, chain_id: int) -> asyncio.Lock:
        if chain_id not in self._locks:
            self._locks[chain_id] = asyncio.Lock()
        return self._locks[chain_id]

    def is_seeded(self, chain_id: int) -> bool:
        return chain_id in self._next

    def seed(self, chain_id: int, nonce: int) -> None:
        if nonce < 0:
            raise ValueError(f"Nonce cannot be negative: {nonce}")
        self._next[chain_id] = nonce

    def take(self, chain_id: int) -> int:
        """Return the current value and advance it by one."""
        nonce = self._next[chain_id]
        self._next[chain_id] = nonce + 1
        return nonce

    def peek(self, chain_id: int) -> int | None:
        return self._next.get(chain_id)


class NonceKeeperSigner:
    """Signs and broadcasts transactions for one key across many chains.

    Args:
        account: eth_account LocalAccount holding the key
        client_for: Resolves a chain id to its ChainClient
        ledger: Nonce ledger to use (a fresh one by default)
    """

    def __init__(
        self,
        account: LocalAccount,
        client_for: Callable[[int], ChainClient],
        ledger: NonceLedger | None = None,
    ) -> None:
        self._account = account
        self._client_for = client_for
        self.ledger = ledger or NonceLedger()

    @property
    def address(self) -> str:
        return self._account.address

    async def seed(self, chain_ids: Iterable[int]) -> dict[int, int]:
        """Seed the ledger for several chains concurrently.

        Chains whose RPC fails are skipped and seeded lazily on first use.

        Returns:
            Mapping of successfully seeded chain ids to their nonce
        """
        chain_ids = list(chain_ids)

        async def _seed_one(chain_id: int) -> int:
            async with self.ledger.lock(chain_id):
                if not self.ledger.is_seeded(chain_id):
                    count = await self._client_for(chain_id).transaction_count(self.address)
                    self.ledger.seed(chain_id, count)
                return self.ledger.peek(chain_id) or 0

        results = await asyncio.gather(
            *(_seed_one(chain_id) for chain_id in chain_ids), return_exceptions=True
        )

        seeded: dict[int, int] = {}
        for chain_id, result in zip(chain_ids, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning("nonce_seed_failed", chain_id=chain_id, error=str(result))
            else:
                seeded[chain_id] = result
        logger.info("nonce_ledger_seeded", address=self.address, chains=seeded)
        return seeded

    async def next_nonce(self, chain_id: int) -> int:
        """Allocate the next nonce for `chain_id`.

        Seeds from the chain on first use. Concurrent callers never observe
        the same value.
        """
        async with self.ledger.lock(chain_id):
            if not self.ledger.is_seeded(chain_id):
                count = await self._client_for(chain_id).transaction_count(self.address)
                self.ledger.seed(chain_id, count)
            return self.ledger.take(chain_id)

    async def send_transaction(self, chain_id: int, tx: dict[str, Any]) -> str:
        """Sign and broadcast `tx`, assigning a nonce when it has none.

        Does not wait for confirmation.

        Returns:
            The transaction hash

        Raises:
            NonceError: The node rejected the nonce. Not retried.
        """
        tx = dict(tx)
        tx.setdefault("chainId", chain_id)
        if tx.get("nonce") is None:
            tx["nonce"] = await self.next_nonce(chain_id)

        logger.debug(
            "transaction",
            chain_id=chain_id,
            nonce=tx["nonce"],
            to=tx.get("to"),
            value=tx.get("value", 0),
        )

        signed = self._account.sign_transaction(tx)
        try:
            return await self._client_for(chain_id).send_raw_transaction(signed.raw_transaction)
        except Exception as err:
            if is_nonce_error(err):
                logger.error(
                    "nonce_rejected",
                    chain_id=chain_id,
                    nonce=tx["nonce"],
                    ledger_next=self.ledger.peek(chain_id),
                    error=str(err),
                )
                raise NonceError(
                    f"Chain {chain_id} rejected nonce {tx['nonce']}: {err}"
                ) from err
            raise


class ChainSigner:
    """The write handle for one chain: build, sign, send and confirm.

    Args:
        keeper: Shared nonce-keeping signer
        client: ChainClient for this chain
        chain_id: Chain this signer submits to
    """

    def __init__(self, keeper: NonceKeeperSigner, client: ChainClient, chain_id: int) -> None:
        self._keeper = keeper
        self._client = client
        self.chain_id = chain_id

    @property
    def address(self) -> str:
        return self._keeper.address

    async def send(
        self,
        to: str,
        abi: list[dict],
        fn_name: str,
        args: Sequence[Any],
        value: int | None = None,
    ) -> str:
        """Build and broadcast a contract call. Returns the tx hash."""
        params: dict[str, Any] = {"from": self.address, "chainId": self.chain_id}
        if value:
            params["value"] = value
        tx = await self._client.build_transaction(to, abi, fn_name, args, params)
        return await self._keeper.send_transaction(self.chain_id, tx)

    async def transact(
        self,
        to: str,
        abi: list[dict],
        fn_name: str,
        args: Sequence[Any],
        value: int | None = None,
    ) -> TxReceipt:
        """Send a contract call and wait for its receipt.

        Raises:
            TransactionFailed: The transaction reverted
            NonceError: The nonce was rejected at broadcast
        """
        tx_hash = await self.send(to, abi, fn_name, args, value=value)
        receipt = await self._client.wait_for_receipt(tx_hash)
        if not receipt.success:
            raise TransactionFailed(
                f"{fn_name} reverted on chain {self.chain_id}", tx_hash=receipt.tx_hash
            )
        return receipt


__all__ = [
    "ChainSigner",
    "NonceKeeperSigner",
    "NonceLedger",
    "is_nonce_error",
]
