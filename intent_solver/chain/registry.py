"""Chain registry: resolves a chain id or name to read and write handles."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from intent_solver.chain.client import ChainClient, Web3ChainClient
from intent_solver.chain.signer import ChainSigner, NonceKeeperSigner
from intent_solver.errors import ChainError

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount

    from intent_solver.models.policy import ChainConfig

logger = structlog.get_logger()

ChainRef = int | str


@dataclass(frozen=True)
class ChainMetadata:
    """Static facts about a chain."""

    chain_id: int
    name: str
    rpc_url: str | None = None
    block_explorer_url: str | None = None

    def tx_reference(self, tx_hash: str) -> str:
        """Explorer link for a transaction, or the bare hash."""
        if self.block_explorer_url:
            return f"{self.block_explorer_url.rstrip('/')}/tx/{tx_hash}"
        return tx_hash


class ChainRegistry:
    """Maps chains to RPC clients and to the shared signer.

    A chain can be referenced by numeric id, decimal-string id, or name.

    Args:
        chains: Metadata for every chain the solver may touch
        clients: ChainClient per chain id
        account: Key used to sign on every chain
    """

    def __init__(
        self,
        chains: Iterable[ChainMetadata],
        clients: Mapping[int, ChainClient],
        account: LocalAccount,
    ) -> None:
        self._by_id: dict[int, ChainMetadata] = {}
        self._by_name: dict[str, ChainMetadata] = {}
        for meta in chains:
            self._by_id[meta.chain_id] = meta
            self._by_name[meta.name.lower()] = meta

        self._clients = dict(clients)
        self.nonce_keeper = NonceKeeperSigner(account, self.get_provider)
        self._signers: dict[int, ChainSigner] = {}

    @classmethod
    def from_config(
        cls, chains: Mapping[str, ChainConfig], account: LocalAccount
    ) -> ChainRegistry:
        """Build a registry with one web3 client per configured chain."""
        metadata = [
            ChainMetadata(
                chain_id=cfg.chain_id,
                name=name,
                rpc_url=cfg.rpc_url,
                block_explorer_url=cfg.block_explorer_url,
            )
            for name, cfg in chains.items()
        ]
        clients = {
            meta.chain_id: Web3ChainClient(meta.rpc_url or "", meta.chain_id) for meta in metadata
        }
        logger.info("chain_registry_loaded", chains=sorted(m.name for m in metadata))
        return cls(metadata, clients, account)

    @property
    def chain_ids(self) -> list[int]:
        return sorted(self._by_id)

    def get_chain_metadata(self, chain: ChainRef) -> ChainMetadata:
        """Resolve a chain reference.

        Raises:
            ChainError: If the chain is not configured
        """
        if isinstance(chain, int):
            meta = self._by_id.get(chain)
        elif chain.isdigit():
            meta = self._by_id.get(int(chain))
        else:
            meta = self._by_name.get(chain.lower())
        if meta is None:
            raise ChainError(f"Unknown chain: {chain}")
        return meta

    def chain_name(self, chain_id: int) -> str:
        meta = self._by_id.get(chain_id)
        return meta.name if meta else str(chain_id)

    def get_provider(self, chain: ChainRef) -> ChainClient:
        meta = self.get_chain_metadata(chain)
        client = self._clients.get(meta.chain_id)
        if client is None:
            raise ChainError(f"No RPC client for chain {meta.name} ({meta.chain_id})")
        return client

    def get_signer(self, chain: ChainRef) -> ChainSigner:
        meta = self.get_chain_metadata(chain)
        if meta.chain_id not in self._signers:
            self._signers[meta.chain_id] = ChainSigner(
                self.nonce_keeper, self.get_provider(meta.chain_id), meta.chain_id
            )
        return self._signers[meta.chain_id]

    def get_signer_address(self, chain: ChainRef) -> str:
        # One key signs on every chain
        self.get_chain_metadata(chain)
        return self.nonce_keeper.address


__all__ = ["ChainMetadata", "ChainRef", "ChainRegistry"]
