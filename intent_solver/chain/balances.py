"""Balance and token metadata queries for the solver's own account."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

import structlog

from intent_solver.chain.abi import ERC20_ABI
from intent_solver.models.types import is_native, normalize_address

if TYPE_CHECKING:
    from intent_solver.chain.registry import ChainRegistry
    from intent_solver.models.intent import Asset, Intent

logger = structlog.get_logger()

NATIVE_SYMBOL = "ETH"
NATIVE_DECIMALS = 18


@dataclass(frozen=True)
class TokenInfo:
    symbol: str
    decimals: int

    def format_amount(self, amount: int) -> str:
        """Human-readable amount, like ethers' formatUnits."""
        value = Decimal(amount).scaleb(-self.decimals)
        text = format(value.normalize(), "f")
        return text if "." in text else f"{text}.0"


@dataclass(frozen=True)
class Shortfall:
    """A token the solver holds too little of on a chain."""

    chain_id: int
    token: str
    required: int
    balance: int


class AssetBalanceChecker:
    """Reads native and ERC-20 balances of the solver account.

    Args:
        registry: Chain registry used for providers and the signer address
    """

    def __init__(self, registry: ChainRegistry) -> None:
        self.registry = registry
        self._token_info: dict[tuple[int, str], TokenInfo] = {}

    async def balance_of(self, chain_id: int, token: str, holder: str) -> int:
        """Balance of `holder` for `token` on `chain_id` (zero address = native)."""
        client = self.registry.get_provider(chain_id)
        if is_native(token):
            return await client.native_balance(holder)
        return int(await client.call(token, ERC20_ABI, "balanceOf", holder))

    async def shortfalls_on_chain(
        self, chain_id: int, required: dict[str, int]
    ) -> list[Shortfall]:
        """Tokens on `chain_id` whose balance is below the required amount."""
        holder = self.registry.get_signer_address(chain_id)
        tokens = list(required)
        balances = await asyncio.gather(
            *(self.balance_of(chain_id, token, holder) for token in tokens)
        )
        return [
            Shortfall(chain_id=chain_id, token=token, required=required[token], balance=balance)
            for token, balance in zip(tokens, balances, strict=True)
            if balance < required[token]
        ]

    async def find_shortfalls(self, intent: Intent) -> list[Shortfall]:
        """Every (chain, token) the intent's targets need more of.

        Amounts of the same token on the same chain are summed first.
        """
        required = intent.required_amounts()
        per_chain = await asyncio.gather(
            *(self.shortfalls_on_chain(chain_id, tokens) for chain_id, tokens in required.items())
        )
        return [shortfall for chain_shortfalls in per_chain for shortfall in chain_shortfalls]

    async def chains_with_enough_tokens(self, intent: Intent) -> set[int]:
        """Destination chains where every required token is fully funded.

        A chain whose balance query fails is treated as unfunded.
        """
        required = intent.required_amounts()
        chain_ids = list(required)
        results = await asyncio.gather(
            *(self.shortfalls_on_chain(chain_id, required[chain_id]) for chain_id in chain_ids),
            return_exceptions=True,
        )

        funded: set[int] = set()
        for chain_id, result in zip(chain_ids, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning(
                    "balance_check_failed",
                    intent=intent.label,
                    chain_id=chain_id,
                    error=str(result),
                )
            elif not result:
                funded.add(chain_id)
        return funded

    async def token_info(self, chain_id: int, token: str) -> TokenInfo:
        """Symbol and decimals of a token, cached per (chain, token)."""
        key = (chain_id, normalize_address(token))
        if key in self._token_info:
            return self._token_info[key]

        if is_native(token):
            info = TokenInfo(symbol=NATIVE_SYMBOL, decimals=NATIVE_DECIMALS)
        else:
            client = self.registry.get_provider(chain_id)
            decimals, symbol = await asyncio.gather(
                client.call(token, ERC20_ABI, "decimals"),
                client.call(token, ERC20_ABI, "symbol"),
            )
            info = TokenInfo(symbol=str(symbol), decimals=int(decimals))

        self._token_info[key] = info
        return info

    async def describe(self, asset: Asset) -> str:
        """e.g. "100.0 USDC on optimism"."""
        info = await self.token_info(asset.chain_id, asset.token)
        chain_name = self.registry.chain_name(asset.chain_id)
        return f"{info.format_amount(asset.amount)} {info.symbol} on {chain_name}"


__all__ = ["AssetBalanceChecker", "Shortfall", "TokenInfo"]
