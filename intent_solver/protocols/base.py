"""Capabilities a settlement protocol supplies to the generic filler."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from intent_solver.chain.balances import AssetBalanceChecker
    from intent_solver.chain.client import LogEntry, TxReceipt
    from intent_solver.chain.signer import ChainSigner
    from intent_solver.models.intent import Intent
    from intent_solver.settlement import SettlementPlan


@dataclass(frozen=True)
class Approval:
    """One ERC-20 allowance covering every selected leg that spends it.

    `approve` sets the allowance rather than adding to it, so legs paying the
    same token to the same spender on one chain share a single approval for
    their combined amount.

    Attributes:
        chain_id: Destination chain the approval is sent on
        token: Token being approved
        spender: Contract allowed to pull the tokens
        amount: Exact total the covered legs need
        legs: Indexes of the legs this allowance covers
    """

    chain_id: int
    token: str
    spender: str
    amount: int
    legs: tuple[int, ...]

class ProtocolAdapter(Protocol):
    """Protocol-specific pieces of discovering, filling and settling intents.

    The Filler owns the lifecycle (logging, rules, leg selection, error
    containment) and calls into an adapter for everything that depends on
    the contracts involved.
    """

    protocol_name: str
    event_topic: str

    def parse_log(self, log: LogEntry, chain_name: str) -> Intent:
        """Decode an order-open log into an Intent.

        Raises:
            ValueError: The log is not a well-formed order-open event
        """
        ...

    async def retrieve_origin_info(
        self, intent: Intent, balances: AssetBalanceChecker
    ) -> list[str]:
        """Human-readable reward assets."""
        ...

    async def retrieve_target_info(
        self, intent: Intent, balances: AssetBalanceChecker
    ) -> list[str]:
        """Human-readable target assets."""
        ...

    def approvals(self, intent: Intent, legs: Sequence[int]) -> list[Approval]:
        """Allowances the selected legs need, one per (chain, token, spender)."""
        ...

    async def approve(self, approval: Approval, signer: ChainSigner) -> TxReceipt:
        """Send one approval and wait for it to confirm."""
        ...

    async def fill_leg(self, intent: Intent, index: int, signer: ChainSigner) -> TxReceipt:
        """Submit the fill for one leg and wait for it to confirm."""
        ...

    def settlement_plan(self, intent: Intent, filled_legs: Sequence[int]) -> SettlementPlan:
        """How to claim the reward once `filled_legs` landed."""
        ...
