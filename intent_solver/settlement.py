"""Reward claiming after a successful fill.

Two claim paths exist on ERC-7683 settlers:

- withdraw: the origin chain's prover emits
  `IntentProven(bytes32 indexed orderId, address indexed claimant)` once the
  fill message arrives; the filler then calls `withdrawRewards(orderId)` on
  the origin settler.
- settle: the filler calls `settle([orderId])` on every destination settler
  it filled through, paying the cross-chain message fee quoted by
  `quoteGasPayment(originChainId)`.

The proof wait is unbounded unless a timeout is configured, in which case
the intent ends up ABANDONED.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from intent_solver.chain.abi import (
    DESTINATION_SETTLER_ABI,
    INTENT_PROVEN_EVENT_TOPIC,
    ORIGIN_SETTLER_ABI,
)
from intent_solver.errors import ConfigurationError, SettlementTimeout
from intent_solver.models.intent import IntentState
from intent_solver.models.policy import SettlementConfig, SettlementMode
from intent_solver.models.types import order_id_to_bytes

if TYPE_CHECKING:
    from intent_solver.chain.client import LogEntry
    from intent_solver.chain.registry import ChainRegistry
    from intent_solver.models.intent import Intent

logger = structlog.get_logger()


def address_topic(address: str) -> str:
    """An address as an indexed event topic (left-padded to 32 bytes)."""
    return "0x" + "00" * 12 + address.lower().removeprefix("0x")


@dataclass(frozen=True)
class SettlementPlan:
    """Where and how to claim the reward for one filled intent.

    Attributes:
        mode: Claim path
        origin_chain_id: Chain holding the reward
        origin_settler: Origin settler contract (withdraw mode)
        prover: Contract emitting IntentProven (withdraw mode)
        destinations: Unique (chain id, settler) pairs that were filled
    """

    mode: SettlementMode
    origin_chain_id: int
    origin_settler: str | None = None
    prover: str | None = None
    destinations: tuple[tuple[int, str], ...] = ()


class SettlementWaiter:
    """Waits for the proof of a fill and claims the reward.

    Args:
        registry: Chain registry for providers and signers
        config: Settlement mode, timeout and polling interval
    """

    def __init__(self, registry: ChainRegistry, config: SettlementConfig | None = None) -> None:
        self.registry = registry
        self.config = config or SettlementConfig()

    async def wait_and_claim(self, intent: Intent, plan: SettlementPlan) -> IntentState:
        """Claim the reward according to `plan`.

        Returns:
            SETTLED once the claim transaction confirmed, ABANDONED when the
            proof did not arrive in time, FILLED when no claim is configured

        Raises:
            ConfigurationError: The plan lacks the contracts its mode needs
            TransactionFailed: The claim transaction reverted
        """
        if plan.mode is SettlementMode.NONE:
            return IntentState.FILLED
        if plan.mode is SettlementMode.SETTLE:
            await self._settle(intent, plan)
            return IntentState.SETTLED

        if plan.prover is None or plan.origin_settler is None:
            raise ConfigurationError(
                f"Withdraw settlement needs a prover and an origin settler for {intent.label}"
            )
        try:
            await self.wait_for_proof(intent, plan.origin_chain_id, plan.prover)
        except SettlementTimeout as err:
            logger.warning("settlement_abandoned", intent=intent.label, reason=str(err))
            return IntentState.ABANDONED

        await self._withdraw(intent, plan.origin_chain_id, plan.origin_settler)
        return IntentState.SETTLED

    async def wait_for_proof(self, intent: Intent, chain_id: int, prover: str) -> LogEntry:
        """Block until IntentProven(orderId, us) shows up on the origin chain.

        Raises:
            SettlementTimeout: A timeout is configured and elapsed first
        """
        timeout = self.config.timeout
        if timeout is None:
            return await self._poll_for_proof(intent, chain_id, prover)
        try:
            return await asyncio.wait_for(self._poll_for_proof(intent, chain_id, prover), timeout)
        except TimeoutError as err:
            raise SettlementTimeout(
                f"No proof for {intent.label} after {timeout}s"
            ) from err

    async def _poll_for_proof(self, intent: Intent, chain_id: int, prover: str) -> LogEntry:
        client = self.registry.get_provider(chain_id)
        claimant = self.registry.get_signer_address(chain_id)
        topics = [INTENT_PROVEN_EVENT_TOPIC, intent.order_id, address_topic(claimant)]

        from_block = await client.block_number()
        logger.info(
            "waiting_for_proof",
            intent=intent.label,
            prover=prover,
            from_block=from_block,
        )
        while True:
            head = await client.block_number()
            if head >= from_block:
                logs = await client.get_logs(prover, topics, from_block, head)
                if logs:
                    logger.info("intent_proven", intent=intent.label, block=logs[0].block_number)
                    return logs[0]
                from_block = head + 1
            await asyncio.sleep(self.config.poll_interval)

    async def _withdraw(self, intent: Intent, chain_id: int, origin_settler: str) -> None:
        signer = self.registry.get_signer(chain_id)
        receipt = await signer.transact(
            origin_settler,
            ORIGIN_SETTLER_ABI,
            "withdrawRewards",
            [order_id_to_bytes(intent.order_id)],
        )
        meta = self.registry.get_chain_metadata(chain_id)
        logger.info(
            "withdrew_rewards",
            intent=intent.label,
            chain=meta.name,
            tx=meta.tx_reference(receipt.tx_hash),
        )

    async def _settle(self, intent: Intent, plan: SettlementPlan) -> None:
        if not plan.destinations:
            raise ConfigurationError(f"Nothing to settle for {intent.label}")
        order_id = order_id_to_bytes(intent.order_id)

        async def settle_on(chain_id: int, settler: str) -> None:
            client = self.registry.get_provider(chain_id)
            value = int(
                await client.call(
                    settler, DESTINATION_SETTLER_ABI, "quoteGasPayment", plan.origin_chain_id
                )
            )
            receipt = await self.registry.get_signer(chain_id).transact(
                settler, DESTINATION_SETTLER_ABI, "settle", [[order_id]], value=value
            )
            meta = self.registry.get_chain_metadata(chain_id)
            logger.info(
                "settled_intent",
                intent=intent.label,
                chain=meta.name,
                tx=meta.tx_reference(receipt.tx_hash),
            )

        await asyncio.gather(
            *(settle_on(chain_id, settler) for chain_id, settler in plan.destinations)
        )


__all__ = ["SettlementPlan", "SettlementWaiter", "address_topic"]
