"""ERC-7683 (Hyperlane7683-style) settler contracts.

Orders are discovered from
`Open(bytes32 indexed orderId, ResolvedCrossChainOrder resolvedOrder)`.
`maxSpent` is what the filler delivers on the destination chains and
`minReceived` is the reward it collects on the origin chain.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING

import structlog
from eth_abi import decode
from eth_utils import to_checksum_address

from intent_solver.chain.abi import (
    DESTINATION_SETTLER_ABI,
    ERC20_ABI,
    OPEN_EVENT_TOPIC,
    RESOLVED_ORDER_TYPE,
)
from intent_solver.models.intent import Asset, Intent, Leg
from intent_solver.models.policy import SettlementConfig
from intent_solver.models.types import (
    address_to_bytes32,
    normalize_address,
    order_id_to_bytes,
)
from intent_solver.protocols.base import Approval
from intent_solver.settlement import SettlementPlan

if TYPE_CHECKING:
    from intent_solver.chain.balances import AssetBalanceChecker
    from intent_solver.chain.client import LogEntry, TxReceipt
    from intent_solver.chain.signer import ChainSigner

logger = structlog.get_logger()


def _assets(outputs: Sequence[tuple]) -> tuple[Asset, ...]:
    return tuple(
        Asset(token=token, amount=amount, recipient=recipient, chain_id=chain_id)
        for token, amount, recipient, chain_id in outputs
    )


def decode_open_event(
    log: LogEntry, protocol_name: str = "Hyperlane7683", chain_name: str | None = None
) -> Intent:
    """Decode an `Open` log into an Intent.

    Raises:
        ValueError: Wrong topic, missing order id topic, or undecodable data
    """
    if len(log.topics) < 2 or log.topics[0].lower() != OPEN_EVENT_TOPIC:
        raise ValueError(f"Not an Open event: {log.topics[:1]}")

    try:
        (resolved,) = decode([RESOLVED_ORDER_TYPE], log.data)
    except Exception as err:
        raise ValueError(f"Malformed Open event data: {err}") from err

    (
        user,
        origin_chain_id,
        open_deadline,
        fill_deadline,
        _order_id,
        max_spent,
        min_received,
        fill_instructions,
    ) = resolved

    return Intent(
        order_id=log.topics[1],
        user=user,
        origin_chain_id=origin_chain_id,
        open_deadline=open_deadline,
        fill_deadline=fill_deadline,
        reward_assets=_assets(min_received),
        target_assets=_assets(max_spent),
        legs=tuple(
            Leg(
                destination_chain_id=chain_id,
                destination_settler=settler,
                origin_data=origin_data,
            )
            for chain_id, settler, origin_data in fill_instructions
        ),
        protocol_name=protocol_name,
        origin_chain_name=chain_name,
        block_number=log.block_number,
        origin_settler=log.address,
    )


class Erc7683Adapter:
    """ProtocolAdapter for ERC-7683 origin/destination settlers.

    Args:
        protocol_name: Label used in logs and intent ids
        settlement: Claim mode for filled intents
        provers: Origin settler address -> prover emitting IntentProven
    """

    event_topic = OPEN_EVENT_TOPIC

    def __init__(
        self,
        protocol_name: str = "Hyperlane7683",
        settlement: SettlementConfig | None = None,
        provers: Mapping[str, str] | None = None,
    ) -> None:
        self.protocol_name = protocol_name
        self.settlement = settlement or SettlementConfig()
        self.provers = {
            normalize_address(settler): normalize_address(prover)
            for settler, prover in (provers or {}).items()
        }

    def parse_log(self, log: LogEntry, chain_name: str) -> Intent:
        return decode_open_event(log, self.protocol_name, chain_name)

    async def retrieve_origin_info(
        self, intent: Intent, balances: AssetBalanceChecker
    ) -> list[str]:
        return list(await asyncio.gather(*(balances.describe(a) for a in intent.reward_assets)))

    async def retrieve_target_info(
        self, intent: Intent, balances: AssetBalanceChecker
    ) -> list[str]:
        return list(await asyncio.gather(*(balances.describe(a) for a in intent.target_assets)))

    def approvals(self, intent: Intent, legs: Sequence[int]) -> list[Approval]:
        amounts: dict[tuple[int, str, str], int] = {}
        covered: dict[tuple[int, str, str], list[int]] = {}
        for index in legs:
            target = intent.target_for_leg(index)
            if target is None or target.is_native:
                continue
            leg = intent.legs[index]
            key = (leg.destination_chain_id, target.token, leg.destination_settler)
            amounts[key] = amounts.get(key, 0) + target.amount
            covered.setdefault(key, []).append(index)

        return [
            Approval(
                chain_id=chain_id,
                token=token,
                spender=spender,
                amount=amount,
                legs=tuple(covered[(chain_id, token, spender)]),
            )
            for (chain_id, token, spender), amount in amounts.items()
        ]

    async def approve(self, approval: Approval, signer: ChainSigner) -> TxReceipt:
        receipt = await signer.transact(
            approval.token,
            ERC20_ABI,
            "approve",
            [to_checksum_address(approval.spender), approval.amount],
        )
        logger.debug(
            "approval",
            protocol=self.protocol_name,
            token=approval.token,
            spender=approval.spender,
            amount=str(approval.amount),
            chain_id=approval.chain_id,
            legs=list(approval.legs),
            tx=receipt.tx_hash,
        )
        return receipt

    async def fill_leg(self, intent: Intent, index: int, signer: ChainSigner) -> TxReceipt:
        leg = intent.legs[index]
        target = intent.target_for_leg(index)
        value = target.amount if target is not None and target.is_native else None

        return await signer.transact(
            leg.destination_settler,
            DESTINATION_SETTLER_ABI,
            "fill",
            [
                order_id_to_bytes(intent.order_id),
                bytes.fromhex(leg.origin_data.removeprefix("0x")),
                address_to_bytes32(signer.address),
            ],
            value=value,
        )

    def settlement_plan(self, intent: Intent, filled_legs: Sequence[int]) -> SettlementPlan:
        destinations = sorted(
            {
                (intent.legs[i].destination_chain_id, intent.legs[i].destination_settler)
                for i in filled_legs
            }
        )
        prover = None
        if intent.origin_settler is not None:
            prover = self.provers.get(intent.origin_settler)
        return SettlementPlan(
            mode=self.settlement.mode,
            origin_chain_id=intent.origin_chain_id,
            origin_settler=intent.origin_settler,
            prover=prover,
            destinations=tuple(destinations),
        )


__all__ = ["Erc7683Adapter", "decode_open_event"]
