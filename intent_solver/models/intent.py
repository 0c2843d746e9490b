"""Pydantic models for ERC-7683 intents observed on chain.

Based on the ResolvedCrossChainOrder struct emitted by the `Open` event:
https://eips.ethereum.org/EIPS/eip-7683
"""

from collections import defaultdict
from enum import Enum

from pydantic import BaseModel, Field

from intent_solver.models.types import Address, Bytes, Bytes32, Uint256, is_native


class Asset(BaseModel):
    """An amount of a token on a chain (the `Output` struct).

    The zero address stands for the chain's native asset.
    """

    token: Address
    amount: Uint256
    recipient: Address
    chain_id: int = Field(ge=0)

    model_config = {"frozen": True}

    @property
    def is_native(self) -> bool:
        return is_native(self.token)


class Leg(BaseModel):
    """A single destination fulfilment instruction (the `FillInstruction` struct)."""

    destination_chain_id: int = Field(ge=0)
    destination_settler: Address
    origin_data: Bytes = "0x"

    model_config = {"frozen": True}


class Intent(BaseModel):
    """A cross-chain order discovered from an `Open` event.

    Attributes:
        order_id: Protocol-assigned global identifier
        user: The order creator (sender)
        origin_chain_id: Chain where the order was opened and the reward sits
        open_deadline: Last timestamp the order could be opened
        fill_deadline: Last timestamp the order may be filled
        reward_assets: What the filler receives (`minReceived`)
        target_assets: What the filler must deliver (`maxSpent`)
        legs: Destination fill instructions
        protocol_name: Protocol that produced the order
        origin_chain_name: Name of the chain the event was read from
        block_number: Block the event was observed in
        origin_settler: Contract that emitted the event
    """

    order_id: Bytes32
    user: Address
    origin_chain_id: int = Field(ge=0)
    open_deadline: int = 0
    fill_deadline: int = 0
    reward_assets: tuple[Asset, ...] = ()
    target_assets: tuple[Asset, ...] = ()
    legs: tuple[Leg, ...] = Field(min_length=1)

    protocol_name: str = "Hyperlane7683"
    origin_chain_name: str | None = None
    block_number: int | None = None
    origin_settler: Address | None = None

    model_config = {"frozen": True}

    @property
    def label(self) -> str:
        """Identifier used in every log line for this intent."""
        return f"{self.protocol_name}-{self.order_id}"

    def target_for_leg(self, index: int) -> Asset | None:
        """Target asset paired with the leg at `index`, if any."""
        if index < len(self.target_assets):
            return self.target_assets[index]
        return None

    def required_amounts(self) -> dict[int, dict[str, int]]:
        """Sum target amounts per (destination chain, token).

        A single account funds every leg on a chain, so two outputs of the
        same token on the same chain need their combined amount.
        """
        totals: dict[int, dict[str, int]] = defaultdict(lambda: defaultdict(int))
        for asset in self.target_assets:
            totals[asset.chain_id][asset.token] += asset.amount
        return {chain_id: dict(tokens) for chain_id, tokens in totals.items()}


class IntentState(str, Enum):
    """Lifecycle of an intent inside the solver."""

    INDEXED = "indexed"
    EVALUATING = "evaluating"
    REJECTED = "rejected"
    PREPARING = "preparing"
    FILLING = "filling"
    FILLED = "filled"
    SETTLING = "settling"
    SETTLED = "settled"
    FAILED = "failed"
    ABANDONED = "abandoned"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {
        IntentState.REJECTED,
        IntentState.SETTLED,
        IntentState.FAILED,
        IntentState.ABANDONED,
        IntentState.SKIPPED,
    }
)


class LegOutcome(BaseModel):
    """Result of attempting a single leg."""

    index: int
    destination_chain_id: int
    success: bool
    tx_hash: str | None = None
    error: str | None = None
