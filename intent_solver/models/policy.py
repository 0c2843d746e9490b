"""Pydantic models for the per-solver policy document.

The document lists origin contracts to watch, allow/block list predicates,
custom admission rules and the settlement strategy. It is loaded once at
startup by `intent_solver.config.load_metadata`.
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from intent_solver.models.types import Address

WILDCARD = "*"

MatchField = Literal["*"] | list[str]


class AllowBlockListItem(BaseModel):
    """A predicate over (sender, destination domain, recipient).

    Each field is either the wildcard "*" or a list of accepted values.
    Matching is case-insensitive.
    """

    sender_address: MatchField = Field(default=WILDCARD, alias="senderAddress")
    destination_domain: MatchField = Field(default=WILDCARD, alias="destinationDomain")
    recipient_address: MatchField = Field(default=WILDCARD, alias="recipientAddress")

    model_config = {"populate_by_name": True, "frozen": True}

    @field_validator("sender_address", "destination_domain", "recipient_address", mode="before")
    @classmethod
    def _lowercase(cls, value: Any) -> Any:
        if value == WILDCARD or not isinstance(value, list):
            return value
        return [str(v).lower() for v in value]


class AllowBlockLists(BaseModel):
    """Allow and block predicates. Block always takes precedence."""

    allow_list: list[AllowBlockListItem] = Field(default_factory=list, alias="allowList")
    block_list: list[AllowBlockListItem] = Field(default_factory=list, alias="blockList")

    model_config = {"populate_by_name": True}

    def merged_with(self, other: "AllowBlockLists") -> "AllowBlockLists":
        """Combine two lists (global + protocol)."""
        return AllowBlockLists(
            allow_list=[*self.allow_list, *other.allow_list],
            block_list=[*self.block_list, *other.block_list],
        )


class IntentSource(BaseModel):
    """An origin settler contract to watch for `Open` events."""

    address: Address
    chain_name: str = Field(alias="chainName")
    start_block: int = Field(default=0, ge=0, alias="initialBlock")
    poll_interval: float = Field(default=4.0, gt=0, alias="pollInterval")
    block_range: int = Field(default=10_000, gt=0, alias="blockRange")
    prover_address: Address | None = Field(default=None, alias="proverAddress")

    model_config = {"populate_by_name": True}


class CustomRuleSpec(BaseModel):
    """A rule reference resolved against the rule registry."""

    name: str
    args: list[Any] = Field(default_factory=list)


class CustomRules(BaseModel):
    rules: list[CustomRuleSpec] = Field(default_factory=list)
    keep_base_rules: bool = Field(default=True, alias="keepBaseRules")

    model_config = {"populate_by_name": True}


class SettlementMode(str, Enum):
    """How rewards are claimed once a fill landed.

    WITHDRAW: wait for the origin prover's `IntentProven` event, then call
        `withdrawRewards` on the origin settler.
    SETTLE: call `settle([orderId])` on each destination settler, paying the
        cross-chain message fee.
    NONE: do not claim (fill only).
    """

    WITHDRAW = "withdraw"
    SETTLE = "settle"
    NONE = "none"


class SettlementConfig(BaseModel):
    mode: SettlementMode = SettlementMode.WITHDRAW
    timeout: float | None = Field(
        default=None,
        gt=0,
        description="Seconds to wait for the proof event. None waits forever.",
    )
    poll_interval: float = Field(default=4.0, gt=0, alias="pollInterval")

    model_config = {"populate_by_name": True}


class ChainConfig(BaseModel):
    """RPC connection details for one chain."""

    chain_id: int = Field(ge=0, alias="chainId")
    rpc_url: str = Field(alias="rpcUrl")
    block_explorer_url: str | None = Field(default=None, alias="blockExplorerUrl")

    model_config = {"populate_by_name": True}


class SolverMetadata(BaseModel):
    """Top-level policy document for one solver instance."""

    protocol_name: str = Field(default="Hyperlane7683", alias="protocolName")
    intent_sources: list[IntentSource] = Field(alias="intentSources", min_length=1)
    allow_block_lists: AllowBlockLists = Field(
        default_factory=AllowBlockLists, alias="allowBlockLists"
    )
    custom_rules: CustomRules = Field(default_factory=CustomRules, alias="customRules")
    settlement: SettlementConfig = Field(default_factory=SettlementConfig)
    chains: dict[str, ChainConfig] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}
