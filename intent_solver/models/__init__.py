"""Pydantic models for intents and solver policy."""

from intent_solver.models.intent import Asset, Intent, IntentState, Leg, LegOutcome
from intent_solver.models.policy import (
    AllowBlockListItem,
    AllowBlockLists,
    ChainConfig,
    CustomRules,
    CustomRuleSpec,
    IntentSource,
    SettlementConfig,
    SettlementMode,
    SolverMetadata,
)
from intent_solver.models.types import (
    ZERO_ADDRESS,
    ZERO_BYTES32,
    Address,
    Bytes,
    Bytes32,
    Uint256,
    normalize_address,
)

__all__ = [
    # Types
    "Address",
    "Bytes",
    "Bytes32",
    "Uint256",
    "ZERO_ADDRESS",
    "ZERO_BYTES32",
    "normalize_address",
    # Intent models
    "Asset",
    "Intent",
    "IntentState",
    "Leg",
    "LegOutcome",
    # Policy models
    "AllowBlockListItem",
    "AllowBlockLists",
    "ChainConfig",
    "CustomRuleSpec",
    "CustomRules",
    "IntentSource",
    "SettlementConfig",
    "SettlementMode",
    "SolverMetadata",
]
