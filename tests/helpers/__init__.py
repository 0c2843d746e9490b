"""Test helpers module for shared test utilities.

This module consolidates common test utilities to reduce duplication:
- constants: Chains, token and contract addresses, common amounts
- factories: Intent, log, registry and metadata factory functions
- fakes: In-memory ChainClient
"""

from tests.helpers.constants import (
    ARBITRUM,
    BAD_USER,
    BASE,
    DESTINATION_SETTLER,
    NATIVE,
    OPTIMISM,
    ORDER_ID,
    ORIGIN_SETTLER,
    OTHER_ORDER_ID,
    PROVER,
    TEST_PRIVATE_KEY,
    USDC_90,
    USDC_100,
    USDC_ARBITRUM,
    USDC_BASE,
    USDC_OPTIMISM,
    USER,
    WETH_BASE,
)
from tests.helpers.factories import (
    make_asset,
    make_intent,
    make_leg,
    make_metadata,
    make_metadata_dict,
    make_open_log,
    make_proof_log,
    make_registry,
)
from tests.helpers.fakes import BuiltCall, FakeChainClient

__all__ = [
    # Constants
    "ARBITRUM",
    "BAD_USER",
    "BASE",
    "DESTINATION_SETTLER",
    "NATIVE",
    "OPTIMISM",
    "ORDER_ID",
    "ORIGIN_SETTLER",
    "OTHER_ORDER_ID",
    "PROVER",
    "TEST_PRIVATE_KEY",
    "USDC_90",
    "USDC_100",
    "USDC_ARBITRUM",
    "USDC_BASE",
    "USDC_OPTIMISM",
    "USER",
    "WETH_BASE",
    # Factories
    "make_asset",
    "make_intent",
    "make_leg",
    "make_metadata",
    "make_metadata_dict",
    "make_open_log",
    "make_proof_log",
    "make_registry",
    # Fakes
    "BuiltCall",
    "FakeChainClient",
]
