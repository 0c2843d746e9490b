"""Pytest configuration and fixtures."""

import pytest

from intent_solver.chain.balances import AssetBalanceChecker
from intent_solver.chain.registry import ChainRegistry
from intent_solver.models.policy import AllowBlockLists
from intent_solver.rules.base import SolverContext
from tests.helpers import (
    BASE,
    OPTIMISM,
    USDC_BASE,
    USDC_OPTIMISM,
    FakeChainClient,
    make_registry,
)


@pytest.fixture
def optimism_client() -> FakeChainClient:
    """Origin chain (Optimism) with USDC metadata."""
    client = FakeChainClient(OPTIMISM, head=100)
    client.set_token_meta(USDC_OPTIMISM, "USDC", 6)
    return client


@pytest.fixture
def base_client() -> FakeChainClient:
    """Destination chain (Base) with USDC metadata."""
    client = FakeChainClient(BASE, head=200)
    client.set_token_meta(USDC_BASE, "USDC", 6)
    return client


@pytest.fixture
def registry(optimism_client: FakeChainClient, base_client: FakeChainClient) -> ChainRegistry:
    return make_registry({OPTIMISM: optimism_client, BASE: base_client})


@pytest.fixture
def solver_address(registry: ChainRegistry) -> str:
    return registry.nonce_keeper.address


@pytest.fixture
def funded_base(base_client: FakeChainClient, solver_address: str) -> FakeChainClient:
    """Base client where the solver holds 1000 USDC."""
    base_client.set_token_balance(USDC_BASE, solver_address, 1_000_000_000)
    return base_client


@pytest.fixture
def balances(registry: ChainRegistry) -> AssetBalanceChecker:
    return AssetBalanceChecker(registry)


@pytest.fixture
def context(registry: ChainRegistry, balances: AssetBalanceChecker) -> SolverContext:
    return SolverContext(registry=registry, balances=balances, allow_block_lists=AllowBlockLists())
