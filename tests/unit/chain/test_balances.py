"""Tests for balance and token metadata queries."""

import pytest

from intent_solver.chain.balances import AssetBalanceChecker, TokenInfo
from tests.helpers import (
    ARBITRUM,
    BASE,
    NATIVE,
    OPTIMISM,
    USDC_ARBITRUM,
    USDC_BASE,
    FakeChainClient,
    make_asset,
    make_intent,
    make_leg,
    make_registry,
)


def _two_leg_intent(first: int = 60, second: int = 50):
    return make_intent(
        target_assets=[
            make_asset(token=USDC_BASE, amount=first),
            make_asset(token=USDC_BASE, amount=second),
        ],
        legs=[make_leg(), make_leg()],
    )


class TestFindShortfalls:
    @pytest.mark.asyncio
    async def test_amounts_are_summed_per_chain_and_token(
        self,
        balances: AssetBalanceChecker,
        base_client: FakeChainClient,
        solver_address: str,
    ) -> None:
        """100 covers each leg of 60 and 50 alone but not their 110 total."""
        base_client.set_token_balance(USDC_BASE, solver_address, 100)

        shortfalls = await balances.find_shortfalls(_two_leg_intent())

        assert len(shortfalls) == 1
        assert shortfalls[0].required == 110
        assert shortfalls[0].balance == 100

    @pytest.mark.asyncio
    async def test_exact_balance_is_enough(
        self,
        balances: AssetBalanceChecker,
        base_client: FakeChainClient,
        solver_address: str,
    ) -> None:
        base_client.set_token_balance(USDC_BASE, solver_address, 110)

        assert await balances.find_shortfalls(_two_leg_intent()) == []

    @pytest.mark.asyncio
    async def test_native_balance(
        self,
        balances: AssetBalanceChecker,
        base_client: FakeChainClient,
        solver_address: str,
    ) -> None:
        base_client.set_native_balance(solver_address, 10**18)
        intent = make_intent(target_assets=[make_asset(token=NATIVE, amount=2 * 10**18)])

        shortfalls = await balances.find_shortfalls(intent)

        assert [s.token for s in shortfalls] == [NATIVE]


class TestChainsWithEnoughTokens:
    @pytest.mark.asyncio
    async def test_only_funded_chains(self, solver_address: str) -> None:
        base = FakeChainClient(BASE)
        arbitrum = FakeChainClient(ARBITRUM)
        registry = make_registry(
            {OPTIMISM: FakeChainClient(OPTIMISM), BASE: base, ARBITRUM: arbitrum}
        )
        base.set_token_balance(USDC_BASE, solver_address, 1_000)
        intent = make_intent(
            target_assets=[
                make_asset(token=USDC_BASE, amount=500, chain_id=BASE),
                make_asset(token=USDC_ARBITRUM, amount=500, chain_id=ARBITRUM),
            ]
        )

        funded = await AssetBalanceChecker(registry).chains_with_enough_tokens(intent)

        assert funded == {BASE}

    @pytest.mark.asyncio
    async def test_failing_chain_counts_as_unfunded(
        self,
        balances: AssetBalanceChecker,
        base_client: FakeChainClient,
    ) -> None:
        base_client.call_errors["balanceOf"] = ConnectionError("rpc down")

        assert await balances.chains_with_enough_tokens(make_intent()) == set()


class TestTokenInfo:
    def test_format_amount(self) -> None:
        assert TokenInfo("USDC", 6).format_amount(100_000_000) == "100.0"
        assert TokenInfo("USDC", 6).format_amount(1_500_000) == "1.5"
        assert TokenInfo("WETH", 18).format_amount(1) == "0.000000000000000001"

    @pytest.mark.asyncio
    async def test_token_info_is_cached(
        self, balances: AssetBalanceChecker, base_client: FakeChainClient
    ) -> None:
        first = await balances.token_info(BASE, USDC_BASE)
        base_client.token_meta.clear()
        second = await balances.token_info(BASE, USDC_BASE)

        assert first == second == TokenInfo("USDC", 6)

    @pytest.mark.asyncio
    async def test_native_needs_no_rpc(self, balances: AssetBalanceChecker) -> None:
        assert await balances.token_info(BASE, NATIVE) == TokenInfo("ETH", 18)

    @pytest.mark.asyncio
    async def test_describe(self, balances: AssetBalanceChecker) -> None:
        description = await balances.describe(make_asset(amount=90_000_000))
        assert description == "90.0 USDC on base"
