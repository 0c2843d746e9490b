"""Tests for the intent lifecycle driver."""

import asyncio
from datetime import timedelta

import pytest
from eth_utils import to_checksum_address

from intent_solver.chain.balances import AssetBalanceChecker
from intent_solver.chain.registry import ChainRegistry
from intent_solver.filler import Filler, IntentTracker
from intent_solver.models.intent import IntentState
from intent_solver.models.policy import (
    AllowBlockListItem,
    AllowBlockLists,
    SettlementConfig,
    SettlementMode,
)
from intent_solver.models.types import address_to_bytes32, order_id_to_bytes
from intent_solver.protocols.erc7683 import Erc7683Adapter
from intent_solver.rules import RuleEngine, build_rules
from intent_solver.rules.base import SolverContext
from intent_solver.settlement import SettlementWaiter
from tests.helpers import (
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
    USDC_90,
    USDC_ARBITRUM,
    USDC_BASE,
    FakeChainClient,
    make_asset,
    make_intent,
    make_proof_log,
    make_registry,
)

FAST = SettlementConfig(poll_interval=0.01)


def make_filler(
    context: SolverContext,
    settlement: SettlementConfig = FAST,
    base_rules: bool = True,
) -> Filler:
    adapter = Erc7683Adapter(settlement=settlement, provers={ORIGIN_SETTLER: PROVER})
    engine = RuleEngine(build_rules(keep_base_rules=base_rules))
    return Filler(adapter, engine, context, SettlementWaiter(context.registry, settlement))


class TestLifecycle:
    """End-to-end walk through the states for a single intent."""

    @pytest.mark.asyncio
    async def test_fill_and_withdraw(
        self,
        context: SolverContext,
        optimism_client: FakeChainClient,
        funded_base: FakeChainClient,
        solver_address: str,
    ) -> None:
        optimism_client.logs = [make_proof_log(ORDER_ID, solver_address)]
        filler = make_filler(context)

        state = await filler.process(make_intent())

        assert state is IntentState.SETTLED
        (approve,) = funded_base.calls_for("approve")
        assert approve.to == USDC_BASE.lower()
        assert approve.args == (to_checksum_address(DESTINATION_SETTLER), USDC_90)
        (fill,) = funded_base.calls_for("fill")
        assert fill.to == DESTINATION_SETTLER.lower()
        assert fill.args == (
            order_id_to_bytes(ORDER_ID),
            bytes.fromhex("1234"),
            address_to_bytes32(solver_address),
        )
        assert fill.value == 0
        assert len(optimism_client.calls_for("withdrawRewards")) == 1

        tracked = filler.tracker.get(ORDER_ID)
        assert tracked is not None
        assert tracked.history == [
            IntentState.INDEXED,
            IntentState.EVALUATING,
            IntentState.PREPARING,
            IntentState.FILLING,
            IntentState.FILLED,
            IntentState.SETTLING,
            IntentState.SETTLED,
        ]
        assert [leg.success for leg in tracked.legs] == [True]

    @pytest.mark.asyncio
    async def test_approval_waits_before_fill_with_sequential_nonces(
        self,
        context: SolverContext,
        funded_base: FakeChainClient,
    ) -> None:
        filler = make_filler(context, SettlementConfig(mode=SettlementMode.NONE))

        state = await filler.process(make_intent())

        assert state is IntentState.FILLED
        assert [call.fn_name for call in funded_base.built] == ["approve", "fill"]
        assert len(funded_base.raw_sent) == 2
        assert funded_base.transaction_count_calls == 1

    @pytest.mark.asyncio
    async def test_legs_sharing_token_and_settler_get_one_combined_approval(
        self, context: SolverContext, funded_base: FakeChainClient
    ) -> None:
        intent = make_intent(target_assets=[make_asset(amount=60), make_asset(amount=50)])
        filler = make_filler(context, SettlementConfig(mode=SettlementMode.NONE))

        state = await filler.process(intent)

        assert state is IntentState.FILLED
        (approve,) = funded_base.calls_for("approve")
        assert approve.args == (to_checksum_address(DESTINATION_SETTLER), 110)
        assert len(funded_base.calls_for("fill")) == 2
        assert [call.fn_name for call in funded_base.built][0] == "approve"

    @pytest.mark.asyncio
    async def test_failed_combined_approval_fails_every_leg_it_covers(
        self, context: SolverContext, funded_base: FakeChainClient
    ) -> None:
        funded_base.build_errors["approve"] = ValueError("boom")
        intent = make_intent(target_assets=[make_asset(amount=60), make_asset(amount=50)])
        filler = make_filler(context, SettlementConfig(mode=SettlementMode.NONE))

        state = await filler.process(intent)

        assert state is IntentState.FAILED
        assert funded_base.calls_for("fill") == []
        tracked = filler.tracker.get(ORDER_ID)
        assert tracked is not None
        assert [(leg.index, leg.error) for leg in tracked.legs] == [(0, "boom"), (1, "boom")]

    @pytest.mark.asyncio
    async def test_native_target_skips_approval_and_sends_value(
        self,
        context: SolverContext,
        base_client: FakeChainClient,
        solver_address: str,
    ) -> None:
        base_client.set_native_balance(solver_address, 10**18)
        intent = make_intent(target_assets=[make_asset(token=NATIVE, amount=5 * 10**17)])
        filler = make_filler(context, SettlementConfig(mode=SettlementMode.NONE))

        state = await filler.process(intent)

        assert state is IntentState.FILLED
        assert base_client.calls_for("approve") == []
        (fill,) = base_client.calls_for("fill")
        assert fill.value == 5 * 10**17

    @pytest.mark.asyncio
    async def test_summary_failure_does_not_block(
        self,
        context: SolverContext,
        optimism_client: FakeChainClient,
        funded_base: FakeChainClient,
    ) -> None:
        optimism_client.call_errors["symbol"] = ConnectionError("rpc down")
        filler = make_filler(context, SettlementConfig(mode=SettlementMode.NONE))

        assert await filler.process(make_intent()) is IntentState.FILLED
        assert len(funded_base.calls_for("fill")) == 1


class TestAdmission:
    @pytest.mark.asyncio
    async def test_blocked_sender_sends_nothing(
        self,
        registry: ChainRegistry,
        balances: AssetBalanceChecker,
        funded_base: FakeChainClient,
    ) -> None:
        lists = AllowBlockLists(block_list=[AllowBlockListItem(sender_address=[BAD_USER])])
        context = SolverContext(registry=registry, balances=balances, allow_block_lists=lists)
        filler = make_filler(context)

        state = await filler.process(make_intent(user=BAD_USER))

        assert state is IntentState.REJECTED
        assert funded_base.built == []
        assert funded_base.raw_sent == []
        tracked = filler.tracker.get(ORDER_ID)
        assert tracked is not None
        assert tracked.reason is not None
        assert tracked.reason.startswith("Blocked by block list")

    @pytest.mark.asyncio
    async def test_already_filled_order_sends_nothing(
        self, context: SolverContext, funded_base: FakeChainClient
    ) -> None:
        """Default rules check orderStatus before any approval or fill."""
        funded_base.mark_filled(order_id_to_bytes(ORDER_ID))
        filler = make_filler(context)

        state = await filler.process(make_intent())

        assert state is IntentState.REJECTED
        assert funded_base.calls_for("approve") == []
        assert funded_base.calls_for("fill") == []
        assert funded_base.raw_sent == []
        tracked = filler.tracker.get(ORDER_ID)
        assert tracked is not None
        assert tracked.reason == "Intent already filled"

    @pytest.mark.asyncio
    async def test_insufficient_balance_is_rejected(
        self, context: SolverContext, base_client: FakeChainClient
    ) -> None:
        filler = make_filler(context)

        state = await filler.process(make_intent())

        assert state is IntentState.REJECTED
        tracked = filler.tracker.get(ORDER_ID)
        assert tracked is not None
        assert tracked.reason is not None
        assert tracked.reason.startswith("Not enough tokens")
        assert base_client.built == []

    @pytest.mark.asyncio
    async def test_no_funded_leg_is_skipped_without_balance_rule(
        self, context: SolverContext, base_client: FakeChainClient
    ) -> None:
        filler = make_filler(context, base_rules=False)

        state = await filler.process(make_intent())

        assert state is IntentState.SKIPPED
        assert base_client.built == []


class TestLegIsolation:
    """One leg failing must not affect its siblings."""

    @pytest.fixture
    def arbitrum_client(self, solver_address: str) -> FakeChainClient:
        client = FakeChainClient(ARBITRUM, head=300)
        client.set_token_meta(USDC_ARBITRUM, "USDC", 6)
        client.set_token_balance(USDC_ARBITRUM, solver_address, 1_000_000_000)
        return client

    @pytest.fixture
    def two_chain_context(
        self,
        optimism_client: FakeChainClient,
        funded_base: FakeChainClient,
        arbitrum_client: FakeChainClient,
    ) -> SolverContext:
        registry = make_registry(
            {OPTIMISM: optimism_client, BASE: funded_base, ARBITRUM: arbitrum_client}
        )
        return SolverContext(registry=registry, balances=AssetBalanceChecker(registry))

    @pytest.fixture
    def two_leg_intent(self):
        return make_intent(
            target_assets=[
                make_asset(),
                make_asset(token=USDC_ARBITRUM, amount=USDC_90, chain_id=ARBITRUM),
            ]
        )

    @pytest.mark.asyncio
    async def test_failed_fill_leaves_sibling_filled(
        self,
        two_chain_context: SolverContext,
        funded_base: FakeChainClient,
        arbitrum_client: FakeChainClient,
        two_leg_intent,
    ) -> None:
        arbitrum_client.build_errors["fill"] = ValueError("execution reverted")
        filler = make_filler(two_chain_context, SettlementConfig(mode=SettlementMode.NONE))

        state = await filler.process(two_leg_intent)

        assert state is IntentState.FILLED
        assert len(funded_base.calls_for("fill")) == 1
        tracked = filler.tracker.get(ORDER_ID)
        assert tracked is not None
        assert [(leg.index, leg.success) for leg in tracked.legs] == [(0, True), (1, False)]
        assert tracked.legs[1].error == "execution reverted"

    @pytest.mark.asyncio
    async def test_settlement_only_covers_filled_legs(
        self,
        two_chain_context: SolverContext,
        funded_base: FakeChainClient,
        arbitrum_client: FakeChainClient,
        two_leg_intent,
    ) -> None:
        arbitrum_client.build_errors["approve"] = ValueError("boom")
        filler = make_filler(two_chain_context, SettlementConfig(mode=SettlementMode.SETTLE))

        state = await filler.process(two_leg_intent)

        assert state is IntentState.SETTLED
        assert arbitrum_client.calls_for("fill") == []
        assert arbitrum_client.calls_for("settle") == []
        assert len(funded_base.calls_for("settle")) == 1

    @pytest.mark.asyncio
    async def test_every_leg_failing_is_failed(
        self, context: SolverContext, funded_base: FakeChainClient
    ) -> None:
        funded_base.build_errors["approve"] = ValueError("boom")
        filler = make_filler(context)

        state = await filler.process(make_intent())

        assert state is IntentState.FAILED
        assert funded_base.calls_for("fill") == []
        tracked = filler.tracker.get(ORDER_ID)
        assert tracked is not None
        assert tracked.reason == "Every leg failed"
        assert tracked.legs[0].error == "boom"


class TestErrorContainment:
    @pytest.mark.asyncio
    async def test_rule_error_becomes_failed(
        self, context: SolverContext, base_client: FakeChainClient
    ) -> None:
        base_client.call_errors["balanceOf"] = ConnectionError("rpc down")
        filler = make_filler(context)

        state = await filler.process(make_intent())

        assert state is IntentState.FAILED
        tracked = filler.tracker.get(ORDER_ID)
        assert tracked is not None
        assert tracked.reason == "rpc down"

    @pytest.mark.asyncio
    async def test_duplicate_in_flight_is_skipped(
        self, context: SolverContext, funded_base: FakeChainClient
    ) -> None:
        settlement = SettlementConfig(timeout=0.1, poll_interval=0.01)
        filler = make_filler(context, settlement)
        intent = make_intent()

        first, second = await asyncio.gather(filler.process(intent), filler.process(intent))

        assert first is IntentState.ABANDONED
        assert second is IntentState.SKIPPED
        assert len(funded_base.calls_for("fill")) == 1


class TestIntentTracker:
    def test_records_history_and_counts(self) -> None:
        tracker = IntentTracker()
        first = make_intent()
        second = make_intent(order_id=OTHER_ORDER_ID)

        tracker.update(first, IntentState.INDEXED)
        tracker.update(first, IntentState.REJECTED, "Blocked")
        tracker.update(second, IntentState.INDEXED)

        assert len(tracker) == 2
        assert tracker.counts() == {"rejected": 1, "indexed": 1}
        entry = tracker.get(ORDER_ID.upper().replace("0X", "0x"))
        assert entry is not None
        assert entry.history == [IntentState.INDEXED, IntentState.REJECTED]
        assert entry.reason == "Blocked"

    def test_all_is_most_recent_first(self) -> None:
        tracker = IntentTracker()
        older = tracker.update(make_intent(), IntentState.INDEXED)
        newer = tracker.update(make_intent(order_id=OTHER_ORDER_ID), IntentState.INDEXED)
        older.updated_at = newer.updated_at - timedelta(seconds=1)

        assert [e.intent.order_id for e in tracker.all()] == [OTHER_ORDER_ID, ORDER_ID]

    def test_unknown_order(self) -> None:
        assert IntentTracker().get(ORDER_ID) is None

    def test_oldest_terminal_entries_are_evicted(self) -> None:
        tracker = IntentTracker(max_terminal=2)
        third_id = "0x" + "00" * 31 + "cc"
        pending = make_intent(order_id="0x" + "00" * 31 + "dd")

        tracker.update(pending, IntentState.FILLING)
        tracker.update(make_intent(), IntentState.REJECTED, "Blocked")
        tracker.update(make_intent(order_id=OTHER_ORDER_ID), IntentState.SETTLED)
        tracker.update(make_intent(order_id=third_id), IntentState.FAILED)

        assert tracker.get(ORDER_ID) is None
        assert tracker.get(OTHER_ORDER_ID) is not None
        assert tracker.get(third_id) is not None
        assert tracker.get(pending.order_id) is not None
        assert len(tracker) == 3

    def test_in_progress_entries_are_never_evicted(self) -> None:
        tracker = IntentTracker(max_terminal=1)

        tracker.update(make_intent(), IntentState.INDEXED)
        tracker.update(make_intent(order_id=OTHER_ORDER_ID), IntentState.INDEXED)

        assert len(tracker) == 2

    def test_rejects_non_positive_cap(self) -> None:
        with pytest.raises(ValueError):
            IntentTracker(max_terminal=0)
