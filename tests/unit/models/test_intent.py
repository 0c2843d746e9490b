"""Tests for the Intent model and its lifecycle states."""

import pytest
from pydantic import ValidationError

from intent_solver.models.intent import IntentState
from tests.helpers import (
    BASE,
    ORDER_ID,
    USDC_BASE,
    WETH_BASE,
    make_asset,
    make_intent,
    make_leg,
)


class TestIntent:
    def test_label_combines_protocol_and_order_id(self) -> None:
        intent = make_intent()
        assert intent.label == f"Hyperlane7683-{ORDER_ID}"

    def test_is_frozen(self) -> None:
        intent = make_intent()
        with pytest.raises(ValidationError):
            intent.user = "0x" + "22" * 20  # type: ignore[misc]

    def test_requires_a_leg(self) -> None:
        with pytest.raises(ValidationError):
            make_intent(legs=[], target_assets=[])

    def test_target_for_leg(self) -> None:
        intent = make_intent()
        assert intent.target_for_leg(0) == intent.target_assets[0]
        assert intent.target_for_leg(3) is None

    def test_required_amounts_sums_same_token_on_same_chain(self) -> None:
        """Two outputs of 60 and 50 of one token on one chain need 110."""
        intent = make_intent(
            target_assets=[
                make_asset(token=USDC_BASE, amount=60, chain_id=BASE),
                make_asset(token=USDC_BASE, amount=50, chain_id=BASE),
                make_asset(token=WETH_BASE, amount=7, chain_id=BASE),
            ],
            legs=[make_leg(), make_leg(), make_leg()],
        )

        assert intent.required_amounts() == {BASE: {USDC_BASE: 110, WETH_BASE: 7}}

    def test_native_asset(self) -> None:
        asset = make_asset(token="0x" + "00" * 20)
        assert asset.is_native


class TestIntentState:
    @pytest.mark.parametrize(
        "state",
        [
            IntentState.REJECTED,
            IntentState.SETTLED,
            IntentState.FAILED,
            IntentState.ABANDONED,
            IntentState.SKIPPED,
        ],
    )
    def test_terminal_states(self, state: IntentState) -> None:
        assert state.is_terminal

    @pytest.mark.parametrize(
        "state", [IntentState.INDEXED, IntentState.FILLING, IntentState.SETTLING]
    )
    def test_non_terminal_states(self, state: IntentState) -> None:
        assert not state.is_terminal

    def test_values_are_lowercase_strings(self) -> None:
        assert IntentState("abandoned") is IntentState.ABANDONED
