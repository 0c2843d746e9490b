"""Generic intent lifecycle driver.

The Filler owns everything protocol-independent: summaries, rule
evaluation, leg selection, fan-out of approvals and fills, settlement and
error containment. Contract specifics come from a ProtocolAdapter.

Lifecycle:
    indexed -> evaluating -> rejected
                          -> preparing -> filling -> filled -> settling -> settled

Any exception moves the intent to `failed`. Nothing is retried.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from intent_solver.models.intent import IntentState, LegOutcome
from intent_solver.models.policy import SettlementMode

if TYPE_CHECKING:
    from intent_solver.models.intent import Intent
    from intent_solver.protocols.base import Approval, ProtocolAdapter
    from intent_solver.rules.base import RuleEngine, RuleResult, SolverContext
    from intent_solver.settlement import SettlementWaiter

logger = structlog.get_logger()


@dataclass
class TrackedIntent:
    """Latest known state of an intent seen by this process."""

    intent: Intent
    state: IntentState
    reason: str | None = None
    legs: list[LegOutcome] = field(default_factory=list)
    history: list[IntentState] = field(default_factory=list)
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class IntentTracker:
    """In-memory record of intent states, read by the status API.

    Intents still in progress are always kept. Once more than
    `max_terminal` intents have reached a terminal state, the ones that
    finished first are dropped.
    """

    def __init__(self, max_terminal: int = 1000) -> None:
        if max_terminal < 1:
            raise ValueError(f"max_terminal must be positive, got {max_terminal}")
        self.max_terminal = max_terminal
        self._entries: dict[str, TrackedIntent] = {}
        # order ids in the order they reached a terminal state
        self._terminal: dict[str, None] = {}

    def update(
        self, intent: Intent, state: IntentState, reason: str | None = None
    ) -> TrackedIntent:
        entry = self._entries.get(intent.order_id)
        if entry is None:
            entry = TrackedIntent(intent=intent, state=state)
            self._entries[intent.order_id] = entry
        entry.state = state
        entry.history.append(state)
        entry.updated_at = datetime.now(UTC)
        if reason is not None:
            entry.reason = reason

        self._terminal.pop(intent.order_id, None)
        if state.is_terminal:
            self._terminal[intent.order_id] = None
            while len(self._terminal) > self.max_terminal:
                oldest = next(iter(self._terminal))
                del self._terminal[oldest]
                del self._entries[oldest]
        return entry

    def record_legs(self, order_id: str, outcomes: Sequence[LegOutcome]) -> None:
        if order_id in self._entries:
            self._entries[order_id].legs = list(outcomes)

    def get(self, order_id: str) -> TrackedIntent | None:
        return self._entries.get(order_id.lower())

    def all(self) -> list[TrackedIntent]:
        return sorted(self._entries.values(), key=lambda e: e.updated_at, reverse=True)

    def counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for entry in self._entries.values():
            counts[entry.state.value] = counts.get(entry.state.value, 0) + 1
        return counts

    def __len__(self) -> int:
        return len(self._entries)


class Filler:
    """Drives intents from discovery to settlement.

    Args:
        adapter: Protocol-specific parsing, fill and settlement pieces
        engine: Admission rules
        context: Registry, balances and allow/block lists for the rules
        settlement: Claims rewards for filled intents
        tracker: Where states are recorded (a fresh tracker by default)
    """

    def __init__(
        self,
        adapter: ProtocolAdapter,
        engine: RuleEngine,
        context: SolverContext,
        settlement: SettlementWaiter,
        tracker: IntentTracker | None = None,
    ) -> None:
        self.adapter = adapter
        self.engine = engine
        self.context = context
        self.settlement = settlement
        self.tracker = tracker if tracker is not None else IntentTracker()
        self._in_flight: set[str] = set()

    def _track(self, intent: Intent, state: IntentState, reason: str | None = None) -> None:
        self.tracker.update(intent, state, reason)
        logger.debug("intent_state", intent=intent.label, state=state.value)

    async def process(self, intent: Intent) -> IntentState:
        """Run the whole lifecycle for one intent.

        Never raises: failures are logged and reported as FAILED so one bad
        order cannot stop the others.
        """
        if intent.order_id in self._in_flight:
            logger.info("intent_already_in_flight", intent=intent.label)
            return IntentState.SKIPPED

        self._in_flight.add(intent.order_id)
        try:
            return await self._run(intent)
        except Exception as err:
            logger.error(
                "intent_failed",
                intent=intent.label,
                error=str(err),
                error_type=type(err).__name__,
            )
            self._track(intent, IntentState.FAILED, str(err))
            return IntentState.FAILED
        finally:
            self._in_flight.discard(intent.order_id)

    async def _run(self, intent: Intent) -> IntentState:
        self._track(intent, IntentState.INDEXED)
        await self._log_indexed(intent)

        self._track(intent, IntentState.EVALUATING)
        result = await self.prepare(intent)
        if not result.allowed:
            logger.info("intent_rejected", intent=intent.label, reason=result.reason)
            self._track(intent, IntentState.REJECTED, result.reason)
            return IntentState.REJECTED

        self._track(intent, IntentState.PREPARING, result.reason)
        legs = await self.select_legs(intent)
        if not legs:
            reason = "No destination chain holds enough tokens"
            logger.info("intent_skipped", intent=intent.label, reason=reason)
            self._track(intent, IntentState.SKIPPED, reason)
            return IntentState.SKIPPED

        self._track(intent, IntentState.FILLING)
        outcomes = await self.fill(intent, legs)
        self.tracker.record_legs(intent.order_id, outcomes)
        filled = [outcome.index for outcome in outcomes if outcome.success]
        if not filled:
            self._track(intent, IntentState.FAILED, "Every leg failed")
            return IntentState.FAILED

        self._track(intent, IntentState.FILLED)
        return await self.settle(intent, filled)

    async def _log_indexed(self, intent: Intent) -> None:
        try:
            origin, target = await asyncio.gather(
                self.adapter.retrieve_origin_info(intent, self.context.balances),
                self.adapter.retrieve_target_info(intent, self.context.balances),
            )
        except Exception as err:
            logger.warning("intent_summary_failed", intent=intent.label, error=str(err))
            origin, target = [], []

        logger.info(
            "intent_indexed",
            intent=intent.label,
            origin=", ".join(origin),
            target=", ".join(target),
        )

    async def prepare(self, intent: Intent) -> RuleResult:
        """Evaluate the admission rules."""
        return await self.engine.evaluate(intent, self.context)

    async def select_legs(self, intent: Intent) -> list[int]:
        """Indexes of legs whose destination chain holds every token required there."""
        funded = await self.context.balances.chains_with_enough_tokens(intent)
        return [
            index
            for index, leg in enumerate(intent.legs)
            if leg.destination_chain_id in funded
        ]

    async def fill(self, intent: Intent, legs: Sequence[int]) -> list[LegOutcome]:
        """Approve, then fill, every selected leg.

        Legs spending the same token through the same settler on one chain
        share a single approval for their combined amount. Approvals run
        concurrently and each waits for its receipt before the fills of the
        legs it covers are sent. A failing leg is logged and reported without
        affecting its siblings.
        """
        logger.info("filling_intent", intent=intent.label, legs=list(legs))

        approvals = self.adapter.approvals(intent, legs)
        approval_errors = await asyncio.gather(*(self._approve(intent, a) for a in approvals))
        failed: dict[int, str] = {}
        for approval, error in zip(approvals, approval_errors, strict=True):
            if error is not None:
                failed.update((index, error) for index in approval.legs)

        outcomes = [
            LegOutcome(
                index=index,
                destination_chain_id=intent.legs[index].destination_chain_id,
                success=False,
                error=failed[index],
            )
            for index in legs
            if index in failed
        ]

        approved = [index for index in legs if index not in failed]
        outcomes.extend(await asyncio.gather(*(self._fill_leg(intent, i) for i in approved)))
        return sorted(outcomes, key=lambda outcome: outcome.index)

    async def _approve(self, intent: Intent, approval: Approval) -> str | None:
        try:
            signer = self.context.registry.get_signer(approval.chain_id)
            await self.adapter.approve(approval, signer)
        except Exception as err:
            logger.error(
                "approval_failed",
                intent=intent.label,
                legs=list(approval.legs),
                chain_id=approval.chain_id,
                token=approval.token,
                error=str(err),
            )
            return str(err)
        return None

    async def _fill_leg(self, intent: Intent, index: int) -> LegOutcome:
        chain_id = intent.legs[index].destination_chain_id
        try:
            signer = self.context.registry.get_signer(chain_id)
            receipt = await self.adapter.fill_leg(intent, index, signer)
        except Exception as err:
            logger.error(
                "fill_failed",
                intent=intent.label,
                leg=index,
                chain_id=chain_id,
                error=str(err),
                tx=getattr(err, "tx_hash", None),
            )
            return LegOutcome(
                index=index, destination_chain_id=chain_id, success=False, error=str(err)
            )

        meta = self.context.registry.get_chain_metadata(chain_id)
        logger.info(
            "filled_intent",
            intent=intent.label,
            leg=index,
            chain=meta.name,
            tx=meta.tx_reference(receipt.tx_hash),
        )
        return LegOutcome(
            index=index, destination_chain_id=chain_id, success=True, tx_hash=receipt.tx_hash
        )

    async def settle(self, intent: Intent, filled_legs: Sequence[int]) -> IntentState:
        """Claim the reward for the filled legs."""
        plan = self.adapter.settlement_plan(intent, filled_legs)
        if plan.mode is SettlementMode.NONE:
            return IntentState.FILLED

        self._track(intent, IntentState.SETTLING)
        state = await self.settlement.wait_and_claim(intent, plan)
        self._track(intent, state)
        return state


__all__ = ["Filler", "IntentTracker", "TrackedIntent"]
