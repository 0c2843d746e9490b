"""Read-only status endpoints for the running solver."""

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from intent_solver.filler import TrackedIntent
from intent_solver.models.intent import IntentState, LegOutcome
from intent_solver.solver import Solver

logger = structlog.get_logger()

router = APIRouter()


class IntentStatus(BaseModel):
    """Tracked state of one intent."""

    order_id: str
    intent: str
    state: IntentState
    reason: str | None = None
    origin_chain: str | None = None
    block_number: int | None = None
    legs: list[LegOutcome] = []
    history: list[IntentState] = []
    updated_at: datetime

    @classmethod
    def from_tracked(cls, entry: TrackedIntent) -> "IntentStatus":
        return cls(
            order_id=entry.intent.order_id,
            intent=entry.intent.label,
            state=entry.state,
            reason=entry.reason,
            origin_chain=entry.intent.origin_chain_name,
            block_number=entry.intent.block_number,
            legs=entry.legs,
            history=entry.history,
            updated_at=entry.updated_at,
        )


class IntentList(BaseModel):
    total: int
    counts: dict[str, int]
    intents: list[IntentStatus]


class SolverStatus(BaseModel):
    protocol: str
    rules: list[str]
    settlement: str
    pending: int
    intents: dict[str, int]


def get_solver(request: Request) -> Solver:
    """Dependency provider for the running solver.

    Override this in tests to inject a solver:
        app.dependency_overrides[get_solver] = lambda: solver

    Raises:
        HTTPException: 503 when the solver has not been started
    """
    solver = getattr(request.app.state, "solver", None)
    if solver is None:
        raise HTTPException(status_code=503, detail="Solver is not running")
    return solver


@router.get("/status")
async def solver_status(solver_instance: Solver = Depends(get_solver)) -> SolverStatus:
    return SolverStatus(
        protocol=solver_instance.metadata.protocol_name,
        rules=solver_instance.engine.rule_names,
        settlement=solver_instance.metadata.settlement.mode.value,
        pending=solver_instance.pending,
        intents=solver_instance.tracker.counts(),
    )


@router.get("/intents")
async def list_intents(
    state: IntentState | None = None,
    solver_instance: Solver = Depends(get_solver),
) -> IntentList:
    """Every intent seen by this process, most recently updated first.

    Args:
        state: Only return intents currently in this state
    """
    tracker = solver_instance.tracker
    entries = [e for e in tracker.all() if state is None or e.state is state]
    return IntentList(
        total=len(entries),
        counts=tracker.counts(),
        intents=[IntentStatus.from_tracked(e) for e in entries],
    )


@router.get("/intents/{order_id}")
async def get_intent(
    order_id: str, solver_instance: Solver = Depends(get_solver)
) -> IntentStatus:
    entry = solver_instance.tracker.get(order_id)
    if entry is None:
        logger.debug("unknown_intent_requested", order_id=order_id)
        raise HTTPException(status_code=404, detail=f"Unknown intent {order_id}")
    return IntentStatus.from_tracked(entry)
