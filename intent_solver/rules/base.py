"""Admission-control rules and the engine that runs them.

A rule is a value: a name plus an async check function. Rules compose as an
ordered tuple, so rules built from configuration merge with the built-in
ones without subclassing anything.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from intent_solver.models.policy import AllowBlockLists

if TYPE_CHECKING:
    from intent_solver.chain.balances import AssetBalanceChecker
    from intent_solver.chain.registry import ChainRegistry
    from intent_solver.models.intent import Intent

logger = structlog.get_logger()


@dataclass(frozen=True)
class RuleResult:
    """Outcome of a rule: allowed or denied, with a reason either way."""

    allowed: bool
    reason: str

    @classmethod
    def allow(cls, reason: str = "ok") -> RuleResult:
        return cls(allowed=True, reason=reason)

    @classmethod
    def deny(cls, reason: str) -> RuleResult:
        return cls(allowed=False, reason=reason)


@dataclass(frozen=True)
class SolverContext:
    """What rules may consult besides the intent itself."""

    registry: ChainRegistry
    balances: AssetBalanceChecker
    allow_block_lists: AllowBlockLists = field(default_factory=AllowBlockLists)


RuleCheck = Callable[["Intent", SolverContext], Awaitable[RuleResult]]


@dataclass(frozen=True)
class Rule:
    """A named admission check.

    Attributes:
        name: Identifier used in logs and in configuration
        check: Async function returning a RuleResult
    """

    name: str
    check: RuleCheck

    async def __call__(self, intent: Intent, context: SolverContext) -> RuleResult:
        return await self.check(intent, context)


class RuleEngine:
    """Runs rules in order and stops at the first denial.

    Args:
        rules: Ordered rules; an empty sequence admits everything
    """

    def __init__(self, rules: Sequence[Rule] = ()) -> None:
        self.rules: tuple[Rule, ...] = tuple(rules)

    @property
    def rule_names(self) -> list[str]:
        return [rule.name for rule in self.rules]

    async def evaluate(self, intent: Intent, context: SolverContext) -> RuleResult:
        """Evaluate every rule in order.

        Returns:
            The first denial, or an allowing result when all rules pass
        """
        for rule in self.rules:
            result = await rule(intent, context)
            logger.debug(
                "rule_evaluated",
                intent=intent.label,
                rule=rule.name,
                allowed=result.allowed,
                reason=result.reason,
            )
            if not result.allowed:
                return RuleResult.deny(result.reason)
        return RuleResult.allow(f"Passed {len(self.rules)} rule(s)")
