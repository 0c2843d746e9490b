"""Admission control: rule values, the ordered engine and built-in rules."""

from intent_solver.rules.base import Rule, RuleEngine, RuleResult, SolverContext
from intent_solver.rules.builtin import (
    allow_block_list_rule,
    is_allowed,
    is_blocked,
    not_yet_filled_rule,
    predicate_matches,
    sufficient_destination_balance_rule,
    token_and_amount_rule,
)
from intent_solver.rules.registry import (
    BASE_RULE_NAMES,
    RULE_REGISTRY,
    build_rules,
    create_rule,
)

__all__ = [
    "BASE_RULE_NAMES",
    "RULE_REGISTRY",
    "Rule",
    "RuleEngine",
    "RuleResult",
    "SolverContext",
    "allow_block_list_rule",
    "build_rules",
    "create_rule",
    "is_allowed",
    "is_blocked",
    "not_yet_filled_rule",
    "predicate_matches",
    "sufficient_destination_balance_rule",
    "token_and_amount_rule",
]
