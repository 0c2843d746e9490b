"""Registry of rule constructors referenced by name from configuration.

Configuration names a rule and passes positional arguments; the factory is
called once at load time so unknown names and malformed arguments surface
as a ConfigurationError before the solver starts listening.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

import structlog

from intent_solver.errors import ConfigurationError
from intent_solver.models.policy import CustomRuleSpec
from intent_solver.rules.base import Rule
from intent_solver.rules.builtin import (
    allow_block_list_rule,
    not_yet_filled_rule,
    sufficient_destination_balance_rule,
    token_and_amount_rule,
)

logger = structlog.get_logger()

RuleFactory = Callable[..., Rule]

RULE_REGISTRY: dict[str, RuleFactory] = {
    "allow_block_list": allow_block_list_rule,
    "token_and_amount": token_and_amount_rule,
    "not_yet_filled": not_yet_filled_rule,
    "sufficient_destination_balance": sufficient_destination_balance_rule,
}

# Prepended to the custom rules unless keep_base_rules is false
BASE_RULE_NAMES: tuple[str, ...] = (
    "allow_block_list",
    "not_yet_filled",
    "sufficient_destination_balance",
)


def create_rule(name: str, args: Sequence[Any] = ()) -> Rule:
    """Instantiate a registered rule.

    Raises:
        ConfigurationError: Unknown name or arguments the factory rejects
    """
    factory = RULE_REGISTRY.get(name)
    if factory is None:
        raise ConfigurationError(
            f"Unknown rule '{name}'. Available: {', '.join(sorted(RULE_REGISTRY))}"
        )
    try:
        return factory(*args)
    except (TypeError, ValueError) as err:
        raise ConfigurationError(f"Invalid arguments for rule '{name}': {err}") from err


def build_rules(
    custom: Sequence[CustomRuleSpec] = (), keep_base_rules: bool = True
) -> list[Rule]:
    """Resolve the ordered rule list for a solver.

    Args:
        custom: Rules named in configuration, in evaluation order
        keep_base_rules: Prepend the base rules when True

    Returns:
        Base rules (if kept) followed by the custom rules
    """
    rules = [create_rule(name) for name in BASE_RULE_NAMES] if keep_base_rules else []
    rules.extend(create_rule(spec.name, spec.args) for spec in custom)
    logger.debug("rules_built", rules=[rule.name for rule in rules])
    return rules
