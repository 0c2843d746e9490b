"""Built-in admission rules.

Each factory returns a `Rule` value. Factories that take arguments validate
them eagerly so a bad policy document fails at startup, not mid-fill.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING

import structlog

from intent_solver.chain.abi import DESTINATION_SETTLER_ABI
from intent_solver.models.policy import WILDCARD, AllowBlockListItem, AllowBlockLists
from intent_solver.models.types import ZERO_BYTES32, normalize_address, order_id_to_bytes
from intent_solver.rules.base import Rule, RuleResult, SolverContext

if TYPE_CHECKING:
    from intent_solver.models.intent import Intent

logger = structlog.get_logger()


# =============================================================================
# Allow / block lists
# =============================================================================


def _field_matches(expected: str | list[str], candidates: set[str]) -> bool:
    if expected == WILDCARD:
        return True
    return any(candidate in expected for candidate in candidates)


def predicate_matches(item: AllowBlockListItem, data: Mapping[str, set[str]]) -> bool:
    """True when every field of `item` is a wildcard or contains a candidate value.

    `data` maps field names to the set of lowercase values describing the
    intent leg (a destination domain is known both by chain id and name).
    """
    return (
        _field_matches(item.sender_address, data["sender_address"])
        and _field_matches(item.destination_domain, data["destination_domain"])
        and _field_matches(item.recipient_address, data["recipient_address"])
    )


def is_blocked(lists: AllowBlockLists, data: Mapping[str, set[str]]) -> bool:
    return any(predicate_matches(item, data) for item in lists.block_list)


def is_allowed(lists: AllowBlockLists, data: Mapping[str, set[str]]) -> bool:
    """Block wins; a non-empty allow list must match; an empty one admits."""
    if is_blocked(lists, data):
        return False
    if not lists.allow_list:
        return True
    return any(predicate_matches(item, data) for item in lists.allow_list)


def leg_descriptors(intent: Intent, context: SolverContext) -> list[dict[str, set[str]]]:
    """(sender, destination domain, recipient) for every leg of the intent."""
    sender = normalize_address(intent.user)
    descriptors = []
    for index, leg in enumerate(intent.legs):
        target = intent.target_for_leg(index)
        recipient = target.recipient if target is not None else leg.destination_settler
        domain = {
            str(leg.destination_chain_id),
            context.registry.chain_name(leg.destination_chain_id).lower(),
        }
        descriptors.append(
            {
                "sender_address": {sender},
                "destination_domain": domain,
                "recipient_address": {normalize_address(recipient)},
            }
        )
    return descriptors


async def _check_allow_block_lists(intent: Intent, context: SolverContext) -> RuleResult:
    lists = context.allow_block_lists
    denied = [data for data in leg_descriptors(intent, context) if not is_allowed(lists, data)]
    if not denied:
        return RuleResult.allow("Allowed by allow/block lists")

    blocked = [data for data in denied if is_blocked(lists, data)]
    if blocked:
        return RuleResult.deny(
            f"Blocked by block list: sender {intent.user}, "
            f"destination {sorted(blocked[0]['destination_domain'])}"
        )
    return RuleResult.deny(
        f"Not in allow list: sender {intent.user}, "
        f"destination {sorted(denied[0]['destination_domain'])}"
    )


def allow_block_list_rule() -> Rule:
    return Rule(name="allow_block_list", check=_check_allow_block_lists)


# =============================================================================
# Token and amount filter
# =============================================================================


def token_and_amount_rule(
    allowed_tokens: Mapping[str | int, Sequence[str]],
    max_amount_out: int | str | None = None,
) -> Rule:
    """Only fill whitelisted token pairs, never at a loss, optionally capped.

    Checks the first reward asset and the first target asset only. Orders
    with several reward/target pairs are judged on that first pair.

    Args:
        allowed_tokens: chain id -> token addresses accepted on that chain
        max_amount_out: Optional cap on the first target amount

    Raises:
        ValueError: If the token map is empty, has an empty list, or the cap
            is not positive
    """
    if not allowed_tokens:
        raise ValueError("allowed_tokens must not be empty")

    allowed: dict[str, frozenset[str]] = {}
    for chain_id, tokens in allowed_tokens.items():
        if isinstance(tokens, str) or not tokens:
            raise ValueError(f"allowed_tokens[{chain_id}] must be a non-empty list")
        allowed[str(chain_id)] = frozenset(normalize_address(t) for t in tokens)

    cap: int | None = None
    if max_amount_out is not None:
        cap = int(max_amount_out)
        if cap <= 0:
            raise ValueError(f"Invalid max_amount_out: {max_amount_out}")

    async def check(intent: Intent, context: SolverContext) -> RuleResult:
        if not intent.reward_assets or not intent.target_assets:
            return RuleResult.deny("Intent has no reward or target assets")

        reward = intent.reward_assets[0]
        target = intent.target_assets[0]
        amount_in = reward.amount
        amount_out = target.amount

        if (
            normalize_address(reward.token) not in allowed.get(str(reward.chain_id), frozenset())
            or normalize_address(target.token) not in allowed.get(str(target.chain_id), frozenset())
            or amount_in < amount_out
            or (cap is not None and amount_out > cap)
        ):
            return RuleResult.deny("Amounts and tokens are not ok")

        return RuleResult.allow("Amounts and tokens are ok")

    return Rule(name="token_and_amount", check=check)


# =============================================================================
# On-chain fill status
# =============================================================================


def _status_hex(status: bytes | str) -> str:
    if isinstance(status, (bytes, bytearray)):
        return "0x" + bytes(status).hex()
    return status.lower()


async def _check_not_yet_filled(intent: Intent, context: SolverContext) -> RuleResult:
    order_id = order_id_to_bytes(intent.order_id)
    settlers = {(leg.destination_chain_id, leg.destination_settler) for leg in intent.legs}

    for chain_id, settler in sorted(settlers):
        client = context.registry.get_provider(chain_id)
        status = await client.call(settler, DESTINATION_SETTLER_ABI, "orderStatus", order_id)
        if _status_hex(status) != ZERO_BYTES32:
            return RuleResult.deny("Intent already filled")

    return RuleResult.allow("Intent not yet filled")


def not_yet_filled_rule() -> Rule:
    return Rule(name="not_yet_filled", check=_check_not_yet_filled)


# =============================================================================
# Destination balances
# =============================================================================


async def _check_destination_balance(intent: Intent, context: SolverContext) -> RuleResult:
    shortfalls = await context.balances.find_shortfalls(intent)
    if shortfalls:
        first = shortfalls[0]
        return RuleResult.deny(
            f"Not enough tokens on destination chain {first.chain_id} for {first.token}"
        )
    return RuleResult.allow("Enough tokens to fulfill the intent")


def sufficient_destination_balance_rule() -> Rule:
    return Rule(name="sufficient_destination_balance", check=_check_destination_balance)
