"""
Assignment Rule Engine.

Carves the delivered subset out of an ordered question pool. Every mode
returns a prefix of the pool, so the same pool, rule and context always
produce the same subset (a reload can rebuild it without the producer).

Modes:
- full_set:    the whole pool
- fixed_count: the first round(n) questions
- percentage:  the first round(T * p / 100) questions, p clamped to [1, 100]
- tier_auto:   plan-tier caps (250 -> 250, 200 -> 200 or 75%, 100 -> 50% up to 100)
- equal_split: the pool divided evenly over a tier set, remainder to the lowest tiers

Rounding is half-up, and every non-empty result is clamped to [1, T].
"""
from __future__ import annotations

import math
from typing import Sequence, TypeVar

from loguru import logger

from examhall.core.models import AllocationContext, AllocationMode, AssignmentRule

T = TypeVar("T")

DEFAULT_TIER_SET: tuple[int, ...] = (100, 200, 250)

# Product rules for tier_auto, kept exactly as the business defined them
TIER_200_FALLBACK_RATIO = 0.75
TIER_100_RATIO = 0.5


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(count: int, total: int) -> int:
    if total <= 0:
        return 0
    return max(1, min(total, count))


def resolve_rule(rule: AssignmentRule | None, plan_id: str | None) -> AssignmentRule:
    """Apply the per-plan override when the session's plan has one."""
    if rule is None:
        return AssignmentRule()
    if plan_id is not None and plan_id in rule.overrides_by_plan:
        return rule.overrides_by_plan[plan_id]
    return rule


def tier_auto_size(total: int, plan_tier: str | None) -> int:
    tier = (plan_tier or "").strip()
    if tier == "250":
        size = min(total, 250)
    elif tier == "200":
        size = 200 if total >= 200 else round_half_up(TIER_200_FALLBACK_RATIO * total)
    elif tier == "100":
        size = min(100, round_half_up(TIER_100_RATIO * total))
    else:
        size = total
    return _clamp(size, total)


def equal_split_allocations(total: int, tiers: Sequence[int]) -> dict[int, int]:
    """
    Slot size per tier.

    Tiers are sorted ascending; the first (total mod m) tiers get one extra
    question. Ten questions over {100, 200, 250} gives {100: 4, 200: 3, 250: 3}.
    """
    ordered = sorted(set(tiers))
    if not ordered:
        return {}
    base, remainder = divmod(total, len(ordered))
    return {tier: base + 1 if index < remainder else base for index, tier in enumerate(ordered)}


def _equal_split_size(
    total: int,
    rule: AssignmentRule,
    context: AllocationContext,
    default_tiers: Sequence[int],
) -> int:
    tiers = context.selected_tier_set or rule.tier_set or tuple(default_tiers)
    allocations = equal_split_allocations(total, tiers)
    try:
        active = int((context.plan_tier or "").strip())
    except ValueError:
        active = None

    if active not in allocations:
        logger.debug("equal_split: tier {} not in {}, delivering full set", context.plan_tier, tiers)
        return total
    return _clamp(allocations[active], total)


def allocation_size(
    total: int,
    rule: AssignmentRule,
    context: AllocationContext,
    default_tiers: Sequence[int] = DEFAULT_TIER_SET,
) -> int:
    """Number of questions to deliver from a pool of `total`."""
    if total <= 0:
        return 0

    mode = rule.mode
    if mode == AllocationMode.FIXED_COUNT and rule.value is not None:
        return _clamp(max(1, round_half_up(rule.value)), total)

    if mode == AllocationMode.PERCENTAGE and rule.value is not None:
        percent = min(100.0, max(1.0, rule.value))
        return _clamp(max(1, round_half_up(total * percent / 100)), total)

    if mode == AllocationMode.TIER_AUTO:
        return tier_auto_size(total, context.plan_tier)

    if mode == AllocationMode.EQUAL_SPLIT:
        return _equal_split_size(total, rule, context, default_tiers)

    # full_set, or a count/percentage rule without a value
    return total


def select_questions(
    pool: Sequence[T],
    rule: AssignmentRule | None,
    context: AllocationContext,
    plan_id: str | None = None,
    default_tiers: Sequence[int] = DEFAULT_TIER_SET,
) -> list[T]:
    """Return the delivered prefix of `pool` for this rule and context."""
    effective = resolve_rule(rule, plan_id)
    size = allocation_size(len(pool), effective, context, default_tiers)
    logger.debug(
        "Allocation {} (plan={}, tier={}): {}/{}",
        effective.mode.value,
        plan_id,
        context.plan_tier,
        size,
        len(pool),
    )
    return list(pool[:size])
