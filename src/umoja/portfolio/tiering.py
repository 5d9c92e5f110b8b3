"""Student tier and portfolio strength rules.

Both are pure functions of the verified-project list and the policy
tables, so they can be exercised without a store.

Tier unlocks are checked one step at a time from the current tier and
never move down. Strength is the first rule, strongest first, whose
project-count and average-score minimums are met.
"""

from __future__ import annotations

from typing import Sequence

from umoja.models.engagement import StudentTier
from umoja.models.portfolio import PortfolioStrength, VerifiedProject
from umoja.policy.resolver import StrengthRule, StudentTierRule


def _average(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def unlocked_tiers(
    current: StudentTier,
    projects: Sequence[VerifiedProject],
    rules: Sequence[StudentTierRule],
) -> list[StudentTier]:
    """Tiers newly unlocked above ``current``, in unlock order.

    Returns an empty list when no rule is satisfied.
    """
    by_tier = {r.tier: r for r in rules}
    unlocked: list[StudentTier] = []
    tier = current
    while True:
        next_tier = next((t for t in StudentTier if t.rank == tier.rank + 1), None)
        rule = by_tier.get(next_tier) if next_tier is not None else None
        if rule is None:
            return unlocked
        counted = [p.average_score for p in projects if p.tier == rule.counted_tier]
        if len(counted) < rule.min_projects or _average(counted) < rule.min_average_score:
            return unlocked
        unlocked.append(rule.tier)
        tier = rule.tier


def portfolio_strength(
    projects: Sequence[VerifiedProject],
    rules: Sequence[StrengthRule],
) -> PortfolioStrength:
    """Classify a portfolio. ``rules`` must be ordered strongest first."""
    count = len(projects)
    average = _average([p.average_score for p in projects])
    for rule in rules:
        if count >= rule.min_projects and average >= rule.min_average_score:
            return rule.strength
    return PortfolioStrength.BUILDING
