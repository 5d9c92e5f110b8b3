"""Trust calculator — converts raw counters into a composite score and tier.

Trust model:
  composite = verification + transaction + rating + reliability

Invariants enforced:
- Each contribution is clamped to [0, cap] independently (40/25/20/15).
- composite == sum of the clamped contributions, clamped to [0, 100].
- Transaction contribution is monotonic in order count and volume, with
  diminishing returns on volume (capped logarithmic curve).
- Rating contribution is damped by confidence n / (n + k), so a single
  5-star rating cannot max the sub-score.
- Reliability starts at its cap, scales down below the on-time threshold
  and is multiplied by a penalty factor per dispute ruled against.
- Tier is a pure function of the composite score.

Pure computation: no I/O, no clock, deterministic.
"""

from __future__ import annotations

import math

from umoja.models.trust import FarmerTrustTier, ScoreBreakdown, TrustInputs
from umoja.policy.resolver import PolicyResolver


def _clamp(value: float, upper: float, lower: float = 0.0) -> float:
    return max(lower, min(upper, value))


class TrustCalculator:
    """Computes trust contributions, composite score, and tier."""

    def __init__(self, resolver: PolicyResolver) -> None:
        self._resolver = resolver
        self._caps = resolver.trust_caps()

    def verification_score(self, verified: bool) -> float:
        if not verified:
            return 0.0
        return _clamp(self._resolver.verification_initial_score(), self._caps.verification)

    def transaction_contribution(self, completed_orders: int, total_volume: float) -> float:
        """Order-count points plus capped logarithmic volume points."""
        curve = self._resolver.transaction_curve()
        orders = max(0, completed_orders)
        volume = max(0.0, total_volume)

        order_points = min(orders * curve["points_per_order"], curve["order_points_cap"])

        scale = curve["volume_scale"]
        ceiling_log = math.log1p(curve["volume_ceiling"] / scale)
        volume_points = curve["volume_points_cap"] * math.log1p(volume / scale) / ceiling_log
        volume_points = min(volume_points, curve["volume_points_cap"])

        return _clamp(order_points + volume_points, self._caps.transaction)

    def rating_contribution(self, average_rating: float, total_ratings: int) -> float:
        """Linear in rating (1 star = 0, 5 stars = cap), damped by confidence."""
        if total_ratings <= 0:
            return 0.0
        k = self._resolver.rating_confidence_k()
        confidence = total_ratings / (total_ratings + k)
        normalised = (average_rating - 1.0) / 4.0
        return _clamp(self._caps.rating * normalised * confidence, self._caps.rating)

    def reliability_contribution(
        self,
        on_time_confirmation_rate: float,
        disputes_ruled_against: int,
    ) -> float:
        policy = self._resolver.reliability_policy()
        threshold = policy["on_time_threshold"]
        rate = _clamp(on_time_confirmation_rate, 1.0)

        base = self._caps.reliability
        if rate < threshold:
            base *= rate / threshold
        penalty = policy["ruled_against_factor"] ** max(0, disputes_ruled_against)
        return _clamp(base * penalty, self._caps.reliability)

    def tier_for(self, composite_score: float) -> FarmerTrustTier:
        """Map a composite score to its tier (inclusive lower bounds)."""
        for lower_bound, tier in self._resolver.farmer_tier_thresholds():
            if composite_score >= lower_bound:
                return tier
        return FarmerTrustTier.NEW

    def compute_composite(
        self,
        verification: float,
        transaction: float,
        rating: float,
        reliability: float,
    ) -> tuple[float, FarmerTrustTier]:
        """Clamp four contributions, sum them, and derive the tier.

        The sum is taken in whole hundredths, so the composite is the
        exact two-decimal total of the contributions. Summing the stored
        float contributions directly can differ in the last bit; compare
        such sums with a tolerance.
        """
        parts = (
            _clamp(verification, self._caps.verification),
            _clamp(transaction, self._caps.transaction),
            _clamp(rating, self._caps.rating),
            _clamp(reliability, self._caps.reliability),
        )
        cents = sum(int(round(p * 100)) for p in parts)
        composite = _clamp(cents / 100, 100.0)
        return composite, self.tier_for(composite)

    def compute(self, inputs: TrustInputs) -> ScoreBreakdown:
        """Full breakdown from raw counters."""
        verification = round(self.verification_score(inputs.verified), 2)
        transaction = round(
            self.transaction_contribution(inputs.completed_orders, inputs.total_volume), 2,
        )
        rating = round(
            self.rating_contribution(inputs.average_rating, inputs.total_ratings), 2,
        )
        reliability = round(
            self.reliability_contribution(
                inputs.on_time_confirmation_rate, inputs.disputes_ruled_against,
            ),
            2,
        )
        composite, tier = self.compute_composite(verification, transaction, rating, reliability)
        return ScoreBreakdown(
            verification_score=verification,
            transaction_contribution=transaction,
            rating_contribution=rating,
            reliability_contribution=reliability,
            composite_score=composite,
            tier=tier,
        )
