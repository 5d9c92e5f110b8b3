"""Tests for trust calculator — proves composite, cap and tier invariants."""

import math

import pytest
from pathlib import Path

from umoja.policy.resolver import PolicyResolver
from umoja.trust.calculator import TrustCalculator
from umoja.models.trust import FarmerTrustTier, TrustInputs


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


@pytest.fixture
def resolver() -> PolicyResolver:
    return PolicyResolver.from_config_dir(CONFIG_DIR)


@pytest.fixture
def calc(resolver: PolicyResolver) -> TrustCalculator:
    return TrustCalculator(resolver)


class TestTierCutPoints:
    @pytest.mark.parametrize("score,tier", [
        (0.0, FarmerTrustTier.NEW),
        (39.0, FarmerTrustTier.NEW),
        (39.99, FarmerTrustTier.NEW),
        (40.0, FarmerTrustTier.ESTABLISHED),
        (64.0, FarmerTrustTier.ESTABLISHED),
        (65.0, FarmerTrustTier.TRUSTED),
        (84.0, FarmerTrustTier.TRUSTED),
        (85.0, FarmerTrustTier.ELITE),
        (100.0, FarmerTrustTier.ELITE),
    ])
    def test_inclusive_lower_bounds(self, calc: TrustCalculator, score, tier) -> None:
        assert calc.tier_for(score) == tier

    def test_tier_is_monotonic(self, calc: TrustCalculator) -> None:
        order = list(FarmerTrustTier)
        ranks = [order.index(calc.tier_for(s / 2)) for s in range(0, 201)]
        assert ranks == sorted(ranks)


class TestCompositeInvariant:
    def test_freshly_verified_farmer(self, calc: TrustCalculator) -> None:
        composite, tier = calc.compute_composite(40, 0, 0, 0)
        assert composite == 40.0
        assert tier == FarmerTrustTier.ESTABLISHED

    def test_maximum(self, calc: TrustCalculator) -> None:
        assert calc.compute_composite(40, 25, 20, 15) == (100.0, FarmerTrustTier.ELITE)

    def test_each_contribution_clamped_to_its_cap(self, calc: TrustCalculator) -> None:
        composite, tier = calc.compute_composite(90, 90, 90, 90)
        assert composite == 100.0
        assert tier == FarmerTrustTier.ELITE

    def test_negative_contributions_clamped_to_zero(self, calc: TrustCalculator) -> None:
        composite, tier = calc.compute_composite(-10, -1, -1, -1)
        assert composite == 0.0
        assert tier == FarmerTrustTier.NEW

    def test_composite_equals_sum_of_clamped_parts(self, calc: TrustCalculator) -> None:
        composite, _ = calc.compute_composite(40, 30, 12.5, 7.25)
        assert composite == pytest.approx(40 + 25 + 12.5 + 7.25)

    def test_composite_is_exact_to_the_cent(self, calc: TrustCalculator) -> None:
        composite, _ = calc.compute_composite(40, 0.1, 0.2, 0)
        assert composite == 40.3
        assert composite == pytest.approx(40 + 0.1 + 0.2 + 0)

    @pytest.mark.parametrize("inputs", [
        TrustInputs(),
        TrustInputs(verified=True),
        TrustInputs(verified=True, completed_orders=7, total_volume=84_000,
                    average_rating=4.3, total_ratings=12,
                    on_time_confirmation_rate=0.9, dispute_count=2,
                    disputes_ruled_against=1),
        TrustInputs(verified=True, completed_orders=500, total_volume=5_000_000,
                    average_rating=5.0, total_ratings=400),
    ])
    def test_breakdown_sums(self, calc: TrustCalculator, inputs: TrustInputs) -> None:
        b = calc.compute(inputs)
        assert b.composite_score == pytest.approx(sum(b.contributions))
        assert 0.0 <= b.composite_score <= 100.0
        assert b.tier == calc.tier_for(b.composite_score)

    def test_compute_is_idempotent(self, calc: TrustCalculator) -> None:
        inputs = TrustInputs(verified=True, completed_orders=3, total_volume=12_000,
                             average_rating=3.7, total_ratings=4)
        assert calc.compute(inputs) == calc.compute(inputs)


class TestTransactionContribution:
    def test_zero(self, calc: TrustCalculator) -> None:
        assert calc.transaction_contribution(0, 0.0) == 0.0

    def test_saturates_at_cap(self, calc: TrustCalculator) -> None:
        assert calc.transaction_contribution(24, 650_000) == pytest.approx(25.0)
        assert calc.transaction_contribution(10_000, 1e12) == pytest.approx(25.0)

    def test_monotonic_in_volume(self, calc: TrustCalculator) -> None:
        values = [calc.transaction_contribution(5, v) for v in range(0, 2_000_000, 25_000)]
        assert values == sorted(values)

    def test_monotonic_in_orders(self, calc: TrustCalculator) -> None:
        values = [calc.transaction_contribution(n, 50_000) for n in range(0, 60)]
        assert values == sorted(values)

    def test_diminishing_returns_on_volume(self, calc: TrustCalculator) -> None:
        first = calc.transaction_contribution(0, 50_000) - calc.transaction_contribution(0, 0)
        later = (calc.transaction_contribution(0, 450_000)
                 - calc.transaction_contribution(0, 400_000))
        assert later < first

    def test_volume_curve_matches_logarithm(self, calc: TrustCalculator) -> None:
        expected = 13 * math.log1p(1.0) / math.log1p(65.0)
        assert calc.transaction_contribution(0, 10_000) == pytest.approx(expected)


class TestRatingContribution:
    def test_no_ratings(self, calc: TrustCalculator) -> None:
        assert calc.rating_contribution(0.0, 0) == 0.0

    def test_single_five_star_cannot_max(self, calc: TrustCalculator) -> None:
        value = calc.rating_contribution(5.0, 1)
        assert value == pytest.approx(5.0)
        assert value < 20.0

    def test_confidence_approaches_one(self, calc: TrustCalculator) -> None:
        assert calc.rating_contribution(5.0, 3000) == pytest.approx(20.0, abs=0.05)

    def test_one_star_average_contributes_nothing(self, calc: TrustCalculator) -> None:
        assert calc.rating_contribution(1.0, 50) == 0.0

    def test_more_ratings_at_same_average_never_lower(self, calc: TrustCalculator) -> None:
        values = [calc.rating_contribution(4.2, n) for n in range(1, 100)]
        assert values == sorted(values)


class TestReliabilityContribution:
    def test_starts_at_cap(self, calc: TrustCalculator) -> None:
        assert calc.reliability_contribution(1.0, 0) == pytest.approx(15.0)

    def test_at_threshold_is_full(self, calc: TrustCalculator) -> None:
        assert calc.reliability_contribution(0.8, 0) == pytest.approx(15.0)

    def test_below_threshold_scales_down(self, calc: TrustCalculator) -> None:
        assert calc.reliability_contribution(0.4, 0) == pytest.approx(7.5)

    def test_ruled_against_penalty_is_multiplicative(self, calc: TrustCalculator) -> None:
        assert calc.reliability_contribution(1.0, 1) == pytest.approx(10.5)
        assert calc.reliability_contribution(1.0, 2) == pytest.approx(7.35)

    def test_penalties_compound(self, calc: TrustCalculator) -> None:
        assert calc.reliability_contribution(0.4, 1) == pytest.approx(7.5 * 0.7)


class TestVerificationScore:
    def test_unverified(self, calc: TrustCalculator) -> None:
        assert calc.verification_score(False) == 0.0

    def test_verified(self, calc: TrustCalculator) -> None:
        assert calc.verification_score(True) == 40.0
