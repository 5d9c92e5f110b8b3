"""Policy resolver — loads and validates the executable policy files.

All numeric policy lives in config/:
- trust_params.json: sub-score caps, tier cut points, curve parameters.
- education_policy.json: review dimensions, comment minimum, reviewer
  sample size, student tier unlock table, portfolio strength table,
  skill category map.

Loading is fail-closed: a structurally invalid file raises ValueError
before any component is built.

Usage:
    resolver = PolicyResolver.from_config_dir(Path("config"))
    caps = resolver.trust_caps()
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from umoja.models.engagement import StudentTier
from umoja.models.portfolio import PortfolioStrength
from umoja.models.trust import FarmerTrustTier


@dataclass(frozen=True)
class TrustCaps:
    verification: float
    transaction: float
    rating: float
    reliability: float

    @property
    def total(self) -> float:
        return self.verification + self.transaction + self.rating + self.reliability


@dataclass(frozen=True)
class StudentTierRule:
    """Unlock `tier` once enough `counted_tier` projects average high enough."""
    tier: StudentTier
    counted_tier: StudentTier
    min_projects: int
    min_average_score: float


@dataclass(frozen=True)
class StrengthRule:
    strength: PortfolioStrength
    min_projects: int
    min_average_score: float


class PolicyResolver:
    """Typed access to the trust and education policy parameters."""

    TRUST_FILENAME = "trust_params.json"
    EDUCATION_FILENAME = "education_policy.json"

    def __init__(self, trust_params: dict[str, Any], education_policy: dict[str, Any]) -> None:
        self._trust = trust_params
        self._education = education_policy
        self._validate()

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        """Load both policy files from a config directory.

        Raises:
            FileNotFoundError: If either policy file is missing.
            ValueError: If either file is structurally invalid.
        """
        return cls(
            _load_json(config_dir / cls.TRUST_FILENAME),
            _load_json(config_dir / cls.EDUCATION_FILENAME),
        )

    # ------------------------------------------------------------------
    # Farmer trust
    # ------------------------------------------------------------------

    def trust_caps(self) -> TrustCaps:
        caps = self._trust["caps"]
        return TrustCaps(
            verification=float(caps["verification"]),
            transaction=float(caps["transaction"]),
            rating=float(caps["rating"]),
            reliability=float(caps["reliability"]),
        )

    def farmer_tier_thresholds(self) -> list[tuple[float, FarmerTrustTier]]:
        """Inclusive lower bounds, highest first. NEW is the implicit floor."""
        thresholds = [
            (float(value), FarmerTrustTier(name))
            for name, value in self._trust["tier_thresholds"].items()
        ]
        return sorted(thresholds, key=lambda t: t[0], reverse=True)

    def verification_initial_score(self) -> float:
        return float(self._trust["verification"]["initial_score"])

    def transaction_curve(self) -> dict[str, float]:
        return {k: float(v) for k, v in self._trust["transaction_curve"].items()}

    def rating_confidence_k(self) -> float:
        return float(self._trust["rating_curve"]["confidence_k"])

    def reliability_policy(self) -> dict[str, float]:
        return {k: float(v) for k, v in self._trust["reliability"].items()}

    # ------------------------------------------------------------------
    # Education
    # ------------------------------------------------------------------

    def reviewer_sample_size(self) -> int:
        return int(self._education["peer_review"]["reviewer_sample_size"])

    def peer_review_dimensions(self) -> list[str]:
        return list(self._education["peer_review"]["dimensions"])

    def rubric_dimensions(self) -> list[str]:
        return list(self._education["lecturer_review"]["dimensions"])

    def min_comment_words(self) -> int:
        return int(self._education["lecturer_review"]["min_comment_words"])

    def score_range(self, review_kind: str) -> tuple[int, int]:
        """Inclusive score bounds for 'peer_review' or 'lecturer_review'."""
        section = self._education[review_kind]
        return int(section["min_score"]), int(section["max_score"])

    def student_tier_rules(self) -> list[StudentTierRule]:
        return [
            StudentTierRule(
                tier=StudentTier(r["tier"]),
                counted_tier=StudentTier(r["counted_tier"]),
                min_projects=int(r["min_projects"]),
                min_average_score=float(r["min_average_score"]),
            )
            for r in self._education["student_tier_rules"]
        ]

    def portfolio_strength_rules(self) -> list[StrengthRule]:
        """Strength rules, strongest first."""
        rules = [
            StrengthRule(
                strength=PortfolioStrength(r["strength"]),
                min_projects=int(r["min_projects"]),
                min_average_score=float(r["min_average_score"]),
            )
            for r in self._education["portfolio_strength_rules"]
        ]
        order = list(PortfolioStrength)
        return sorted(rules, key=lambda r: order.index(r.strength), reverse=True)

    def skill_category(self, skill: str) -> str:
        return self._education.get("skill_categories", {}).get(skill, "General")

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate(self) -> None:
        for key in ("caps", "tier_thresholds", "verification",
                    "transaction_curve", "rating_curve", "reliability"):
            if key not in self._trust:
                raise ValueError(f"trust params missing '{key}' section")
        for key in ("peer_review", "lecturer_review",
                    "student_tier_rules", "portfolio_strength_rules"):
            if key not in self._education:
                raise ValueError(f"education policy missing '{key}' section")

        caps = self.trust_caps()
        if any(c < 0 for c in (caps.verification, caps.transaction,
                               caps.rating, caps.reliability)):
            raise ValueError("trust caps must be non-negative")
        if caps.total > 100:
            raise ValueError(f"trust caps sum to {caps.total}, must not exceed 100")

        try:
            thresholds = self.farmer_tier_thresholds()
        except ValueError as e:
            raise ValueError(f"invalid farmer tier name: {e}") from e
        for value, tier in thresholds:
            if not 0 < value <= 100:
                raise ValueError(f"threshold for {tier.value} must be in (0, 100]")

        if self.verification_initial_score() > caps.verification:
            raise ValueError("initial verification score exceeds verification cap")
        if self.reviewer_sample_size() < 1:
            raise ValueError("reviewer_sample_size must be >= 1")
        if self.min_comment_words() < 0:
            raise ValueError("min_comment_words must be >= 0")
        if not self.rubric_dimensions():
            raise ValueError("lecturer_review.dimensions must not be empty")

        for rule in self.student_tier_rules():
            if rule.tier.rank <= rule.counted_tier.rank:
                raise ValueError(
                    f"tier rule for {rule.tier.value} must count a lower tier"
                )


def _load_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Policy file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        data: Optional[dict[str, Any]] = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Policy file must contain a JSON object: {path}")
    return data
