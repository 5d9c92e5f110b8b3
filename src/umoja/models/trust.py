"""Farmer trust data models.

Trust in UmojaHub is a composite of four bounded contributions:
  composite = verification + transaction + rating + reliability

- verification (0-40): set once, when identity verification is approved.
- transaction (0-25): completed-order count and cumulative volume.
- rating (0-20): average buyer rating weighted by rating confidence.
- reliability (0-15): on-time confirmations, penalised by disputes.

The tier is a pure function of the composite score and is derived on
read; it is never persisted alongside the score.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional


class FarmerTrustTier(str, enum.Enum):
    """Discrete trust classification derived from the composite score."""
    NEW = "NEW"
    ESTABLISHED = "ESTABLISHED"
    TRUSTED = "TRUSTED"
    ELITE = "ELITE"


class VerificationStatus(str, enum.Enum):
    """State of a farmer's identity-verification submission."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


@dataclass(frozen=True)
class TrustInputs:
    """Raw counters feeding one composite computation."""
    verified: bool = False
    completed_orders: int = 0
    total_volume: float = 0.0
    average_rating: float = 0.0
    total_ratings: int = 0
    on_time_confirmation_rate: float = 1.0
    dispute_count: int = 0
    disputes_ruled_against: int = 0


@dataclass(frozen=True)
class ScoreBreakdown:
    """Clamped contributions plus the composite and its tier.

    Invariant: composite_score == round(sum of contributions, 2).
    """
    verification_score: float
    transaction_contribution: float
    rating_contribution: float
    reliability_contribution: float
    composite_score: float
    tier: FarmerTrustTier

    @property
    def contributions(self) -> tuple[float, float, float, float]:
        return (
            self.verification_score,
            self.transaction_contribution,
            self.rating_contribution,
            self.reliability_contribution,
        )


@dataclass(frozen=True)
class TrustScore:
    """Persisted trust state for a single farmer, as read back.

    Raw counters are kept next to the contributions so that any event
    can recompute the score from a single consistent snapshot.
    """
    farmer_id: str
    verification_score: float
    transaction_contribution: float
    rating_contribution: float
    reliability_contribution: float
    composite_score: float
    tier: FarmerTrustTier
    completed_orders: int = 0
    total_volume: float = 0.0
    rating_sum: float = 0.0
    rating_count: int = 0
    paid_orders: int = 0
    on_time_confirmations: int = 0
    dispute_count: int = 0
    disputes_ruled_against: int = 0
    revision: int = 0
    last_calculated_utc: Optional[datetime] = None

    @property
    def average_rating(self) -> float:
        if self.rating_count == 0:
            return 0.0
        return self.rating_sum / self.rating_count

    @property
    def on_time_confirmation_rate(self) -> float:
        # Benefit of the doubt for farmers with no paid orders yet
        if self.paid_orders == 0:
            return 1.0
        return self.on_time_confirmations / self.paid_orders

    def inputs(self) -> TrustInputs:
        """Project the stored counters onto calculator inputs."""
        return TrustInputs(
            verified=self.verification_score > 0,
            completed_orders=self.completed_orders,
            total_volume=self.total_volume,
            average_rating=self.average_rating,
            total_ratings=self.rating_count,
            on_time_confirmation_rate=self.on_time_confirmation_rate,
            dispute_count=self.dispute_count,
            disputes_ruled_against=self.disputes_ruled_against,
        )

    @classmethod
    def from_document(cls, doc: dict[str, Any], tier: FarmerTrustTier) -> TrustScore:
        return cls(
            farmer_id=doc["_id"],
            verification_score=doc.get("verification_score", 0.0),
            transaction_contribution=doc.get("transaction_contribution", 0.0),
            rating_contribution=doc.get("rating_contribution", 0.0),
            reliability_contribution=doc.get("reliability_contribution", 0.0),
            composite_score=doc.get("composite_score", 0.0),
            tier=tier,
            completed_orders=doc.get("completed_orders", 0),
            total_volume=doc.get("total_volume", 0.0),
            rating_sum=doc.get("rating_sum", 0.0),
            rating_count=doc.get("rating_count", 0),
            paid_orders=doc.get("paid_orders", 0),
            on_time_confirmations=doc.get("on_time_confirmations", 0),
            dispute_count=doc.get("dispute_count", 0),
            disputes_ruled_against=doc.get("disputes_ruled_against", 0),
            revision=doc.get("revision", 0),
            last_calculated_utc=doc.get("last_calculated_utc"),
        )
