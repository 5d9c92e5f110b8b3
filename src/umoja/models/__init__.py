"""Core data models for UmojaHub."""

from umoja.models.engagement import (
    EngagementStatus,
    LecturerDecision,
    LecturerEffectiveness,
    LecturerReview,
    PeerReview,
    PeerReviewStatus,
    ProjectEngagement,
    ProjectTrack,
    StudentTier,
)
from umoja.models.portfolio import (
    PortfolioStats,
    PortfolioStrength,
    StudentPortfolioStatus,
    TierProgressionEntry,
    VerifiedProject,
    VerifiedSkill,
)
from umoja.models.trust import (
    FarmerTrustTier,
    ScoreBreakdown,
    TrustInputs,
    TrustScore,
    VerificationStatus,
)
from umoja.models.user import Role, UserRecord

__all__ = [
    "EngagementStatus",
    "LecturerDecision",
    "LecturerEffectiveness",
    "LecturerReview",
    "PeerReview",
    "PeerReviewStatus",
    "ProjectEngagement",
    "ProjectTrack",
    "StudentTier",
    "PortfolioStats",
    "PortfolioStrength",
    "StudentPortfolioStatus",
    "TierProgressionEntry",
    "VerifiedProject",
    "VerifiedSkill",
    "FarmerTrustTier",
    "ScoreBreakdown",
    "TrustInputs",
    "TrustScore",
    "VerificationStatus",
    "Role",
    "UserRecord",
]
