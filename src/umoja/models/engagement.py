"""Project engagement, peer review, and lecturer review models.

Engagement lifecycle:
    IN_PROGRESS → UNDER_PEER_REVIEW → UNDER_LECTURER_REVIEW → VERIFIED | REJECTED

An engagement snapshots the student's tier at creation; the snapshot is
never changed afterwards, even if the student advances mid-project.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


class StudentTier(str, enum.Enum):
    """Student skill classification used for review eligibility."""
    BEGINNER = "BEGINNER"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]


_TIER_RANK = {
    StudentTier.BEGINNER: 0,
    StudentTier.INTERMEDIATE: 1,
    StudentTier.ADVANCED: 2,
}


class ProjectTrack(str, enum.Enum):
    OPEN_SOURCE = "OPEN_SOURCE"
    AI_BRIEF = "AI_BRIEF"


class EngagementStatus(str, enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    UNDER_PEER_REVIEW = "UNDER_PEER_REVIEW"
    UNDER_LECTURER_REVIEW = "UNDER_LECTURER_REVIEW"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class PeerReviewStatus(str, enum.Enum):
    ASSIGNED = "ASSIGNED"
    SUBMITTED = "SUBMITTED"
    WAIVED = "WAIVED"


class LecturerDecision(str, enum.Enum):
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


@dataclass
class ProjectEngagement:
    """A student's single project attempt."""
    engagement_id: str
    student_id: str
    track: ProjectTrack
    tier: StudentTier
    title: str
    tech_stack: list[str] = field(default_factory=list)
    status: EngagementStatus = EngagementStatus.IN_PROGRESS
    peer_review_id: Optional[str] = None
    lecturer_review_id: Optional[str] = None
    created_utc: Optional[datetime] = None
    submitted_utc: Optional[datetime] = None
    verified_utc: Optional[datetime] = None

    def to_document(self) -> dict[str, Any]:
        return {
            "_id": self.engagement_id,
            "student_id": self.student_id,
            "track": self.track.value,
            "tier": self.tier.value,
            "title": self.title,
            "tech_stack": list(self.tech_stack),
            "status": self.status.value,
            "peer_review_id": self.peer_review_id,
            "lecturer_review_id": self.lecturer_review_id,
            "created_utc": self.created_utc,
            "submitted_utc": self.submitted_utc,
            "verified_utc": self.verified_utc,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> ProjectEngagement:
        return cls(
            engagement_id=doc["_id"],
            student_id=doc["student_id"],
            track=ProjectTrack(doc["track"]),
            tier=StudentTier(doc["tier"]),
            title=doc.get("title", ""),
            tech_stack=list(doc.get("tech_stack") or []),
            status=EngagementStatus(doc["status"]),
            peer_review_id=doc.get("peer_review_id"),
            lecturer_review_id=doc.get("lecturer_review_id"),
            created_utc=doc.get("created_utc"),
            submitted_utc=doc.get("submitted_utc"),
            verified_utc=doc.get("verified_utc"),
        )


@dataclass
class PeerReview:
    """The single active peer review attached to an engagement.

    For a WAIVED review reviewer_id is None: nobody was eligible.
    """
    peer_review_id: str
    engagement_id: str
    reviewer_id: Optional[str]
    status: PeerReviewStatus
    scores: dict[str, int] = field(default_factory=dict)
    comments: dict[str, str] = field(default_factory=dict)
    assigned_utc: Optional[datetime] = None
    submitted_utc: Optional[datetime] = None

    def to_document(self) -> dict[str, Any]:
        return {
            "_id": self.peer_review_id,
            "engagement_id": self.engagement_id,
            "reviewer_id": self.reviewer_id,
            "status": self.status.value,
            "scores": dict(self.scores),
            "comments": dict(self.comments),
            "assigned_utc": self.assigned_utc,
            "submitted_utc": self.submitted_utc,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> PeerReview:
        return cls(
            peer_review_id=doc["_id"],
            engagement_id=doc["engagement_id"],
            reviewer_id=doc.get("reviewer_id"),
            status=PeerReviewStatus(doc["status"]),
            scores=dict(doc.get("scores") or {}),
            comments=dict(doc.get("comments") or {}),
            assigned_utc=doc.get("assigned_utc"),
            submitted_utc=doc.get("submitted_utc"),
        )


@dataclass(frozen=True)
class LecturerReview:
    """Immutable record of a lecturer's final rubric decision."""
    review_id: str
    engagement_id: str
    lecturer_id: str
    decision: LecturerDecision
    scores: dict[str, int]
    comments: dict[str, str]
    rejection_reason: Optional[str] = None
    created_utc: Optional[datetime] = None

    @property
    def average_score(self) -> float:
        if not self.scores:
            return 0.0
        return sum(self.scores.values()) / len(self.scores)

    def to_document(self) -> dict[str, Any]:
        return {
            "_id": self.review_id,
            "engagement_id": self.engagement_id,
            "lecturer_id": self.lecturer_id,
            "decision": self.decision.value,
            "scores": dict(self.scores),
            "comments": dict(self.comments),
            "rejection_reason": self.rejection_reason,
            "created_utc": self.created_utc,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> LecturerReview:
        return cls(
            review_id=doc["_id"],
            engagement_id=doc["engagement_id"],
            lecturer_id=doc["lecturer_id"],
            decision=LecturerDecision(doc["decision"]),
            scores=dict(doc.get("scores") or {}),
            comments=dict(doc.get("comments") or {}),
            rejection_reason=doc.get("rejection_reason"),
            created_utc=doc.get("created_utc"),
        )


@dataclass(frozen=True)
class LecturerEffectiveness:
    """Per-lecturer review statistics. Averages are derived from sums."""
    lecturer_id: str
    total_reviews: int = 0
    verified_count: int = 0
    rejected_count: int = 0
    score_sums: dict[str, float] = field(default_factory=dict)
    comment_word_sum: int = 0
    comment_count: int = 0
    last_review_utc: Optional[datetime] = None

    @property
    def average_scores(self) -> dict[str, float]:
        if not self.total_reviews:
            return {}
        return {k: v / self.total_reviews for k, v in self.score_sums.items()}

    @property
    def average_comment_words(self) -> float:
        if not self.comment_count:
            return 0.0
        return self.comment_word_sum / self.comment_count

    @property
    def verification_rate(self) -> float:
        if not self.total_reviews:
            return 0.0
        return self.verified_count / self.total_reviews

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> LecturerEffectiveness:
        return cls(
            lecturer_id=doc["_id"],
            total_reviews=doc.get("total_reviews", 0),
            verified_count=doc.get("verified_count", 0),
            rejected_count=doc.get("rejected_count", 0),
            score_sums=dict(doc.get("score_sums") or {}),
            comment_word_sum=doc.get("comment_word_sum", 0),
            comment_count=doc.get("comment_count", 0),
            last_review_utc=doc.get("last_review_utc"),
        )
