"""Student portfolio models.

A portfolio is mutated only by the portfolio aggregator. Verified
projects and skills are append-only; the tier progression timeline is
an append-only log of tier unlocks.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from umoja.models.engagement import StudentTier


class PortfolioStrength(str, enum.Enum):
    BUILDING = "BUILDING"
    SOLID = "SOLID"
    STRONG = "STRONG"
    EXCEPTIONAL = "EXCEPTIONAL"


@dataclass(frozen=True)
class VerifiedProject:
    engagement_id: str
    title: str
    tier: StudentTier
    tech_stack: list[str]
    average_score: float
    lecturer_institution: str
    verified_utc: Optional[datetime] = None

    def to_document(self) -> dict[str, Any]:
        return {
            "engagement_id": self.engagement_id,
            "title": self.title,
            "tier": self.tier.value,
            "tech_stack": list(self.tech_stack),
            "average_score": self.average_score,
            "lecturer_institution": self.lecturer_institution,
            "verified_utc": self.verified_utc,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> VerifiedProject:
        return cls(
            engagement_id=doc["engagement_id"],
            title=doc.get("title", ""),
            tier=StudentTier(doc["tier"]),
            tech_stack=list(doc.get("tech_stack") or []),
            average_score=doc.get("average_score", 0.0),
            lecturer_institution=doc.get("lecturer_institution", ""),
            verified_utc=doc.get("verified_utc"),
        )


@dataclass(frozen=True)
class VerifiedSkill:
    skill_name: str
    category: str
    tier_demonstrated: StudentTier
    first_verified_utc: Optional[datetime]
    project_title: str
    engagement_id: str

    def to_document(self) -> dict[str, Any]:
        return {
            "skill_name": self.skill_name,
            "category": self.category,
            "tier_demonstrated": self.tier_demonstrated.value,
            "first_verified_utc": self.first_verified_utc,
            "project_title": self.project_title,
            "engagement_id": self.engagement_id,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> VerifiedSkill:
        return cls(
            skill_name=doc["skill_name"],
            category=doc.get("category", "General"),
            tier_demonstrated=StudentTier(doc["tier_demonstrated"]),
            first_verified_utc=doc.get("first_verified_utc"),
            project_title=doc.get("project_title", ""),
            engagement_id=doc.get("engagement_id", ""),
        )


@dataclass(frozen=True)
class TierProgressionEntry:
    tier: StudentTier
    unlocked_utc: Optional[datetime]


@dataclass
class PortfolioStats:
    verified_project_count: int = 0
    total_project_count: int = 0
    tech_stacks_used: list[str] = field(default_factory=list)
    reviewer_institutions: list[str] = field(default_factory=list)


@dataclass
class StudentPortfolioStatus:
    """Aggregated, read-side view of a student's verified work."""
    student_id: str
    current_tier: StudentTier = StudentTier.BEGINNER
    portfolio_strength: PortfolioStrength = PortfolioStrength.BUILDING
    verified_projects: list[VerifiedProject] = field(default_factory=list)
    verified_skills: list[VerifiedSkill] = field(default_factory=list)
    tier_progression_timeline: list[TierProgressionEntry] = field(default_factory=list)
    stats: PortfolioStats = field(default_factory=PortfolioStats)
    revision: int = 0
    last_recalculated_utc: Optional[datetime] = None

    @property
    def average_score(self) -> float:
        if not self.verified_projects:
            return 0.0
        return sum(p.average_score for p in self.verified_projects) / len(self.verified_projects)

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> StudentPortfolioStatus:
        stats = doc.get("stats") or {}
        return cls(
            student_id=doc["_id"],
            current_tier=StudentTier(doc.get("current_tier", StudentTier.BEGINNER.value)),
            portfolio_strength=PortfolioStrength(
                doc.get("portfolio_strength", PortfolioStrength.BUILDING.value)
            ),
            verified_projects=[
                VerifiedProject.from_document(p) for p in doc.get("verified_projects", [])
            ],
            verified_skills=[
                VerifiedSkill.from_document(s) for s in doc.get("verified_skills", [])
            ],
            tier_progression_timeline=[
                TierProgressionEntry(
                    tier=StudentTier(e["tier"]), unlocked_utc=e.get("unlocked_utc"),
                )
                for e in doc.get("tier_progression_timeline", [])
            ],
            stats=PortfolioStats(
                verified_project_count=stats.get("verified_project_count", 0),
                total_project_count=stats.get("total_project_count", 0),
                tech_stacks_used=list(stats.get("tech_stacks_used") or []),
                reviewer_institutions=list(stats.get("reviewer_institutions") or []),
            ),
            revision=doc.get("revision", 0),
            last_recalculated_utc=doc.get("last_recalculated_utc"),
        )
