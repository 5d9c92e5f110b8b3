"""Portfolio aggregator — folds verified engagements into a student's portfolio.

The aggregator is the only writer of StudentPortfolioStatus documents.
Every write is conditioned on the ``revision`` the change was computed
from and bumps it, so two verifications for the same student serialise:
the loser re-reads and re-applies on top of the winner's result. No
append is dropped and no counter increment is lost.

Verified projects, verified skills, and the tier timeline only grow.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from umoja.errors import Conflict, NotFound
from umoja.models.engagement import LecturerReview, ProjectEngagement, StudentTier
from umoja.models.portfolio import (
    PortfolioStrength,
    StudentPortfolioStatus,
    VerifiedProject,
    VerifiedSkill,
)
from umoja.models.user import Role
from umoja.notify.dispatcher import NotificationDispatcher, project_verified_message
from umoja.persistence.audit_log import AuditKind, AuditLog
from umoja.persistence.collections import PORTFOLIOS, USERS
from umoja.persistence.document_store import DocumentStore
from umoja.policy.resolver import PolicyResolver
from umoja.portfolio.tiering import portfolio_strength, unlocked_tiers

logger = logging.getLogger(__name__)

UNKNOWN_INSTITUTION = "Unknown Institution"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PortfolioAggregator:
    """Maintains StudentPortfolioStatus documents."""

    MAX_ATTEMPTS = 20

    def __init__(
        self,
        store: DocumentStore,
        resolver: PolicyResolver,
        dispatcher: Optional[NotificationDispatcher] = None,
        audit_log: Optional[AuditLog] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._dispatcher = dispatcher
        self._audit_log = audit_log
        self._clock = clock

    def open_engagement(self, student_id: str, tier: StudentTier) -> StudentPortfolioStatus:
        """Count a newly created engagement, creating the portfolio if needed.

        The first call for a student seeds the tier timeline with the
        tier the student starts at.
        """
        now = self._clock()
        result = self._store.update_one(
            PORTFOLIOS,
            {"_id": student_id},
            set_on_insert=self._empty_portfolio(tier, now),
            inc={"stats.total_project_count": 1, "revision": 1},
            upsert=True,
        )
        if result.upserted_id is not None:
            logger.info("Created portfolio for student %s at tier %s", student_id, tier.value)
        return StudentPortfolioStatus.from_document(result.document)

    def get_portfolio(self, student_id: str) -> StudentPortfolioStatus:
        doc = self._store.find_one(PORTFOLIOS, {"_id": student_id})
        if doc is None:
            raise NotFound(f"No portfolio for student {student_id}")
        return StudentPortfolioStatus.from_document(doc)

    def record_verified(
        self,
        engagement: ProjectEngagement,
        review: LecturerReview,
        institution: Optional[str] = None,
    ) -> StudentPortfolioStatus:
        """Fold one VERIFIED engagement into the student's portfolio.

        Re-recording an engagement that is already present is a no-op.

        Raises:
            Conflict: the write kept losing to concurrent writers.
        """
        institution = institution or UNKNOWN_INSTITUTION
        student_id = engagement.student_id

        for _ in range(self.MAX_ATTEMPTS):
            now = self._clock()
            doc = self._store.update_one(
                PORTFOLIOS,
                {"_id": student_id},
                set_on_insert=self._empty_portfolio(engagement.tier, now),
                upsert=True,
            ).document
            portfolio = StudentPortfolioStatus.from_document(doc)

            if any(p.engagement_id == engagement.engagement_id
                   for p in portfolio.verified_projects):
                logger.debug(
                    "Engagement %s already in portfolio of %s",
                    engagement.engagement_id, student_id,
                )
                return portfolio

            project = VerifiedProject(
                engagement_id=engagement.engagement_id,
                title=engagement.title,
                tier=engagement.tier,
                tech_stack=list(engagement.tech_stack),
                average_score=review.average_score,
                lecturer_institution=institution,
                verified_utc=now,
            )
            projects = portfolio.verified_projects + [project]

            known_skills = {s.skill_name for s in portfolio.verified_skills}
            new_skills = [
                VerifiedSkill(
                    skill_name=skill,
                    category=self._resolver.skill_category(skill),
                    tier_demonstrated=engagement.tier,
                    first_verified_utc=now,
                    project_title=engagement.title,
                    engagement_id=engagement.engagement_id,
                )
                for skill in dict.fromkeys(engagement.tech_stack)
                if skill not in known_skills
            ]

            unlocked = unlocked_tiers(
                portfolio.current_tier, projects, self._resolver.student_tier_rules(),
            )
            new_tier = unlocked[-1] if unlocked else portfolio.current_tier
            strength = portfolio_strength(projects, self._resolver.portfolio_strength_rules())

            result = self._store.update_one(
                PORTFOLIOS,
                {"_id": student_id, "revision": portfolio.revision},
                set_fields={
                    "current_tier": new_tier.value,
                    "portfolio_strength": strength.value,
                    "last_recalculated_utc": now,
                },
                inc={"stats.verified_project_count": 1, "revision": 1},
                push={
                    "verified_projects": project.to_document(),
                    "verified_skills": {"$each": [s.to_document() for s in new_skills]},
                    "tier_progression_timeline": {
                        "$each": [{"tier": t.value, "unlocked_utc": now} for t in unlocked],
                    },
                },
                add_to_set={
                    "stats.tech_stacks_used": {"$each": list(engagement.tech_stack)},
                    "stats.reviewer_institutions": institution,
                },
            )
            if result.matched:
                break
            logger.debug(
                "Portfolio write for %s lost at revision %d, retrying",
                student_id, portfolio.revision,
            )
        else:
            raise Conflict(f"Portfolio of {student_id} kept changing; gave up")

        updated = StudentPortfolioStatus.from_document(result.document)
        if unlocked:
            self._store.update_one(
                USERS,
                {"_id": student_id, "role": Role.STUDENT.value},
                set_fields={"current_tier": new_tier.value},
            )
            logger.info(
                "Student %s advanced %s -> %s",
                student_id, portfolio.current_tier.value, new_tier.value,
            )

        logger.info(
            "Portfolio of %s updated: %d verified projects, strength=%s",
            student_id, updated.stats.verified_project_count, strength.value,
        )
        if self._audit_log is not None:
            self._audit_log.record(
                AuditKind.PORTFOLIO_UPDATED,
                actor_id="system",
                payload={
                    "subject_id": student_id,
                    "engagement_id": engagement.engagement_id,
                    "current_tier": new_tier.value,
                    "portfolio_strength": strength.value,
                    "verified_project_count": updated.stats.verified_project_count,
                },
                now=now,
            )
        self._notify_student(student_id, engagement.title)
        return updated

    def _notify_student(self, student_id: str, title: str) -> None:
        if self._dispatcher is None:
            return
        student = self._store.find_one(USERS, {"_id": student_id})
        if student is None:
            return
        self._dispatcher.dispatch(
            student.get("phone_number"),
            project_verified_message(student.get("first_name", ""), title),
        )

    @staticmethod
    def _empty_portfolio(tier: StudentTier, now: datetime) -> dict[str, Any]:
        return {
            "current_tier": tier.value,
            "portfolio_strength": PortfolioStrength.BUILDING.value,
            "verified_projects": [],
            "verified_skills": [],
            "tier_progression_timeline": [{"tier": tier.value, "unlocked_utc": now}],
            "stats": {
                "verified_project_count": 0,
                "total_project_count": 0,
                "tech_stacks_used": [],
                "reviewer_institutions": [],
            },
            "revision": 0,
            "last_recalculated_utc": None,
        }
