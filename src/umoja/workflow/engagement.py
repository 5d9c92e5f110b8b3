"""Engagement workflow — moves a project engagement through review.

Lifecycle:
    IN_PROGRESS → UNDER_PEER_REVIEW → UNDER_LECTURER_REVIEW → VERIFIED | REJECTED

Every transition is a compare-and-swap on (engagement id, expected
status). The status observed on read is checked against the transition
table first (InvalidStateTransition); if the guarded write then matches
nothing, a concurrent request moved the engagement in between
(Conflict). Two concurrent submissions therefore cannot both succeed.

Peer review is best-effort: when the router finds nobody eligible the
review is recorded as WAIVED and the engagement goes on to lecturer
review in the same call.

Input validation always runs before the first write, so a rejected
lecturer review leaves every record untouched. When a later write in
the same call fails, the earlier ones are undone before the error
propagates: the submission returns to IN_PROGRESS, a peer review goes
back to ASSIGNED and an unapplied lecturer review is deleted.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union

from umoja.errors import Conflict, Forbidden, NotFound, ValidationFailed
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
from umoja.models.user import Role
from umoja.notify.dispatcher import NotificationDispatcher, peer_review_assigned_message
from umoja.persistence.audit_log import AuditKind, AuditLog
from umoja.persistence.collections import (
    ENGAGEMENTS,
    LECTURER_REVIEWS,
    LECTURER_STATS,
    PEER_REVIEWS,
    USERS,
)
from umoja.persistence.document_store import DocumentStore
from umoja.policy.resolver import PolicyResolver
from umoja.portfolio.aggregator import PortfolioAggregator
from umoja.review.router import ReviewerRouter
from umoja.workflow.state_machine import check_transition

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def count_words(text: str) -> int:
    return len((text or "").split())


class EngagementWorkflow:
    """Orchestrates submission, peer review, and lecturer review."""

    def __init__(
        self,
        store: DocumentStore,
        resolver: PolicyResolver,
        router: ReviewerRouter,
        aggregator: PortfolioAggregator,
        dispatcher: Optional[NotificationDispatcher] = None,
        audit_log: Optional[AuditLog] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._router = router
        self._aggregator = aggregator
        self._dispatcher = dispatcher
        self._audit_log = audit_log
        self._clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_engagement(self, engagement_id: str) -> ProjectEngagement:
        doc = self._store.find_one(ENGAGEMENTS, {"_id": engagement_id})
        if doc is None:
            raise NotFound(f"Engagement not found: {engagement_id}")
        return ProjectEngagement.from_document(doc)

    def get_peer_review(self, engagement_id: str) -> Optional[PeerReview]:
        """The engagement's single peer review, if one has been created."""
        doc = self._store.find_one(PEER_REVIEWS, {"engagement_id": engagement_id})
        return PeerReview.from_document(doc) if doc else None

    def get_lecturer_review(self, engagement_id: str) -> Optional[LecturerReview]:
        doc = self._store.find_one(LECTURER_REVIEWS, {"engagement_id": engagement_id})
        return LecturerReview.from_document(doc) if doc else None

    def lecturer_stats(self, lecturer_id: str) -> LecturerEffectiveness:
        """Review statistics for a lecturer (all zero before any review)."""
        doc = self._store.find_one(LECTURER_STATS, {"_id": lecturer_id})
        if doc is not None:
            return LecturerEffectiveness.from_document(doc)
        if self._store.find_one(USERS, {"_id": lecturer_id, "role": Role.LECTURER.value}) is None:
            raise NotFound(f"Lecturer not found: {lecturer_id}")
        return LecturerEffectiveness(lecturer_id=lecturer_id)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_engagement(
        self,
        student_id: str,
        track: Union[ProjectTrack, str],
        title: str,
        tech_stack: Optional[list[str]] = None,
    ) -> ProjectEngagement:
        """Start an engagement at the student's current tier.

        Raises:
            ValidationFailed: empty title or unknown track.
            NotFound: no such student.
        """
        title = (title or "").strip()
        if not title:
            raise ValidationFailed("Project title must not be empty", field="title")
        try:
            track = ProjectTrack(track)
        except ValueError:
            raise ValidationFailed(f"Unknown project track: {track}", field="track")

        student = self._store.find_one(USERS, {"_id": student_id, "role": Role.STUDENT.value})
        if student is None:
            raise NotFound(f"Student not found: {student_id}")

        now = self._clock()
        engagement = ProjectEngagement(
            engagement_id=str(uuid.uuid4()),
            student_id=student_id,
            track=track,
            tier=StudentTier(student.get("current_tier") or StudentTier.BEGINNER.value),
            title=title,
            tech_stack=list(dict.fromkeys(t.strip() for t in (tech_stack or []) if t.strip())),
            created_utc=now,
        )
        self._store.insert_one(ENGAGEMENTS, engagement.to_document())
        self._aggregator.open_engagement(student_id, engagement.tier)

        logger.info(
            "Engagement %s created for %s (%s, tier=%s)",
            engagement.engagement_id, student_id, track.value, engagement.tier.value,
        )
        self._audit(AuditKind.ENGAGEMENT_CREATED, student_id, {
            "subject_id": engagement.engagement_id,
            "student_id": student_id,
            "tier": engagement.tier.value,
        })
        return engagement

    # ------------------------------------------------------------------
    # IN_PROGRESS → UNDER_PEER_REVIEW
    # ------------------------------------------------------------------

    def submit(self, engagement_id: str, student_id: str) -> ProjectEngagement:
        """Submit for review and route a peer reviewer (or waive).

        Raises:
            NotFound: no such engagement.
            Forbidden: caller is not the engagement's student.
            InvalidStateTransition: the engagement is not IN_PROGRESS.
            Conflict: a concurrent submission won.
        """
        engagement = self.get_engagement(engagement_id)
        if engagement.student_id != student_id:
            raise Forbidden("Only the engagement's student can submit it", field="student_id")
        check_transition(engagement_id, engagement.status, EngagementStatus.UNDER_PEER_REVIEW)

        now = self._clock()
        reviewer_id = self._router.assign_reviewer(engagement)
        review = PeerReview(
            peer_review_id=str(uuid.uuid4()),
            engagement_id=engagement_id,
            reviewer_id=reviewer_id,
            status=PeerReviewStatus.ASSIGNED if reviewer_id else PeerReviewStatus.WAIVED,
            assigned_utc=now,
        )
        self._store.insert_one(PEER_REVIEWS, review.to_document())

        try:
            engagement = self._advance(
                engagement,
                EngagementStatus.UNDER_PEER_REVIEW,
                {"submitted_utc": now, "peer_review_id": review.peer_review_id},
            )
            if reviewer_id is None:
                engagement = self._advance(engagement, EngagementStatus.UNDER_LECTURER_REVIEW)
        except Exception:
            self._undo_submission(engagement_id, review.peer_review_id)
            raise

        self._audit(AuditKind.ENGAGEMENT_SUBMITTED, student_id, {
            "subject_id": engagement_id,
        })
        if reviewer_id is None:
            logger.warning("Peer review waived for engagement %s", engagement_id)
            self._audit(AuditKind.PEER_REVIEW_WAIVED, "system", {
                "subject_id": engagement_id,
                "peer_review_id": review.peer_review_id,
            })
            return engagement

        self._audit(AuditKind.PEER_REVIEW_ASSIGNED, "system", {
            "subject_id": engagement_id,
            "peer_review_id": review.peer_review_id,
            "reviewer_id": reviewer_id,
        })
        self._notify_reviewer(reviewer_id, engagement.title)
        return engagement

    # ------------------------------------------------------------------
    # UNDER_PEER_REVIEW → UNDER_LECTURER_REVIEW
    # ------------------------------------------------------------------

    def submit_peer_review(
        self,
        engagement_id: str,
        reviewer_id: str,
        scores: dict[str, int],
        comments: dict[str, str],
    ) -> PeerReview:
        """Record the assigned reviewer's scores and advance the engagement.

        Raises:
            NotFound: no such engagement, or no ASSIGNED peer review.
            Forbidden: caller is the submitter or not the assigned reviewer.
            InvalidStateTransition: engagement is not UNDER_PEER_REVIEW.
            ValidationFailed: missing or out-of-range scores, empty comments.
        """
        engagement = self.get_engagement(engagement_id)
        if reviewer_id == engagement.student_id:
            raise Forbidden("A student cannot peer review their own project", field="reviewer_id")

        query: dict[str, Any] = {
            "engagement_id": engagement_id,
            "status": PeerReviewStatus.ASSIGNED.value,
        }
        if engagement.peer_review_id:
            query["_id"] = engagement.peer_review_id
        doc = self._store.find_one(PEER_REVIEWS, query)
        if doc is None:
            raise NotFound(f"No assigned peer review for engagement {engagement_id}")
        review = PeerReview.from_document(doc)
        if review.reviewer_id != reviewer_id:
            raise Forbidden("Caller is not the assigned peer reviewer", field="reviewer_id")

        check_transition(
            engagement_id, engagement.status, EngagementStatus.UNDER_LECTURER_REVIEW,
        )
        scores, comments = self._validate_review(
            scores,
            comments,
            self._resolver.peer_review_dimensions(),
            self._resolver.score_range("peer_review"),
            min_words=1,
        )

        now = self._clock()
        result = self._store.update_one(
            PEER_REVIEWS,
            {"_id": review.peer_review_id, "status": PeerReviewStatus.ASSIGNED.value},
            set_fields={
                "status": PeerReviewStatus.SUBMITTED.value,
                "scores": scores,
                "comments": comments,
                "submitted_utc": now,
            },
        )
        if result.matched == 0:
            raise Conflict(f"Peer review {review.peer_review_id} was submitted concurrently")

        try:
            self._advance(engagement, EngagementStatus.UNDER_LECTURER_REVIEW)
        except Exception:
            self._store.update_one(
                PEER_REVIEWS,
                {"_id": review.peer_review_id, "status": PeerReviewStatus.SUBMITTED.value},
                set_fields={
                    "status": PeerReviewStatus.ASSIGNED.value,
                    "scores": {},
                    "comments": {},
                    "submitted_utc": None,
                },
            )
            raise
        logger.info("Peer review submitted for engagement %s by %s", engagement_id, reviewer_id)
        self._audit(AuditKind.PEER_REVIEW_SUBMITTED, reviewer_id, {
            "subject_id": engagement_id,
            "peer_review_id": review.peer_review_id,
            "scores": scores,
        })
        return PeerReview.from_document(result.document)

    # ------------------------------------------------------------------
    # UNDER_LECTURER_REVIEW → VERIFIED | REJECTED
    # ------------------------------------------------------------------

    def submit_lecturer_review(
        self,
        engagement_id: str,
        lecturer_id: str,
        decision: Union[LecturerDecision, str],
        scores: dict[str, int],
        comments: dict[str, str],
        rejection_reason: Optional[str] = None,
    ) -> LecturerReview:
        """Apply a lecturer's rubric decision.

        Every rubric comment must meet the minimum word count; a single
        short comment rejects the whole submission before anything is
        written.

        Raises:
            ValidationFailed: bad decision, scores, comments, or missing
                rejection reason.
            Forbidden: caller is not a lecturer.
            NotFound: no such engagement.
            InvalidStateTransition: engagement is not UNDER_LECTURER_REVIEW.
            Conflict: a concurrent decision won.
        """
        try:
            decision = LecturerDecision(decision)
        except ValueError:
            raise ValidationFailed(f"Unknown lecturer decision: {decision}", field="decision")
        scores, comments = self._validate_review(
            scores,
            comments,
            self._resolver.rubric_dimensions(),
            self._resolver.score_range("lecturer_review"),
            min_words=self._resolver.min_comment_words(),
        )
        rejection_reason = (rejection_reason or "").strip() or None
        if decision == LecturerDecision.REJECTED and rejection_reason is None:
            raise ValidationFailed(
                "A rejection reason is required when rejecting a project",
                field="rejection_reason",
            )

        lecturer = self._store.find_one(USERS, {"_id": lecturer_id, "role": Role.LECTURER.value})
        if lecturer is None:
            raise Forbidden(f"{lecturer_id} is not a lecturer", field="lecturer_id")

        engagement = self.get_engagement(engagement_id)
        now = self._clock()
        review = LecturerReview(
            review_id=str(uuid.uuid4()),
            engagement_id=engagement_id,
            lecturer_id=lecturer_id,
            decision=decision,
            scores=scores,
            comments=comments,
            rejection_reason=rejection_reason if decision == LecturerDecision.REJECTED else None,
            created_utc=now,
        )

        if decision == LecturerDecision.VERIFIED:
            target = EngagementStatus.VERIFIED
            extra: dict[str, Any] = {"lecturer_review_id": review.review_id, "verified_utc": now}
        else:
            target = EngagementStatus.REJECTED
            extra = {"lecturer_review_id": review.review_id}
        self._store.insert_one(LECTURER_REVIEWS, review.to_document())
        try:
            engagement = self._advance(engagement, target, extra)
        except Exception:
            self._store.delete_one(LECTURER_REVIEWS, {"_id": review.review_id})
            raise

        self._record_lecturer_stats(review, now)

        logger.info(
            "Lecturer %s decided %s on engagement %s (avg=%.2f)",
            lecturer_id, decision.value, engagement_id, review.average_score,
        )
        self._audit(AuditKind.LECTURER_DECISION, lecturer_id, {
            "subject_id": engagement_id,
            "review_id": review.review_id,
            "decision": decision.value,
            "scores": scores,
        })

        if decision == LecturerDecision.VERIFIED:
            self._aggregator.record_verified(engagement, review, lecturer.get("institution"))
        return review

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _advance(
        self,
        engagement: ProjectEngagement,
        target: EngagementStatus,
        extra_fields: Optional[dict[str, Any]] = None,
    ) -> ProjectEngagement:
        check_transition(engagement.engagement_id, engagement.status, target)
        result = self._store.update_one(
            ENGAGEMENTS,
            {"_id": engagement.engagement_id, "status": engagement.status.value},
            set_fields={"status": target.value, **(extra_fields or {})},
        )
        if result.matched == 0:
            logger.warning(
                "Engagement %s: %s -> %s lost a concurrent race",
                engagement.engagement_id, engagement.status.value, target.value,
            )
            raise Conflict(
                f"Engagement {engagement.engagement_id} is no longer "
                f"{engagement.status.value}"
            )
        return ProjectEngagement.from_document(result.document)

    def _undo_submission(self, engagement_id: str, peer_review_id: str) -> None:
        """Drop a half-finished submission so the student can submit again."""
        self._store.delete_one(PEER_REVIEWS, {"_id": peer_review_id})
        self._store.update_one(
            ENGAGEMENTS,
            {
                "_id": engagement_id,
                "peer_review_id": peer_review_id,
                "status": {"$in": [
                    EngagementStatus.UNDER_PEER_REVIEW.value,
                    EngagementStatus.UNDER_LECTURER_REVIEW.value,
                ]},
            },
            set_fields={
                "status": EngagementStatus.IN_PROGRESS.value,
                "submitted_utc": None,
                "peer_review_id": None,
            },
        )
        logger.error("Submission of engagement %s rolled back", engagement_id)

    @staticmethod
    def _validate_review(
        scores: dict[str, int],
        comments: dict[str, str],
        dimensions: list[str],
        score_range: tuple[int, int],
        min_words: int,
    ) -> tuple[dict[str, int], dict[str, str]]:
        """Check every dimension and return the cleaned scores and comments."""
        scores = scores or {}
        comments = comments or {}
        low, high = score_range

        unknown = sorted(set(scores) - set(dimensions))
        if unknown:
            raise ValidationFailed(f"Unknown review dimensions: {unknown}", field=unknown[0])

        clean_scores: dict[str, int] = {}
        clean_comments: dict[str, str] = {}
        for dim in dimensions:
            score = scores.get(dim)
            if isinstance(score, bool) or not isinstance(score, int) or not low <= score <= high:
                raise ValidationFailed(
                    f"Score for '{dim}' must be an integer from {low} to {high}", field=dim,
                )
            comment = (comments.get(dim) or "").strip()
            words = count_words(comment)
            if words < max(min_words, 1):
                raise ValidationFailed(
                    f"Comment for '{dim}' must be at least {max(min_words, 1)} words "
                    f"(got {words})",
                    field=dim,
                )
            clean_scores[dim] = score
            clean_comments[dim] = comment
        return clean_scores, clean_comments

    def _record_lecturer_stats(self, review: LecturerReview, now: datetime) -> None:
        inc: dict[str, float] = {
            "total_reviews": 1,
            "comment_word_sum": sum(count_words(c) for c in review.comments.values()),
            "comment_count": len(review.comments),
        }
        if review.decision == LecturerDecision.VERIFIED:
            inc["verified_count"] = 1
        else:
            inc["rejected_count"] = 1
        for dim, score in review.scores.items():
            inc[f"score_sums.{dim}"] = score
        inc["score_sums.overall"] = review.average_score

        self._store.update_one(
            LECTURER_STATS,
            {"_id": review.lecturer_id},
            set_fields={"last_review_utc": now},
            inc=inc,
            upsert=True,
        )

    def _audit(self, kind: AuditKind, actor_id: str, payload: dict[str, Any]) -> None:
        if self._audit_log is not None:
            self._audit_log.record(kind, actor_id, payload, now=self._clock())

    def _notify_reviewer(self, reviewer_id: str, title: str) -> None:
        if self._dispatcher is None:
            return
        reviewer = self._store.find_one(USERS, {"_id": reviewer_id})
        if reviewer is None:
            return
        self._dispatcher.dispatch(
            reviewer.get("phone_number"),
            peer_review_assigned_message(reviewer.get("first_name", ""), title),
        )
