"""UmojaHub service — unified facade for the reputation and workflow engine.

This is the primary interface for programmatic access. It wires every
component over one document store and one audit log:
- Farmer verification (approve, reject, re-submit)
- Trust ledger (order, rating, confirmation and dispute events)
- Engagement workflow (create, submit, peer review, lecturer review)
- Portfolio aggregation (driven by the workflow)

Registration helpers stand in for the identity collaborator: they
create the user records the core reads. Workflow operations raise the
UmojaError taxonomy; the registration helpers return ServiceResult.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from umoja import __version__
from umoja.models.engagement import EngagementStatus, StudentTier
from umoja.models.trust import VerificationStatus
from umoja.models.user import Role, UserRecord
from umoja.notify.dispatcher import LoggingNotifier, NotificationDispatcher, Notifier
from umoja.persistence.audit_log import AuditLog
from umoja.persistence.collections import ENGAGEMENTS, USERS
from umoja.persistence.document_store import DocumentStore
from umoja.policy.resolver import PolicyResolver
from umoja.portfolio.aggregator import PortfolioAggregator
from umoja.review.router import ReviewerRouter
from umoja.trust.ledger import TrustLedger
from umoja.verification.gate import VerificationGate, resubmit_verification
from umoja.workflow.engagement import EngagementWorkflow

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


class UmojaService:
    """Reputation and workflow engine facade.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        service = UmojaService(resolver)

        service.register_farmer("f-1", "Wanjiku", "+254700000001")
        score = service.gate.approve("f-1", admin_id="admin-1")

        service.register_student("s-1", "Otieno", "+254700000002")
        engagement = service.workflow.create_engagement("s-1", "AI_BRIEF", "Crop tracker")
        service.workflow.submit(engagement.engagement_id, "s-1")

    Notifications go to a background worker so a slow SMS gateway never
    holds up a decision. Call drain() to wait for queued messages, and
    close() when done. Pass background_notifications=False to deliver
    inline.
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        store: Optional[DocumentStore] = None,
        audit_log: Optional[AuditLog] = None,
        notifier: Optional[Notifier] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = _utc_now,
        background_notifications: bool = True,
    ) -> None:
        self._resolver = resolver
        self._store = store if store is not None else DocumentStore()
        self._audit_log = audit_log if audit_log is not None else AuditLog()
        self._dispatcher = NotificationDispatcher(
            notifier if notifier is not None else LoggingNotifier(),
            background=background_notifications,
        )
        self._clock = clock

        self._ledger = TrustLedger(self._store, resolver, self._audit_log, clock)
        self._gate = VerificationGate(
            self._store, self._ledger, self._dispatcher, self._audit_log, clock,
        )
        self._router = ReviewerRouter(
            self._store, resolver, rng if rng is not None else random.Random(),
        )
        self._aggregator = PortfolioAggregator(
            self._store, resolver, self._dispatcher, self._audit_log, clock,
        )
        self._workflow = EngagementWorkflow(
            self._store, resolver, self._router, self._aggregator,
            self._dispatcher, self._audit_log, clock,
        )

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def audit_log(self) -> AuditLog:
        return self._audit_log

    @property
    def ledger(self) -> TrustLedger:
        return self._ledger

    @property
    def gate(self) -> VerificationGate:
        return self._gate

    @property
    def router(self) -> ReviewerRouter:
        return self._router

    @property
    def aggregator(self) -> PortfolioAggregator:
        return self._aggregator

    @property
    def workflow(self) -> EngagementWorkflow:
        return self._workflow

    def resubmit_verification(self, farmer_id: str) -> VerificationStatus:
        return resubmit_verification(self._store, farmer_id, self._audit_log)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_farmer(
        self, user_id: str, first_name: str, phone_number: str,
    ) -> ServiceResult:
        """Register a farmer whose verification submission is PENDING."""
        return self._register(UserRecord(
            user_id=user_id,
            role=Role.FARMER,
            first_name=first_name,
            phone_number=phone_number,
            verification_status=VerificationStatus.PENDING,
        ))

    def register_student(
        self,
        user_id: str,
        first_name: str,
        phone_number: str,
        tech_stack_preferences: Optional[list[str]] = None,
        tier: StudentTier = StudentTier.BEGINNER,
    ) -> ServiceResult:
        return self._register(UserRecord(
            user_id=user_id,
            role=Role.STUDENT,
            first_name=first_name,
            phone_number=phone_number,
            current_tier=tier,
            tech_stack_preferences=list(tech_stack_preferences or []),
        ))

    def register_lecturer(
        self, user_id: str, first_name: str, phone_number: str, institution: str,
    ) -> ServiceResult:
        return self._register(UserRecord(
            user_id=user_id,
            role=Role.LECTURER,
            first_name=first_name,
            phone_number=phone_number,
            institution=institution,
        ))

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        doc = self._store.find_one(USERS, {"_id": user_id})
        return UserRecord.from_document(doc) if doc else None

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> dict[str, Any]:
        """Return system-wide status summary."""
        return {
            "version": __version__,
            "users": {
                role.value.lower(): self._store.count(USERS, {"role": role.value})
                for role in Role
            },
            "farmers": {
                status.value.lower(): self._store.count(USERS, {
                    "role": Role.FARMER.value, "verification_status": status.value,
                })
                for status in VerificationStatus
            },
            "engagements": {
                "total": self._store.count(ENGAGEMENTS),
                "by_status": {
                    s.value: self._store.count(ENGAGEMENTS, {"status": s.value})
                    for s in EngagementStatus
                },
            },
            "collections": {
                name: self._store.count(name) for name in self._store.collections()
            },
            "audit_records": self._audit_log.count,
        }

    def drain(self) -> None:
        """Block until queued notifications have been attempted."""
        self._dispatcher.drain()

    def close(self) -> None:
        """Flush pending notifications and stop the delivery worker."""
        self._dispatcher.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _register(self, user: UserRecord) -> ServiceResult:
        user.user_id = (user.user_id or "").strip()
        if not user.user_id:
            return ServiceResult(success=False, errors=["User id must not be empty"])
        if self._store.find_one(USERS, {"_id": user.user_id}) is not None:
            return ServiceResult(success=False, errors=[f"User already exists: {user.user_id}"])
        self._store.insert_one(USERS, user.to_document())
        logger.info("Registered %s %s", user.role.value.lower(), user.user_id)
        return ServiceResult(success=True, data={"user_id": user.user_id, "role": user.role.value})
