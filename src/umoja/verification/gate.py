"""Verification gate — the farmer identity-verification state machine.

Transitions:
    PENDING → APPROVED   (seeds the farmer's TrustScore)
    PENDING → REJECTED   (requires a reason; no TrustScore)
    REJECTED → PENDING   (re-submission, outside the gate)

APPROVED and REJECTED are terminal for a submission. Every transition
is written as a compare-and-swap on the PENDING status, so two admins
deciding the same submission at once cannot both succeed. Notifications
are scheduled after the write and never affect its outcome. If seeding
the TrustScore fails, the approval is put back to PENDING so the
decision can be retried.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from umoja.errors import Conflict, InvalidStateTransition, NotFound, ValidationFailed
from umoja.models.trust import TrustScore, VerificationStatus
from umoja.models.user import Role
from umoja.notify.dispatcher import (
    NotificationDispatcher,
    farmer_approved_message,
    farmer_rejected_message,
)
from umoja.persistence.audit_log import AuditKind, AuditLog
from umoja.persistence.collections import USERS
from umoja.persistence.document_store import DocumentStore
from umoja.trust.ledger import TrustLedger

logger = logging.getLogger(__name__)


# Legal transitions: (from_state, to_state)
_TRANSITIONS: set[tuple[VerificationStatus, VerificationStatus]] = {
    (VerificationStatus.PENDING, VerificationStatus.APPROVED),
    (VerificationStatus.PENDING, VerificationStatus.REJECTED),
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class VerificationGate:
    """Approves or rejects pending farmer verification submissions."""

    def __init__(
        self,
        store: DocumentStore,
        ledger: TrustLedger,
        dispatcher: Optional[NotificationDispatcher] = None,
        audit_log: Optional[AuditLog] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._dispatcher = dispatcher
        self._audit_log = audit_log
        self._clock = clock

    def approve(self, farmer_id: str, admin_id: str) -> TrustScore:
        """PENDING → APPROVED, then seed the TrustScore.

        Raises:
            NotFound: no such user, or the user is not a farmer.
            InvalidStateTransition: the submission is not PENDING.
        """
        farmer = self._transition(farmer_id, VerificationStatus.APPROVED, {
            "rejection_reason": None,
        })
        try:
            score = self._ledger.initialize(farmer_id)
        except Exception:
            self._reopen(farmer_id, VerificationStatus.APPROVED)
            raise

        logger.info(
            "Farmer %s verification approved by %s (composite=%.2f tier=%s)",
            farmer_id, admin_id, score.composite_score, score.tier.value,
        )
        self._audit(AuditKind.FARMER_APPROVED, admin_id, {
            "subject_id": farmer_id,
            "composite_score": score.composite_score,
            "tier": score.tier.value,
        })
        self._notify(farmer, farmer_approved_message(farmer.get("first_name", "")))
        return score

    def reject(self, farmer_id: str, admin_id: str, reason: str) -> VerificationStatus:
        """PENDING → REJECTED. No TrustScore is created.

        Raises:
            ValidationFailed: reason is empty.
            NotFound: no such user, or the user is not a farmer.
            InvalidStateTransition: the submission is not PENDING.
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationFailed(
                "A rejection reason is required when rejecting a verification.",
                field="reason",
            )

        farmer = self._transition(farmer_id, VerificationStatus.REJECTED, {
            "rejection_reason": reason,
        })

        logger.info("Farmer %s verification rejected by %s: %s", farmer_id, admin_id, reason)
        self._audit(AuditKind.FARMER_REJECTED, admin_id, {
            "subject_id": farmer_id,
            "reason": reason,
        })
        self._notify(farmer, farmer_rejected_message(reason))
        return VerificationStatus.REJECTED

    def _transition(
        self,
        farmer_id: str,
        target: VerificationStatus,
        extra_fields: dict[str, Any],
    ) -> dict[str, Any]:
        farmer = self._store.find_one(USERS, {"_id": farmer_id, "role": Role.FARMER.value})
        if farmer is None:
            raise NotFound(f"Farmer not found: {farmer_id}")

        current = farmer.get("verification_status")
        try:
            status = VerificationStatus(current) if current is not None else None
        except ValueError:
            status = None
        if status is None or (status, target) not in _TRANSITIONS:
            raise InvalidStateTransition(
                f"Farmer {farmer_id} does not have a pending verification "
                f"(status: {current})"
            )

        result = self._store.update_one(
            USERS,
            {
                "_id": farmer_id,
                "role": Role.FARMER.value,
                "verification_status": VerificationStatus.PENDING.value,
            },
            set_fields={
                "verification_status": target.value,
                "verification_decided_utc": self._clock(),
                **extra_fields,
            },
        )
        if result.matched == 0:
            logger.warning("Verification decision for %s lost a concurrent race", farmer_id)
            raise Conflict(f"Verification for {farmer_id} was decided concurrently")
        return result.document

    def _reopen(self, farmer_id: str, decided: VerificationStatus) -> None:
        """Put a decision back to PENDING when its follow-up write failed."""
        self._store.update_one(
            USERS,
            {"_id": farmer_id, "verification_status": decided.value},
            set_fields={
                "verification_status": VerificationStatus.PENDING.value,
                "verification_decided_utc": None,
            },
        )
        logger.error("Farmer %s decision %s rolled back to PENDING", farmer_id, decided.value)

    def _audit(self, kind: AuditKind, actor_id: str, payload: dict[str, Any]) -> None:
        if self._audit_log is not None:
            self._audit_log.record(kind, actor_id, payload, now=self._clock())

    def _notify(self, farmer: dict[str, Any], message: str) -> None:
        if self._dispatcher is not None:
            self._dispatcher.dispatch(farmer.get("phone_number"), message)


def resubmit_verification(
    store: DocumentStore,
    farmer_id: str,
    audit_log: Optional[AuditLog] = None,
) -> VerificationStatus:
    """REJECTED → PENDING after the farmer re-submits documents.

    Raises:
        NotFound: no such farmer.
        InvalidStateTransition: the previous submission was not rejected.
    """
    result = store.update_one(
        USERS,
        {
            "_id": farmer_id,
            "role": Role.FARMER.value,
            "verification_status": VerificationStatus.REJECTED.value,
        },
        set_fields={
            "verification_status": VerificationStatus.PENDING.value,
            "rejection_reason": None,
        },
    )
    if result.matched == 0:
        farmer = store.find_one(USERS, {"_id": farmer_id, "role": Role.FARMER.value})
        if farmer is None:
            raise NotFound(f"Farmer not found: {farmer_id}")
        raise InvalidStateTransition(
            f"Only a rejected verification can be re-submitted "
            f"(status: {farmer.get('verification_status')})"
        )
    if audit_log is not None:
        audit_log.record(AuditKind.VERIFICATION_RESUBMITTED, farmer_id, {"subject_id": farmer_id})
    logger.info("Farmer %s re-submitted verification", farmer_id)
    return VerificationStatus.PENDING
