"""Trust ledger — keeps each farmer's TrustScore current as events arrive.

Order completions, ratings, confirmations, and disputes only ever
increment raw counters on the TrustScore document, using the store's
atomic increment. Every increment also bumps ``revision``. The score is
then recomputed from the post-increment snapshot and written back with
a guard on that revision: if a newer event landed in between, the
stale write matches nothing and the newer event's write stands. No
counter update is lost and no stale composite overwrites a fresher one.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from umoja.errors import NotFound, ValidationFailed
from umoja.models.trust import TrustScore
from umoja.persistence.audit_log import AuditKind, AuditLog
from umoja.persistence.collections import TRUST_SCORES
from umoja.persistence.document_store import DocumentStore
from umoja.policy.resolver import PolicyResolver
from umoja.trust.calculator import TrustCalculator

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TrustLedger:
    """Event-driven maintenance of farmer TrustScore documents."""

    def __init__(
        self,
        store: DocumentStore,
        resolver: PolicyResolver,
        audit_log: Optional[AuditLog] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._calculator = TrustCalculator(resolver)
        self._audit_log = audit_log
        self._clock = clock

    @property
    def calculator(self) -> TrustCalculator:
        return self._calculator

    def initialize(self, farmer_id: str) -> TrustScore:
        """Create (or reset) the TrustScore seeded by verification approval.

        verification_score starts at its initial value, every other
        contribution and counter at zero.
        """
        verification = self._calculator.verification_score(True)
        composite, tier = self._calculator.compute_composite(verification, 0.0, 0.0, 0.0)
        result = self._store.update_one(
            TRUST_SCORES,
            {"_id": farmer_id},
            set_fields={
                "verification_score": verification,
                "transaction_contribution": 0.0,
                "rating_contribution": 0.0,
                "reliability_contribution": 0.0,
                "composite_score": composite,
                "completed_orders": 0,
                "total_volume": 0.0,
                "rating_sum": 0.0,
                "rating_count": 0,
                "paid_orders": 0,
                "on_time_confirmations": 0,
                "dispute_count": 0,
                "disputes_ruled_against": 0,
                "last_calculated_utc": self._clock(),
            },
            inc={"revision": 1},
            upsert=True,
        )
        return TrustScore.from_document(result.document, tier)

    def get_score(self, farmer_id: str) -> TrustScore:
        doc = self._store.find_one(TRUST_SCORES, {"_id": farmer_id})
        if doc is None:
            raise NotFound(f"No trust score for farmer {farmer_id}")
        return TrustScore.from_document(doc, self._calculator.tier_for(doc["composite_score"]))

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def record_order_completed(self, farmer_id: str, amount: float) -> TrustScore:
        if amount < 0:
            raise ValidationFailed("Order amount must be non-negative", field="amount")
        return self._apply_event(
            farmer_id, {"completed_orders": 1, "total_volume": float(amount)}, "order_completed",
        )

    def record_rating(self, farmer_id: str, stars: int) -> TrustScore:
        if isinstance(stars, bool) or not isinstance(stars, int) or not 1 <= stars <= 5:
            raise ValidationFailed("Rating must be an integer from 1 to 5", field="stars")
        return self._apply_event(
            farmer_id, {"rating_sum": float(stars), "rating_count": 1}, "rating",
        )

    def record_confirmation(self, farmer_id: str, on_time: bool) -> TrustScore:
        inc: dict[str, Any] = {"paid_orders": 1}
        if on_time:
            inc["on_time_confirmations"] = 1
        return self._apply_event(farmer_id, inc, "confirmation")

    def record_dispute(self, farmer_id: str, ruled_against: bool) -> TrustScore:
        inc: dict[str, Any] = {"dispute_count": 1}
        if ruled_against:
            inc["disputes_ruled_against"] = 1
        return self._apply_event(farmer_id, inc, "dispute")

    def recalculate(self, farmer_id: str) -> TrustScore:
        """Recompute from the stored counters without recording an event."""
        return self._apply_event(farmer_id, {}, "recalculate")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply_event(self, farmer_id: str, inc: dict[str, Any], reason: str) -> TrustScore:
        result = self._store.update_one(
            TRUST_SCORES, {"_id": farmer_id}, inc={**inc, "revision": 1},
        )
        if result.matched == 0:
            raise NotFound(f"No trust score for farmer {farmer_id} (not verified?)")
        return self._recompute(result.document, reason)

    def _recompute(self, doc: dict[str, Any], reason: str) -> TrustScore:
        snapshot = TrustScore.from_document(doc, self._calculator.tier_for(doc["composite_score"]))
        breakdown = self._calculator.compute(snapshot.inputs())

        write = self._store.update_one(
            TRUST_SCORES,
            {"_id": snapshot.farmer_id, "revision": snapshot.revision},
            set_fields={
                "verification_score": breakdown.verification_score,
                "transaction_contribution": breakdown.transaction_contribution,
                "rating_contribution": breakdown.rating_contribution,
                "reliability_contribution": breakdown.reliability_contribution,
                "composite_score": breakdown.composite_score,
                "last_calculated_utc": self._clock(),
            },
        )
        if write.matched == 0:
            # A newer event owns the recomputation.
            logger.debug(
                "Trust recompute for %s at revision %d superseded",
                snapshot.farmer_id, snapshot.revision,
            )
            return self.get_score(snapshot.farmer_id)

        logger.info(
            "Trust score recalculated for %s (%s): composite=%.2f tier=%s",
            snapshot.farmer_id, reason, breakdown.composite_score, breakdown.tier.value,
        )
        if self._audit_log is not None:
            self._audit_log.record(
                AuditKind.TRUST_RECALCULATED,
                actor_id="system",
                payload={
                    "subject_id": snapshot.farmer_id,
                    "reason": reason,
                    "composite_score": breakdown.composite_score,
                    "tier": breakdown.tier.value,
                    "revision": snapshot.revision,
                },
                now=self._clock(),
            )
        return TrustScore.from_document(write.document, breakdown.tier)
