"""Reviewer router — picks one peer reviewer for a submitted engagement.

Eligibility is tier-asymmetric: a reviewer's tier must meet or exceed
the tier the submission was created at.
- BEGINNER submission: any tier may review.
- INTERMEDIATE submission: INTERMEDIATE or ADVANCED.
- ADVANCED submission: ADVANCED only.

Self-review is unconditionally blocked. When the engagement declares a
tech stack, candidates must share at least one tag with it.

The candidate pool is capped at a bounded sample and one candidate is
drawn uniformly at random from an injected source, so no reviewer is
favoured by recency or directory order. A single evaluation is made per
submission; None means the caller must waive peer review.
"""

from __future__ import annotations

import logging
import random
from typing import Any, Optional

from umoja.models.engagement import ProjectEngagement, StudentTier
from umoja.models.user import Role
from umoja.persistence.collections import USERS
from umoja.persistence.document_store import DocumentStore
from umoja.policy.resolver import PolicyResolver

logger = logging.getLogger(__name__)


def eligible_reviewer_tiers(submission_tier: StudentTier) -> list[StudentTier]:
    """Tiers allowed to review a submission made at ``submission_tier``."""
    return [t for t in StudentTier if t.rank >= submission_tier.rank]


class ReviewerRouter:
    """Selects a reviewer from the student directory."""

    def __init__(
        self,
        store: DocumentStore,
        resolver: PolicyResolver,
        rng: random.Random,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._rng = rng

    def candidate_pool(self, engagement: ProjectEngagement) -> list[dict[str, Any]]:
        """Eligible candidates, randomly sampled down to the configured size.

        The sample is drawn from every eligible user, so directory order
        never decides who can be picked.
        """
        query: dict[str, Any] = {
            "role": Role.STUDENT.value,
            "_id": {"$ne": engagement.student_id},
            "current_tier": {
                "$in": [t.value for t in eligible_reviewer_tiers(engagement.tier)],
            },
        }
        if engagement.tech_stack:
            query["tech_stack_preferences"] = {"$in": list(engagement.tech_stack)}

        eligible = self._store.find(USERS, query)
        sample_size = self._resolver.reviewer_sample_size()
        if len(eligible) <= sample_size:
            return eligible
        return self._rng.sample(eligible, sample_size)

    def assign_reviewer(self, engagement: ProjectEngagement) -> Optional[str]:
        """Return the chosen reviewer's id, or None when nobody is eligible."""
        pool = self.candidate_pool(engagement)
        if not pool:
            logger.info(
                "No eligible peer reviewer for engagement %s (tier=%s)",
                engagement.engagement_id, engagement.tier.value,
            )
            return None

        chosen = self._rng.choice(pool)
        logger.info(
            "Assigned reviewer %s to engagement %s from a pool of %d",
            chosen["_id"], engagement.engagement_id, len(pool),
        )
        return chosen["_id"]
