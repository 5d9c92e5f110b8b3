"""Tests for reviewer router — proves tier eligibility and self-review exclusion."""

import random

import pytest
from pathlib import Path

from umoja.models.engagement import ProjectEngagement, ProjectTrack, StudentTier
from umoja.models.user import Role, UserRecord
from umoja.persistence.collections import USERS
from umoja.persistence.document_store import DocumentStore
from umoja.policy.resolver import PolicyResolver
from umoja.review.router import ReviewerRouter, eligible_reviewer_tiers


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


@pytest.fixture
def resolver() -> PolicyResolver:
    return PolicyResolver.from_config_dir(CONFIG_DIR)


@pytest.fixture
def store() -> DocumentStore:
    return DocumentStore()


@pytest.fixture
def router(store: DocumentStore, resolver: PolicyResolver) -> ReviewerRouter:
    return ReviewerRouter(store, resolver, random.Random(1234))


def _student(store: DocumentStore, user_id: str, tier: StudentTier,
             stack: list[str] | None = None) -> None:
    store.insert_one(USERS, UserRecord(
        user_id=user_id, role=Role.STUDENT, first_name=user_id,
        phone_number=f"+2547{len(user_id):08d}", current_tier=tier,
        tech_stack_preferences=stack or [],
    ).to_document())


def _engagement(student_id: str, tier: StudentTier,
                stack: list[str] | None = None) -> ProjectEngagement:
    return ProjectEngagement(
        engagement_id="eng_1", student_id=student_id, track=ProjectTrack.OPEN_SOURCE,
        tier=tier, title="Market price tracker", tech_stack=stack or [],
    )


@pytest.fixture
def mixed_pool(store: DocumentStore) -> None:
    _student(store, "submitter", StudentTier.BEGINNER)
    _student(store, "beg", StudentTier.BEGINNER)
    _student(store, "mid", StudentTier.INTERMEDIATE)
    _student(store, "adv", StudentTier.ADVANCED)


class TestEligibility:
    def test_tier_table(self) -> None:
        assert eligible_reviewer_tiers(StudentTier.BEGINNER) == [
            StudentTier.BEGINNER, StudentTier.INTERMEDIATE, StudentTier.ADVANCED,
        ]
        assert eligible_reviewer_tiers(StudentTier.INTERMEDIATE) == [
            StudentTier.INTERMEDIATE, StudentTier.ADVANCED,
        ]
        assert eligible_reviewer_tiers(StudentTier.ADVANCED) == [StudentTier.ADVANCED]

    def test_beginner_submission_any_tier(self, router: ReviewerRouter, mixed_pool) -> None:
        pool = router.candidate_pool(_engagement("submitter", StudentTier.BEGINNER))
        assert {d["_id"] for d in pool} == {"beg", "mid", "adv"}

    def test_intermediate_submission(self, router: ReviewerRouter, mixed_pool) -> None:
        pool = router.candidate_pool(_engagement("submitter", StudentTier.INTERMEDIATE))
        assert {d["_id"] for d in pool} == {"mid", "adv"}

    def test_advanced_submission_only_advanced(self, router: ReviewerRouter, mixed_pool) -> None:
        pool = router.candidate_pool(_engagement("submitter", StudentTier.ADVANCED))
        assert {d["_id"] for d in pool} == {"adv"}

    def test_snapshot_tier_governs(self, router: ReviewerRouter, store: DocumentStore) -> None:
        """The engagement's tier is used, not the submitter's current tier."""
        _student(store, "submitter", StudentTier.ADVANCED)
        _student(store, "beg", StudentTier.BEGINNER)
        pool = router.candidate_pool(_engagement("submitter", StudentTier.BEGINNER))
        assert [d["_id"] for d in pool] == ["beg"]

    def test_self_review_excluded(self, router: ReviewerRouter, store: DocumentStore) -> None:
        _student(store, "submitter", StudentTier.ADVANCED)
        assert router.assign_reviewer(_engagement("submitter", StudentTier.BEGINNER)) is None

    def test_non_students_excluded(self, router: ReviewerRouter, store: DocumentStore) -> None:
        store.insert_one(USERS, UserRecord(
            user_id="lecturer_1", role=Role.LECTURER, institution="UoN",
        ).to_document())
        assert router.assign_reviewer(_engagement("submitter", StudentTier.BEGINNER)) is None


class TestTechStackFilter:
    def test_shared_tag_required(self, router: ReviewerRouter, store: DocumentStore) -> None:
        _student(store, "react_dev", StudentTier.BEGINNER, ["React", "CSS"])
        _student(store, "django_dev", StudentTier.BEGINNER, ["Django"])
        _student(store, "no_prefs", StudentTier.BEGINNER)
        pool = router.candidate_pool(
            _engagement("submitter", StudentTier.BEGINNER, ["React", "Node.js"]),
        )
        assert [d["_id"] for d in pool] == ["react_dev"]

    def test_no_stack_skips_filter(self, router: ReviewerRouter, store: DocumentStore) -> None:
        _student(store, "react_dev", StudentTier.BEGINNER, ["React"])
        _student(store, "no_prefs", StudentTier.BEGINNER)
        pool = router.candidate_pool(_engagement("submitter", StudentTier.BEGINNER))
        assert {d["_id"] for d in pool} == {"react_dev", "no_prefs"}


class TestSelection:
    def test_empty_pool_returns_none(self, router: ReviewerRouter) -> None:
        assert router.assign_reviewer(_engagement("submitter", StudentTier.BEGINNER)) is None

    def test_pool_capped_to_sample_size(
        self, router: ReviewerRouter, store: DocumentStore, resolver: PolicyResolver,
    ) -> None:
        for i in range(25):
            _student(store, f"s{i:02d}", StudentTier.INTERMEDIATE)
        pool = router.candidate_pool(_engagement("submitter", StudentTier.BEGINNER))
        assert len(pool) == resolver.reviewer_sample_size()

    def test_sample_drawn_from_whole_directory(
        self, router: ReviewerRouter, store: DocumentStore,
    ) -> None:
        for i in range(20):
            _student(store, f"r{i:02d}", StudentTier.BEGINNER)
        eng = _engagement("submitter", StudentTier.BEGINNER)
        picks = {router.assign_reviewer(eng) for _ in range(500)}
        assert picks == {f"r{i:02d}" for i in range(20)}

    def test_choice_comes_from_pool(self, router: ReviewerRouter, mixed_pool) -> None:
        chosen = router.assign_reviewer(_engagement("submitter", StudentTier.BEGINNER))
        assert chosen in {"beg", "mid", "adv"}

    def test_seeded_rng_is_deterministic(
        self, store: DocumentStore, resolver: PolicyResolver, mixed_pool,
    ) -> None:
        eng = _engagement("submitter", StudentTier.BEGINNER)
        a = [ReviewerRouter(store, resolver, random.Random(99)).assign_reviewer(eng)
             for _ in range(5)]
        b = [ReviewerRouter(store, resolver, random.Random(99)).assign_reviewer(eng)
             for _ in range(5)]
        assert a == b

    def test_every_candidate_can_be_chosen(self, router: ReviewerRouter, mixed_pool) -> None:
        eng = _engagement("submitter", StudentTier.BEGINNER)
        picks = {router.assign_reviewer(eng) for _ in range(200)}
        assert picks == {"beg", "mid", "adv"}
