"""Tests for the verification gate — proves single-transition, fail-closed decisions."""

import threading
from datetime import datetime, timezone

import pytest
from pathlib import Path

from umoja.errors import (
    Conflict,
    InvalidStateTransition,
    NotFound,
    StorageError,
    ValidationFailed,
)
from umoja.models.trust import FarmerTrustTier, VerificationStatus
from umoja.models.user import Role, UserRecord
from umoja.notify.dispatcher import NotificationDispatcher, RecordingNotifier
from umoja.persistence.audit_log import AuditKind, AuditLog
from umoja.persistence.collections import TRUST_SCORES, USERS
from umoja.persistence.document_store import DocumentStore
from umoja.policy.resolver import PolicyResolver
from umoja.trust.ledger import TrustLedger
from umoja.verification.gate import VerificationGate, resubmit_verification


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"
NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class _FailingNotifier:
    def send(self, recipient: str, message: str) -> None:
        raise ConnectionError("SMS gateway down")


class _TrustWriteFails(DocumentStore):
    """Fails the next write to the trust score collection."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_next = False

    def update_one(self, collection, filter, **kwargs):
        if collection == TRUST_SCORES and self.fail_next:
            self.fail_next = False
            raise StorageError("disk full")
        return super().update_one(collection, filter, **kwargs)


@pytest.fixture
def resolver() -> PolicyResolver:
    return PolicyResolver.from_config_dir(CONFIG_DIR)


@pytest.fixture
def store() -> DocumentStore:
    s = DocumentStore()
    s.insert_one(USERS, UserRecord(
        user_id="farmer_1", role=Role.FARMER, first_name="Wanjiku",
        phone_number="+254700000001", verification_status=VerificationStatus.PENDING,
    ).to_document())
    s.insert_one(USERS, UserRecord(
        user_id="buyer_1", role=Role.BUYER, first_name="Achieng",
        phone_number="+254700000002",
    ).to_document())
    return s


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def audit() -> AuditLog:
    return AuditLog()


@pytest.fixture
def gate(
    store: DocumentStore,
    resolver: PolicyResolver,
    notifier: RecordingNotifier,
    audit: AuditLog,
) -> VerificationGate:
    ledger = TrustLedger(store, resolver, clock=lambda: NOW)
    dispatcher = NotificationDispatcher(notifier, background=False)
    return VerificationGate(store, ledger, dispatcher, audit, clock=lambda: NOW)


class TestApprove:
    def test_seeds_trust_score(self, gate: VerificationGate, store: DocumentStore) -> None:
        score = gate.approve("farmer_1", "admin_1")
        assert score.verification_score == 40.0
        assert score.composite_score == 40.0
        assert score.tier == FarmerTrustTier.ESTABLISHED
        farmer = store.find_one(USERS, {"_id": "farmer_1"})
        assert farmer["verification_status"] == VerificationStatus.APPROVED.value

    def test_double_approval_fails(self, gate: VerificationGate) -> None:
        gate.approve("farmer_1", "admin_1")
        with pytest.raises(InvalidStateTransition) as exc:
            gate.approve("farmer_1", "admin_2")
        assert not isinstance(exc.value, Conflict)

    def test_unknown_farmer(self, gate: VerificationGate) -> None:
        with pytest.raises(NotFound):
            gate.approve("ghost", "admin_1")

    def test_non_farmer_record(self, gate: VerificationGate) -> None:
        with pytest.raises(NotFound):
            gate.approve("buyer_1", "admin_1")

    def test_notifies_and_audits(
        self, gate: VerificationGate, notifier: RecordingNotifier, audit: AuditLog,
    ) -> None:
        gate.approve("farmer_1", "admin_1")
        assert len(notifier.sent) == 1
        assert notifier.sent[0].recipient == "+254700000001"
        assert "Wanjiku" in notifier.sent[0].message
        records = audit.records(AuditKind.FARMER_APPROVED, subject_id="farmer_1")
        assert len(records) == 1
        assert records[0].actor_id == "admin_1"

    def test_notification_failure_does_not_block(
        self, store: DocumentStore, resolver: PolicyResolver,
    ) -> None:
        ledger = TrustLedger(store, resolver)
        gate = VerificationGate(
            store, ledger, NotificationDispatcher(_FailingNotifier(), background=False),
        )
        score = gate.approve("farmer_1", "admin_1")
        assert score.tier == FarmerTrustTier.ESTABLISHED

    def test_concurrent_approvals_single_winner(
        self, gate: VerificationGate, store: DocumentStore,
    ) -> None:
        n = 8
        barrier = threading.Barrier(n)
        wins: list[str] = []
        losses: list[BaseException] = []
        lock = threading.Lock()

        def worker(i: int) -> None:
            barrier.wait()
            try:
                gate.approve("farmer_1", f"admin_{i}")
                with lock:
                    wins.append(f"admin_{i}")
            except InvalidStateTransition as e:
                with lock:
                    losses.append(e)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(n)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(wins) == 1
        assert len(losses) == n - 1
        assert store.find_one(TRUST_SCORES, {"_id": "farmer_1"})["revision"] == 1

    def test_trust_seed_failure_reopens_submission(
        self, resolver: PolicyResolver, notifier: RecordingNotifier, audit: AuditLog,
    ) -> None:
        store = _TrustWriteFails()
        store.insert_one(USERS, UserRecord(
            user_id="farmer_1", role=Role.FARMER, first_name="Wanjiku",
            phone_number="+254700000001", verification_status=VerificationStatus.PENDING,
        ).to_document())
        gate = VerificationGate(
            store, TrustLedger(store, resolver, clock=lambda: NOW),
            NotificationDispatcher(notifier, background=False), audit, clock=lambda: NOW,
        )

        store.fail_next = True
        with pytest.raises(StorageError):
            gate.approve("farmer_1", "admin_1")
        farmer = store.find_one(USERS, {"_id": "farmer_1"})
        assert farmer["verification_status"] == VerificationStatus.PENDING.value
        assert store.find_one(TRUST_SCORES, {"_id": "farmer_1"}) is None
        assert not audit.records(AuditKind.FARMER_APPROVED)
        assert notifier.sent == []

        score = gate.approve("farmer_1", "admin_1")
        assert score.composite_score == 40.0

    def test_unrecognised_stored_status(self, gate: VerificationGate, store: DocumentStore) -> None:
        store.update_one(USERS, {"_id": "farmer_1"}, set_fields={"verification_status": "BOGUS"})
        with pytest.raises(InvalidStateTransition):
            gate.approve("farmer_1", "admin_1")
        with pytest.raises(InvalidStateTransition):
            gate.reject("farmer_1", "admin_1", "Unreadable")


class TestReject:
    def test_reject_with_reason(
        self, gate: VerificationGate, store: DocumentStore, notifier: RecordingNotifier,
    ) -> None:
        status = gate.reject("farmer_1", "admin_1", "ID photo unreadable")
        assert status == VerificationStatus.REJECTED
        farmer = store.find_one(USERS, {"_id": "farmer_1"})
        assert farmer["verification_status"] == VerificationStatus.REJECTED.value
        assert farmer["rejection_reason"] == "ID photo unreadable"
        assert "ID photo unreadable" in notifier.sent[0].message

    def test_reject_creates_no_trust_score(
        self, gate: VerificationGate, store: DocumentStore,
    ) -> None:
        gate.reject("farmer_1", "admin_1", "Mismatched names")
        assert store.find_one(TRUST_SCORES, {"_id": "farmer_1"}) is None

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_reason_required(self, gate: VerificationGate, store: DocumentStore, reason) -> None:
        with pytest.raises(ValidationFailed):
            gate.reject("farmer_1", "admin_1", reason)
        farmer = store.find_one(USERS, {"_id": "farmer_1"})
        assert farmer["verification_status"] == VerificationStatus.PENDING.value

    def test_reject_after_approve_fails(self, gate: VerificationGate) -> None:
        gate.approve("farmer_1", "admin_1")
        with pytest.raises(InvalidStateTransition):
            gate.reject("farmer_1", "admin_1", "Changed my mind")


class TestResubmission:
    def test_rejected_returns_to_pending(
        self, gate: VerificationGate, store: DocumentStore, audit: AuditLog,
    ) -> None:
        gate.reject("farmer_1", "admin_1", "Blurry document")
        status = resubmit_verification(store, "farmer_1", audit)
        assert status == VerificationStatus.PENDING
        farmer = store.find_one(USERS, {"_id": "farmer_1"})
        assert farmer["rejection_reason"] is None
        assert audit.records(AuditKind.VERIFICATION_RESUBMITTED, subject_id="farmer_1")

        score = gate.approve("farmer_1", "admin_2")
        assert score.composite_score == 40.0

    def test_pending_cannot_resubmit(self, store: DocumentStore) -> None:
        with pytest.raises(InvalidStateTransition):
            resubmit_verification(store, "farmer_1")

    def test_unknown_farmer(self, store: DocumentStore) -> None:
        with pytest.raises(NotFound):
            resubmit_verification(store, "ghost")
