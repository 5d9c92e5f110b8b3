"""Append-only audit log — the record of every verification decision.

Each farmer verification decision and each engagement transition is
appended here after its state write succeeds. Records are immutable
once written and carry a SHA-256 hash of their canonical JSON form,
so a persisted log can be checked for tampering when it is reloaded.
"""

from __future__ import annotations

import enum
import hashlib
import json
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from umoja.errors import StorageError


class AuditKind(str, enum.Enum):
    """Classification of audited actions."""
    FARMER_APPROVED = "farmer_approved"
    FARMER_REJECTED = "farmer_rejected"
    VERIFICATION_RESUBMITTED = "verification_resubmitted"
    TRUST_RECALCULATED = "trust_recalculated"
    ENGAGEMENT_CREATED = "engagement_created"
    ENGAGEMENT_SUBMITTED = "engagement_submitted"
    PEER_REVIEW_ASSIGNED = "peer_review_assigned"
    PEER_REVIEW_WAIVED = "peer_review_waived"
    PEER_REVIEW_SUBMITTED = "peer_review_submitted"
    LECTURER_DECISION = "lecturer_decision"
    PORTFOLIO_UPDATED = "portfolio_updated"


@dataclass(frozen=True)
class AuditRecord:
    """A single immutable audit entry."""
    record_id: str
    kind: AuditKind
    timestamp_utc: str
    actor_id: str
    payload: dict[str, Any]
    record_hash: str

    @staticmethod
    def create(
        record_id: str,
        kind: AuditKind,
        actor_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> AuditRecord:
        """Create a new audit record with computed hash."""
        ts = timestamp_utc or datetime.now(timezone.utc)
        ts_str = ts.strftime("%Y-%m-%dT%H:%M:%SZ")
        return AuditRecord(
            record_id=record_id,
            kind=kind,
            timestamp_utc=ts_str,
            actor_id=actor_id,
            payload=payload,
            record_hash=_canonical_hash(record_id, kind.value, ts_str, actor_id, payload),
        )


class AuditLog:
    """Append-only audit log with optional JSONL persistence."""

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._records: list[AuditRecord] = []
        self._record_ids: set[str] = set()
        self._storage_path = storage_path
        self._lock = threading.Lock()
        self._counter = 0

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)
            self._counter = len(self._records)

    def record(
        self,
        kind: AuditKind,
        actor_id: str,
        payload: dict[str, Any],
        now: Optional[datetime] = None,
    ) -> AuditRecord:
        """Create and append a record with the next sequential id."""
        with self._lock:
            self._counter += 1
            record_id = f"AUD-{self._counter:08d}"
        entry = AuditRecord.create(record_id, kind, actor_id, payload, now)
        self.append(entry)
        return entry

    def append(self, entry: AuditRecord) -> None:
        """Append a record.

        Raises ValueError if record_id is a duplicate (replay protection).
        """
        with self._lock:
            if entry.record_id in self._record_ids:
                raise ValueError(f"Duplicate audit record ID: {entry.record_id}")
            if self._storage_path:
                self._append_to_file(entry)
            self._records.append(entry)
            self._record_ids.add(entry.record_id)

    def records(
        self,
        kind: Optional[AuditKind] = None,
        subject_id: Optional[str] = None,
    ) -> list[AuditRecord]:
        """Return records, optionally filtered by kind and subject.

        The subject is matched against the payload's ``subject_id``.
        """
        with self._lock:
            result = list(self._records)
        if kind is not None:
            result = [r for r in result if r.kind == kind]
        if subject_id is not None:
            result = [r for r in result if r.payload.get("subject_id") == subject_id]
        return result

    @property
    def count(self) -> int:
        return len(self._records)

    def _append_to_file(self, entry: AuditRecord) -> None:
        line = {
            "record_id": entry.record_id,
            "kind": entry.kind.value,
            "timestamp_utc": entry.timestamp_utc,
            "actor_id": entry.actor_id,
            "payload": entry.payload,
            "record_hash": entry.record_hash,
        }
        try:
            with self._storage_path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(line, sort_keys=True, ensure_ascii=False) + "\n")
        except OSError as e:
            raise StorageError(f"Audit log write failed: {e}") from e

    def _load_from_file(self, path: Path) -> None:
        """Load records from JSONL, rejecting tampered or replayed lines."""
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)
                record_id = data["record_id"]

                if record_id in self._record_ids:
                    raise ValueError(
                        f"Duplicate audit record ID on recovery (line {line_num}): {record_id}"
                    )

                expected = _canonical_hash(
                    record_id, data["kind"], data["timestamp_utc"],
                    data["actor_id"], data["payload"],
                )
                if data["record_hash"] != expected:
                    raise ValueError(
                        f"Integrity check failed (line {line_num}): record {record_id} "
                        f"stored hash {data['record_hash']} != computed {expected}"
                    )

                self._records.append(AuditRecord(
                    record_id=record_id,
                    kind=AuditKind(data["kind"]),
                    timestamp_utc=data["timestamp_utc"],
                    actor_id=data["actor_id"],
                    payload=data["payload"],
                    record_hash=data["record_hash"],
                ))
                self._record_ids.add(record_id)


def _canonical_hash(
    record_id: str,
    kind: str,
    timestamp_utc: str,
    actor_id: str,
    payload: dict[str, Any],
) -> str:
    canonical = json.dumps(
        {
            "record_id": record_id,
            "kind": kind,
            "timestamp_utc": timestamp_utc,
            "actor_id": actor_id,
            "payload": payload,
        },
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"
