"""Persistence layer — document store and append-only audit log."""

from umoja.persistence.audit_log import AuditKind, AuditLog, AuditRecord
from umoja.persistence.document_store import DocumentStore, UpdateResult

__all__ = ["AuditKind", "AuditLog", "AuditRecord", "DocumentStore", "UpdateResult"]
