"""Document store with conditional updates and atomic increments.

The workflow core reaches persistence only through find/insert/update
operations on named collections. Every read-match-mutate sequence runs
under a single lock, which gives the two primitives the core relies on:

- Compare-and-swap: an update whose filter includes the expected
  current status matches nothing once another writer has moved it.
- Atomic increment: ``inc`` adds to counters without an application
  level read-then-write.

Filters support equality on dotted keys plus ``$ne``, ``$in`` and
``$exists``. When a stored value is a list, equality and ``$in`` match
on membership.

Documents handed out are deep copies; callers never alias stored state.
An optional JSON snapshot file makes the store durable across runs.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from umoja.errors import StorageError

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass(frozen=True)
class UpdateResult:
    """Outcome of update_one.

    ``document`` is a copy of the post-update document, or None when
    nothing matched and no upsert took place.
    """
    matched: int
    modified: int
    upserted_id: Optional[str] = None
    document: Optional[dict[str, Any]] = None


class DocumentStore:
    """Thread-safe in-memory document store.

    Thread-safety: all public operations are serialised by one lock.
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._lock = threading.RLock()
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._storage_path = storage_path

        if storage_path is not None and storage_path.exists():
            self._load_from_file(storage_path)

    def insert_one(self, collection: str, document: dict[str, Any]) -> str:
        """Insert a document. Generates ``_id`` when absent.

        Raises StorageError on a duplicate ``_id``.
        """
        doc = copy.deepcopy(document)
        doc_id = doc.get("_id") or uuid.uuid4().hex
        doc["_id"] = doc_id
        with self._lock:
            coll = self._collections.setdefault(collection, {})
            if doc_id in coll:
                raise StorageError(f"Duplicate _id in {collection}: {doc_id}")
            coll[doc_id] = doc
            self._persist()
        return doc_id

    def find_one(
        self,
        collection: str,
        filter: Optional[dict[str, Any]] = None,
    ) -> Optional[dict[str, Any]]:
        with self._lock:
            for doc in self._collections.get(collection, {}).values():
                if _matches(doc, filter or {}):
                    return copy.deepcopy(doc)
        return None

    def find(
        self,
        collection: str,
        filter: Optional[dict[str, Any]] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """Return matching documents in insertion order."""
        results: list[dict[str, Any]] = []
        with self._lock:
            for doc in self._collections.get(collection, {}).values():
                if limit is not None and len(results) >= limit:
                    break
                if _matches(doc, filter or {}):
                    results.append(copy.deepcopy(doc))
        return results

    def delete_one(self, collection: str, filter: dict[str, Any]) -> int:
        """Remove the first document matching ``filter``. Returns 0 or 1."""
        with self._lock:
            coll = self._collections.get(collection, {})
            for doc_id, doc in coll.items():
                if _matches(doc, filter):
                    del coll[doc_id]
                    self._persist()
                    return 1
        return 0

    def count(self, collection: str, filter: Optional[dict[str, Any]] = None) -> int:
        with self._lock:
            return sum(
                1 for doc in self._collections.get(collection, {}).values()
                if _matches(doc, filter or {})
            )

    def update_one(
        self,
        collection: str,
        filter: dict[str, Any],
        *,
        set_fields: Optional[dict[str, Any]] = None,
        inc: Optional[dict[str, float]] = None,
        push: Optional[dict[str, Any]] = None,
        add_to_set: Optional[dict[str, Any]] = None,
        set_on_insert: Optional[dict[str, Any]] = None,
        upsert: bool = False,
    ) -> UpdateResult:
        """Apply an update to the first document matching ``filter``.

        ``push`` and ``add_to_set`` values may be ``{"$each": [...]}``
        to append several items. ``set_on_insert`` applies only when
        the update creates the document.
        """
        with self._lock:
            coll = self._collections.setdefault(collection, {})
            target_id: Optional[str] = None
            for doc_id, doc in coll.items():
                if _matches(doc, filter):
                    target_id = doc_id
                    break

            upserted_id: Optional[str] = None
            if target_id is None:
                if not upsert:
                    return UpdateResult(matched=0, modified=0)
                base = _seed_from_filter(filter)
                for key, value in (set_on_insert or {}).items():
                    _set_path(base, key, copy.deepcopy(value))
                base.setdefault("_id", uuid.uuid4().hex)
                upserted_id = base["_id"]
                original = None
                updated = base
            else:
                original = coll[target_id]
                updated = copy.deepcopy(original)

            try:
                _apply_update(updated, set_fields, inc, push, add_to_set)
            except (TypeError, ValueError) as e:
                raise StorageError(f"Update on {collection} failed: {e}") from e

            if updated.get("_id") != (target_id or upserted_id):
                raise StorageError("_id is immutable")
            coll[updated["_id"]] = updated
            self._persist()

            return UpdateResult(
                matched=0 if original is None else 1,
                modified=1 if updated != original else 0,
                upserted_id=upserted_id,
                document=copy.deepcopy(updated),
            )

    def collections(self) -> list[str]:
        with self._lock:
            return sorted(self._collections)

    # ------------------------------------------------------------------
    # Snapshot persistence
    # ------------------------------------------------------------------

    def _persist(self) -> None:
        if self._storage_path is None:
            return
        tmp_path = self._storage_path.with_suffix(self._storage_path.suffix + ".tmp")
        try:
            with tmp_path.open("w", encoding="utf-8") as f:
                json.dump(self._collections, f, default=_encode, sort_keys=True)
            os.replace(tmp_path, self._storage_path)
        except OSError as e:
            logger.error("Store snapshot write failed: %s", e)
            raise StorageError(f"Snapshot write failed: {e}") from e

    def _load_from_file(self, path: Path) -> None:
        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f, object_hook=_decode)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Cannot load store snapshot {path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"Store snapshot must be an object: {path}")
        self._collections = data


# ----------------------------------------------------------------------
# Filter matching and update application
# ----------------------------------------------------------------------

def _get_path(doc: dict[str, Any], path: str) -> Any:
    current: Any = doc
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _set_path(doc: dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    current = doc
    for part in parts[:-1]:
        nxt = current.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            current[part] = nxt
        current = nxt
    current[parts[-1]] = value


def _equals(value: Any, operand: Any) -> bool:
    if value is _MISSING:
        return operand is None
    if isinstance(value, list) and not isinstance(operand, list):
        return operand in value
    return value == operand


def _is_operator_dict(cond: Any) -> bool:
    return isinstance(cond, dict) and bool(cond) and all(
        isinstance(k, str) and k.startswith("$") for k in cond
    )


def _matches(doc: dict[str, Any], filter: dict[str, Any]) -> bool:
    for key, cond in filter.items():
        value = _get_path(doc, key)
        if _is_operator_dict(cond):
            for op, operand in cond.items():
                if op == "$ne":
                    if _equals(value, operand):
                        return False
                elif op == "$in":
                    if not any(_equals(value, o) for o in operand):
                        return False
                elif op == "$exists":
                    if (value is not _MISSING) != bool(operand):
                        return False
                else:
                    raise ValueError(f"Unsupported filter operator: {op}")
        elif not _equals(value, cond):
            return False
    return True


def _seed_from_filter(filter: dict[str, Any]) -> dict[str, Any]:
    """Build the base of an upserted document from equality conditions."""
    base: dict[str, Any] = {}
    for key, cond in filter.items():
        if not _is_operator_dict(cond):
            _set_path(base, key, copy.deepcopy(cond))
    return base


def _each(value: Any) -> list[Any]:
    if isinstance(value, dict) and set(value) == {"$each"}:
        return list(value["$each"])
    return [value]


def _apply_update(
    doc: dict[str, Any],
    set_fields: Optional[dict[str, Any]],
    inc: Optional[dict[str, float]],
    push: Optional[dict[str, Any]],
    add_to_set: Optional[dict[str, Any]],
) -> None:
    for key, value in (set_fields or {}).items():
        _set_path(doc, key, copy.deepcopy(value))

    for key, amount in (inc or {}).items():
        current = _get_path(doc, key)
        if current is _MISSING or current is None:
            current = 0
        if not isinstance(current, (int, float)) or isinstance(current, bool):
            raise TypeError(f"Cannot increment non-numeric field '{key}'")
        _set_path(doc, key, current + amount)

    for key, value in (push or {}).items():
        current = _get_path(doc, key)
        items = [] if current is _MISSING or current is None else current
        if not isinstance(items, list):
            raise TypeError(f"Cannot push to non-list field '{key}'")
        items.extend(copy.deepcopy(_each(value)))
        _set_path(doc, key, items)

    for key, value in (add_to_set or {}).items():
        current = _get_path(doc, key)
        items = [] if current is _MISSING or current is None else current
        if not isinstance(items, list):
            raise TypeError(f"Cannot add to non-list field '{key}'")
        for item in _each(value):
            if item not in items:
                items.append(copy.deepcopy(item))
        _set_path(doc, key, items)


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return {"$date": value.isoformat()}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _decode(obj: dict[str, Any]) -> Any:
    if set(obj) == {"$date"}:
        return datetime.fromisoformat(obj["$date"])
    return obj
