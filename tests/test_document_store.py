"""Tests for the document store — proves conditional updates and atomic increments."""

import threading
from datetime import datetime, timezone

import pytest

from umoja.errors import StorageError
from umoja.persistence.document_store import DocumentStore


@pytest.fixture
def store() -> DocumentStore:
    return DocumentStore()


class TestInsertAndFind:
    def test_insert_returns_id(self, store: DocumentStore) -> None:
        assert store.insert_one("users", {"_id": "u1", "role": "FARMER"}) == "u1"
        assert store.find_one("users", {"_id": "u1"})["role"] == "FARMER"

    def test_generated_id(self, store: DocumentStore) -> None:
        doc_id = store.insert_one("users", {"role": "BUYER"})
        assert doc_id
        assert store.find_one("users", {"_id": doc_id}) is not None

    def test_duplicate_id_is_storage_error(self, store: DocumentStore) -> None:
        store.insert_one("users", {"_id": "u1"})
        with pytest.raises(StorageError):
            store.insert_one("users", {"_id": "u1"})

    def test_find_missing_collection(self, store: DocumentStore) -> None:
        assert store.find("nothing") == []
        assert store.find_one("nothing", {"_id": "x"}) is None

    def test_returned_documents_are_copies(self, store: DocumentStore) -> None:
        store.insert_one("users", {"_id": "u1", "tags": ["a"]})
        doc = store.find_one("users", {"_id": "u1"})
        doc["tags"].append("b")
        assert store.find_one("users", {"_id": "u1"})["tags"] == ["a"]

    def test_find_preserves_insertion_order_and_limit(self, store: DocumentStore) -> None:
        for i in range(5):
            store.insert_one("users", {"_id": f"u{i}", "role": "STUDENT"})
        found = store.find("users", {"role": "STUDENT"}, limit=3)
        assert [d["_id"] for d in found] == ["u0", "u1", "u2"]


class TestFilters:
    @pytest.fixture(autouse=True)
    def seed(self, store: DocumentStore) -> None:
        store.insert_one("users", {"_id": "a", "tier": "BEGINNER", "stack": ["React", "Node.js"]})
        store.insert_one("users", {"_id": "b", "tier": "ADVANCED", "stack": ["Django"]})
        store.insert_one("users", {"_id": "c", "tier": "ADVANCED", "profile": {"city": "Kisumu"}})

    def test_ne(self, store: DocumentStore) -> None:
        ids = {d["_id"] for d in store.find("users", {"_id": {"$ne": "a"}})}
        assert ids == {"b", "c"}

    def test_in(self, store: DocumentStore) -> None:
        ids = {d["_id"] for d in store.find("users", {"tier": {"$in": ["ADVANCED"]}})}
        assert ids == {"b", "c"}

    def test_list_membership_equality(self, store: DocumentStore) -> None:
        assert [d["_id"] for d in store.find("users", {"stack": "React"})] == ["a"]

    def test_list_membership_in(self, store: DocumentStore) -> None:
        ids = {d["_id"] for d in store.find("users", {"stack": {"$in": ["Django", "Node.js"]}})}
        assert ids == {"a", "b"}

    def test_exists(self, store: DocumentStore) -> None:
        assert [d["_id"] for d in store.find("users", {"stack": {"$exists": False}})] == ["c"]

    def test_dotted_key(self, store: DocumentStore) -> None:
        assert store.find_one("users", {"profile.city": "Kisumu"})["_id"] == "c"

    def test_unknown_operator(self, store: DocumentStore) -> None:
        with pytest.raises(ValueError):
            store.find("users", {"tier": {"$regex": "ADV"}})

    def test_count(self, store: DocumentStore) -> None:
        assert store.count("users") == 3
        assert store.count("users", {"tier": "ADVANCED"}) == 2

    def test_delete_one(self, store: DocumentStore) -> None:
        assert store.delete_one("users", {"tier": "ADVANCED"}) == 1
        assert [d["_id"] for d in store.find("users")] == ["a", "c"]
        assert store.delete_one("users", {"_id": "b"}) == 0


class TestUpdate:
    def test_compare_and_swap(self, store: DocumentStore) -> None:
        store.insert_one("eng", {"_id": "e1", "status": "IN_PROGRESS"})
        first = store.update_one(
            "eng", {"_id": "e1", "status": "IN_PROGRESS"},
            set_fields={"status": "UNDER_PEER_REVIEW"},
        )
        second = store.update_one(
            "eng", {"_id": "e1", "status": "IN_PROGRESS"},
            set_fields={"status": "UNDER_PEER_REVIEW"},
        )
        assert first.matched == 1
        assert first.document["status"] == "UNDER_PEER_REVIEW"
        assert second.matched == 0
        assert second.document is None

    def test_inc_creates_nested_counter(self, store: DocumentStore) -> None:
        store.insert_one("p", {"_id": "s1"})
        result = store.update_one("p", {"_id": "s1"}, inc={"stats.count": 2})
        assert result.document["stats"]["count"] == 2

    def test_inc_non_numeric_is_storage_error(self, store: DocumentStore) -> None:
        store.insert_one("p", {"_id": "s1", "name": "x"})
        with pytest.raises(StorageError):
            store.update_one("p", {"_id": "s1"}, inc={"name": 1})

    def test_push_each_and_add_to_set(self, store: DocumentStore) -> None:
        store.insert_one("p", {"_id": "s1", "items": [1], "tags": ["a"]})
        result = store.update_one(
            "p", {"_id": "s1"},
            push={"items": {"$each": [2, 3]}},
            add_to_set={"tags": {"$each": ["a", "b"]}},
        )
        assert result.document["items"] == [1, 2, 3]
        assert result.document["tags"] == ["a", "b"]

    def test_upsert_seeds_from_filter_and_set_on_insert(self, store: DocumentStore) -> None:
        result = store.update_one(
            "p", {"_id": "s1"},
            set_on_insert={"tier": "BEGINNER"},
            inc={"n": 1},
            upsert=True,
        )
        assert result.matched == 0
        assert result.upserted_id == "s1"
        assert result.document == {"_id": "s1", "tier": "BEGINNER", "n": 1}

        again = store.update_one(
            "p", {"_id": "s1"},
            set_on_insert={"tier": "ADVANCED"},
            inc={"n": 1},
            upsert=True,
        )
        assert again.matched == 1
        assert again.document["tier"] == "BEGINNER"
        assert again.document["n"] == 2

    def test_concurrent_increments_are_atomic(self, store: DocumentStore) -> None:
        store.insert_one("c", {"_id": "k", "n": 0})
        barrier = threading.Barrier(8)

        def worker() -> None:
            barrier.wait()
            for _ in range(250):
                store.update_one("c", {"_id": "k"}, inc={"n": 1})

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert store.find_one("c", {"_id": "k"})["n"] == 2000


class TestSnapshotPersistence:
    def test_round_trip_with_datetimes(self, tmp_path) -> None:
        path = tmp_path / "store.json"
        when = datetime(2026, 5, 4, 12, 30, tzinfo=timezone.utc)
        first = DocumentStore(storage_path=path)
        first.insert_one("users", {"_id": "u1", "created": when, "tags": ["x"]})

        second = DocumentStore(storage_path=path)
        doc = second.find_one("users", {"_id": "u1"})
        assert doc["created"] == when
        assert doc["tags"] == ["x"]

    def test_corrupt_snapshot(self, tmp_path) -> None:
        path = tmp_path / "store.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageError):
            DocumentStore(storage_path=path)
