"""
Tests for scanvault/db/document_store.py.

What we test
------------
1. get / create / set round trips and create-only conflicts.
2. Protected scan collections reject overwrites.
3. Merge writes deep-merge mappings and replace lists.
4. batch() is all-or-nothing; bulk_writer() isolates failures.
"""

from __future__ import annotations

import pytest

from scanvault.db.document_store import SqliteDocumentStore, is_protected_collection
from scanvault.db.errors import (
    DocumentAlreadyExistsError,
    PermissionDeniedError,
    is_duplicate_signature,
    is_permission_or_duplicate,
)


class TestReadWrite:
    def test_missing_document_is_none(self, store):
        assert store.get("players/p1/latest", "latest") is None

    def test_create_then_get(self, store):
        store.create("players/p1/scans", "100", {"a": 1})
        assert store.get("players/p1/scans", "100") == {"a": 1}
        assert store.exists("players/p1/scans", "100")

    def test_create_conflict(self, store):
        store.create("players/p1/scans", "100", {"a": 1})
        with pytest.raises(DocumentAlreadyExistsError) as excinfo:
            store.create("players/p1/scans", "100", {"a": 2})
        assert is_duplicate_signature(excinfo.value)
        assert store.get("players/p1/scans", "100") == {"a": 1}

    def test_set_replaces(self, store):
        store.set("c", "d", {"a": 1, "b": 2})
        store.set("c", "d", {"a": 3})
        assert store.get("c", "d") == {"a": 3}

    def test_merge_is_deep(self, store):
        store.set("c", "d", {"values": {"x": "1", "y": "2"}, "tags": [1, 2]})
        store.set("c", "d", {"values": {"y": "3"}, "tags": [9]}, merge=True)
        assert store.get("c", "d") == {"values": {"x": "1", "y": "3"}, "tags": [9]}

    def test_merge_on_missing_document_creates_it(self, store):
        store.set("c", "d", {"a": 1}, merge=True)
        assert store.get("c", "d") == {"a": 1}

    def test_list_documents_ordered(self, store):
        store.set("servers", "EU2", {"host": "b"})
        store.set("servers", "EU1", {"host": "a"})
        assert [doc_id for doc_id, _ in store.list_documents("servers")] == ["EU1", "EU2"]

    def test_count_by_prefix(self, store):
        store.set("players/p1/latest", "latest", {})
        store.set("players/p2/latest", "latest", {})
        store.set("guilds/g1/latest", "latest", {})
        assert store.count("players/") == 2
        assert store.count() == 3

    def test_unicode_round_trip(self, store):
        store.set("c", "d", {"name": "Ærø"})
        assert store.get("c", "d") == {"name": "Ærø"}


class TestProtectedCollections:
    def test_scan_collections_are_protected(self):
        assert is_protected_collection("players/p1/scans")
        assert not is_protected_collection("players/p1/latest")

    def test_overwrite_scan_denied(self, store):
        store.create("players/p1/scans", "100", {"a": 1})
        with pytest.raises(PermissionDeniedError) as excinfo:
            store.set("players/p1/scans", "100", {"a": 2})
        assert is_permission_or_duplicate(excinfo.value)
        assert store.get("players/p1/scans", "100") == {"a": 1}

    def test_set_new_scan_allowed(self, store):
        store.set("players/p1/scans", "100", {"a": 1})
        assert store.get("players/p1/scans", "100") == {"a": 1}


class TestBatch:
    def test_commits_all(self, store):
        with store.batch() as batch:
            batch.set("c", "1", {"n": 1})
            batch.set("c", "2", {"n": 2})
        assert store.count("c") == 2

    def test_rolls_back_all_on_failure(self, store):
        store.create("players/p1/scans", "100", {"a": 1})
        with pytest.raises(PermissionDeniedError):
            with store.batch() as batch:
                batch.set("c", "1", {"n": 1})
                batch.set("players/p1/scans", "100", {"a": 2})
        assert store.get("c", "1") is None


class TestBulkWriter:
    def test_disabled_returns_none(self, in_memory_db):
        assert SqliteDocumentStore(in_memory_db, bulk_writer_enabled=False).bulk_writer() is None

    def test_failure_does_not_affect_siblings(self, store):
        store.create("players/p1/scans", "100", {"a": 1})
        writer = store.bulk_writer()
        writer.set("c", "1", {"n": 1})
        with pytest.raises(DocumentAlreadyExistsError):
            writer.create("players/p1/scans", "100", {"a": 2})
        writer.set("c", "2", {"n": 2})
        writer.close()
        assert store.count("c") == 2
        assert (writer.ops_ok, writer.ops_failed) == (2, 1)
