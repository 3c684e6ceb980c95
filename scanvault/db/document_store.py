"""
JSON document store on SQLite.

The import engine talks to a document database: documents addressed by a
collection path and an id, create-only writes that report conflicts, merge
writes, and atomic multi-document commits. ``SqliteDocumentStore`` provides
exactly that surface over the ``documents`` table.

Rules enforced by the store:
  - Scan collections (any collection path ending in ``/scans``) are
    *protected*: documents there can be created but never overwritten. A plain
    ``set()`` on an existing scan raises :class:`PermissionDeniedError`;
    ``create()`` raises :class:`DocumentAlreadyExistsError`.
  - ``set(..., merge=True)`` deep-merges nested mappings key by key; lists and
    scalars are replaced.

Capabilities:
  - ``batch()``        atomic unit over many writes (all or nothing).
  - ``bulk_writer()``  per-document writer where each op succeeds or fails
    on its own; ``None`` when disabled, so callers pick a write strategy by
    checking the capability rather than by catching errors.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Optional

from scanvault.config import deep_merge
from scanvault.db.errors import DocumentAlreadyExistsError, PermissionDeniedError
from scanvault.db.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

PROTECTED_SUFFIXES: tuple[str, ...] = ("/scans",)

_NOW_SQL = "strftime('%Y-%m-%dT%H:%M:%SZ', 'now')"


def is_protected_collection(collection: str) -> bool:
    """``True`` when documents in ``collection`` are create-only."""
    return collection.endswith(PROTECTED_SUFFIXES)


class SqliteDocumentStore(BaseRepository):
    """Document reads and writes over the ``documents`` table.

    Args:
        conn: Open connection with the schema applied.
        bulk_writer_enabled: Whether :meth:`bulk_writer` is offered.
    """

    def __init__(self, conn: sqlite3.Connection, bulk_writer_enabled: bool = True) -> None:
        super().__init__(conn)
        self.bulk_writer_enabled = bulk_writer_enabled

    # ── Reads ──────────────────────────────────────────────────────────────────

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        """Return the document, or ``None`` if it does not exist."""
        row = self.fetchone(
            "SELECT data FROM documents WHERE collection = ? AND doc_id = ?;",
            (collection, str(doc_id)),
        )
        return json.loads(row["data"]) if row else None

    def exists(self, collection: str, doc_id: str) -> bool:
        row = self.fetchone(
            "SELECT 1 FROM documents WHERE collection = ? AND doc_id = ?;",
            (collection, str(doc_id)),
        )
        return row is not None

    def list_documents(self, collection: str) -> list[tuple[str, dict[str, Any]]]:
        """All ``(doc_id, data)`` pairs in ``collection``, ordered by id."""
        rows = self.fetchall(
            "SELECT doc_id, data FROM documents WHERE collection = ? ORDER BY doc_id;",
            (collection,),
        )
        return [(r["doc_id"], json.loads(r["data"])) for r in rows]

    def count(self, collection_prefix: str = "") -> int:
        """Number of documents whose collection starts with ``collection_prefix``."""
        row = self.fetchone(
            "SELECT COUNT(*) AS n FROM documents WHERE collection LIKE ? || '%';",
            (collection_prefix,),
        )
        assert row is not None
        return int(row["n"])

    # ── Writes ─────────────────────────────────────────────────────────────────

    def create(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Create a document; fail if it already exists.

        Raises:
            DocumentAlreadyExistsError: A document with this id exists.
        """
        try:
            self.execute(
                "INSERT INTO documents (collection, doc_id, data) VALUES (?, ?, ?);",
                (collection, str(doc_id), _dumps(data)),
            )
        except sqlite3.IntegrityError as exc:
            raise DocumentAlreadyExistsError(
                f"Document already exists: {collection}/{doc_id}"
            ) from exc

    def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        """Write a document, replacing it or merging into it.

        Raises:
            PermissionDeniedError: The document exists in a protected collection.
        """
        existing = self.get(collection, doc_id)
        if existing is not None and is_protected_collection(collection):
            raise PermissionDeniedError(
                f"Missing or insufficient permissions to overwrite {collection}/{doc_id}"
            )
        payload = deep_merge(existing, data) if merge and existing is not None else data
        self.execute(
            f"""
            INSERT INTO documents (collection, doc_id, data) VALUES (?, ?, ?)
            ON CONFLICT(collection, doc_id) DO UPDATE SET
                data       = excluded.data,
                updated_at = {_NOW_SQL};
            """,
            (collection, str(doc_id), _dumps(payload)),
        )

    # ── Capabilities ───────────────────────────────────────────────────────────

    @contextmanager
    def batch(self) -> Iterator["SqliteDocumentStore"]:
        """Atomic unit: every write in the block lands, or none do."""
        with self.savepoint("batch"):
            yield self

    def bulk_writer(self) -> Optional["BulkWriter"]:
        """Per-document writer, or ``None`` when the capability is disabled."""
        if not self.bulk_writer_enabled:
            return None
        return BulkWriter(self)


class BulkWriter:
    """High-throughput writer with independent per-document outcomes.

    Each operation runs in its own savepoint, so a failing document never
    rolls back its siblings. ``close()`` makes the accepted writes durable.
    """

    def __init__(self, store: SqliteDocumentStore) -> None:
        self.store = store
        self.ops_ok = 0
        self.ops_failed = 0

    def create(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._run(lambda: self.store.create(collection, doc_id, data))

    def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        self._run(lambda: self.store.set(collection, doc_id, data, merge=merge))

    def close(self) -> None:
        self.store.commit()
        logger.debug("BulkWriter closed | ok=%d | failed=%d", self.ops_ok, self.ops_failed)

    def _run(self, op) -> None:
        try:
            with self.store.savepoint("bulk"):
                op()
        except Exception:
            self.ops_failed += 1
            raise
        self.ops_ok += 1


def _dumps(data: dict[str, Any]) -> str:
    return json.dumps(data, ensure_ascii=False, default=str)
