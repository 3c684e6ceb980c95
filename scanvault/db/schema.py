"""
SQLite schema DDL.

All statements use ``IF NOT EXISTS`` so ``apply_schema()`` is idempotent.

Tables:
  1. documents    JSON documents addressed by ``(collection, doc_id)``.
                    Collections are slash paths such as
                    ``players/{id}/scans`` so every document lives under the
                    entity that owns it.
  2. import_runs  audit log of ``ImportStage`` executions.
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

_DDL_DOCUMENTS = """
CREATE TABLE IF NOT EXISTS documents (
    collection  TEXT    NOT NULL,
    doc_id      TEXT    NOT NULL,
    data        TEXT    NOT NULL,
    created_at  TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    updated_at  TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    PRIMARY KEY (collection, doc_id)
);
"""

_DDL_IMPORT_RUNS = """
CREATE TABLE IF NOT EXISTS import_runs (
    run_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    run_slug        TEXT    NOT NULL UNIQUE,
    pipeline_stage  TEXT    NOT NULL,
    kind            TEXT,
    status          TEXT    NOT NULL DEFAULT 'started',
    config_snapshot TEXT    NOT NULL,
    rows_processed  INTEGER NOT NULL DEFAULT 0,
    error_message   TEXT,
    started_at      TEXT    NOT NULL,
    finished_at     TEXT
);
"""

_DDL_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_import_runs_started
    ON import_runs(started_at);
"""

ALL_TABLE_NAMES: list[str] = ["documents", "import_runs"]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Create all tables and indexes if they do not already exist."""
    conn.executescript(_DDL_DOCUMENTS + _DDL_IMPORT_RUNS + _DDL_INDEXES)
    logger.debug("Schema applied: %s", ", ".join(ALL_TABLE_NAMES))
