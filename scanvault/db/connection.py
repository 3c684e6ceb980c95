"""
SQLite connection management for the document store.

``get_connection()`` yields a connection that:
  - Uses ``sqlite3.Row`` rows (dict-like access in repositories).
  - Runs in WAL mode with a busy timeout, so read-only CLI queries can run
    while an import is writing.
  - Has the document/run schema applied (idempotent).
  - Commits on clean exit, rolls back on exception.

Usage::

    from scanvault.db.connection import connect_from_config

    with connect_from_config(config) as conn:
        store = SqliteDocumentStore(conn)
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Generator

from scanvault.db.schema import apply_schema

if TYPE_CHECKING:
    from scanvault.config import AppConfig

logger = logging.getLogger(__name__)


@contextmanager
def get_connection(
    db_path: str,
    wal_mode: bool = True,
    busy_timeout_ms: int = 5000,
) -> Generator[sqlite3.Connection, None, None]:
    """Context manager yielding a configured SQLite connection.

    Args:
        db_path: Path to the SQLite file, or ``":memory:"``. Parent
            directories are created when missing.
        wal_mode: Enable WAL journal mode.
        busy_timeout_ms: Milliseconds to wait on a locked database.

    Yields:
        An open ``sqlite3.Connection`` with the schema applied.

    Raises:
        sqlite3.OperationalError: If the database cannot be opened or is locked.
    """
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=busy_timeout_ms / 1000)
    conn.row_factory = sqlite3.Row

    try:
        conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms};")
        if wal_mode and db_path != ":memory:":
            conn.execute("PRAGMA journal_mode = WAL;")
        apply_schema(conn)

        yield conn
        conn.commit()

    except Exception:
        conn.rollback()
        raise

    finally:
        conn.close()


@contextmanager
def connect_from_config(
    config: "AppConfig",
    db_path: str | None = None,
) -> Generator[sqlite3.Connection, None, None]:
    """``get_connection()`` with settings from ``config.database``.

    Args:
        config: Application config.
        db_path: Optional override of ``config.database.db_path``.
    """
    target = db_path or config.database.db_path
    logger.debug("Opening document store at %s", target)
    with get_connection(
        target,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
    ) as conn:
        yield conn
