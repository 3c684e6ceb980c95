"""
Base repository providing shared SQLite execution helpers.

Repositories receive an open ``sqlite3.Connection`` (usually from
``get_connection()``) and never open or close it themselves.

Design:
  - No ORM; SQL is explicit and lives in repository methods.
  - ``savepoint()`` gives nested atomic units, used for per-document writes
    and for whole-chunk batches alike.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from itertools import count
from typing import Any, Generator, Optional

logger = logging.getLogger(__name__)

_savepoint_ids = count(1)


class BaseRepository:
    """Shared SQL execution helpers.

    Attributes:
        conn: The active ``sqlite3.Connection``.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def execute(
        self,
        sql: str,
        params: tuple[Any, ...] | dict[str, Any] = (),
    ) -> sqlite3.Cursor:
        logger.debug("SQL: %s | params: %s", sql.strip(), params)
        return self.conn.execute(sql, params)

    def fetchone(
        self,
        sql: str,
        params: tuple[Any, ...] | dict[str, Any] = (),
    ) -> Optional[sqlite3.Row]:
        return self.execute(sql, params).fetchone()

    def fetchall(
        self,
        sql: str,
        params: tuple[Any, ...] | dict[str, Any] = (),
    ) -> list[sqlite3.Row]:
        return self.execute(sql, params).fetchall()

    def last_insert_rowid(self) -> int:
        row = self.fetchone("SELECT last_insert_rowid() AS rowid;")
        assert row is not None
        return int(row["rowid"])

    @contextmanager
    def savepoint(self, label: str = "sp") -> Generator[None, None, None]:
        """Run the block inside a SAVEPOINT; roll it back if the block raises.

        Savepoints nest, so this works both inside and outside an already
        open transaction.
        """
        name = f"{label}_{next(_savepoint_ids)}"
        self.conn.execute(f"SAVEPOINT {name};")
        try:
            yield
        except Exception:
            self.conn.execute(f"ROLLBACK TO {name};")
            self.conn.execute(f"RELEASE {name};")
            raise
        self.conn.execute(f"RELEASE {name};")

    def commit(self) -> None:
        self.conn.commit()
