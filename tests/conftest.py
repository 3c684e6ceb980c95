"""
Shared pytest fixtures for the scanvault test suite.

Provides:
  - ``in_memory_db``: A fresh in-memory SQLite connection with the full
    schema applied. Created anew for each test that requests it.
  - ``store``: A ``SqliteDocumentStore`` over ``in_memory_db``.
  - ``fast_config``: Default ``AppConfig`` with the inter-chunk pause off.
  - Row factories for player and guild exports.
"""

from __future__ import annotations

import sqlite3
from typing import Generator

import pytest

from scanvault.config import AppConfig, ImportConfig
from scanvault.db.document_store import SqliteDocumentStore
from scanvault.db.schema import apply_schema


# ── Database fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def in_memory_db() -> Generator[sqlite3.Connection, None, None]:
    """Yield a fresh in-memory SQLite connection with the full schema applied."""
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    apply_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def store(in_memory_db: sqlite3.Connection) -> SqliteDocumentStore:
    return SqliteDocumentStore(in_memory_db)


@pytest.fixture
def fast_config() -> AppConfig:
    return AppConfig(imports=ImportConfig(inter_chunk_pause_ms=0))


# ── Row factories ─────────────────────────────────────────────────────────────

def _player_row(
    player_id: str = "p1",
    timestamp: str = "1740000000",
    server: str = "EU1",
    name: str = "Alice",
    **extra: str,
) -> dict[str, str]:
    """One player export row; ``extra`` adds or overrides columns."""
    row = {
        "ID": player_id,
        "Server": server,
        "Name": name,
        "Timestamp": timestamp,
        "Class": "Mage",
        "Level": "120",
        "Guild Identifier": "g1",
        "Guild": "Knights",
        "Base Intelligence": "1000",
        "Base Constitution": "500",
        "Strength": "10",
    }
    row.update(extra)
    return row


def _guild_row(
    guild_id: str = "g1",
    timestamp: str = "1740000000",
    server: str = "EU1",
    name: str = "Knights",
    members: str = "2",
    **extra: str,
) -> dict[str, str]:
    row = {
        "Guild Identifier": guild_id,
        "Server": server,
        "Name": name,
        "Timestamp": timestamp,
        "Guild Member Count": members,
        "Hall of Fame Rank": "17",
    }
    row.update(extra)
    return row


@pytest.fixture
def player_row():
    """Factory for player export rows."""
    return _player_row


@pytest.fixture
def guild_row():
    """Factory for guild export rows."""
    return _guild_row
