"""
Selection import: a player export and a guild export uploaded together.

A guild row is *uploadable* only when its ``Guild Member Count`` is positive
and equals the number of player rows that carry its ``Guild Identifier``;
partial guild captures are left out. Uploadable guilds are imported first,
then every player row. A failing import is logged and flips ``ok`` to
``False``; the other import still runs.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional

from scanvault.config import AppConfig
from scanvault.db.document_store import SqliteDocumentStore
from scanvault.db.errors import DocumentStoreError
from scanvault.importer import GuildWriteError, ImportInputError, import_csv_to_db
from scanvault.ingestion.fields import canon, pick_by_canon
from scanvault.models.report import ImportReport, ImportResultItem, ProgressCallback

logger = logging.getLogger(__name__)

Row = Mapping[str, Any]

_GUILD_ID = canon("Guild Identifier")
_MEMBER_COUNT = canon("Guild Member Count")


@dataclass
class SelectionResult:
    ok: bool = True
    players: list[ImportResultItem] = field(default_factory=list)
    guilds: list[ImportResultItem] = field(default_factory=list)
    reports: list[ImportReport] = field(default_factory=list)


def uploadable_guild_ids(players_rows: Sequence[Row], guilds_rows: Sequence[Row]) -> set[str]:
    """Guild ids whose member count matches the player rows present."""
    player_counts: dict[str, int] = {}
    for row in players_rows:
        gid = _guild_id(row)
        if gid:
            player_counts[gid] = player_counts.get(gid, 0) + 1

    member_counts: dict[str, float] = {}
    for row in guilds_rows:
        gid = _guild_id(row)
        count = _member_count(pick_by_canon(row, _MEMBER_COUNT))
        if gid and count is not None and count > 0:
            member_counts[gid] = count

    return {gid for gid, count in member_counts.items() if player_counts.get(gid, 0) == count}


def import_selection(
    store: SqliteDocumentStore,
    players_rows: Sequence[Row],
    guilds_rows: Sequence[Row],
    config: Optional[AppConfig] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> SelectionResult:
    result = SelectionResult()
    uploadable = uploadable_guild_ids(players_rows, guilds_rows)
    guild_rows = [row for row in guilds_rows if _guild_id(row) in uploadable]
    logger.info(
        "Selection import | players=%d | guilds=%d | uploadable_guilds=%d",
        len(players_rows), len(guilds_rows), len(guild_rows),
    )

    if guild_rows:
        try:
            report = import_csv_to_db(
                store, "guilds", rows=guild_rows, on_progress=on_progress, config=config
            )
            result.reports.append(report)
            result.guilds = list(report.guild_results)
        except (ImportInputError, GuildWriteError, DocumentStoreError, sqlite3.Error) as exc:
            logger.error("Guild import failed: %s", exc)
            result.ok = False

    try:
        report = import_csv_to_db(
            store, "players", rows=players_rows, on_progress=on_progress, config=config
        )
        result.reports.append(report)
        result.players = list(report.player_results)
    except (ImportInputError, DocumentStoreError, sqlite3.Error) as exc:
        logger.error("Player import failed: %s", exc)
        result.ok = False

    return result


def _guild_id(row: Row) -> str:
    value = pick_by_canon(row, _GUILD_ID)
    return "" if value is None else str(value).strip()


def _member_count(value: Any) -> Optional[float]:
    raw = "" if value is None else str(value).strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None
