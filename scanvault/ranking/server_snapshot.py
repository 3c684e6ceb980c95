"""
Per-server derived snapshot: the top players of one server by ``sum``.

One document per server in ``stats_cache_player_derived``, holding at most
``limit`` compact player entries. Updates happen atomically at the end of an
import:

  - a player already in the snapshot is replaced in place
  - a new player is added while there is room
  - otherwise a new player evicts the lowest ``sum`` entry, but only when its
    own ``sum`` is larger

Entries are stored sorted by ``sum`` descending, then ``playerId``.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from typing import Any, Optional

from scanvault.db.document_store import SqliteDocumentStore
from scanvault.models.records import PlayerRecord
from scanvault.ranking.derived import DerivedStats
from scanvault.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

SNAPSHOT_COLLECTION = "stats_cache_player_derived"
SERVERS_COLLECTION = "servers"


def snapshot_doc_id(server_key: str) -> str:
    return f"snapshot_{server_key}_player_derived"


def normalize_server_host(value: Any) -> str:
    return "" if value is None else str(value).strip().lower()


def load_server_host_map(store: SqliteDocumentStore) -> dict[str, str]:
    """``{host: server_code}`` from the server registry."""
    host_map: dict[str, str] = {}
    for code, data in store.list_documents(SERVERS_COLLECTION):
        host = normalize_server_host(data.get("host"))
        if host:
            host_map[host] = code
    return host_map


def register_server(store: SqliteDocumentStore, code: str, host: str) -> None:
    store.set(SERVERS_COLLECTION, code, {"host": normalize_server_host(host)}, merge=True)


def build_snapshot_entry(
    record: PlayerRecord,
    derived: DerivedStats,
    server_key: str,
) -> dict[str, Any]:
    last_scan = (record.timestamp_raw or "").strip() or str(record.timestamp_sec)
    return {
        "playerId": record.entity_id,
        "server": server_key,
        "name": record.name or "",
        "class": derived.class_name or record.class_name or "",
        "guild": record.guild_name,
        "lastScan": last_scan,
        "level": _finite(record.level if record.level is not None else derived.level),
        "con": _finite(derived.con),
        "main": _finite(derived.main),
        "mine": _finite(derived.mine),
        "ratio": _finite(derived.ratio),
        "sum": _finite(derived.sum),
        "treasury": _finite(derived.treasury),
    }


def merge_snapshot_entries(
    existing: Sequence[Any],
    entries: Sequence[dict[str, Any]],
    limit: int,
) -> list[dict[str, Any]]:
    """Apply ``entries`` to ``existing`` under the replace/insert/evict rules."""
    by_id: dict[str, dict[str, Any]] = {}
    for raw in existing:
        if isinstance(raw, dict) and raw.get("playerId"):
            by_id[str(raw["playerId"])] = raw

    for entry in entries:
        pid = str(entry.get("playerId") or "")
        if not pid:
            continue
        if pid in by_id or len(by_id) < limit:
            by_id[pid] = entry
            continue
        min_id = min(by_id, key=lambda k: _sum_of(by_id[k]))
        if _sum_of(entry) > _sum_of(by_id[min_id]):
            del by_id[min_id]
            by_id[pid] = entry

    players = sorted(by_id.values(), key=lambda e: (-_sum_of(e), str(e.get("playerId", ""))))
    return players[:limit]


def upsert_player_derived_snapshot(
    store: SqliteDocumentStore,
    server_key: str,
    entries: Sequence[dict[str, Any]],
    limit: int = 500,
) -> Optional[str]:
    """Merge ``entries`` into one server's snapshot inside a single batch.

    Returns:
        The snapshot document id, or ``None`` when there was nothing to write.
    """
    if not entries:
        return None

    key = str(server_key or "all").strip() or "all"
    doc_id = snapshot_doc_id(key)
    with store.batch():
        current = store.get(SNAPSHOT_COLLECTION, doc_id) or {}
        players = merge_snapshot_entries(current.get("players") or [], entries, limit)
        store.set(
            SNAPSHOT_COLLECTION,
            doc_id,
            {"server": key, "updatedAt": utcnow().isoformat(), "players": players},
            merge=True,
        )
    store.commit()
    return doc_id


def _finite(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _sum_of(entry: dict[str, Any]) -> float:
    return _finite(entry.get("sum")) or 0.0
