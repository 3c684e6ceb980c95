"""
Per-entity grouping and the monotonic "latest" write guard.

Records are grouped by entity id and sorted by timestamp; the chronologically
last record is the candidate latest. It replaces the stored latest document
only when strictly newer than what is stored, so replays and out-of-order
imports never move an entity's latest backwards.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from numbers import Real
from typing import Any, Optional

from scanvault.db.batch_writer import PendingWrite
from scanvault.db.document_store import SqliteDocumentStore
from scanvault.ingestion.scan_persister import ENTITY_ID_FIELD
from scanvault.models.records import GuildRecord, ParsedRecord, PlayerRecord
from scanvault.utils.text import edge_ngrams, fold, name_tokens
from scanvault.utils.time_utils import coerce_epoch_seconds, parse_timestamp_sec

logger = logging.getLogger(__name__)

LATEST_DOC_ID = "latest"


def latest_collection(kind: str, entity_id: str) -> str:
    return f"{kind}/{entity_id}/latest"


def group_by_entity(records: Iterable[ParsedRecord]) -> dict[str, list[ParsedRecord]]:
    """Group records by entity id, each group sorted ascending by timestamp.

    Groups keep first-seen entity order; the sort is stable, so records with
    equal timestamps keep input order.
    """
    groups: dict[str, list[ParsedRecord]] = {}
    for record in records:
        groups.setdefault(record.entity_id, []).append(record)
    for group in groups.values():
        group.sort(key=lambda r: r.timestamp_sec)
    return groups


def read_prev_latest_sec(doc: Optional[Mapping[str, Any]]) -> int:
    """Timestamp (Unix seconds) of a stored latest document; 0 if unknown.

    Sources, first usable one wins:
      1. ``values.Timestamp`` (the exported cell)
      2. ``timestampRaw``
      3. numeric ``ts``
      4. numeric ``timestamp`` (millis above the epoch threshold)
      5. ``timestamp`` as a date string
    """
    if not doc:
        return 0

    values = doc.get("values")
    if isinstance(values, Mapping) and values.get("Timestamp") is not None:
        parsed = parse_timestamp_sec(values["Timestamp"])
        if parsed is not None:
            return parsed

    if doc.get("timestampRaw") is not None:
        parsed = parse_timestamp_sec(doc["timestampRaw"])
        if parsed is not None:
            return parsed

    ts = doc.get("ts")
    if _is_number(ts):
        return int(ts)

    stamp = doc.get("timestamp")
    if _is_number(stamp):
        return coerce_epoch_seconds(stamp)
    if isinstance(stamp, str):
        parsed = parse_timestamp_sec(stamp)
        if parsed is not None:
            return parsed

    return 0


class LatestCache:
    """Stored-latest timestamps read during one import run, keyed by path."""

    def __init__(self, store: SqliteDocumentStore) -> None:
        self.store = store
        self._prev_sec: dict[str, int] = {}

    def prev_sec(self, kind: str, entity_id: str) -> int:
        collection = latest_collection(kind, entity_id)
        path = f"{collection}/{LATEST_DOC_ID}"
        if path not in self._prev_sec:
            self._prev_sec[path] = read_prev_latest_sec(self.store.get(collection, LATEST_DOC_ID))
        return self._prev_sec[path]


@dataclass(frozen=True)
class LatestDecision:
    entity_id: str
    candidate: ParsedRecord
    prev_sec: int

    @property
    def should_write(self) -> bool:
        return self.candidate.timestamp_sec > self.prev_sec


def decide_latest(cache: LatestCache, kind: str, group: list[ParsedRecord]) -> LatestDecision:
    """Compare the newest record of ``group`` against the stored latest."""
    candidate = group[-1]
    decision = LatestDecision(
        entity_id=candidate.entity_id,
        candidate=candidate,
        prev_sec=cache.prev_sec(kind, candidate.entity_id),
    )
    if not decision.should_write:
        logger.debug(
            "Latest unchanged | %s/%s | candidate=%d | stored=%d",
            kind, candidate.entity_id, candidate.timestamp_sec, decision.prev_sec,
        )
    return decision


def build_latest_doc(record: ParsedRecord, updated_at: str) -> dict[str, Any]:
    """Latest document for ``record``, with search and dropdown fields."""
    name_for_search = record.name or ""
    tokens = name_tokens(name_for_search)
    doc: dict[str, Any] = {
        ENTITY_ID_FIELD[record.kind]: record.entity_id,
        "server": record.server,
        "timestamp": record.timestamp_sec,
        "timestampRaw": record.timestamp_raw,
        "name": record.name,
        "values": dict(record.raw),
        "updatedAt": updated_at,
        "nameFold": fold(name_for_search),
        "nameTokens": tokens,
        "nameNgrams": edge_ngrams(tokens),
    }
    if isinstance(record, PlayerRecord):
        doc.update(
            level=record.level,
            className=record.class_name,
            guildName=record.guild_name,
            guildNameFold=fold(record.guild_name) if record.guild_name else None,
        )
    elif isinstance(record, GuildRecord):
        doc.update(memberCount=record.member_count, hofRank=record.hof_rank)
    return doc


def build_latest_write(record: ParsedRecord, updated_at: str) -> PendingWrite:
    return PendingWrite(
        collection=latest_collection(record.kind, record.entity_id),
        doc_id=LATEST_DOC_ID,
        data=build_latest_doc(record, updated_at),
        mode="merge",
    )


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)
