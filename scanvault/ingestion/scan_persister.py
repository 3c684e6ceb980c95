"""
Scan persistence: one create-only document per accepted row.

Each record becomes ``{kind}/{entity_id}/scans/{timestamp_sec}``. The
idempotency key ``entity_id__server__timestamp_sec`` is reported back per
record with one of three statuses:

  created    the document was written
  duplicate  the store said it already exists (``already-exists``); on the
             batched path, which has no atomic create, a ``permission-denied``
             from overwriting a protected scan means the same thing
  error      anything else, with the failure message

Existing scan documents are never overwritten.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Optional

from scanvault.db.batch_writer import PendingWrite, WriteOutcome, WriteStrategy, commit_chunked
from scanvault.db.errors import is_duplicate_signature, is_permission_or_duplicate
from scanvault.models.records import ParsedRecord
from scanvault.models.report import ImportResultItem, ProgressCallback
from scanvault.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

ENTITY_ID_FIELD: dict[str, str] = {"players": "playerId", "guilds": "guildIdentifier"}


def scan_collection(kind: str, entity_id: str) -> str:
    return f"{kind}/{entity_id}/scans"


def build_scan_write(record: ParsedRecord, created_at: Optional[str] = None) -> PendingWrite:
    """Create-only write for one record's scan document."""
    data = {
        ENTITY_ID_FIELD[record.kind]: record.entity_id,
        "server": record.server,
        "timestamp": record.timestamp_sec,
        "timestampRaw": record.timestamp_raw,
        "name": record.name,
        "values": dict(record.raw),
        "createdAt": created_at or utcnow().isoformat(),
    }
    return PendingWrite(
        collection=scan_collection(record.kind, record.entity_id),
        doc_id=str(record.timestamp_sec),
        data=data,
        mode="create",
        key=record.scan_key,
    )


def classify_outcome(outcome: WriteOutcome, atomic_create: bool) -> ImportResultItem:
    """Map a write outcome to a ``created`` / ``duplicate`` / ``error`` result."""
    key = outcome.write.result_key
    if outcome.ok:
        return ImportResultItem(key=key, status="created")

    exc = outcome.error
    assert exc is not None
    if is_duplicate_signature(exc):
        return ImportResultItem(key=key, status="duplicate")
    if not atomic_create and is_permission_or_duplicate(exc):
        return ImportResultItem(key=key, status="duplicate", message=str(exc))
    return ImportResultItem(key=key, status="error", message=str(exc))


def persist_scans(
    strategy: WriteStrategy,
    records: Sequence[ParsedRecord],
    kind: str,
    chunk_size: int = 120,
    on_progress: Optional[ProgressCallback] = None,
    pause_s: float = 0.0,
) -> list[ImportResultItem]:
    """Write scan documents and return one result per record, in input order.

    On a strategy without atomic creates every scan is committed on its own,
    so one duplicate never fails its siblings.
    """
    if not records:
        return []

    created_at = utcnow().isoformat()
    ops = [build_scan_write(r, created_at) for r in records]
    tallies = {"created": 0, "duplicate": 0, "error": 0}
    results: list[ImportResultItem] = []

    def on_outcome(outcome: WriteOutcome) -> None:
        item = classify_outcome(outcome, strategy.atomic_create)
        tallies[item.status] += 1
        results.append(item)

    commit_chunked(
        strategy,
        ops,
        chunk_size=chunk_size if strategy.atomic_create else 1,
        pass_name="scans",
        on_progress=on_progress,
        pause_s=pause_s,
        kind=kind,
        on_outcome=on_outcome,
        tally=lambda: dict(tallies),
    )

    logger.info(
        "Scans persisted | kind=%s | created=%d | duplicate=%d | error=%d",
        kind, tallies["created"], tallies["duplicate"], tallies["error"],
    )
    return results
