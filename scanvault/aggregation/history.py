"""
Weekly and monthly history buckets.

An entity's records from one import are bucketed by local ISO week
(``YYYY-Www``) and calendar month (``YYYY-MM``). Each bucket reduces to one
value per observed header:

  - max-of columns (see ``AggregationConfig``): the raw cell with the largest
    numeric value, first one wins on ties; ``""`` if no cell is numeric
  - everything else: the last non-empty cell, scanning backward in time

Bucket documents are merge-written, so replaying the same import converges
on the same document.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Any, Optional

from scanvault.config import AggregationConfig
from scanvault.db.batch_writer import PendingWrite
from scanvault.ingestion.fields import canon
from scanvault.ingestion.scan_persister import ENTITY_ID_FIELD
from scanvault.models.records import ParsedRecord
from scanvault.utils.time_utils import (
    month_bounds_from_sec,
    month_id_from_sec,
    week_bounds_from_sec,
    week_id_from_sec,
)

_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")

WEEKLY = "history_weekly"
MONTHLY = "history_monthly"


class MaxFieldPolicy:
    """Decides which canonical column keys aggregate by maximum."""

    def __init__(self, config: Optional[AggregationConfig] = None) -> None:
        config = config or AggregationConfig()
        self.keys = frozenset(canon(f) for f in config.max_fields)
        self.substrings = tuple(canon(s) for s in config.max_substrings)

    def __call__(self, canon_key: str) -> bool:
        return canon_key in self.keys or any(s in canon_key for s in self.substrings)


def numeric_value(cell: Any) -> Optional[float]:
    """Number left after stripping everything but digits, ``.`` and ``-``."""
    cleaned = _NON_NUMERIC_RE.sub("", str(cell))
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def aggregate_values(
    records: Sequence[ParsedRecord],
    headers: Sequence[str],
    is_max_field: MaxFieldPolicy,
) -> dict[str, Any]:
    """Reduce ``records`` (sorted ascending by time) to one value per header."""
    out: dict[str, Any] = {}
    for header in headers:
        if is_max_field(canon(header)):
            best: Optional[float] = None
            best_raw: Any = ""
            for record in records:
                cell = record.raw.get(header)
                if cell is None or cell == "":
                    continue
                number = numeric_value(cell)
                if number is not None and (best is None or number > best):
                    best, best_raw = number, cell
            out[header] = best_raw
        else:
            chosen: Any = ""
            for record in reversed(records):
                cell = record.raw.get(header)
                if cell is not None and str(cell) != "":
                    chosen = cell
                    break
            out[header] = chosen
    return out


def bucket_records(
    records: Sequence[ParsedRecord],
) -> tuple[dict[str, list[ParsedRecord]], dict[str, list[ParsedRecord]]]:
    """Split records into ``(weekly, monthly)`` buckets keyed by period id."""
    weekly: dict[str, list[ParsedRecord]] = {}
    monthly: dict[str, list[ParsedRecord]] = {}
    for record in records:
        weekly.setdefault(week_id_from_sec(record.timestamp_sec), []).append(record)
        monthly.setdefault(month_id_from_sec(record.timestamp_sec), []).append(record)
    for bucket in (*weekly.values(), *monthly.values()):
        bucket.sort(key=lambda r: r.timestamp_sec)
    return weekly, monthly


def build_history_writes(
    records: Sequence[ParsedRecord],
    headers: Sequence[str],
    is_max_field: MaxFieldPolicy,
    updated_at: str,
) -> tuple[list[PendingWrite], list[PendingWrite]]:
    """Merge writes for every weekly and monthly bucket of one entity.

    Returns:
        ``(weekly_writes, monthly_writes)``.
    """
    weekly, monthly = bucket_records(records)
    weekly_writes = [
        _bucket_write(WEEKLY, "weekId", wid, bucket, headers, is_max_field, updated_at)
        for wid, bucket in weekly.items()
    ]
    monthly_writes = [
        _bucket_write(MONTHLY, "monthId", ym, bucket, headers, is_max_field, updated_at)
        for ym, bucket in monthly.items()
    ]
    return weekly_writes, monthly_writes


def _bucket_write(
    subcollection: str,
    period_field: str,
    period_id: str,
    bucket: list[ParsedRecord],
    headers: Sequence[str],
    is_max_field: MaxFieldPolicy,
    updated_at: str,
) -> PendingWrite:
    last = bucket[-1]
    if subcollection == WEEKLY:
        start, end = week_bounds_from_sec(last.timestamp_sec)
    else:
        start, end = month_bounds_from_sec(last.timestamp_sec)
    return PendingWrite(
        collection=f"{last.kind}/{last.entity_id}/{subcollection}",
        doc_id=period_id,
        data={
            ENTITY_ID_FIELD[last.kind]: last.entity_id,
            period_field: period_id,
            "periodStartSec": start,
            "periodEndSec": end,
            "lastTs": last.timestamp_sec,
            "lastTimestampRaw": last.timestamp_raw,
            "server": last.server,
            "name": last.name,
            "values": aggregate_values(bucket, headers, is_max_field),
            "updatedAt": updated_at,
        },
        mode="merge",
    )
