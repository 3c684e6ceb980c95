"""
Row parser: raw export rows → typed :class:`PlayerRecord` / :class:`GuildRecord`.

Input is either pre-split rows (``list[dict[str, str]]``, e.g. from an upload
preview) or the raw export text, decoded by :mod:`scanvault.ingestion.csv_text`.

Per-row checks run in a fixed order and each failure bumps its own counter;
a skipped row never fails the batch:
  1. identifier empty        → ``missing_identifier``
  2. timestamp unparsable    → ``bad_timestamp``
  3. server empty            → ``missing_server``

Column aliases (matched canonically, see :mod:`scanvault.ingestion.fields`):
  players  id       → ``ID``, then ``Identifier``
           guild    → ``Guild Identifier`` / ``Guild``
           level    → ``Level``, ``Lvl``, ``Stufe``
           class    → ``Class``, ``ClassID``, ``Class ID``, ``CharClass``, ``Klasse``
  guilds   id       → ``Guild Identifier``
           members  → ``Guild Member Count``
           hof      → ``Hall of Fame Rank``, ``HoF``, ``Rank``, ``Guild Rank``
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import ValidationError

from scanvault.ingestion.csv_text import decode_csv_text
from scanvault.ingestion.fields import HeaderLookup, canon, infer_headers, is_blank
from scanvault.models.records import GuildRecord, PlayerRecord
from scanvault.taxonomy.player_classes import parse_class_value
from scanvault.utils.time_utils import parse_timestamp_sec

logger = logging.getLogger(__name__)

Row = Mapping[str, Any]

COL_ID = canon("ID")
COL_IDENTIFIER = canon("Identifier")
COL_GUILD_IDENTIFIER = canon("Guild Identifier")
COL_SERVER = canon("Server")
COL_NAME = canon("Name")
COL_TIMESTAMP = canon("Timestamp")
COL_GUILD = canon("Guild")
COL_MEMBER_COUNT = canon("Guild Member Count")

LEVEL_KEYS = [canon("Level"), canon("Lvl"), canon("Stufe")]
CLASS_KEYS = [
    canon("Class"), canon("ClassID"), canon("Class ID"), canon("CharClass"), canon("Klasse"),
]
HOF_KEYS = [canon("Hall of Fame Rank"), canon("HoF"), canon("Rank"), canon("Guild Rank")]

_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")


@dataclass
class ParseStats:
    """Skip counters for one parse pass."""

    missing_identifier: int = 0
    bad_timestamp: int = 0
    missing_server: int = 0

    @property
    def skipped(self) -> int:
        return self.missing_identifier + self.bad_timestamp + self.missing_server


@dataclass
class PlayerParseResult:
    rows: list[PlayerRecord] = field(default_factory=list)
    stats: ParseStats = field(default_factory=ParseStats)
    headers: list[str] = field(default_factory=list)


@dataclass
class GuildParseResult:
    rows: list[GuildRecord] = field(default_factory=list)
    stats: ParseStats = field(default_factory=ParseStats)
    headers: list[str] = field(default_factory=list)


def to_number_loose(value: Any) -> Optional[float]:
    """Parse a number after dropping everything but digits, ``.`` and ``-``.

    ``"1.234 Gold"`` → ``1.234``; ``""``, ``"n/a"`` and ``"1.2.3"`` → ``None``.
    """
    if is_blank(value):
        return None
    cleaned = _NON_NUMERIC_RE.sub("", str(value))
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def parse_level_value(value: Any) -> Optional[int]:
    """Loose number truncated towards zero, or ``None``."""
    number = to_number_loose(value)
    return int(number) if number is not None else None


def parse_players(
    rows: Sequence[Row],
    headers: Optional[Sequence[str]] = None,
) -> PlayerParseResult:
    """Parse player rows.

    Args:
        rows: Row dicts (``header → cell``).
        headers: Observed header list; inferred from ``rows`` when empty.

    Returns:
        :class:`PlayerParseResult` with accepted records, skip stats and the
        resolved header list.
    """
    resolved = list(headers) if headers else infer_headers(rows)
    lookup = HeaderLookup(resolved)
    result = PlayerParseResult(headers=resolved)

    for row in rows:
        common = _parse_common(row, lookup, [COL_ID, COL_IDENTIFIER], result.stats)
        if common is None:
            continue

        class_id, class_name = parse_class_value(lookup.pick_any(row, CLASS_KEYS))
        try:
            record = PlayerRecord(
                **common,
                guild_identifier=_text_or_none(lookup.pick(row, COL_GUILD_IDENTIFIER)),
                guild_name=_text_or_none(lookup.pick(row, COL_GUILD)),
                level=_first_level(row, lookup),
                class_id=class_id,
                class_name=class_name,
            )
        except ValidationError as exc:
            _reject(common, exc, result.stats)
            continue
        result.rows.append(record)

    _log_stats("players", len(rows), len(result.rows), result.stats)
    return result


def parse_guilds(
    rows: Sequence[Row],
    headers: Optional[Sequence[str]] = None,
) -> GuildParseResult:
    """Parse guild rows. See :func:`parse_players` for arguments."""
    resolved = list(headers) if headers else infer_headers(rows)
    lookup = HeaderLookup(resolved)
    result = GuildParseResult(headers=resolved)

    for row in rows:
        common = _parse_common(row, lookup, [COL_GUILD_IDENTIFIER], result.stats)
        if common is None:
            continue

        try:
            record = GuildRecord(
                **common,
                member_count=to_number_loose(lookup.pick(row, COL_MEMBER_COUNT)),
                hof_rank=to_number_loose(lookup.pick_any(row, HOF_KEYS)),
            )
        except ValidationError as exc:
            _reject(common, exc, result.stats)
            continue
        result.rows.append(record)

    _log_stats("guilds", len(rows), len(result.rows), result.stats)
    return result


def parse_players_text(text: str) -> PlayerParseResult:
    """Decode raw export text and parse it as player rows."""
    decoded = decode_csv_text(text)
    return parse_players(decoded.rows, decoded.headers)


def parse_guilds_text(text: str) -> GuildParseResult:
    """Decode raw export text and parse it as guild rows."""
    decoded = decode_csv_text(text)
    return parse_guilds(decoded.rows, decoded.headers)


# ── Private helpers ────────────────────────────────────────────────────────────

def _parse_common(
    row: Row,
    lookup: HeaderLookup,
    id_keys: list[str],
    stats: ParseStats,
) -> Optional[dict[str, Any]]:
    """Resolve id, timestamp, server and name; ``None`` (and a stat bump) on skip."""
    entity_id = ""
    for key in id_keys:
        value = lookup.pick(row, key)
        if value is not None:
            entity_id = str(value).strip()
            break
    if not entity_id:
        stats.missing_identifier += 1
        return None

    ts_raw = lookup.pick(row, COL_TIMESTAMP)
    ts_sec = parse_timestamp_sec(ts_raw)
    if ts_sec is None:
        stats.bad_timestamp += 1
        return None

    server = _text_or_none(lookup.pick(row, COL_SERVER))
    if server is None:
        stats.missing_server += 1
        return None

    name = lookup.pick(row, COL_NAME)
    return {
        "entity_id": entity_id,
        "server": server.upper(),
        "name": str(name) if name is not None and str(name).strip() else None,
        "timestamp_sec": ts_sec,
        "timestamp_raw": None if ts_raw is None else str(ts_raw),
        "raw": {str(k): "" if v is None else str(v) for k, v in row.items()},
    }


def _text_or_none(value: Any) -> Optional[str]:
    """Trimmed string, or ``None`` when empty."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _reject(common: dict[str, Any], exc: ValidationError, stats: ParseStats) -> None:
    """Count a row whose resolved fields fail record validation."""
    stats.bad_timestamp += 1
    logger.debug(
        "Row rejected | id=%s | timestamp=%r | %d validation error(s)",
        common["entity_id"], common["timestamp_raw"], exc.error_count(),
    )


def _first_level(row: Row, lookup: HeaderLookup) -> Optional[int]:
    """First level alias whose value parses as a number."""
    for key in LEVEL_KEYS:
        level = parse_level_value(lookup.pick(row, key))
        if level is not None:
            return level
    return None


def _log_stats(kind: str, total: int, accepted: int, stats: ParseStats) -> None:
    if stats.skipped:
        logger.info(
            "Parsed %s | rows=%d | accepted=%d | missing_identifier=%d | "
            "bad_timestamp=%d | missing_server=%d",
            kind, total, accepted,
            stats.missing_identifier, stats.bad_timestamp, stats.missing_server,
        )
    else:
        logger.debug("Parsed %s | rows=%d | accepted=%d", kind, total, accepted)
