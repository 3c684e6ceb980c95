"""
Time helpers for scan timestamps and period bucketing.

Key concepts:
  - Scan timestamps arrive as free text in exports (epoch millis, epoch
    seconds, German ``dd.mm.yyyy HH:mm`` or ISO 8601) and are reduced to Unix
    seconds by ``parse_timestamp_sec``.
  - Period ids and bounds (ISO week, calendar month) are computed in the
    **local** timezone of the importing process, matching how scans are
    displayed to players.
  - Leaderboard date keys are local ``YYYYMMDD`` integers.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

# Stored timestamps above this are epoch milliseconds, not seconds.
EPOCH_MILLIS_THRESHOLD = 9_999_999_999

_EPOCH_MILLIS_RE = re.compile(r"^\d{13}$")
_EPOCH_SECONDS_RE = re.compile(r"^\d{10}$")
_GERMAN_DATETIME_RE = re.compile(
    r"^(\d{1,2})\.(\d{1,2})\.(\d{4})\s+(\d{1,2}):(\d{2})(?::(\d{2}))?$"
)
_ISO_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_timestamp_sec(value: Any) -> Optional[int]:
    """Parse a scan timestamp cell into Unix seconds.

    Accepted forms, tried in order:
      1. 13-digit epoch milliseconds → floor-divided by 1000.
      2. 10-digit epoch seconds → as-is.
      3. ``dd.mm.yyyy HH:mm[:ss]`` in local time. Out-of-range day/month
         values roll over into the following month/year.
      4. ISO 8601 (``Z`` suffix accepted). A bare ``YYYY-MM-DD`` is taken as
         UTC midnight; a date-time without offset as local time.

    Args:
        value: Raw cell value (any type; stringified and stripped).

    Returns:
        Integer Unix seconds, or ``None`` if no form matches or the result
        falls before the Unix epoch or outside the representable range.
    """
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None

    if _EPOCH_MILLIS_RE.match(s):
        return int(s) // 1000
    if _EPOCH_SECONDS_RE.match(s):
        return int(s)

    m = _GERMAN_DATETIME_RE.match(s)
    if m:
        parsed = _local_from_parts(
            year=int(m.group(3)),
            month_index=int(m.group(2)) - 1,
            day=int(m.group(1)),
            hour=int(m.group(4)),
            minute=int(m.group(5)),
            second=int(m.group(6)) if m.group(6) else 0,
        )
        if parsed is not None:
            return parsed if parsed >= 0 else None

    parsed = _parse_iso_sec(s)
    return parsed if parsed is not None and parsed >= 0 else None


def coerce_epoch_seconds(value: float) -> int:
    """Return ``value`` as seconds, dividing by 1000 when it looks like millis.

    This is a magnitude heuristic, not a typed conversion: any value above
    ``EPOCH_MILLIS_THRESHOLD`` is treated as milliseconds.
    """
    if value > EPOCH_MILLIS_THRESHOLD:
        return int(value // 1000)
    return int(value)


def week_id_from_sec(sec: int) -> str:
    """ISO week id ``YYYY-Www`` of the local calendar day containing ``sec``."""
    iso = datetime.fromtimestamp(sec).date().isocalendar()
    return f"{iso[0]}-W{iso[1]:02d}"


def week_bounds_from_sec(sec: int) -> tuple[int, int]:
    """Return ``(start, end)`` of the local Monday–Sunday week containing ``sec``.

    ``start`` is Monday 00:00:00, ``end`` is ``start + 7 days - 1s``.
    """
    local = datetime.fromtimestamp(sec)
    monday = datetime(local.year, local.month, local.day) - timedelta(days=local.weekday())
    start = int(monday.timestamp())
    return start, start + 7 * 86400 - 1


def month_id_from_sec(sec: int) -> str:
    """Calendar month id ``YYYY-MM`` of the local date containing ``sec``."""
    local = datetime.fromtimestamp(sec)
    return f"{local.year}-{local.month:02d}"


def month_bounds_from_sec(sec: int) -> tuple[int, int]:
    """Return ``(start, end)`` of the local calendar month containing ``sec``.

    ``start`` is the 1st at 00:00:00, ``end`` the last day at 23:59:59.
    """
    local = datetime.fromtimestamp(sec)
    first = datetime(local.year, local.month, 1)
    if local.month == 12:
        next_first = datetime(local.year + 1, 1, 1)
    else:
        next_first = datetime(local.year, local.month + 1, 1)
    return int(first.timestamp()), int(next_first.timestamp()) - 1


def date_key_from_sec(sec: Optional[int]) -> int:
    """Local calendar date of ``sec`` as an integer ``YYYYMMDD``.

    Falls back to today when ``sec`` is ``None`` or 0.
    """
    d = datetime.fromtimestamp(sec).date() if sec else date.today()
    return d.year * 10000 + d.month * 100 + d.day


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info."""
    return datetime.now(tz=timezone.utc)


# ── Private helpers ────────────────────────────────────────────────────────────

def _local_from_parts(
    year: int,
    month_index: int,
    day: int,
    hour: int,
    minute: int,
    second: int,
) -> Optional[int]:
    """Build a local timestamp, rolling over out-of-range components."""
    year += month_index // 12
    month_index %= 12
    try:
        base = datetime(year, month_index + 1, 1)
    except ValueError:
        return None
    try:
        local = base + timedelta(days=day - 1, hours=hour, minutes=minute, seconds=second)
        return int(local.timestamp())
    except (OverflowError, ValueError, OSError):
        return None


def _parse_iso_sec(s: str) -> Optional[int]:
    """Parse an ISO 8601 string; ``None`` if it is not one."""
    try:
        parsed = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        return None
    if _ISO_DATE_ONLY_RE.match(s):
        parsed = parsed.replace(tzinfo=timezone.utc)
    try:
        return int(parsed.timestamp())
    except (OverflowError, ValueError, OSError):
        return None
