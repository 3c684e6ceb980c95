"""
Canonical field resolution for free-form export headers.

Exports from different tools spell the same column differently
(``"Guild Identifier"``, ``"guild_identifier"``, ``"GuildIdentifier"``).
Every header is reduced to a *canonical key* (lower-cased with whitespace,
underscores and non-breaking spaces removed) and lookups go through that key.

Absent fields resolve to ``None``; deciding whether that is an error is left
to the caller.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any, Optional

_CANON_STRIP_RE = re.compile(r"[\s_\u00a0]+")


def canon(header: str) -> str:
    """Return the canonical key of a header name."""
    return _CANON_STRIP_RE.sub("", header.lower())


def is_blank(value: Any) -> bool:
    """``True`` for ``None`` and for values whose string form is empty."""
    return value is None or str(value) == ""


class HeaderLookup:
    """Map canonical keys to the first observed header that produces them.

    Args:
        headers: Observed headers in file order.
    """

    def __init__(self, headers: Iterable[str]) -> None:
        self.headers: list[str] = list(headers)
        self._by_canon: dict[str, str] = {}
        for header in self.headers:
            self._by_canon.setdefault(canon(header), header)

    def header_for(self, canon_key: str) -> Optional[str]:
        """Observed header for ``canon_key``, or ``None``."""
        return self._by_canon.get(canon_key)

    def pick(self, row: Mapping[str, Any], canon_key: str) -> Any:
        """Value of ``canon_key`` in ``row``.

        Uses the header lookup first; if that header is not present in this
        row, falls back to a linear scan of the row's own keys.
        """
        header = self._by_canon.get(canon_key)
        if header is not None and header in row:
            return row[header]
        return pick_by_canon(row, canon_key)

    def pick_any(self, row: Mapping[str, Any], canon_keys: Iterable[str]) -> Any:
        """First non-empty value across ``canon_keys`` (aliases), or ``None``."""
        for key in canon_keys:
            value = self.pick(row, key)
            if not is_blank(value):
                return value
        return None


def pick_by_canon(row: Mapping[str, Any], canon_key: str) -> Any:
    """Linear scan of ``row`` for the first key whose canonical form matches."""
    for key, value in row.items():
        if canon(key) == canon_key:
            return value
    return None


def infer_headers(rows: Iterable[Mapping[str, Any]]) -> list[str]:
    """Union of row keys in first-seen order."""
    seen: dict[str, None] = {}
    for row in rows:
        for key in row:
            seen.setdefault(key, None)
    return list(seen)
