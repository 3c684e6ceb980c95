"""
Name folding and prefix-search fields for latest documents.

  - ``fold``: diacritics stripped, lower-cased (``"Ærøskøbing Élan"`` →
    ``"ærøskøbing elan"``; only combining marks are removed).
  - ``name_tokens``: ASCII word tokens of the folded name, length >= 2,
    de-duplicated in first-seen order.
  - ``edge_ngrams``: every prefix (length >= 1) of every token.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Any

_TOKEN_SPLIT_RE = re.compile(r"[^a-z0-9]+")


def fold(value: Any) -> str:
    """Strip combining diacritics and lower-case ``value`` (``None`` → ``""``)."""
    s = "" if value is None else str(value)
    decomposed = unicodedata.normalize("NFD", s)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.lower()


def name_tokens(value: Any) -> list[str]:
    """Split the folded name into unique tokens of at least two characters."""
    folded = fold(value)
    if not folded:
        return []
    seen: dict[str, None] = {}
    for part in _TOKEN_SPLIT_RE.split(folded):
        if len(part) >= 2:
            seen.setdefault(part, None)
    return list(seen)


def edge_ngrams(tokens: list[str]) -> list[str]:
    """All distinct prefixes of ``tokens``, in first-seen order."""
    seen: dict[str, None] = {}
    for token in tokens:
        for i in range(1, len(token) + 1):
            seen.setdefault(token[:i], None)
    return list(seen)
