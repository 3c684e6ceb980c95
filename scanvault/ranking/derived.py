"""
Default derived-stats function for player latest writes.

The import engine calls a derive function once per player whose latest
document changes. Its ``sum`` is the leaderboard metric; ``group`` and
``server_key`` pick the ranking scopes. Any callable with the
``derive_for_player`` signature can be injected instead.

``sum`` is main attribute + constitution, where the main attribute follows
the class (see ``MAIN_ATTRIBUTE``). Base attribute columns are preferred;
total columns are used when no base value is present.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass
from typing import Any, Optional

from scanvault.ingestion.fields import HeaderLookup, canon
from scanvault.ingestion.row_parser import to_number_loose
from scanvault.taxonomy.player_classes import (
    MAIN_ATTRIBUTE,
    Attribute,
    class_group,
    class_id_from_name,
)

_SERVER_CODE_RE = re.compile(r"^[a-z]{1,4}\d+$")
_SERVER_CODE_SUFFIX_RE = re.compile(r"^([a-z]{1,4}\d+)[_.-]?(net|eu)$")
_SERVER_HOST_RE = re.compile(r"^([a-z]{1,4}\d+)\.sfgame\.(net|eu)$")
_SHORT_EU_RE = re.compile(r"^S(\d+)$")

ATTRIBUTE_KEYS: dict[Attribute, list[str]] = {
    Attribute.STRENGTH: ["Base Strength", "Stärke", "Strength"],
    Attribute.DEXTERITY: ["Base Dexterity", "Geschick", "Dexterity"],
    Attribute.INTELLIGENCE: ["Base Intelligence", "Intelligenz", "Intelligence"],
    Attribute.CONSTITUTION: ["Base Constitution", "Konstitution", "Constitution"],
    Attribute.LUCK: ["Base Luck", "Glück", "Luck"],
}
MINE_KEYS = ["Gem Mine", "Edelsteinmine"]
TREASURY_KEYS = ["Treasury", "Schatzkammer"]


@dataclass(frozen=True)
class DerivedInput:
    """Everything a derive function may look at for one player."""

    entity_id: str
    name: Optional[str]
    class_name: Optional[str]
    level: Optional[int]
    server: str
    values: Mapping[str, Any]
    timestamp: int
    updated_at: str
    guild_identifier: Optional[str] = None
    guild_name: Optional[str] = None


@dataclass(frozen=True)
class DerivedStats:
    sum: float
    group: str
    server_key: str
    class_name: Optional[str] = None
    level: Optional[int] = None
    main: Optional[float] = None
    con: Optional[float] = None
    ratio: Optional[float] = None
    mine: Optional[float] = None
    treasury: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


DeriveFn = Callable[[DerivedInput], DerivedStats]


def normalize_server_key(value: Any) -> Optional[str]:
    """Short server code for a server name or host.

    ``"eu1.sfgame.net"`` → ``"EU1"``, ``"s7"`` → ``"EU7"``, ``"f1_eu"`` → ``"F1"``;
    anything else is upper-cased and trimmed. Blank input gives ``None``.
    """
    trimmed = "" if value is None else str(value).strip()
    if not trimmed:
        return None
    lowered = trimmed.lower()
    if _SERVER_CODE_RE.match(lowered):
        return _code_alias(lowered)
    for pattern in (_SERVER_CODE_SUFFIX_RE, _SERVER_HOST_RE):
        m = pattern.match(lowered)
        if m:
            return _code_alias(m.group(1))
    return _code_alias(trimmed)


def derive_for_player(data: DerivedInput) -> DerivedStats:
    lookup = HeaderLookup(data.values.keys())
    attrs = {attr: _first_number(lookup, data.values, keys) for attr, keys in ATTRIBUTE_KEYS.items()}

    class_id = class_id_from_name(data.class_name) if data.class_name else None
    main_attr = MAIN_ATTRIBUTE.get(class_id) if class_id is not None else None
    main = attrs[main_attr] if main_attr is not None else None
    con = attrs[Attribute.CONSTITUTION]

    total = (main or 0.0) + (con or 0.0)
    ratio = main / con if main is not None and con else None

    return DerivedStats(
        sum=total,
        group=class_group(data.class_name),
        server_key=normalize_server_key(data.server) or "all",
        class_name=data.class_name,
        level=data.level,
        main=main,
        con=con,
        ratio=ratio,
        mine=_first_number(lookup, data.values, MINE_KEYS),
        treasury=_first_number(lookup, data.values, TREASURY_KEYS),
    )


def _first_number(lookup: HeaderLookup, values: Mapping[str, Any], keys: list[str]) -> Optional[float]:
    for key in keys:
        number = to_number_loose(lookup.pick(values, canon(key)))
        if number is not None:
            return number
    return None


def _code_alias(value: str) -> str:
    cleaned = value.strip().upper()
    m = _SHORT_EU_RE.match(cleaned)
    return f"EU{m.group(1)}" if m else cleaned
