"""
Parsed scan records: the typed boundary between raw export rows and the
import engine.

Two variants share a common base:
  1. ``PlayerRecord``: one player row; carries guild, level and class.
  2. ``GuildRecord``: one guild row; carries member count and HoF rank.

Both are frozen after construction. ``raw`` keeps the original
``header → cell`` mapping so scans, latest documents and history buckets can
store every column the export had.
"""

from __future__ import annotations

from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator

EntityKind = Literal["players", "guilds"]
VALID_KINDS: frozenset[str] = frozenset({"players", "guilds"})


class ScanRecord(BaseModel):
    """Fields common to every accepted scan row.

    Attributes:
        entity_id: Player id or guild identifier (non-empty).
        server: Upper-cased server name (non-empty).
        name: Display name, or ``None`` when the cell was empty.
        timestamp_sec: Scan time as Unix seconds.
        timestamp_raw: The timestamp cell exactly as exported.
        raw: The source row.
    """

    model_config = ConfigDict(frozen=True)

    entity_id: str
    server: str
    name: Optional[str] = None
    timestamp_sec: int
    timestamp_raw: Optional[str] = None
    raw: dict[str, str]

    @field_validator("entity_id", "server")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("entity_id and server must be non-empty.")
        return v

    @field_validator("timestamp_sec")
    @classmethod
    def validate_timestamp(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"timestamp_sec must be a non-negative Unix second count, got {v}.")
        return v

    @property
    def scan_key(self) -> str:
        """Idempotency key ``entity_id__server__timestamp_sec``."""
        return f"{self.entity_id}__{self.server}__{self.timestamp_sec}"


class PlayerRecord(ScanRecord):
    """One accepted player row."""

    kind: Literal["players"] = "players"
    guild_identifier: Optional[str] = None
    guild_name: Optional[str] = None
    level: Optional[int] = None
    class_id: Optional[int] = None
    class_name: Optional[str] = None


class GuildRecord(ScanRecord):
    """One accepted guild row."""

    kind: Literal["guilds"] = "guilds"
    member_count: Optional[float] = None
    hof_rank: Optional[float] = None


ParsedRecord = Union[PlayerRecord, GuildRecord]
