"""
Import run outputs: progress events, per-record results and the final report.

These are plain dataclasses, built up while an import runs; none of them are
persisted as-is.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from typing import Literal, Optional

ProgressPhase = Literal["prepare", "write", "done"]
WritePass = Literal["scans", "latest", "history"]
RecordStatus = Literal["created", "duplicate", "error"]


@dataclass(frozen=True)
class ImportProgress:
    """One progress event.

    ``current``/``total`` count documents within ``pass_name``. The
    ``created``/``duplicate``/``error`` tallies are only set on the scans pass.
    """

    phase: ProgressPhase
    current: int
    total: int
    pass_name: Optional[WritePass] = None
    created: Optional[int] = None
    duplicate: Optional[int] = None
    error: Optional[int] = None
    kind: Optional[str] = None


ProgressCallback = Callable[[ImportProgress], None]


@dataclass(frozen=True)
class ImportResultItem:
    """Outcome of one scan create, keyed by the scan idempotency key."""

    key: str
    status: RecordStatus
    message: Optional[str] = None


@dataclass
class ImportCounts:
    """Written/skipped counters for one import run."""

    written_scan_players: int = 0
    written_latest_players: int = 0
    written_weekly_players: int = 0
    written_monthly_players: int = 0
    written_scan_guilds: int = 0
    written_latest_guilds: int = 0
    written_weekly_guilds: int = 0
    written_monthly_guilds: int = 0
    written_index_docs: int = 0

    skipped_bad_ts: int = 0
    skipped_missing_identifier: int = 0
    skipped_missing_server: int = 0
    skipped_missing_guild_identifier: int = 0
    skipped_bad_ts_guild: int = 0


@dataclass
class ImportReport:
    """Summary returned by every import run."""

    detected_type: Optional[str]
    counts: ImportCounts = field(default_factory=ImportCounts)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    duration_ms: float = 0.0
    player_results: list[ImportResultItem] = field(default_factory=list)
    guild_results: list[ImportResultItem] = field(default_factory=list)

    @property
    def results(self) -> list[ImportResultItem]:
        """Scan results for the imported kind."""
        return self.player_results if self.detected_type == "players" else self.guild_results

    def status_counts(self) -> dict[str, int]:
        """Tally of ``created`` / ``duplicate`` / ``error`` across scan results."""
        tally = {"created": 0, "duplicate": 0, "error": 0}
        for item in self.results:
            tally[item.status] += 1
        return tally

    def to_dict(self) -> dict:
        return asdict(self)
