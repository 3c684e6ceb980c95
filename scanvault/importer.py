"""
One-pass import of a player or guild export into the document store.

Flow for one invocation (single kind, strictly sequential):

  1. Decode/parse rows into typed records; skipped rows are only counted.
  2. Persist one create-only scan document per record (per-key results).
  3. Group records by entity. For each entity:
       - latest guard: queue a latest write only if strictly newer
       - players: derive stats, add to ranking scopes and server snapshots
       - bucket into weekly/monthly history writes
  4. Flush latest (+ index documents for players), then per-server
     snapshots (players), then history.

Failure handling:
  - bad input (no kind, unknown kind, no rows/raw) raises ``ImportInputError``
    before anything is written
  - scan conflicts are ``duplicate`` results, never errors
  - player latest/index/history write failures are listed in
    ``report.errors``; the run continues
  - guild latest/history failures with a permission or already-exists
    signature are logged and skipped; anything else raises
    ``GuildWriteError`` after the pass
  - writes already committed are never rolled back
"""

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Mapping, Sequence
from typing import Any, Optional

from scanvault.aggregation.history import MaxFieldPolicy, build_history_writes
from scanvault.aggregation.latest import LatestCache, build_latest_write, decide_latest, group_by_entity
from scanvault.config import AppConfig
from scanvault.db.batch_writer import (
    PendingWrite,
    WriteOutcome,
    WriteStrategy,
    commit_chunked,
    select_write_strategy,
)
from scanvault.db.document_store import SqliteDocumentStore
from scanvault.db.errors import DocumentStoreError, is_permission_or_duplicate
from scanvault.ingestion.csv_text import decode_csv_text
from scanvault.ingestion.fields import infer_headers
from scanvault.ingestion.row_parser import parse_guilds, parse_players
from scanvault.ingestion.scan_persister import persist_scans
from scanvault.models.records import VALID_KINDS, GuildRecord, PlayerRecord
from scanvault.models.report import ImportReport, ProgressCallback
from scanvault.ranking.derived import DeriveFn, DerivedInput, derive_for_player
from scanvault.ranking.index_builder import ScopeAccumulator, build_index_writes
from scanvault.ranking.server_snapshot import (
    build_snapshot_entry,
    load_server_host_map,
    normalize_server_host,
    upsert_player_derived_snapshot,
)
from scanvault.utils.time_utils import date_key_from_sec, utcnow

logger = logging.getLogger(__name__)

Row = Mapping[str, Any]


class ImportInputError(ValueError):
    """The import was called without usable input; nothing was written."""


class GuildWriteError(RuntimeError):
    """A guild latest/history write failed for a reason other than permission/duplicate."""


def import_csv_to_db(
    store: SqliteDocumentStore,
    kind: Optional[str],
    rows: Optional[Sequence[Row]] = None,
    raw: Optional[str] = None,
    on_progress: Optional[ProgressCallback] = None,
    config: Optional[AppConfig] = None,
    derive: DeriveFn = derive_for_player,
    prefer_bulk: Optional[bool] = None,
) -> ImportReport:
    """Import one batch of player or guild rows.

    Args:
        store: Target document store.
        kind: ``"players"`` or ``"guilds"``.
        rows: Pre-split rows (``header → cell``). Takes precedence over ``raw``.
        raw: Full export text.
        on_progress: Optional progress callback.
        config: Application config; defaults are used when omitted.
        derive: Derived-stats function for player latest writes.
        prefer_bulk: Override ``config.database.bulk_writer``.

    Returns:
        :class:`ImportReport` for the run.

    Raises:
        ImportInputError: Missing/unknown ``kind`` or neither ``rows`` nor ``raw``.
        GuildWriteError: Non-benign guild latest/history write failure.
    """
    started = time.perf_counter()
    if not kind:
        raise ImportInputError('Import kind is missing: expected "players" or "guilds".')
    if kind not in VALID_KINDS:
        raise ImportInputError(f"Unknown import kind '{kind}': expected one of {sorted(VALID_KINDS)}.")

    source_rows, source_headers = _resolve_source(rows, raw)
    config = config or AppConfig()
    use_bulk = config.database.bulk_writer if prefer_bulk is None else prefer_bulk
    run = _ImportRun(
        store=store,
        kind=kind,
        config=config,
        strategy=select_write_strategy(store, prefer_bulk=use_bulk),
        on_progress=on_progress,
        report=ImportReport(detected_type=kind),
    )

    logger.info(
        "Import started | kind=%s | rows=%d | strategy=%s",
        kind, len(source_rows), run.strategy.name,
    )
    if kind == "players":
        _import_players(run, source_rows, source_headers, derive)
    else:
        _import_guilds(run, source_rows, source_headers)

    run.report.duration_ms = (time.perf_counter() - started) * 1000
    logger.info(
        "Import finished | kind=%s | %s | errors=%d | duration_ms=%.1f",
        kind, run.report.status_counts(), len(run.report.errors), run.report.duration_ms,
    )
    return run.report


# ── Run state ──────────────────────────────────────────────────────────────────

class _ImportRun:
    """Per-invocation state; discarded when the import returns."""

    def __init__(
        self,
        store: SqliteDocumentStore,
        kind: str,
        config: AppConfig,
        strategy: WriteStrategy,
        on_progress: Optional[ProgressCallback],
        report: ImportReport,
    ) -> None:
        self.store = store
        self.kind = kind
        self.config = config
        self.strategy = strategy
        self.on_progress = on_progress
        self.report = report
        self.latest_cache = LatestCache(store)
        self.max_policy = MaxFieldPolicy(config.aggregation)
        self.updated_at = utcnow().isoformat()

    @property
    def pause_s(self) -> float:
        return self.config.imports.inter_chunk_pause_ms / 1000

    def commit(self, ops: list[PendingWrite], chunk_size: int, pass_name: str) -> list[WriteOutcome]:
        if not ops:
            return []
        return commit_chunked(
            self.strategy,
            ops,
            chunk_size=chunk_size,
            pass_name=pass_name,  # type: ignore[arg-type]
            on_progress=self.on_progress,
            pause_s=self.pause_s,
            kind=self.kind,
        )

    def record_failures(self, outcomes: list[WriteOutcome]) -> None:
        for outcome in outcomes:
            if not outcome.ok:
                self.report.errors.append(f"{outcome.write.path}: {outcome.error}")


# ── Players ────────────────────────────────────────────────────────────────────

def _import_players(
    run: _ImportRun,
    source_rows: Sequence[Row],
    source_headers: list[str],
    derive: DeriveFn,
) -> None:
    parsed = parse_players(source_rows, source_headers)
    counts = run.report.counts
    counts.skipped_missing_identifier += parsed.stats.missing_identifier
    counts.skipped_bad_ts += parsed.stats.bad_timestamp
    counts.skipped_missing_server += parsed.stats.missing_server
    headers = parsed.headers or infer_headers(source_rows)

    scan_results = persist_scans(
        run.strategy,
        parsed.rows,
        "players",
        chunk_size=run.config.imports.scans_chunk_size,
        on_progress=run.on_progress,
        pause_s=run.pause_s,
    )
    run.report.player_results.extend(scan_results)
    counts.written_scan_players = sum(1 for r in scan_results if r.status == "created")

    host_map = _load_host_map(run.store)
    if not host_map:
        logger.warning("Server host map empty; snapshots fall back to derived server keys.")

    latest_ops: list[PendingWrite] = []
    history_ops: list[PendingWrite] = []
    scopes = ScopeAccumulator(run.config.ranking.metric)
    pending_snapshots: dict[str, list[dict[str, Any]]] = {}

    for entity_id, group in group_by_entity(parsed.rows).items():
        decision = decide_latest(run.latest_cache, "players", group)
        if decision.should_write:
            last = decision.candidate
            assert isinstance(last, PlayerRecord)
            latest_ops.append(build_latest_write(last, run.updated_at))
            derived = derive(
                DerivedInput(
                    entity_id=entity_id,
                    name=last.name,
                    class_name=last.class_name,
                    level=last.level,
                    server=last.server,
                    values=last.raw,
                    timestamp=last.timestamp_sec,
                    updated_at=run.updated_at,
                    guild_identifier=last.guild_identifier,
                    guild_name=last.guild_name,
                )
            )

            if host_map:
                snapshot_key = host_map.get(normalize_server_host(last.server))
                if snapshot_key is None:
                    logger.warning(
                        "Snapshot skipped, server host not registered | player=%s | server=%s",
                        entity_id, last.server,
                    )
            else:
                snapshot_key = derived.server_key
            if snapshot_key:
                pending_snapshots.setdefault(snapshot_key, []).append(
                    build_snapshot_entry(last, derived, snapshot_key)
                )

            scopes.add_player(date_key_from_sec(last.timestamp_sec), entity_id, derived)
            counts.written_latest_players += 1

        weekly, monthly = build_history_writes(group, headers, run.max_policy, run.updated_at)
        history_ops.extend(weekly)
        history_ops.extend(monthly)
        counts.written_weekly_players += len(weekly)
        counts.written_monthly_players += len(monthly)

    index_ops = build_index_writes(scopes)
    counts.written_index_docs = len(index_ops)

    chunk = run.config.imports.latest_chunk_size
    run.record_failures(run.commit(latest_ops, chunk, "latest"))
    run.record_failures(run.commit(index_ops, chunk, "latest"))

    _flush_snapshots(run, pending_snapshots)

    run.record_failures(run.commit(history_ops, run.config.imports.history_chunk_size, "history"))


def _load_host_map(store: SqliteDocumentStore) -> dict[str, str]:
    try:
        return load_server_host_map(store)
    except (DocumentStoreError, sqlite3.Error) as exc:
        logger.warning("Failed to load server host map: %s", exc)
        return {}


def _flush_snapshots(run: _ImportRun, pending: dict[str, list[dict[str, Any]]]) -> None:
    if not pending:
        return
    logger.info("Derived snapshot flush pending | servers=%s", sorted(pending))
    flushed: list[str] = []
    for server_key, entries in pending.items():
        try:
            doc_id = upsert_player_derived_snapshot(
                run.store, server_key, entries, limit=run.config.ranking.snapshot_limit
            )
        except (DocumentStoreError, sqlite3.Error) as exc:
            logger.warning("Derived snapshot upsert failed | server=%s | %s", server_key, exc)
            continue
        if doc_id:
            flushed.append(doc_id)
    logger.info("Derived snapshot flush done | docs=%s", flushed)


# ── Guilds ─────────────────────────────────────────────────────────────────────

def _import_guilds(
    run: _ImportRun,
    source_rows: Sequence[Row],
    source_headers: list[str],
) -> None:
    parsed = parse_guilds(source_rows, source_headers)
    counts = run.report.counts
    counts.skipped_missing_guild_identifier += parsed.stats.missing_identifier
    counts.skipped_bad_ts_guild += parsed.stats.bad_timestamp
    counts.skipped_missing_server += parsed.stats.missing_server
    headers = parsed.headers or infer_headers(source_rows)

    scan_results = persist_scans(
        run.strategy,
        parsed.rows,
        "guilds",
        chunk_size=run.config.imports.scans_chunk_size,
        on_progress=run.on_progress,
        pause_s=run.pause_s,
    )
    run.report.guild_results.extend(scan_results)
    counts.written_scan_guilds = sum(1 for r in scan_results if r.status == "created")

    latest_ops: list[PendingWrite] = []
    history_ops: list[PendingWrite] = []

    for group in group_by_entity(parsed.rows).values():
        decision = decide_latest(run.latest_cache, "guilds", group)
        if decision.should_write:
            assert isinstance(decision.candidate, GuildRecord)
            latest_ops.append(build_latest_write(decision.candidate, run.updated_at))
            counts.written_latest_guilds += 1

        weekly, monthly = build_history_writes(group, headers, run.max_policy, run.updated_at)
        history_ops.extend(weekly)
        history_ops.extend(monthly)
        counts.written_weekly_guilds += len(weekly)
        counts.written_monthly_guilds += len(monthly)

    imports = run.config.imports
    _check_guild_pass("latest", run.commit(latest_ops, imports.latest_chunk_size, "latest"))
    _check_guild_pass("history", run.commit(history_ops, imports.history_chunk_size, "history"))


def _check_guild_pass(pass_name: str, outcomes: list[WriteOutcome]) -> None:
    """Swallow permission/duplicate failures; raise on anything else."""
    for outcome in outcomes:
        if outcome.ok:
            continue
        assert outcome.error is not None
        if is_permission_or_duplicate(outcome.error):
            logger.warning(
                "Guild %s write skipped (duplicate/permission) | %s | %s",
                pass_name, outcome.write.path, outcome.error,
            )
            continue
        raise GuildWriteError(
            f"Guild {pass_name} write failed for {outcome.write.path}: {outcome.error}"
        ) from outcome.error


# ── Input ──────────────────────────────────────────────────────────────────────

def _resolve_source(
    rows: Optional[Sequence[Row]],
    raw: Optional[str],
) -> tuple[list[Row], list[str]]:
    if rows is not None:
        source = list(rows)
        return source, infer_headers(source)
    if raw:
        decoded = decode_csv_text(raw)
        return list(decoded.rows), decoded.headers
    raise ImportInputError("Neither 'rows' nor 'raw' was supplied.")
