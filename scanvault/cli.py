"""
scanvault CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Execute action (DB init, import, lookup).
  5. Report result to stdout.

Install and run::

    pip install -e .
    scanvault --help
    scanvault init-db
    scanvault import --kind players exports/players.csv
    scanvault import-selection --players p.csv --guilds g.csv
    scanvault latest players p123
    scanvault leaderboard 20250221 all_all_sum --top 10
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="scanvault",
    help="Scan export importer: time series, history buckets and leaderboards.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from scanvault.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config."""
    from scanvault.utils.logging import configure_logging
    configure_logging(config.logging)


def _read_text_or_exit(path: str) -> str:
    """Read an export as UTF-8 text, exiting with an error if that fails."""
    file_path = Path(path)
    if not file_path.exists():
        typer.echo(f"[ERROR] File not found: {file_path}", err=True)
        raise typer.Exit(code=1)
    try:
        return file_path.read_text(encoding="utf-8-sig")
    except UnicodeDecodeError as exc:
        typer.echo(f"[ERROR] Could not decode {file_path} as UTF-8: {exc}", err=True)
        raise typer.Exit(code=1)


def _print_progress(progress) -> None:
    if progress.phase == "done":
        typer.echo(f"  {progress.pass_name}: {progress.total} writes")


def _print_report(report) -> None:
    counts = report.counts
    statuses = report.status_counts()
    typer.echo(f"  Kind:        {report.detected_type}")
    typer.echo(
        f"  Scans:       created={statuses['created']} "
        f"duplicate={statuses['duplicate']} error={statuses['error']}"
    )
    if report.detected_type == "players":
        typer.echo(f"  Latest:      {counts.written_latest_players}")
        typer.echo(
            f"  History:     weekly={counts.written_weekly_players} "
            f"monthly={counts.written_monthly_players}"
        )
        typer.echo(f"  Index docs:  {counts.written_index_docs}")
        skipped = (
            counts.skipped_missing_identifier + counts.skipped_bad_ts + counts.skipped_missing_server
        )
    else:
        typer.echo(f"  Latest:      {counts.written_latest_guilds}")
        typer.echo(
            f"  History:     weekly={counts.written_weekly_guilds} "
            f"monthly={counts.written_monthly_guilds}"
        )
        skipped = (
            counts.skipped_missing_guild_identifier
            + counts.skipped_bad_ts_guild
            + counts.skipped_missing_server
        )
    typer.echo(f"  Skipped:     {skipped}")
    typer.echo(f"  Duration:    {report.duration_ms:.0f} ms")
    for message in report.errors:
        typer.echo(f"  [WARN] {message}", err=True)


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config (e.g. data/db/test.db).",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Initialize the SQLite document store.

    Safe to run multiple times; all DDL uses IF NOT EXISTS.
    """
    from scanvault.db.connection import connect_from_config
    from scanvault.db.schema import ALL_TABLE_NAMES

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    target_path = db_path or config.database.db_path
    typer.echo(f"Initializing database at: {target_path}")

    with connect_from_config(config, db_path=target_path):
        pass

    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file (default: config/default.toml).",
    ),
    show_full: bool = typer.Option(
        False,
        "--full",
        help="Print full config including all fields.",
    ),
) -> None:
    """Validate the configuration file and print parsed values."""
    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:    {config.database.db_path}")
    typer.echo(f"  Bulk writer:      {config.database.bulk_writer}")
    typer.echo(
        f"  Chunk sizes:      scans={config.imports.scans_chunk_size} "
        f"latest={config.imports.latest_chunk_size} "
        f"history={config.imports.history_chunk_size}"
    )
    typer.echo(f"  Chunk pause:      {config.imports.inter_chunk_pause_ms} ms")
    typer.echo(f"  Max-of fields:    {', '.join(config.aggregation.max_fields)}")
    typer.echo(f"  Snapshot limit:   {config.ranking.snapshot_limit}")
    typer.echo(f"  Log level:        {config.logging.level}")
    typer.echo(f"  Debug mode:       {config.debug}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(config.model_dump(), indent=2, default=str))

    typer.echo("")
    typer.echo("[OK] Config valid.")


@app.command("import")
def import_file(
    csv_file: str = typer.Argument(..., help="Export file (CSV text)."),
    kind: str = typer.Option(..., "--kind", "-k", help="players or guilds."),
    no_bulk: bool = typer.Option(
        False,
        "--no-bulk",
        help="Force chunked atomic batches instead of per-document writes.",
    ),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Import one player or guild export.

    Re-running the same file is safe: existing scans report as duplicates and
    the latest document only moves forward in time.
    """
    from scanvault.importer import GuildWriteError, ImportInputError
    from scanvault.pipeline.import_scans import ImportStage

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    text = _read_text_or_exit(csv_file)
    typer.echo(f"Importing {kind} from: {csv_file}")

    stage = ImportStage(config=config, db_path=db_path)
    try:
        run = stage.run(
            kind=kind,
            raw=text,
            on_progress=_print_progress,
            prefer_bulk=False if no_bulk else None,
        )
    except (ImportInputError, GuildWriteError) as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    if stage.last_report is not None:
        _print_report(stage.last_report)
    typer.echo(f"[OK] Import complete. run_slug={run.run_slug}")


@app.command("import-selection")
def import_selection_cmd(
    players_file: str = typer.Option(..., "--players", help="Player export file."),
    guilds_file: str = typer.Option(..., "--guilds", help="Guild export file."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Import a player export and its guild export together.

    Only guilds whose member count matches the player rows present are imported.
    """
    from scanvault.db.connection import connect_from_config
    from scanvault.db.document_store import SqliteDocumentStore
    from scanvault.ingestion.csv_text import decode_csv_text
    from scanvault.pipeline.selection import import_selection

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    players = decode_csv_text(_read_text_or_exit(players_file))
    guilds = decode_csv_text(_read_text_or_exit(guilds_file))

    with connect_from_config(config, db_path=db_path) as conn:
        store = SqliteDocumentStore(conn, bulk_writer_enabled=config.database.bulk_writer)
        result = import_selection(store, players.rows, guilds.rows, config=config)

    for report in result.reports:
        _print_report(report)

    if not result.ok:
        typer.echo("[ERROR] Selection import finished with failures.", err=True)
        raise typer.Exit(code=1)
    typer.echo(
        f"[OK] Selection imported. players={len(result.players)} guilds={len(result.guilds)}"
    )


@app.command("register-server")
def register_server_cmd(
    code: str = typer.Argument(..., help="Server code, e.g. EU1."),
    host: str = typer.Argument(..., help="Server host as it appears in exports."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Register a server host so per-server snapshots can be built for it."""
    from scanvault.db.connection import connect_from_config
    from scanvault.db.document_store import SqliteDocumentStore
    from scanvault.ranking.server_snapshot import register_server

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    with connect_from_config(config, db_path=db_path) as conn:
        register_server(SqliteDocumentStore(conn), code.strip().upper(), host)

    typer.echo(f"[OK] Registered {code.strip().upper()} -> {host.strip().lower()}")


@app.command("latest")
def latest_cmd(
    kind: str = typer.Argument(..., help="players or guilds."),
    entity_id: str = typer.Argument(..., help="Player id or guild identifier."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Print an entity's latest document as JSON."""
    from scanvault.aggregation.latest import LATEST_DOC_ID, latest_collection
    from scanvault.db.connection import connect_from_config
    from scanvault.db.document_store import SqliteDocumentStore

    config = _load_config_or_exit(config_path)

    with connect_from_config(config, db_path=db_path) as conn:
        doc = SqliteDocumentStore(conn).get(latest_collection(kind, entity_id), LATEST_DOC_ID)

    if doc is None:
        typer.echo(f"[ERROR] No latest document for {kind}/{entity_id}", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(doc, indent=2, ensure_ascii=False))


@app.command("history")
def history_cmd(
    kind: str = typer.Argument(..., help="players or guilds."),
    entity_id: str = typer.Argument(..., help="Player id or guild identifier."),
    period: str = typer.Option("weekly", "--period", help="weekly or monthly."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """List an entity's history buckets."""
    from scanvault.aggregation.history import MONTHLY, WEEKLY
    from scanvault.db.connection import connect_from_config
    from scanvault.db.document_store import SqliteDocumentStore

    subcollections = {"weekly": WEEKLY, "monthly": MONTHLY}
    if period not in subcollections:
        typer.echo("[ERROR] --period must be 'weekly' or 'monthly'.", err=True)
        raise typer.Exit(code=1)

    config = _load_config_or_exit(config_path)

    with connect_from_config(config, db_path=db_path) as conn:
        docs = SqliteDocumentStore(conn).list_documents(
            f"{kind}/{entity_id}/{subcollections[period]}"
        )

    if not docs:
        typer.echo(f"No {period} history for {kind}/{entity_id}.")
        return
    for period_id, data in docs:
        typer.echo(
            f"  {period_id}  last_ts={data.get('lastTs')}  "
            f"server={data.get('server')}  name={data.get('name')}"
        )


@app.command("leaderboard")
def leaderboard_cmd(
    date_key: int = typer.Argument(..., help="Date key YYYYMMDD."),
    scope_id: str = typer.Argument(..., help="Scope, e.g. all_all_sum or MAGE_EU1_sum."),
    top: int = typer.Option(20, "--top", help="Rows to print."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Print a ranked leaderboard index document."""
    from scanvault.db.connection import connect_from_config
    from scanvault.db.document_store import SqliteDocumentStore
    from scanvault.ranking.index_builder import INDEX_COLLECTION

    config = _load_config_or_exit(config_path)

    with connect_from_config(config, db_path=db_path) as conn:
        doc = SqliteDocumentStore(conn).get(INDEX_COLLECTION, f"{date_key}__{scope_id}")

    if doc is None:
        typer.echo(f"[ERROR] No leaderboard for {date_key} / {scope_id}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"{scope_id} on {date_key} ({doc['n']} players)")
    for rank, entity_id, value in list(zip(doc["ranks"], doc["ids"], doc["vals"]))[:top]:
        typer.echo(f"  {rank:>4}  {entity_id:<20} {value:>12,.0f}")


if __name__ == "__main__":
    app()
