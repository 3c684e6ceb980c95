"""Tests for ImportStage: audited imports against a file-backed database."""

from __future__ import annotations

import pytest

from scanvault.config import AppConfig, DatabaseConfig, ImportConfig
from scanvault.db.connection import get_connection
from scanvault.db.document_store import SqliteDocumentStore
from scanvault.db.repositories.run_repo import RunMetadataRepository
from scanvault.importer import ImportInputError
from scanvault.pipeline.import_scans import ImportStage


@pytest.fixture
def stage_config(tmp_path) -> AppConfig:
    return AppConfig(
        database=DatabaseConfig(db_path=str(tmp_path / "db" / "scanvault.db")),
        imports=ImportConfig(inter_chunk_pause_ms=0),
    )


def _runs(config: AppConfig):
    with get_connection(config.database.db_path) as conn:
        return RunMetadataRepository(conn).get_recent_runs()


class TestImportStage:
    def test_success_records_run(self, stage_config, player_row):
        stage = ImportStage(stage_config)
        run = stage.run(kind="players", rows=[player_row("p1"), player_row("p2")])

        assert run.status == "success"
        assert run.kind == "players"
        assert run.rows_processed == 2
        assert stage.last_report.status_counts()["created"] == 2

        stored = _runs(stage_config)
        assert [r.run_slug for r in stored] == [run.run_slug]
        assert stored[0].config_snapshot["database"]["db_path"] == stage_config.database.db_path

        with get_connection(stage_config.database.db_path) as conn:
            assert SqliteDocumentStore(conn).exists("players/p1/latest", "latest")

    def test_replay_processes_zero(self, stage_config, player_row):
        ImportStage(stage_config).run(kind="players", rows=[player_row()])
        run = ImportStage(stage_config).run(kind="players", rows=[player_row()])
        assert run.rows_processed == 0

    def test_failure_recorded_and_raised(self, stage_config):
        with pytest.raises(ImportInputError):
            ImportStage(stage_config).run(kind="pets", rows=[])
        stored = _runs(stage_config)
        assert stored[0].status == "failed"
        assert "pets" in stored[0].error_message
