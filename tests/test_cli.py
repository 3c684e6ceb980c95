"""Tests for scanvault/cli.py error handling around export files."""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from scanvault import cli
from scanvault.cli import app

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    """Minimal config pointing the DB under ``tmp_path`` with no log file."""
    monkeypatch.setattr(cli, "_configure_logging", lambda config: None)
    path = tmp_path / "test.toml"
    path.write_text(
        "[database]\n"
        f'db_path = "{(tmp_path / "scanvault.db").as_posix()}"\n'
        "\n[logging]\n"
        'log_file = ""\n',
        encoding="utf-8",
    )
    return path


class TestImportCommand:
    def test_non_utf8_file_exits_with_error(self, tmp_path, config_file):
        export = tmp_path / "players.csv"
        export.write_bytes("ID;Server;Name;Timestamp\n1;EU1;Jörg;1740000000\n".encode("cp1252"))

        result = runner.invoke(
            app, ["import", str(export), "--kind", "players", "--config", str(config_file)]
        )

        assert result.exit_code == 1
        assert "[ERROR]" in result.output
        assert "UTF-8" in result.output
        assert not isinstance(result.exception, UnicodeDecodeError)

    def test_missing_file_exits_with_error(self, tmp_path, config_file):
        result = runner.invoke(
            app,
            ["import", str(tmp_path / "absent.csv"), "--kind", "players", "--config", str(config_file)],
        )

        assert result.exit_code == 1
        assert "File not found" in result.output
