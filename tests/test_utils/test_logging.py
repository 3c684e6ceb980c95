"""Tests for scanvault/utils/logging.py."""

from __future__ import annotations

import json
import logging

import pytest

from scanvault.config import LoggingConfig
from scanvault.utils.logging import _JsonLineFormatter, configure_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield root
    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


class TestJsonLineFormatter:
    def test_fields_and_extra(self):
        record = logging.makeLogRecord({
            "name": "scanvault.importer",
            "levelname": "INFO",
            "msg": "wrote %d scans",
            "args": (3,),
            "run_slug": "abc",
        })
        line = json.loads(_JsonLineFormatter().format(record))
        assert line["level"] == "INFO"
        assert line["logger"] == "scanvault.importer"
        assert line["msg"] == "wrote 3 scans"
        assert line["run_slug"] == "abc"
        assert "args" not in line


class TestConfigureLogging:
    def test_file_handler_created(self, tmp_path, restore_root_logger):
        log_file = tmp_path / "logs" / "run.log"
        configure_logging(LoggingConfig(level="DEBUG", log_file=str(log_file)))
        assert restore_root_logger.level == logging.DEBUG
        assert len(restore_root_logger.handlers) == 2
        assert log_file.parent.is_dir()

    def test_no_file_when_unset(self, restore_root_logger):
        configure_logging(LoggingConfig(log_file=""))
        assert len(restore_root_logger.handlers) == 1
        assert isinstance(restore_root_logger.handlers[0], logging.StreamHandler)
