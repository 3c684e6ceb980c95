"""
Tests for the parsed scan record models.

What we test
------------
1. Valid construction and the scan idempotency key.
2. Validation of blank ids, blank servers and negative timestamps.
3. Immutability.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from scanvault.models.meta import RunMetadata
from scanvault.models.records import GuildRecord, PlayerRecord


def _player(**kw) -> PlayerRecord:
    base = dict(entity_id="p1", server="EU1", timestamp_sec=1740000000, raw={"ID": "p1"})
    base.update(kw)
    return PlayerRecord(**base)


class TestPlayerRecord:
    def test_valid(self):
        record = _player(level=120, class_name="Mage")
        assert record.kind == "players"
        assert record.scan_key == "p1__EU1__1740000000"

    def test_blank_id_rejected(self):
        with pytest.raises(ValidationError):
            _player(entity_id="  ")

    def test_blank_server_rejected(self):
        with pytest.raises(ValidationError):
            _player(server="")

    def test_negative_timestamp_rejected(self):
        with pytest.raises(ValidationError):
            _player(timestamp_sec=-1)

    def test_frozen(self):
        with pytest.raises(ValidationError):
            _player().name = "Bob"


class TestGuildRecord:
    def test_valid(self):
        record = GuildRecord(entity_id="g1", server="EU1", timestamp_sec=5, raw={}, member_count=2)
        assert record.kind == "guilds"
        assert record.member_count == 2.0
        assert record.scan_key == "g1__EU1__5"


class TestRunMetadata:
    def test_unknown_stage_rejected(self):
        with pytest.raises(ValidationError):
            RunMetadata(
                run_slug="x", pipeline_stage="train", config_snapshot={},
                started_at="2025-02-19T00:00:00+00:00",
            )

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            RunMetadata(
                run_slug="x", pipeline_stage="import", status="paused",
                config_snapshot={}, started_at="2025-02-19T00:00:00+00:00",
            )
