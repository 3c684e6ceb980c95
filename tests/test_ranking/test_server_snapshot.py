"""
Tests for scanvault/ranking/server_snapshot.py.

What we test
------------
1. Server registry reads and writes.
2. Snapshot merge: replace in place, insert while room, evict the minimum.
3. The upsert writes one sorted document per server.
"""

from __future__ import annotations

import math

from scanvault.models.records import PlayerRecord
from scanvault.ranking.derived import DerivedStats
from scanvault.ranking.server_snapshot import (
    SNAPSHOT_COLLECTION,
    build_snapshot_entry,
    load_server_host_map,
    merge_snapshot_entries,
    register_server,
    snapshot_doc_id,
    upsert_player_derived_snapshot,
)


def _entry(pid: str, total: float) -> dict:
    return {"playerId": pid, "sum": total}


class TestRegistry:
    def test_register_and_load(self, store):
        register_server(store, "EU1", " EU1.SFGame.net ")
        register_server(store, "EU2", "eu2.sfgame.net")
        assert load_server_host_map(store) == {
            "eu1.sfgame.net": "EU1",
            "eu2.sfgame.net": "EU2",
        }

    def test_blank_hosts_ignored(self, store):
        store.set("servers", "X", {"host": ""})
        assert load_server_host_map(store) == {}


class TestBuildSnapshotEntry:
    def test_fields(self):
        record = PlayerRecord(
            entity_id="p1", server="EU1", name="Alice", timestamp_sec=1740000000,
            timestamp_raw=" 19.02.2025 22:20 ", raw={}, level=120, class_name="Mage",
            guild_name="Knights",
        )
        derived = DerivedStats(
            sum=1500, group="MAGE", server_key="EU1", class_name="Mage",
            main=1000, con=500, ratio=math.inf,
        )
        entry = build_snapshot_entry(record, derived, "EU1")
        assert entry["playerId"] == "p1"
        assert entry["lastScan"] == "19.02.2025 22:20"
        assert (entry["class"], entry["guild"], entry["level"]) == ("Mage", "Knights", 120.0)
        assert entry["sum"] == 1500.0
        assert entry["ratio"] is None
        assert entry["mine"] is None

    def test_last_scan_falls_back_to_seconds(self):
        record = PlayerRecord(entity_id="p1", server="EU1", timestamp_sec=5, raw={})
        entry = build_snapshot_entry(record, DerivedStats(sum=0, group="ALL", server_key="all"), "all")
        assert entry["lastScan"] == "5"


class TestMergeSnapshotEntries:
    def test_replace_in_place(self):
        merged = merge_snapshot_entries([_entry("a", 10), _entry("b", 20)], [_entry("a", 30)], 2)
        assert merged == [_entry("a", 30), _entry("b", 20)]

    def test_insert_while_room(self):
        merged = merge_snapshot_entries([_entry("a", 10)], [_entry("b", 5)], 3)
        assert [e["playerId"] for e in merged] == ["a", "b"]

    def test_evicts_minimum_only_when_larger(self):
        existing = [_entry("a", 10), _entry("b", 20)]
        assert [e["playerId"] for e in merge_snapshot_entries(existing, [_entry("c", 15)], 2)] == ["b", "c"]
        assert [e["playerId"] for e in merge_snapshot_entries(existing, [_entry("d", 10)], 2)] == ["b", "a"]

    def test_ties_sorted_by_id(self):
        merged = merge_snapshot_entries([], [_entry("b", 1), _entry("a", 1)], 5)
        assert [e["playerId"] for e in merged] == ["a", "b"]

    def test_invalid_entries_dropped(self):
        merged = merge_snapshot_entries(["junk", {"sum": 3}], [{"playerId": "", "sum": 1}], 5)
        assert merged == []


class TestUpsertSnapshot:
    def test_nothing_to_write(self, store):
        assert upsert_player_derived_snapshot(store, "EU1", []) is None
        assert store.count(SNAPSHOT_COLLECTION) == 0

    def test_writes_and_merges(self, store):
        doc_id = upsert_player_derived_snapshot(store, "EU1", [_entry("a", 1)], limit=2)
        assert doc_id == snapshot_doc_id("EU1") == "snapshot_EU1_player_derived"
        upsert_player_derived_snapshot(store, "EU1", [_entry("b", 5), _entry("c", 3)], limit=2)
        doc = store.get(SNAPSHOT_COLLECTION, doc_id)
        assert doc["server"] == "EU1"
        assert [e["playerId"] for e in doc["players"]] == ["b", "c"]

    def test_blank_server_key(self, store):
        assert upsert_player_derived_snapshot(store, " ", [_entry("a", 1)]) == "snapshot_all_player_derived"
