"""
Tests for scanvault/ranking/index_builder.py.

What we test
------------
1. Scope fan-out per player (global, class, class x server).
2. Stable descending ranking with ``ranks[i] == i + 1``.
3. Index document shape and full-replace writes.
"""

from __future__ import annotations

from scanvault.ranking.derived import DerivedStats
from scanvault.ranking.index_builder import (
    INDEX_COLLECTION,
    RankingScope,
    ScopeAccumulator,
    ScopeBucket,
    build_index_doc,
    build_index_writes,
    rank_bucket,
    scopes_for,
)


def _stats(total: float, group: str = "MAGE", server_key: str = "EU1") -> DerivedStats:
    return DerivedStats(sum=total, group=group, server_key=server_key)


class TestScopesFor:
    def test_three_scopes(self):
        assert [s.scope_id for s in scopes_for(_stats(1))] == [
            "all_all_sum", "MAGE_all_sum", "MAGE_EU1_sum",
        ]

    def test_unknown_server_has_no_server_scope(self):
        assert [s.scope_id for s in scopes_for(_stats(1, server_key="all"))] == [
            "all_all_sum", "MAGE_all_sum",
        ]


class TestRankBucket:
    def test_ties_keep_encounter_order(self):
        bucket = ScopeBucket(
            date_key=20250219,
            scope=RankingScope("all_all_sum", "ALL", "all"),
            ids=["p1", "p2", "p3", "p4"],
            vals=[10, 30, 30, 5],
        )
        ids, vals, ranks = rank_bucket(bucket)
        assert ids == ["p2", "p3", "p1", "p4"]
        assert vals == [30, 30, 10, 5]
        assert ranks == [1, 2, 3, 4]


class TestAccumulator:
    def test_add_player_fans_out(self):
        acc = ScopeAccumulator()
        acc.add_player(20250219, "p1", _stats(100))
        acc.add_player(20250219, "p2", _stats(200, group="WARRIOR"))
        doc_ids = sorted(b.doc_id for b in acc.buckets())
        assert doc_ids == [
            "20250219__MAGE_EU1_sum",
            "20250219__MAGE_all_sum",
            "20250219__WARRIOR_EU1_sum",
            "20250219__WARRIOR_all_sum",
            "20250219__all_all_sum",
        ]
        assert len(acc) == 5

    def test_dates_are_separate_buckets(self):
        acc = ScopeAccumulator()
        acc.add_player(20250219, "p1", _stats(1, server_key="all"))
        acc.add_player(20250220, "p1", _stats(1, server_key="all"))
        assert len(acc) == 4

    def test_missing_value_counts_as_zero(self):
        acc = ScopeAccumulator()
        acc.add(1, RankingScope("all_all_sum", "ALL", "all"), "p1", None)
        assert acc.buckets()[0].vals == [0.0]


class TestIndexDocs:
    def test_doc_shape(self):
        acc = ScopeAccumulator()
        acc.add_player(20250219, "p1", _stats(100))
        acc.add_player(20250219, "p2", _stats(300))
        bucket = next(b for b in acc.buckets() if b.scope.scope_id == "MAGE_EU1_sum")
        doc = build_index_doc(bucket, generated_at=123)
        assert doc == {
            "n": 2,
            "ids": ["p2", "p1"],
            "vals": [300.0, 100.0],
            "ranks": [1, 2],
            "generatedAt": 123,
            "group": "MAGE",
            "serverKey": "EU1",
            "metric": "sum",
            "dateKey": 20250219,
        }

    def test_writes_replace(self):
        acc = ScopeAccumulator()
        acc.add_player(20250219, "p1", _stats(100, server_key="all"))
        writes = build_index_writes(acc)
        assert {w.collection for w in writes} == {INDEX_COLLECTION}
        assert {w.mode for w in writes} == {"set"}
        assert {w.doc_id for w in writes} == {"20250219__all_all_sum", "20250219__MAGE_all_sum"}
