"""
Tests for scanvault/aggregation/history.py.

Timestamps sit at 12:00 UTC mid-week, so week and month ids are the same in
every local timezone the tests may run under.
"""

from __future__ import annotations

import pytest

from scanvault.aggregation.history import (
    MONTHLY,
    WEEKLY,
    MaxFieldPolicy,
    aggregate_values,
    bucket_records,
    build_history_writes,
    numeric_value,
)
from scanvault.config import AggregationConfig
from scanvault.models.records import PlayerRecord

WED_FEB_19 = 1739966400
THU_FEB_20 = WED_FEB_19 + 86400
WED_MAR_12 = WED_FEB_19 + 21 * 86400


def _rec(ts: int, **raw: str) -> PlayerRecord:
    return PlayerRecord(
        entity_id="p1", server="EU1", name="Alice",
        timestamp_sec=ts, timestamp_raw=str(ts), raw=raw,
    )


@pytest.fixture
def policy() -> MaxFieldPolicy:
    return MaxFieldPolicy(AggregationConfig())


class TestMaxFieldPolicy:
    def test_listed_fields(self, policy):
        assert policy("strength")
        assert policy("constitution")

    def test_substring_match(self, policy):
        assert policy("equipmentscore")

    def test_other_fields(self, policy):
        assert not policy("name")
        assert not policy("basestrength")

    def test_configurable(self):
        custom = MaxFieldPolicy(AggregationConfig(max_fields=["Gold"], max_substrings=[]))
        assert custom("gold")
        assert not custom("strength")


class TestNumericValue:
    @pytest.mark.parametrize("cell,expected", [
        ("12", 12.0), ("19x", 19.0), ("1.5 k", 1.5), ("-3", -3.0),
    ])
    def test_parses(self, cell, expected):
        assert numeric_value(cell) == expected

    @pytest.mark.parametrize("cell", ["", "abc", "1.2.3"])
    def test_non_numeric(self, cell):
        assert numeric_value(cell) is None


class TestAggregateValues:
    def test_max_field_keeps_raw_cell_of_maximum(self, policy):
        records = [_rec(1, Strength=c) for c in ["12", "", "7", "19x"]]
        assert aggregate_values(records, ["Strength"], policy) == {"Strength": "19x"}

    def test_max_field_first_wins_on_tie(self, policy):
        records = [_rec(1, Strength="10 a"), _rec(2, Strength="10 b")]
        assert aggregate_values(records, ["Strength"], policy)["Strength"] == "10 a"

    def test_max_field_without_numbers_is_empty(self, policy):
        records = [_rec(1, Strength="n/a"), _rec(2, Strength="")]
        assert aggregate_values(records, ["Strength"], policy)["Strength"] == ""

    def test_other_field_last_non_empty(self, policy):
        records = [_rec(i, Guild=c) for i, c in enumerate(["A", "", "B", ""])]
        assert aggregate_values(records, ["Guild"], policy) == {"Guild": "B"}

    def test_missing_header_is_empty(self, policy):
        assert aggregate_values([_rec(1)], ["Guild", "Strength"], policy) == {
            "Guild": "", "Strength": "",
        }


class TestBuckets:
    def test_week_and_month_ids(self):
        weekly, monthly = bucket_records([_rec(WED_MAR_12), _rec(THU_FEB_20), _rec(WED_FEB_19)])
        assert set(weekly) == {"2025-W08", "2025-W11"}
        assert set(monthly) == {"2025-02", "2025-03"}
        assert [r.timestamp_sec for r in weekly["2025-W08"]] == [WED_FEB_19, THU_FEB_20]

    def test_build_history_writes(self, policy):
        records = [
            _rec(WED_FEB_19, Strength="30", Guild="A"),
            _rec(THU_FEB_20, Strength="20", Guild="B"),
        ]
        weekly, monthly = build_history_writes(records, ["Strength", "Guild"], policy, "now")
        assert len(weekly) == len(monthly) == 1
        week = weekly[0]
        assert (week.collection, week.doc_id, week.mode) == (f"players/p1/{WEEKLY}", "2025-W08", "merge")
        assert week.data["weekId"] == "2025-W08"
        assert week.data["lastTs"] == THU_FEB_20
        assert week.data["values"] == {"Strength": "30", "Guild": "B"}
        start, end = week.data["periodStartSec"], week.data["periodEndSec"]
        assert start <= WED_FEB_19 <= end
        assert end - start == 7 * 86400 - 1
        month = monthly[0]
        assert month.collection == f"players/p1/{MONTHLY}"
        assert month.data["monthId"] == "2025-02"
        assert month.data["periodStartSec"] <= WED_FEB_19 <= month.data["periodEndSec"]
