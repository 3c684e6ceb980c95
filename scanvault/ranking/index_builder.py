"""
Daily leaderboard index documents.

Every player whose latest changes during an import is added to up to three
scopes for the date of its scan:

    all_all_sum                  everyone
    {group}_all_sum              one class, all servers
    {group}_{serverKey}_sum      one class, one server (when the server is known)

At the end of the import each ``(dateKey, scope)`` becomes one document in
``stats_index_players_daily_compact`` with parallel ``ids``/``vals``/``ranks``
arrays, sorted descending by value. The sort is stable, so tied players keep
their encounter order and ``ranks[i] == i + 1``. Index documents are fully
replaced on every import that touches them.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional

from scanvault.db.batch_writer import PendingWrite
from scanvault.ranking.derived import DerivedStats

INDEX_COLLECTION = "stats_index_players_daily_compact"


@dataclass(frozen=True)
class RankingScope:
    scope_id: str
    group: str
    server_key: str


@dataclass
class ScopeBucket:
    date_key: int
    scope: RankingScope
    ids: list[str] = field(default_factory=list)
    vals: list[float] = field(default_factory=list)

    @property
    def doc_id(self) -> str:
        return f"{self.date_key}__{self.scope.scope_id}"


def scopes_for(derived: DerivedStats, metric: str = "sum") -> list[RankingScope]:
    group = derived.group or "ALL"
    scopes = [
        RankingScope(f"all_all_{metric}", "ALL", "all"),
        RankingScope(f"{group}_all_{metric}", group, "all"),
    ]
    if derived.server_key and derived.server_key != "all":
        scopes.append(
            RankingScope(f"{group}_{derived.server_key}_{metric}", group, derived.server_key)
        )
    return scopes


class ScopeAccumulator:
    """Collects ``(entity_id, value)`` pairs per ``(dateKey, scope)`` for one run."""

    def __init__(self, metric: str = "sum") -> None:
        self.metric = metric
        self._buckets: dict[str, ScopeBucket] = {}

    def __len__(self) -> int:
        return len(self._buckets)

    def add(self, date_key: int, scope: RankingScope, entity_id: str, value: Optional[float]) -> None:
        bucket_key = f"{date_key}__{scope.scope_id}"
        bucket = self._buckets.get(bucket_key)
        if bucket is None:
            bucket = self._buckets[bucket_key] = ScopeBucket(date_key=date_key, scope=scope)
        bucket.ids.append(entity_id)
        bucket.vals.append(float(value or 0))

    def add_player(self, date_key: int, entity_id: str, derived: DerivedStats) -> None:
        for scope in scopes_for(derived, self.metric):
            self.add(date_key, scope, entity_id, derived.sum)

    def buckets(self) -> list[ScopeBucket]:
        return list(self._buckets.values())


def rank_bucket(bucket: ScopeBucket) -> tuple[list[str], list[float], list[int]]:
    """Stable descending sort of a bucket; returns ``(ids, vals, ranks)``."""
    entries = sorted(zip(bucket.ids, bucket.vals), key=lambda e: e[1], reverse=True)
    return (
        [e[0] for e in entries],
        [e[1] for e in entries],
        list(range(1, len(entries) + 1)),
    )


def build_index_doc(bucket: ScopeBucket, metric: str = "sum", generated_at: Optional[int] = None) -> dict:
    ids, vals, ranks = rank_bucket(bucket)
    return {
        "n": len(ids),
        "ids": ids,
        "vals": vals,
        "ranks": ranks,
        "generatedAt": generated_at if generated_at is not None else int(time.time() * 1000),
        "group": bucket.scope.group,
        "serverKey": bucket.scope.server_key,
        "metric": metric,
        "dateKey": bucket.date_key,
    }


def build_index_writes(accumulator: ScopeAccumulator) -> list[PendingWrite]:
    """Full-replace writes for every accumulated scope bucket."""
    generated_at = int(time.time() * 1000)
    return [
        PendingWrite(
            collection=INDEX_COLLECTION,
            doc_id=bucket.doc_id,
            data=build_index_doc(bucket, accumulator.metric, generated_at),
            mode="set",
        )
        for bucket in accumulator.buckets()
    ]
