"""Tests for the selection import (complete guilds first, then all players)."""

from __future__ import annotations

from scanvault.pipeline.selection import import_selection, uploadable_guild_ids


class TestUploadableGuildIds:
    def test_complete_guild(self, player_row, guild_row):
        players = [player_row("p1"), player_row("p2")]
        assert uploadable_guild_ids(players, [guild_row(members="2")]) == {"g1"}

    def test_partial_guild_excluded(self, player_row, guild_row):
        assert uploadable_guild_ids([player_row("p1")], [guild_row(members="2")]) == set()

    def test_zero_or_unparseable_member_count(self, player_row, guild_row):
        assert uploadable_guild_ids([], [guild_row(members="0")]) == set()
        assert uploadable_guild_ids([player_row()], [guild_row(members="1 member")]) == set()

    def test_decimal_member_count(self, player_row, guild_row):
        assert uploadable_guild_ids([player_row()], [guild_row(members="1.0")]) == {"g1"}


class TestImportSelection:
    def test_imports_complete_guilds_and_all_players(self, store, fast_config, player_row, guild_row):
        players = [player_row("p1"), player_row("p2"), player_row("p3", **{"Guild Identifier": "g2"})]
        guilds = [guild_row("g1", members="2"), guild_row("g2", members="5")]
        result = import_selection(store, players, guilds, config=fast_config)

        assert result.ok
        assert [r.status for r in result.players] == ["created"] * 3
        assert [r.key.split("__")[0] for r in result.guilds] == ["g1"]
        assert [r.detected_type for r in result.reports] == ["guilds", "players"]
        assert store.exists("guilds/g1/latest", "latest")
        assert not store.exists("guilds/g2/latest", "latest")

    def test_no_uploadable_guilds(self, store, fast_config, player_row, guild_row):
        result = import_selection(store, [player_row()], [guild_row(members="3")], config=fast_config)
        assert result.ok
        assert result.guilds == []
        assert len(result.reports) == 1

    def test_guild_failure_still_imports_players(
        self, store, fast_config, player_row, guild_row, monkeypatch,
    ):
        from scanvault.db.errors import DocumentStoreError

        original = store.set

        def fake_set(collection, doc_id, data, merge=False):
            if collection.startswith("guilds/") and collection.endswith("/latest"):
                raise DocumentStoreError("boom", code="internal")
            return original(collection, doc_id, data, merge=merge)

        monkeypatch.setattr(store, "set", fake_set)
        result = import_selection(store, [player_row()], [guild_row(members="1")], config=fast_config)
        assert not result.ok
        assert [r.status for r in result.players] == ["created"]
        assert store.exists("players/p1/latest", "latest")
