"""Tests for EntityStore: sqlite persistence of entities, subscriptions, guilds."""

from datetime import timedelta

import pytest

from core.errors import NotFound
from shared.storage.entity_store import EntityStore

from conftest import NOW, make_entity


# ── Entities ────────────────────────────────────────────


class TestEntities:
    def test_empty_store_loads_nothing(self, store):
        assert store.load_all() == []

    def test_upsert_round_trips_timestamps_and_handles(self, store):
        entity = make_entity(start=NOW - timedelta(hours=1), channels=("c1", "c2"))
        entity.subscriptions[1].message_id = "m2"

        store.upsert(entity)
        (loaded,) = store.load_all()

        assert loaded.stream_start_time == NOW - timedelta(hours=1)
        assert loaded.stream_end_time is None
        assert [s.channel_id for s in loaded.subscriptions] == ["c1", "c2"]
        assert loaded.subscriptions[1].message_id == "m2"

    def test_upsert_is_idempotent(self, store):
        entity = make_entity(channels=("c1",))

        store.upsert(entity)
        store.upsert(entity)

        assert len(store.load_all()) == 1
        assert store.stats() == {"entities": 1, "subscriptions": 1}

    def test_upsert_drops_removed_subscriptions(self, store):
        entity = make_entity(channels=("c1", "c2"))
        store.upsert(entity)

        entity.subscriptions.pop(0)
        store.upsert(entity)

        loaded = store.find_by_field("id", entity.id)
        assert [s.channel_id for s in loaded.subscriptions] == ["c2"]

    def test_find_by_name_is_case_insensitive(self, store):
        store.upsert(make_entity(name="SomeStreamer"))

        assert store.find_by_field("name", "SOMESTREAMER").id == "1001"

    def test_find_missing_raises_not_found(self, store):
        with pytest.raises(NotFound):
            store.find_by_field("id", "nope")

    def test_find_rejects_unknown_field(self, store):
        with pytest.raises(ValueError):
            store.find_by_field("title", "x")

    def test_survives_reopen(self, tmp_path):
        path = tmp_path / "entities.db"
        EntityStore(path).upsert(make_entity(channels=("c1",)))

        (loaded,) = EntityStore(path).load_all()

        assert loaded.name == "somestreamer"


# ── Guild settings ──────────────────────────────────────


class TestGuildSettings:
    def test_unknown_guild_gets_default_cooldown(self, tmp_path):
        store = EntityStore(tmp_path / "g.db", default_cooldown=7)

        assert store.get_guild_settings("g1").command_cooldown == 7

    def test_record_guild_only_once(self, store):
        assert store.record_guild("g1", owner_id="u1", owner_name="Owner") is True
        assert store.record_guild("g1", owner_id="u1", owner_name="Owner") is False

        settings = store.get_guild_settings("g1")
        assert settings.owner_id == "u1"
        assert settings.command_cooldown == 3

    def test_set_command_cooldown(self, store):
        store.set_command_cooldown("g1", 10)

        assert store.get_guild_settings("g1").command_cooldown == 10

    def test_negative_cooldown_rejected(self, store):
        with pytest.raises(ValueError):
            store.set_command_cooldown("g1", -1)

    def test_update_rejects_unknown_keys(self, store):
        with pytest.raises(ValueError):
            store.update_guild_settings("g1", prefix="?")

    def test_admin_role_update(self, store):
        store.record_guild("g1", owner_id="u1", owner_name="Owner")

        settings = store.update_guild_settings("g1", admin_role_id="r9")

        assert settings.admin_role_id == "r9"
        assert settings.owner_name == "Owner"
