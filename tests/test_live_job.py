"""End-to-end tests for LiveStatusJob over a real registry and a fake gateway."""

from datetime import timedelta

import discord
import pytest

from core.errors import PersistenceFailed, SourceUnavailable
from core.fanout import NotificationFanout
from core.live_job import LiveStatusJob, StatusLookup
from core.state_machine import COOLING_OFF, Transition
from services.twitch.models.stream import CategoryInfo, ProfileInfo

from conftest import NOW, make_entity, make_record


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return Clock(NOW)


@pytest.fixture
def job(registry, status_client, gateway, clock):
    return LiveStatusJob(
        registry=registry,
        status_client=status_client,
        fanout=NotificationFanout(gateway),
        clock=clock,
    )


async def _tick(job, registry, status_client, records):
    status_client.get_status.return_value = records
    entities = await registry.snapshot()
    lookup = await job.lookup(entities)
    return [await job.evaluate(entity, lookup) for entity in entities]


# ── Full broadcast lifecycle ────────────────────────────


class TestBroadcastLifecycle:
    @pytest.mark.asyncio
    async def test_started_update_ended(self, job, registry, status_client, gateway, clock):
        await registry.add(make_entity(channels=("c1", "c2")))
        t0 = NOW - timedelta(seconds=30)

        # Tick 1: goes live
        (outcome,) = await _tick(
            job, registry, status_client, {"1001": make_record(started_at=t0, title="Foo")}
        )
        assert outcome.transition is Transition.STARTED
        assert outcome.persisted
        assert len(gateway.sent) == 2
        entity = await registry.find_by_id("1001")
        handles = [sub.message_id for sub in entity.subscriptions]
        assert None not in handles
        assert len(set(handles)) == 2
        assert entity.stream_start_time == t0

        # Tick 2: still live, viewers changed -> edits only
        clock.advance(minutes=1)
        (outcome,) = await _tick(
            job, registry, status_client, {"1001": make_record(started_at=t0, viewers=99)}
        )
        assert outcome.transition is Transition.UPDATE
        assert len(gateway.sent) == 2
        assert [(c, m) for c, m, _ in gateway.edited] == [("c1", handles[0]), ("c2", handles[1])]

        # Tick 3: absent -> ended
        clock.advance(minutes=1)
        (outcome,) = await _tick(job, registry, status_client, {})
        assert outcome.transition is Transition.ENDED
        assert len(gateway.edited) == 4
        entity = await registry.find_by_id("1001")
        assert entity.stream_end_time == clock.now - COOLING_OFF
        assert all(sub.message_id is None for sub in entity.subscriptions)

        # Tick 4: still absent shortly after -> no second Ended
        clock.advance(minutes=1)
        (outcome,) = await _tick(job, registry, status_client, {})
        assert outcome.transition is Transition.STILL_OFFLINE
        assert len(gateway.edited) == 4

    @pytest.mark.asyncio
    async def test_ended_state_survives_reload(self, job, registry, store, status_client, clock):
        await registry.add(make_entity(channels=("c1",)))
        await _tick(job, registry, status_client, {"1001": make_record()})
        clock.advance(minutes=5)
        await _tick(job, registry, status_client, {})

        reloaded = store.find_by_field("id", "1001")

        assert reloaded.stream_end_time == clock.now - COOLING_OFF
        assert reloaded.subscriptions[0].message_id is None

    @pytest.mark.asyncio
    async def test_cards_carry_category_and_final_summary(
        self, job, registry, status_client, gateway, clock
    ):
        status_client.get_metadata.side_effect = None
        status_client.get_metadata.return_value = CategoryInfo(id="509658", name="Chatting", box_art_url="")
        await registry.add(make_entity(channels=("c1",)))

        await _tick(job, registry, status_client, {"1001": make_record()})
        live = gateway.sent[0][1]
        assert isinstance(live, discord.Embed)
        assert live.fields[0].value == "Chatting"

        clock.advance(minutes=10)
        await _tick(job, registry, status_client, {})
        ended = gateway.edited[-1][2]
        assert ended.author.name.endswith("was Live")
        assert "Total Time" in ended.description


# ── Lookups and skips ───────────────────────────────────


class TestLookup:
    @pytest.mark.asyncio
    async def test_failed_lookup_marks_everything_unknown(self, job, status_client):
        status_client.get_status.side_effect = SourceUnavailable("503")
        entities = [make_entity("1"), make_entity("2", "other")]

        lookup = await job.lookup(entities)

        assert not lookup.is_known("1")
        assert not lookup.is_known("2")

    @pytest.mark.asyncio
    async def test_unknown_status_never_ends_a_live_entity(self, job, registry, gateway):
        await registry.add(make_entity(start=NOW - timedelta(hours=1), channels=("c1",)))
        entity = await registry.find_by_id("1001")

        outcome = await job.evaluate(entity, StatusLookup(failed={"1001"}))

        assert outcome.skipped
        assert gateway.edited == []
        assert (await registry.find_by_id("1001")).stream_end_time is None

    @pytest.mark.asyncio
    async def test_pure_edit_update_skips_commit(self, job, registry, status_client, gateway):
        live = make_entity(start=NOW - timedelta(minutes=10), channels=("c1",))
        live.subscriptions[0].message_id = "m1"
        await registry.add(live)

        (outcome,) = await _tick(job, registry, status_client, {"1001": make_record()})

        assert outcome.transition is Transition.UPDATE
        assert not outcome.persisted
        assert gateway.edited[0][1] == "m1"

    @pytest.mark.asyncio
    async def test_started_refreshes_profile(self, job, registry, status_client):
        status_client.get_profiles.return_value = {
            "1001": ProfileInfo(
                id="1001",
                login="somestreamer",
                display_name="SomeStreamer",
                profile_image_url="https://img.example/new.png",
            )
        }
        await registry.add(make_entity(channels=("c1",)))

        await _tick(job, registry, status_client, {"1001": make_record()})

        entity = await registry.find_by_id("1001")
        assert entity.display_name == "SomeStreamer"
        assert entity.profile_image_url == "https://img.example/new.png"

    @pytest.mark.asyncio
    async def test_failed_store_write_is_not_reported_persisted(
        self, job, registry, store, status_client, gateway, monkeypatch
    ):
        await registry.add(make_entity(channels=("c1",)))

        def failing_upsert(entity):
            raise PersistenceFailed("disk full")

        monkeypatch.setattr(store, "upsert", failing_upsert)

        (outcome,) = await _tick(job, registry, status_client, {"1001": make_record()})

        assert outcome.transition is Transition.STARTED
        assert not outcome.persisted
        assert len(gateway.sent) == 1
        assert (await registry.find_by_id("1001")).stream_start_time is not None
