"""Tests for the per-entity live-status decision."""

from datetime import timedelta

from core.models import StreamPhase
from core.state_machine import COOLING_OFF, NotificationIntent, Transition, decide

from conftest import NOW, make_entity, make_record


# ── Offline entities ────────────────────────────────────


class TestNeverLive:
    def test_absent_record_is_still_offline(self):
        entity = make_entity()

        decision = decide(entity, None, NOW)

        assert decision.transition is Transition.STILL_OFFLINE
        assert decision.phase is StreamPhase.OFFLINE
        assert not decision.requires_action

    def test_live_record_starts_stream(self):
        entity = make_entity(channels=("c1",))
        record = make_record()

        decision = decide(entity, record, NOW)

        assert decision.transition is Transition.STARTED
        assert decision.intent is NotificationIntent.STARTED
        assert decision.entity.stream_start_time == record.started_at
        assert decision.entity.phase() is StreamPhase.LIVE

    def test_zero_length_with_live_record_is_started(self):
        entity = make_entity(start=NOW - timedelta(hours=1), end=NOW - timedelta(hours=1))
        assert entity.stream_length() == timedelta(0)

        decision = decide(entity, make_record(), NOW)

        assert decision.transition is Transition.STARTED

    def test_zero_length_without_record_is_still_offline(self):
        entity = make_entity(start=NOW - timedelta(hours=1), end=NOW - timedelta(hours=1))

        decision = decide(entity, None, NOW)

        assert decision.transition is Transition.STILL_OFFLINE

    def test_started_does_not_mutate_previous(self):
        entity = make_entity(channels=("c1",))
        entity.subscriptions[0].message_id = "old"

        decision = decide(entity, make_record(), NOW)

        assert entity.stream_start_time is None
        assert entity.subscriptions[0].message_id == "old"
        assert decision.entity.subscriptions[0].message_id is None


# ── Live entities ───────────────────────────────────────


class TestLive:
    def test_live_record_while_live_is_update(self):
        entity = make_entity(start=NOW - timedelta(minutes=30))

        decision = decide(entity, make_record(), NOW)

        assert decision.transition is Transition.UPDATE
        assert decision.phase is StreamPhase.LIVE
        assert decision.entity is not entity

    def test_absent_record_while_live_ends_backdated(self):
        start = NOW - timedelta(hours=2)
        entity = make_entity(start=start)

        decision = decide(entity, None, NOW)

        assert decision.transition is Transition.ENDED
        assert decision.entity.stream_end_time == NOW - COOLING_OFF
        assert decision.entity.stream_length() == timedelta(hours=2) - COOLING_OFF
        assert decision.entity.phase() is StreamPhase.ENDED


# ── Ended entities ──────────────────────────────────────


class TestEnded:
    def test_cooling_off_suppresses_everything(self):
        entity = make_entity(start=NOW - timedelta(hours=2), end=NOW - timedelta(minutes=1))

        assert decide(entity, make_record(), NOW).transition is Transition.COOLING_OFF
        assert decide(entity, None, NOW).transition is Transition.COOLING_OFF

    def test_cooling_off_window_is_exclusive(self):
        entity = make_entity(start=NOW - timedelta(hours=2), end=NOW - COOLING_OFF)

        decision = decide(entity, make_record(), NOW)

        assert decision.transition is Transition.STARTED

    def test_ended_then_absent_is_still_offline(self):
        entity = make_entity(start=NOW - timedelta(hours=2), end=NOW - timedelta(hours=1))

        decision = decide(entity, None, NOW)

        assert decision.transition is Transition.STILL_OFFLINE
        assert decision.phase is StreamPhase.ENDED

    def test_restart_after_ended(self):
        entity = make_entity(
            start=NOW - timedelta(hours=2),
            end=NOW - timedelta(hours=1),
            channels=("c1",),
        )
        entity.subscriptions[0].message_id = "stale"
        record = make_record(started_at=NOW - timedelta(minutes=2))

        decision = decide(entity, record, NOW)

        assert decision.transition is Transition.STARTED
        assert decision.entity.phase() is StreamPhase.LIVE
        assert decision.entity.subscriptions[0].message_id is None
