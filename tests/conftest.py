"""Shared fixtures for the streamalerts test suite."""

import os

# Keep test runs from writing log files.
os.environ.setdefault("STREAMALERTS_LOG_FILE", "0")
os.environ.setdefault("STREAMALERTS_LOG_LEVEL", "WARNING")

from datetime import datetime, timedelta, timezone  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402

from core.errors import SourceUnavailable  # noqa: E402
from core.models import NotificationSubscription, TrackedEntity  # noqa: E402
from core.registry import EntityRegistry  # noqa: E402
from services.twitch.models.stream import StatusRecord  # noqa: E402
from shared.storage.entity_store import EntityStore  # noqa: E402

NOW = datetime(2024, 5, 1, 20, 0, 0, tzinfo=timezone.utc)


def make_entity(
    entity_id: str = "1001",
    name: str = "somestreamer",
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    channels: tuple = (),
    guild_id: str = "g1",
) -> TrackedEntity:
    return TrackedEntity(
        id=entity_id,
        name=name,
        display_name=name.capitalize(),
        profile_image_url="https://img.example/p.png",
        stream_start_time=start,
        stream_end_time=end,
        subscriptions=[
            NotificationSubscription(channel_id=cid, guild_id=guild_id) for cid in channels
        ],
    )


def make_record(
    entity_id: str = "1001",
    *,
    started_at: datetime | None = None,
    title: str = "Going live",
    category_id: str = "509658",
    category_name: str = "Just Chatting",
    viewers: int = 42,
) -> StatusRecord:
    return StatusRecord(
        entity_id=entity_id,
        stream_id="s-1",
        login="somestreamer",
        started_at=started_at or NOW - timedelta(minutes=1),
        title=title,
        viewer_count=viewers,
        category_id=category_id,
        category_name=category_name,
    )


class FakeGateway:
    """In-memory MessageGateway recording every call."""

    def __init__(self):
        self.sent = []
        self.edited = []
        self.fail_send = {}
        self.fail_edit = {}
        self._next_id = 500

    async def send(self, channel_id, card):
        if channel_id in self.fail_send:
            raise self.fail_send[channel_id]
        self._next_id += 1
        self.sent.append((channel_id, card))
        return str(self._next_id)

    async def edit(self, channel_id, message_id, card):
        if channel_id in self.fail_edit:
            raise self.fail_edit[channel_id]
        self.edited.append((channel_id, message_id, card))


@pytest.fixture
def store(tmp_path):
    return EntityStore(tmp_path / "entities.db")


@pytest.fixture
def registry(store):
    return EntityRegistry(store)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def status_client():
    client = AsyncMock()
    client.get_status = AsyncMock(return_value={})
    client.get_profiles = AsyncMock(return_value={})
    client.get_profile_by_login = AsyncMock(return_value=None)
    client.get_metadata = AsyncMock(side_effect=SourceUnavailable("no category"))
    return client
