from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional

# Stand-in for an unset timestamp when measuring stream length.
ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


class StreamPhase(str, Enum):
    OFFLINE = "offline"  # never seen live
    LIVE = "live"
    ENDED = "ended"


@dataclass
class NotificationSubscription:
    """
    One destination that receives notification cards for an entity.

    message_id is the handle of the card currently representing the
    live broadcast; None until the first successful send.
    """

    channel_id: str
    guild_id: str
    message_id: Optional[str] = None

    def clear_handle(self) -> None:
        self.message_id = None


@dataclass
class TrackedEntity:
    """
    A broadcaster being monitored.

    stream_start_time / stream_end_time are the durable record of the
    current phase; see phase().
    """

    id: str
    name: str
    display_name: str = ""
    profile_image_url: str = ""
    stream_start_time: Optional[datetime] = None
    stream_end_time: Optional[datetime] = None
    subscriptions: List[NotificationSubscription] = field(default_factory=list)

    # -------------------------------------------------

    def __post_init__(self):
        self.name = self.name.lower()
        if not self.display_name:
            self.display_name = self.name

    # -------------------------------------------------

    def stream_length(self) -> timedelta:
        start = self.stream_start_time or ZERO_TIME
        end = self.stream_end_time or ZERO_TIME
        return end - start

    def phase(self) -> StreamPhase:
        length = self.stream_length()
        if length < timedelta(0):
            return StreamPhase.LIVE
        if length == timedelta(0):
            return StreamPhase.OFFLINE
        return StreamPhase.ENDED

    # -------------------------------------------------

    def find_subscription(self, channel_id: str) -> Optional[NotificationSubscription]:
        for sub in self.subscriptions:
            if sub.channel_id == channel_id:
                return sub
        return None

    def has_subscription(self, channel_id: str) -> bool:
        return self.find_subscription(channel_id) is not None

    def subscriptions_in_guild(self, guild_id: str) -> List[NotificationSubscription]:
        return [sub for sub in self.subscriptions if sub.guild_id == guild_id]

    def copy(self) -> "TrackedEntity":
        return copy.deepcopy(self)

    @property
    def channel_url(self) -> str:
        return f"https://twitch.tv/{self.name}"
