"""
Discord Message Cache

Bounded record of recently seen guild messages, kept so deletions can be
audited with the author and content of the removed message.

IMPORTANT:
- Oldest entries are evicted first once the limit is reached
- This module MUST NOT depend on a live Discord connection
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Optional

DEFAULT_MESSAGE_CACHE_LIMIT = 1000


@dataclass(frozen=True)
class CachedMessage:
    id: str
    guild_id: Optional[str]
    channel_id: str
    author_id: str
    author_name: str
    content: str
    attachments: int = 0

    @classmethod
    def from_discord(cls, message: Any) -> "CachedMessage":
        guild = getattr(message, "guild", None)
        return cls(
            id=str(message.id),
            guild_id=str(guild.id) if guild else None,
            channel_id=str(message.channel.id),
            author_id=str(message.author.id),
            author_name=str(message.author),
            content=message.content or "",
            attachments=len(message.attachments or []),
        )


class MessageCache:
    """
    Thread-safe FIFO of the last `limit` messages.
    """

    def __init__(self, limit: int = DEFAULT_MESSAGE_CACHE_LIMIT):
        self._messages: Deque[CachedMessage] = deque(maxlen=max(1, limit))
        self._lock = threading.Lock()

    def add(self, message: CachedMessage) -> None:
        with self._lock:
            self._messages.append(message)

    def find(self, message_id: str) -> Optional[CachedMessage]:
        wanted = str(message_id)
        with self._lock:
            for message in reversed(self._messages):
                if message.id == wanted:
                    return message
        return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)
