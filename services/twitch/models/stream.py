from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


def parse_helix_time(value: Any) -> Optional[datetime]:
    """Parse Helix RFC3339 timestamps ("2024-05-01T18:00:00Z")."""
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass
class StatusRecord:
    """
    Live record for one broadcaster as reported by GET /streams.

    Only constructed for streams that are actually live.
    """

    entity_id: str
    stream_id: str
    login: str
    started_at: datetime
    title: str = ""
    viewer_count: int = 0
    category_id: str = ""
    category_name: str = ""
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_helix(cls, item: Dict[str, Any]) -> Optional["StatusRecord"]:
        stream_id = str(item.get("id") or "")
        if not stream_id or item.get("type") != "live":
            return None

        started_at = parse_helix_time(item.get("started_at"))
        if started_at is None:
            return None

        try:
            viewers = int(item.get("viewer_count") or 0)
        except (TypeError, ValueError):
            viewers = 0

        return cls(
            entity_id=str(item.get("user_id") or ""),
            stream_id=stream_id,
            login=str(item.get("user_login") or ""),
            started_at=started_at,
            title=str(item.get("title") or ""),
            viewer_count=viewers,
            category_id=str(item.get("game_id") or ""),
            category_name=str(item.get("game_name") or ""),
            raw=item,
        )


@dataclass
class CategoryInfo:
    id: str
    name: str
    box_art_url: str = ""


@dataclass
class ProfileInfo:
    id: str
    login: str
    display_name: str
    profile_image_url: str = ""

    @classmethod
    def from_helix(cls, item: Dict[str, Any]) -> "ProfileInfo":
        login = str(item.get("login") or "")
        return cls(
            id=str(item.get("id") or ""),
            login=login,
            display_name=str(item.get("display_name") or login),
            profile_image_url=str(item.get("profile_image_url") or ""),
        )
