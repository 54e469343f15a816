from __future__ import annotations

import sqlite3
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from core.errors import NotFound, PersistenceFailed
from core.models import NotificationSubscription, TrackedEntity
from shared.logging.logger import get_logger

log = get_logger("shared.storage.entity_store")

DEFAULT_COMMAND_COOLDOWN = 3


@dataclass
class GuildSettings:
    guild_id: str
    owner_id: Optional[str] = None
    owner_name: Optional[str] = None
    admin_role_id: Optional[str] = None
    command_cooldown: int = DEFAULT_COMMAND_COOLDOWN


def _dt_to_db(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _dt_from_db(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


class EntityStore:
    """
    SQLite-backed durability sink for tracked entities.

    Tables:
      - tracked_entities
      - notification_subscriptions
      - guild_settings

    The in-memory registry is the authority; this store mirrors it.
    All sqlite errors surface as PersistenceFailed.
    """

    SEARCHABLE_FIELDS = ("id", "name")

    def __init__(
        self,
        db_path: Path | str,
        *,
        default_cooldown: int = DEFAULT_COMMAND_COOLDOWN,
    ):
        self._path = Path(db_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._default_cooldown = default_cooldown
        self._init_schema()

    # ------------------------------------------------------------------
    # INTERNALS
    # ------------------------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_schema(self) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS tracked_entities (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        display_name TEXT,
                        profile_image_url TEXT,
                        stream_start_time TEXT,
                        stream_end_time TEXT,
                        created_at INTEGER NOT NULL,
                        updated_at INTEGER NOT NULL
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS notification_subscriptions (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        entity_id TEXT NOT NULL
                            REFERENCES tracked_entities(id) ON DELETE CASCADE,
                        channel_id TEXT NOT NULL,
                        guild_id TEXT NOT NULL,
                        message_id TEXT,
                        position INTEGER NOT NULL,
                        created_at INTEGER NOT NULL,
                        updated_at INTEGER NOT NULL,
                        UNIQUE (entity_id, channel_id)
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS guild_settings (
                        guild_id TEXT PRIMARY KEY,
                        owner_id TEXT,
                        owner_name TEXT,
                        admin_role_id TEXT,
                        command_cooldown INTEGER,
                        created_at INTEGER NOT NULL,
                        updated_at INTEGER NOT NULL
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_tracked_entities_name
                    ON tracked_entities(name)
                    """
                )
        except sqlite3.Error as e:
            raise PersistenceFailed(f"Failed to initialise entity store at {self._path}: {e}") from e

    # ------------------------------------------------------------------
    # HELPERS
    # ------------------------------------------------------------------

    def _load_subscriptions(
        self,
        conn: sqlite3.Connection,
        entity_id: str,
    ) -> List[NotificationSubscription]:
        rows = conn.execute(
            """
            SELECT channel_id, guild_id, message_id
            FROM notification_subscriptions
            WHERE entity_id = ?
            ORDER BY position, id
            """,
            (entity_id,),
        ).fetchall()
        return [
            NotificationSubscription(
                channel_id=row["channel_id"],
                guild_id=row["guild_id"],
                message_id=row["message_id"] or None,
            )
            for row in rows
        ]

    def _row_to_entity(self, conn: sqlite3.Connection, row: Mapping[str, Any]) -> TrackedEntity:
        return TrackedEntity(
            id=row["id"],
            name=row["name"],
            display_name=row["display_name"] or "",
            profile_image_url=row["profile_image_url"] or "",
            stream_start_time=_dt_from_db(row["stream_start_time"]),
            stream_end_time=_dt_from_db(row["stream_end_time"]),
            subscriptions=self._load_subscriptions(conn, row["id"]),
        )

    # ------------------------------------------------------------------
    # ENTITIES
    # ------------------------------------------------------------------

    def load_all(self) -> List[TrackedEntity]:
        with self._lock:
            try:
                with self._connect() as conn:
                    rows = conn.execute(
                        "SELECT * FROM tracked_entities ORDER BY created_at, id"
                    ).fetchall()
                    return [self._row_to_entity(conn, row) for row in rows]
            except sqlite3.Error as e:
                raise PersistenceFailed(f"Failed to load tracked entities: {e}") from e

    def upsert(self, entity: TrackedEntity) -> None:
        """
        Write the entity and its subscription list.

        Re-saving an unchanged entity leaves the stored rows equivalent.
        Subscriptions no longer present on the entity are removed.
        """
        now = int(time.time())

        with self._lock:
            try:
                with self._connect() as conn:
                    conn.execute(
                        """
                        INSERT INTO tracked_entities (
                            id, name, display_name, profile_image_url,
                            stream_start_time, stream_end_time,
                            created_at, updated_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        ON CONFLICT(id) DO UPDATE SET
                            name = excluded.name,
                            display_name = excluded.display_name,
                            profile_image_url = excluded.profile_image_url,
                            stream_start_time = excluded.stream_start_time,
                            stream_end_time = excluded.stream_end_time,
                            updated_at = excluded.updated_at
                        """,
                        (
                            entity.id,
                            entity.name,
                            entity.display_name,
                            entity.profile_image_url,
                            _dt_to_db(entity.stream_start_time),
                            _dt_to_db(entity.stream_end_time),
                            now,
                            now,
                        ),
                    )

                    channel_ids = [sub.channel_id for sub in entity.subscriptions]
                    placeholders = ",".join("?" for _ in channel_ids)
                    if channel_ids:
                        conn.execute(
                            f"""
                            DELETE FROM notification_subscriptions
                            WHERE entity_id = ? AND channel_id NOT IN ({placeholders})
                            """,
                            (entity.id, *channel_ids),
                        )
                    else:
                        conn.execute(
                            "DELETE FROM notification_subscriptions WHERE entity_id = ?",
                            (entity.id,),
                        )

                    for position, sub in enumerate(entity.subscriptions):
                        conn.execute(
                            """
                            INSERT INTO notification_subscriptions (
                                entity_id, channel_id, guild_id, message_id,
                                position, created_at, updated_at
                            ) VALUES (?, ?, ?, ?, ?, ?, ?)
                            ON CONFLICT(entity_id, channel_id) DO UPDATE SET
                                guild_id = excluded.guild_id,
                                message_id = excluded.message_id,
                                position = excluded.position,
                                updated_at = excluded.updated_at
                            """,
                            (
                                entity.id,
                                sub.channel_id,
                                sub.guild_id,
                                sub.message_id,
                                position,
                                now,
                                now,
                            ),
                        )
            except sqlite3.Error as e:
                raise PersistenceFailed(f"[{entity.name}] Failed to persist entity: {e}") from e

    def find_by_field(self, field: str, value: str) -> TrackedEntity:
        if field not in self.SEARCHABLE_FIELDS:
            raise ValueError(f"Unsupported lookup field: {field}")

        if field == "name":
            query = "SELECT * FROM tracked_entities WHERE name = ? COLLATE NOCASE"
        else:
            query = "SELECT * FROM tracked_entities WHERE id = ?"

        with self._lock:
            try:
                with self._connect() as conn:
                    row = conn.execute(query, (value,)).fetchone()
                    if row is None:
                        raise NotFound(f"no tracked entity with {field}: {value}")
                    return self._row_to_entity(conn, row)
            except sqlite3.Error as e:
                raise PersistenceFailed(f"Failed to look up entity by {field}: {e}") from e

    # ------------------------------------------------------------------
    # GUILD SETTINGS
    # ------------------------------------------------------------------

    def _row_to_guild(self, row: Mapping[str, Any]) -> GuildSettings:
        cooldown = row["command_cooldown"]
        return GuildSettings(
            guild_id=row["guild_id"],
            owner_id=row["owner_id"],
            owner_name=row["owner_name"],
            admin_role_id=row["admin_role_id"],
            command_cooldown=self._default_cooldown if cooldown is None else int(cooldown),
        )

    def record_guild(self, guild_id: str, *, owner_id: Optional[str], owner_name: Optional[str]) -> bool:
        """
        Record a guild the bot joined. Returns False when already known.
        """
        now = int(time.time())
        with self._lock:
            try:
                with self._connect() as conn:
                    cur = conn.execute(
                        """
                        INSERT OR IGNORE INTO guild_settings (
                            guild_id, owner_id, owner_name, admin_role_id,
                            command_cooldown, created_at, updated_at
                        ) VALUES (?, ?, ?, NULL, NULL, ?, ?)
                        """,
                        (guild_id, owner_id, owner_name, now, now),
                    )
                    return cur.rowcount > 0
            except sqlite3.Error as e:
                raise PersistenceFailed(f"Failed to record guild {guild_id}: {e}") from e

    def get_guild_settings(self, guild_id: str) -> GuildSettings:
        with self._lock:
            try:
                with self._connect() as conn:
                    row = conn.execute(
                        "SELECT * FROM guild_settings WHERE guild_id = ?",
                        (guild_id,),
                    ).fetchone()
            except sqlite3.Error as e:
                raise PersistenceFailed(f"Failed to read guild settings {guild_id}: {e}") from e

        if row is None:
            return GuildSettings(guild_id=guild_id, command_cooldown=self._default_cooldown)
        return self._row_to_guild(row)

    def update_guild_settings(self, guild_id: str, **updates: Any) -> GuildSettings:
        allowed = {"admin_role_id", "command_cooldown", "owner_id", "owner_name"}
        unknown = set(updates) - allowed
        if unknown:
            raise ValueError(f"Unknown guild setting(s): {sorted(unknown)}")

        now = int(time.time())
        with self._lock:
            try:
                with self._connect() as conn:
                    conn.execute(
                        """
                        INSERT OR IGNORE INTO guild_settings (
                            guild_id, created_at, updated_at
                        ) VALUES (?, ?, ?)
                        """,
                        (guild_id, now, now),
                    )
                    for column, value in updates.items():
                        conn.execute(
                            f"UPDATE guild_settings SET {column} = ?, updated_at = ? WHERE guild_id = ?",
                            (value, now, guild_id),
                        )
            except sqlite3.Error as e:
                raise PersistenceFailed(f"Failed to update guild settings {guild_id}: {e}") from e

        return self.get_guild_settings(guild_id)

    def set_command_cooldown(self, guild_id: str, seconds: int) -> GuildSettings:
        if seconds < 0:
            raise ValueError("cooldown must be >= 0")
        return self.update_guild_settings(guild_id, command_cooldown=int(seconds))

    def set_admin_role(self, guild_id: str, role_id: Optional[str]) -> GuildSettings:
        return self.update_guild_settings(guild_id, admin_role_id=str(role_id) if role_id else None)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            try:
                with self._connect() as conn:
                    entities = conn.execute("SELECT COUNT(*) FROM tracked_entities").fetchone()[0]
                    subs = conn.execute("SELECT COUNT(*) FROM notification_subscriptions").fetchone()[0]
            except sqlite3.Error as e:
                raise PersistenceFailed(f"Failed to read store stats: {e}") from e
        return {"entities": int(entities), "subscriptions": int(subs)}
