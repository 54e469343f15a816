"""
Discord Public Commands (handler layer)

Process-level diagnostics: uptime and reach.

IMPORTANT CONSTRAINTS:
- This module MUST NOT register commands on import
- This module MUST NOT own a Discord client
- This module MUST remain read-only and side-effect free
- All Discord-derived values are passed in externally
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from core.cooldowns import CommandKind, CooldownGate
from core.errors import PersistenceFailed
from core.registry import EntityRegistry
from services.discord.logging import DiscordLogAdapter
from shared.logging.logger import get_logger
from shared.storage.entity_store import DEFAULT_COMMAND_COOLDOWN, EntityStore
from shared.utils.durations import humanize_duration

log = get_logger("discord.commands.public", runtime="discord")


class PublicCommandHandler:
    """
    Handler for `uptime` and `stats`.

    Both are gated by the guild command cooldown; admins and the owner
    bypass it.
    """

    def __init__(
        self,
        *,
        registry: EntityRegistry,
        store: EntityStore,
        cooldowns: CooldownGate,
        logger: DiscordLogAdapter,
        started_at: Optional[datetime] = None,
    ):
        self._registry = registry
        self._store = store
        self._cooldowns = cooldowns
        self._logger = logger
        self._started_at = started_at or datetime.now(timezone.utc)

    @property
    def started_at(self) -> datetime:
        return self._started_at

    def _on_cooldown(self, kind: CommandKind, *, guild_id: str, channel_id: str, user_id: str, is_admin: bool) -> bool:
        try:
            cooldown = self._store.get_guild_settings(guild_id).command_cooldown
        except PersistenceFailed as e:
            log.warning(f"Guild settings unavailable for {guild_id}, using default: {e}")
            cooldown = DEFAULT_COMMAND_COOLDOWN
        return self._cooldowns.is_on_cooldown(kind, channel_id, user_id, cooldown, is_admin)

    # --------------------------------------------------

    async def cmd_uptime(
        self,
        *,
        user_id: str,
        guild_id: str,
        channel_id: str,
        is_admin: bool,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Return how long this process has been running.
        """
        if self._on_cooldown(CommandKind.UPTIME, guild_id=guild_id, channel_id=channel_id, user_id=user_id, is_admin=is_admin):
            return {"ok": False, "cooldown": True, "message": "Command is on cooldown"}

        now = now or datetime.now(timezone.utc)
        uptime = now - self._started_at

        self._logger.log_command(
            command="uptime",
            guild_id=guild_id,
            user_id=user_id,
            success=True,
        )

        return {
            "ok": True,
            "started_at": self._started_at.isoformat(),
            "uptime": humanize_duration(uptime) or "less than a minute",
        }

    async def cmd_stats(
        self,
        *,
        user_id: str,
        guild_id: str,
        channel_id: str,
        is_admin: bool,
        guild_count: int,
        member_count: int,
        scheduler: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        if self._on_cooldown(CommandKind.STATS, guild_id=guild_id, channel_id=channel_id, user_id=user_id, is_admin=is_admin):
            return {"ok": False, "cooldown": True, "message": "Command is on cooldown"}

        stats: Dict[str, Any] = {
            "guilds": guild_count,
            "members": member_count,
            "tracked": await self._registry.count(),
        }
        try:
            stats["subscriptions"] = self._store.stats()["subscriptions"]
        except PersistenceFailed as e:
            log.warning(f"Store stats unavailable: {e}")
            stats["subscriptions"] = None

        if scheduler:
            stats["ticks"] = scheduler.get("tick_count")
            stats["last_tick"] = scheduler.get("last_tick")

        self._logger.log_command(
            command="stats",
            guild_id=guild_id,
            user_id=user_id,
            success=True,
        )

        return {"ok": True, **stats}
