"""
Twitch Commands (handler layer)

Declarative handlers behind the `twitch` prefix command group.

Responsibilities:
- Profile lookups (login -> id, id -> login)
- Live status queries
- Registering entities and subscribing channels
- Guild command cooldown settings

IMPORTANT CONSTRAINTS:
- This module MUST NOT register commands
- This module MUST NOT own a Discord client
- Handlers receive raw IDs and flags only and return result dicts
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from core.cooldowns import CommandKind, CooldownGate
from core.errors import (
    AlreadyTracked,
    NotFound,
    PersistenceFailed,
    StatusSourceError,
    SubscriptionRejected,
    UnsupportedOperation,
)
from core.models import NotificationSubscription, TrackedEntity
from core.registry import EntityRegistry
from services.discord.logging import DiscordLogAdapter
from services.twitch.api.helix import HelixStatusClient
from shared.logging.logger import get_logger
from shared.storage.entity_store import DEFAULT_COMMAND_COOLDOWN, EntityStore

log = get_logger("discord.commands.twitch", runtime="discord")


def _cooldown_result() -> Dict[str, Any]:
    return {"ok": False, "cooldown": True, "message": "Command is on cooldown"}


class TwitchCommandHandler:
    """
    Handler for `twitch` sub-commands.

    All dependencies are passed in; nothing here reaches for globals.
    """

    def __init__(
        self,
        *,
        registry: EntityRegistry,
        status_client: HelixStatusClient,
        cooldowns: CooldownGate,
        store: EntityStore,
        logger: DiscordLogAdapter,
    ):
        self._registry = registry
        self._status = status_client
        self._cooldowns = cooldowns
        self._store = store
        self._logger = logger

    # --------------------------------------------------
    # Helpers
    # --------------------------------------------------

    def on_cooldown(
        self,
        *,
        guild_id: str,
        channel_id: str,
        user_id: str,
        is_admin: bool,
    ) -> bool:
        try:
            cooldown = self._store.get_guild_settings(guild_id).command_cooldown
        except PersistenceFailed as e:
            log.warning(f"Guild settings unavailable for {guild_id}, using default: {e}")
            cooldown = DEFAULT_COMMAND_COOLDOWN

        blocked = self._cooldowns.is_on_cooldown(
            CommandKind.TWITCH,
            channel_id,
            user_id,
            cooldown,
            is_admin,
        )
        if blocked:
            log.debug(f"[COMMAND] twitch is on cooldown in channel {channel_id}")
        return blocked

    def _audit(self, command: str, *, guild_id: str, user_id: str, success: bool, **extra: Any):
        self._logger.log_command(
            command=f"twitch {command}",
            guild_id=guild_id,
            user_id=user_id,
            success=success,
            extra=extra,
        )

    # --------------------------------------------------
    # Lookups
    # --------------------------------------------------

    async def cmd_lookup_id(
        self,
        *,
        user_id: str,
        guild_id: str,
        channel_id: str,
        is_admin: bool,
        login: str,
    ) -> Dict[str, Any]:
        """
        Resolve a Twitch login to its user id.
        """
        if self.on_cooldown(guild_id=guild_id, channel_id=channel_id, user_id=user_id, is_admin=is_admin):
            return _cooldown_result()

        try:
            profile = await self._status.get_profile_by_login(login)
        except StatusSourceError as e:
            log.warning(f"[TWITCH] failed getting user {login}: {e}")
            self._audit("id", guild_id=guild_id, user_id=user_id, success=False, login=login)
            return {"ok": False, "message": "Twitch is not reachable right now"}

        if profile is None:
            self._audit("id", guild_id=guild_id, user_id=user_id, success=False, login=login)
            return {"ok": False, "message": f"No Twitch user named **{login}**"}

        self._audit("id", guild_id=guild_id, user_id=user_id, success=True, login=login)
        return {"ok": True, "profile": profile}

    async def cmd_lookup_name(
        self,
        *,
        user_id: str,
        guild_id: str,
        channel_id: str,
        is_admin: bool,
        entity_id: str,
    ) -> Dict[str, Any]:
        """
        Resolve a Twitch user id to its login / display name.
        """
        if self.on_cooldown(guild_id=guild_id, channel_id=channel_id, user_id=user_id, is_admin=is_admin):
            return _cooldown_result()

        try:
            profiles = await self._status.get_profiles(ids=[entity_id])
        except StatusSourceError as e:
            log.warning(f"[TWITCH] failed getting user id {entity_id}: {e}")
            self._audit("name", guild_id=guild_id, user_id=user_id, success=False, id=entity_id)
            return {"ok": False, "message": "Twitch is not reachable right now"}

        profile = profiles.get(entity_id)
        if profile is None:
            self._audit("name", guild_id=guild_id, user_id=user_id, success=False, id=entity_id)
            return {"ok": False, "message": f"No Twitch user with id **{entity_id}**"}

        self._audit("name", guild_id=guild_id, user_id=user_id, success=True, id=entity_id)
        return {"ok": True, "profile": profile}

    async def cmd_status(
        self,
        *,
        user_id: str,
        guild_id: str,
        channel_id: str,
        is_admin: bool,
        login: str,
    ) -> Dict[str, Any]:
        """
        Report whether a broadcaster is live right now.
        """
        if self.on_cooldown(guild_id=guild_id, channel_id=channel_id, user_id=user_id, is_admin=is_admin):
            return _cooldown_result()

        entity: Optional[TrackedEntity] = None
        try:
            entity = await self._registry.find_by_name(login)
            entity_id, display_name = entity.id, entity.display_name
        except NotFound:
            try:
                profile = await self._status.get_profile_by_login(login)
            except StatusSourceError as e:
                log.warning(f"[TWITCH] failed getting user {login}: {e}")
                return {"ok": False, "message": "Twitch is not reachable right now"}
            if profile is None:
                self._audit("status", guild_id=guild_id, user_id=user_id, success=False, login=login)
                return {"ok": False, "message": f"No Twitch user named **{login}**"}
            entity_id, display_name = profile.id, profile.display_name

        try:
            records = await self._status.get_status([entity_id])
        except StatusSourceError as e:
            log.warning(f"[TWITCH] status query failed for {login}: {e}")
            return {"ok": False, "message": "Twitch is not reachable right now"}

        record = records.get(entity_id)
        self._audit("status", guild_id=guild_id, user_id=user_id, success=True, login=login)
        return {
            "ok": True,
            "live": record is not None,
            "display_name": display_name,
            "tracked": entity is not None,
            "record": record,
        }

    # --------------------------------------------------
    # Registry mutations
    # --------------------------------------------------

    async def cmd_add(
        self,
        *,
        user_id: str,
        guild_id: str,
        is_admin: bool,
        login: str,
        target_channel_id: str,
        target_guild_id: str,
    ) -> Dict[str, Any]:
        """
        Subscribe a channel to a broadcaster, registering it if new.
        """
        if not is_admin:
            self._audit("add", guild_id=guild_id, user_id=user_id, success=False, reason="not_admin")
            return {"ok": False, "message": "Only server admins can add alerts"}

        try:
            entity = await self._registry.find_by_name(login)
        except NotFound:
            try:
                profile = await self._status.get_profile_by_login(login)
            except StatusSourceError as e:
                log.warning(f"[TWITCH] failed getting user {login}: {e}")
                return {"ok": False, "message": "Twitch is not reachable right now"}
            if profile is None:
                return {"ok": False, "message": f"No Twitch user named **{login}**"}

            entity = TrackedEntity(
                id=profile.id,
                name=profile.login,
                display_name=profile.display_name,
                profile_image_url=profile.profile_image_url,
            )
            try:
                await self._registry.add(entity)
            except AlreadyTracked:
                entity = await self._registry.find_by_id(profile.id)

        try:
            persisted = await self._registry.add_subscription(
                entity.id,
                NotificationSubscription(channel_id=target_channel_id, guild_id=target_guild_id),
                requesting_guild_id=guild_id,
            )
        except SubscriptionRejected as e:
            self._audit("add", guild_id=guild_id, user_id=user_id, success=False, reason=e.reason)
            if e.reason == "duplicate":
                return {"ok": False, "message": f"<#{target_channel_id}> already gets alerts for **{entity.display_name}**"}
            return {"ok": False, "message": "That channel is not part of this server"}

        self._audit("add", guild_id=guild_id, user_id=user_id, success=True, login=entity.name, channel=target_channel_id)
        message = f"<#{target_channel_id}> will now get live alerts for **{entity.display_name}**"
        if not persisted:
            message += " (not saved yet, will retry on next change)"
        return {"ok": True, "message": message, "entity_id": entity.id}

    async def cmd_remove(
        self,
        *,
        user_id: str,
        guild_id: str,
        is_admin: bool,
        login: str,
        target_channel_id: str,
    ) -> Dict[str, Any]:
        if not is_admin:
            return {"ok": False, "message": "Only server admins can remove alerts"}

        try:
            entity = await self._registry.find_by_name(login)
            await self._registry.remove_subscription(entity.id, target_channel_id)
        except NotFound:
            return {"ok": False, "message": f"**{login}** is not tracked"}
        except UnsupportedOperation as e:
            self._audit("remove", guild_id=guild_id, user_id=user_id, success=False, reason="unsupported")
            return {"ok": False, "unsupported": True, "message": f"Not supported: {e}"}

        return {"ok": True, "message": "Removed"}

    async def cmd_list(
        self,
        *,
        user_id: str,
        guild_id: str,
        channel_id: str,
        is_admin: bool,
    ) -> Dict[str, Any]:
        """
        List broadcasters with alerts in this guild.
        """
        if self.on_cooldown(guild_id=guild_id, channel_id=channel_id, user_id=user_id, is_admin=is_admin):
            return _cooldown_result()

        entries = []
        for entity in await self._registry.snapshot():
            subs = entity.subscriptions_in_guild(guild_id)
            if subs:
                entries.append({
                    "name": entity.display_name,
                    "live": entity.phase().value == "live",
                    "channels": [sub.channel_id for sub in subs],
                })

        self._audit("list", guild_id=guild_id, user_id=user_id, success=True, count=len(entries))
        return {"ok": True, "entries": entries}

    async def cmd_set_cooldown(
        self,
        *,
        user_id: str,
        guild_id: str,
        is_admin: bool,
        seconds: int,
    ) -> Dict[str, Any]:
        if not is_admin:
            return {"ok": False, "message": "Only server admins can change the cooldown"}
        if seconds < 0:
            return {"ok": False, "message": "Cooldown must be zero or more seconds"}

        try:
            self._store.set_command_cooldown(guild_id, seconds)
        except PersistenceFailed as e:
            log.error(f"Failed to save cooldown for guild {guild_id}: {e}")
            return {"ok": False, "message": "Could not save the cooldown"}

        self._audit("cooldown", guild_id=guild_id, user_id=user_id, success=True, seconds=seconds)
        return {"ok": True, "message": f"Command cooldown set to {seconds}s"}

    async def cmd_set_admin_role(
        self,
        *,
        user_id: str,
        guild_id: str,
        is_admin: bool,
        role_id: Optional[str],
    ) -> Dict[str, Any]:
        """
        Set (or clear, with role_id=None) the role whose members count as admins.
        """
        if not is_admin:
            return {"ok": False, "message": "Only server admins can change the admin role"}

        try:
            self._store.set_admin_role(guild_id, role_id)
        except PersistenceFailed as e:
            log.error(f"Failed to save admin role for guild {guild_id}: {e}")
            return {"ok": False, "message": "Could not save the admin role"}

        self._audit("adminrole", guild_id=guild_id, user_id=user_id, success=True, role_id=role_id)
        if role_id:
            return {"ok": True, "message": f"Members with <@&{role_id}> can now manage alerts"}
        return {"ok": True, "message": "Admin role cleared"}
