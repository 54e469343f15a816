"""
Discord Client

This module owns the Discord connection itself.
It is intentionally minimal and lifecycle-focused.

Responsibilities:
- connect to Discord
- handle ready / resume / disconnect events
- record guilds the bot joins, log member churn
- cache recent messages and audit deletions
- register prefix command surfaces
- expose a clean async run() / shutdown() contract

IMPORTANT:
- This client MUST be controlled by DiscordSupervisor
- This client MUST NOT create its own event loop
- This client MUST NOT start the poll scheduler
"""

from __future__ import annotations

import asyncio
from typing import Callable, Dict, Optional

import discord
from discord.ext import commands

from core.errors import PersistenceFailed
from services.discord import commands as command_surfaces
from services.discord.commands.public import PublicCommandHandler
from services.discord.commands.twitch import TwitchCommandHandler
from services.discord.embeds import error_embed
from services.discord.logging import DiscordLogAdapter
from services.discord.message_cache import CachedMessage, MessageCache
from services.discord.permissions import DiscordPermissionResolver
from shared.config.settings import DiscordSettings
from shared.logging.logger import get_logger
from shared.storage.entity_store import EntityStore

# NOTE: routed to Discord runtime log file
log = get_logger("discord.client", runtime="discord")


class DiscordClient:
    """
    Thin wrapper around discord.py Bot.

    This class provides:
    - async run() entrypoint
    - async shutdown()
    - lifecycle event logging
    - command surface wiring
    """

    def __init__(
        self,
        *,
        settings: DiscordSettings,
        store: EntityStore,
        twitch_handler: TwitchCommandHandler,
        public_handler: PublicCommandHandler,
        permissions: DiscordPermissionResolver,
        logger: DiscordLogAdapter,
        scheduler_snapshot: Optional[Callable[[], Dict[str, object]]] = None,
        message_cache: Optional[MessageCache] = None,
    ):
        self._token: str = settings.token
        self._prefix: str = settings.prefix
        self._store = store
        self._twitch_handler = twitch_handler
        self._public_handler = public_handler
        self._permissions = permissions
        self._logger = logger
        self._scheduler_snapshot = scheduler_snapshot
        self._message_cache = message_cache or MessageCache()

        self._bot: Optional[commands.Bot] = None
        self._ready_event = asyncio.Event()

    # --------------------------------------------------

    def build_bot(self) -> commands.Bot:
        """
        Construct the discord.py Bot instance and register commands.
        """
        if self._bot is not None:
            return self._bot

        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True
        intents.messages = True
        intents.message_content = True  # prefix commands

        bot = commands.Bot(
            command_prefix=self._prefix,
            intents=intents,
        )

        # --------------------------------------------------
        # Command Registration
        # --------------------------------------------------
        command_surfaces.setup(
            bot,
            twitch=self._twitch_handler,
            public=self._public_handler,
            permissions=self._permissions,
            store=self._store,
            scheduler_snapshot=self._scheduler_snapshot,
        )

        # --------------------------------------------------
        # Lifecycle Events
        # --------------------------------------------------

        @bot.event
        async def on_ready():
            log.info(
                f"Discord connected as {bot.user} "
                f"(id={bot.user.id}) "
                f"guilds={len(bot.guilds)}"
            )
            self._ready_event.set()

        @bot.event
        async def on_resumed():
            log.info("Discord connection resumed")

        @bot.event
        async def on_disconnect():
            log.warning("Discord connection lost")

        @bot.event
        async def on_guild_join(guild: discord.Guild):
            log.info(
                f"Joined guild: {guild.name} "
                f"(id={guild.id}, members={guild.member_count})"
            )
            owner_name = str(guild.owner) if guild.owner else None
            try:
                created = self._store.record_guild(
                    str(guild.id),
                    owner_id=str(guild.owner_id) if guild.owner_id else None,
                    owner_name=owner_name,
                )
            except PersistenceFailed as e:
                log.error(f"Failed to record guild {guild.id}: {e}")
                return
            self._logger.log_guild_event(
                event="guild_join",
                guild_id=guild.id,
                data={"name": guild.name, "new": created},
            )

        @bot.event
        async def on_guild_remove(guild: discord.Guild):
            log.info(
                f"Removed from guild: {guild.name} "
                f"(id={guild.id})"
            )
            self._logger.log_guild_event(event="guild_remove", guild_id=guild.id)

        @bot.event
        async def on_member_join(member: discord.Member):
            self._logger.log_guild_event(
                event="member_join",
                guild_id=member.guild.id,
                user_id=member.id,
                data={"name": str(member)},
            )

        @bot.event
        async def on_member_remove(member: discord.Member):
            self._logger.log_guild_event(
                event="member_remove",
                guild_id=member.guild.id,
                user_id=member.id,
                data={"name": str(member)},
            )

        @bot.event
        async def on_member_update(before: discord.Member, after: discord.Member):
            await self.audit_member_update(before, after)

        # --------------------------------------------------
        # Message Audit
        # --------------------------------------------------

        # a listener, not an event override, so prefix commands still dispatch
        bot.add_listener(self.record_message, "on_message")

        @bot.event
        async def on_raw_message_delete(payload: discord.RawMessageDeleteEvent):
            await self.audit_message_delete(
                message_id=payload.message_id,
                guild_id=payload.guild_id,
                channel_id=payload.channel_id,
            )

        @bot.event
        async def on_command_error(ctx: commands.Context, error: commands.CommandError):
            if isinstance(error, (commands.CommandNotFound, commands.CheckFailure)):
                return
            if isinstance(error, commands.UserInputError):
                await ctx.send(embed=error_embed("Invalid command", str(error)))
                return

            original = getattr(error, "original", error)
            log.error(f"Command {ctx.command} failed: {original!r}")

        self._bot = bot
        return bot

    # --------------------------------------------------
    # Event Handlers
    # --------------------------------------------------

    async def record_message(self, message: discord.Message):
        if message.guild is None:
            return
        self._message_cache.add(CachedMessage.from_discord(message))

    async def audit_message_delete(
        self,
        *,
        message_id: int | str,
        guild_id: Optional[int | str],
        channel_id: int | str,
    ):
        cached = self._message_cache.find(str(message_id))
        if cached is None:
            self._logger.log_guild_event(
                event="message_delete",
                guild_id=guild_id,
                data={
                    "message_id": str(message_id),
                    "channel_id": str(channel_id),
                    "cached": False,
                },
            )
            return

        self._logger.log_guild_event(
            event="message_delete",
            guild_id=guild_id,
            user_id=cached.author_id,
            data={
                "message_id": cached.id,
                "channel_id": cached.channel_id,
                "cached": True,
                "author": cached.author_name,
                "attachments": cached.attachments,
                "content": cached.content,
            },
        )

    async def audit_member_update(self, before: discord.Member, after: discord.Member):
        changes = []
        if before.nick != after.nick:
            changes.append("nick")
        if [r.id for r in before.roles] != [r.id for r in after.roles]:
            changes.append("roles")

        self._logger.log_guild_event(
            event="member_update",
            guild_id=after.guild.id,
            user_id=after.id,
            data={"name": str(after), "changes": changes},
        )

    # --------------------------------------------------

    async def run(self):
        """
        Start the Discord client and block until shutdown.
        """
        bot = self.build_bot()
        if bot.is_closed():
            raise RuntimeError("Discord client already closed")

        log.info("Initializing Discord client")

        try:
            await bot.start(self._token)
        except asyncio.CancelledError:
            log.info("Discord client task cancelled")
            raise
        except Exception as e:
            log.error(f"Discord client crashed: {e}")
            raise
        finally:
            log.info("Discord client stopped")

    async def wait_until_ready(self):
        await self._ready_event.wait()

    # --------------------------------------------------

    async def shutdown(self):
        """
        Gracefully close the Discord connection.
        """
        if not self._bot:
            return

        log.info("Closing Discord connection")

        try:
            await self._bot.close()
        except Exception as e:
            log.warning(f"Discord close error ignored: {e}")

        self._bot = None
        self._ready_event.clear()

    # --------------------------------------------------

    @property
    def bot(self) -> Optional[commands.Bot]:
        """
        Expose bot instance (read-only) for supervisor hooks.
        """
        return self._bot

    @property
    def ready(self) -> bool:
        return self._ready_event.is_set()
