"""
Discord Command Package

This package centralizes registration for every prefix command surface.

Command categories:
- twitch   → lookups, status, alert subscriptions, guild cooldown
- public   → uptime and stats

IMPORTANT DESIGN RULES:
- No command registration on import
- No Discord client ownership
- Explicit setup() calls only
"""

from __future__ import annotations

from typing import Callable, Dict, Optional

from discord.ext import commands

from shared.logging.logger import get_logger

# Sub-command modules (registration-only)
from services.discord.commands import public_commands
from services.discord.commands import twitch_commands
from services.discord.commands.public import PublicCommandHandler
from services.discord.commands.twitch import TwitchCommandHandler
from services.discord.permissions import DiscordPermissionResolver
from shared.storage.entity_store import EntityStore

log = get_logger("discord.commands", runtime="discord")


def setup(
    bot: commands.Bot,
    *,
    twitch: TwitchCommandHandler,
    public: PublicCommandHandler,
    permissions: DiscordPermissionResolver,
    store: EntityStore,
    scheduler_snapshot: Optional[Callable[[], Dict[str, object]]] = None,
):
    """
    Register all Discord command surfaces.

    Called exactly once by the Discord client while building the bot.
    """
    twitch_commands.setup(
        bot,
        handler=twitch,
        permissions=permissions,
        store=store,
    )

    public_commands.setup(
        bot,
        handler=public,
        permissions=permissions,
        store=store,
        scheduler_snapshot=scheduler_snapshot,
    )

    log.info("Discord command surfaces initialized")
