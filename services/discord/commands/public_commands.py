"""
Discord Public Command Registration

Registers `uptime` and `stats` and delegates to PublicCommandHandler.
"""

from __future__ import annotations

from typing import Callable, Dict, Optional

from discord.ext import commands

from services.discord.commands.public import PublicCommandHandler
from services.discord.commands.twitch_commands import resolve_is_admin
from services.discord.embeds import info_embed
from services.discord.permissions import DiscordPermissionResolver
from shared.logging.logger import get_logger
from shared.storage.entity_store import EntityStore

log = get_logger("discord.commands.public.register", runtime="discord")


def setup(
    bot: commands.Bot,
    *,
    handler: PublicCommandHandler,
    permissions: DiscordPermissionResolver,
    store: EntityStore,
    scheduler_snapshot: Optional[Callable[[], Dict[str, object]]] = None,
):
    @commands.command(name="uptime")
    @commands.guild_only()
    async def uptime(ctx: commands.Context):
        result = await handler.cmd_uptime(
            user_id=str(ctx.author.id),
            guild_id=str(ctx.guild.id),
            channel_id=str(ctx.channel.id),
            is_admin=resolve_is_admin(ctx, permissions=permissions, store=store),
        )
        if not result["ok"]:
            return
        await ctx.send(embed=info_embed("Uptime", result["uptime"]))

    @commands.command(name="stats")
    @commands.guild_only()
    async def stats(ctx: commands.Context):
        result = await handler.cmd_stats(
            user_id=str(ctx.author.id),
            guild_id=str(ctx.guild.id),
            channel_id=str(ctx.channel.id),
            is_admin=resolve_is_admin(ctx, permissions=permissions, store=store),
            guild_count=len(bot.guilds),
            member_count=sum(guild.member_count or 0 for guild in bot.guilds),
            scheduler=scheduler_snapshot() if scheduler_snapshot else None,
        )
        if not result["ok"]:
            return

        embed = info_embed("Stats")
        embed.add_field(name="Guilds", value=str(result["guilds"]), inline=True)
        embed.add_field(name="Members", value=str(result["members"]), inline=True)
        embed.add_field(name="Tracked", value=str(result["tracked"]), inline=True)
        if result.get("subscriptions") is not None:
            embed.add_field(name="Alert channels", value=str(result["subscriptions"]), inline=True)
        if result.get("ticks") is not None:
            embed.add_field(name="Poll ticks", value=str(result["ticks"]), inline=True)
        await ctx.send(embed=embed)

    bot.add_command(uptime)
    bot.add_command(stats)

    log.info("Discord public commands registered")
