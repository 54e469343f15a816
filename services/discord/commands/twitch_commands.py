"""
Discord Twitch Command Registration

Thin registration layer exposing the `twitch` prefix command group and
delegating ALL logic to TwitchCommandHandler.

Responsibilities:
- Register the `twitch` group and its sub-commands
- Resolve the author's admin status once per invocation
- Perform Discord I/O (replies) ONLY at the boundary

IMPORTANT DESIGN RULES:
- NO business logic
- NO persistence
- NO Discord client creation
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import discord
from discord.ext import commands

from core.errors import PersistenceFailed
from services.discord.commands.twitch import TwitchCommandHandler
from services.discord.embeds import error_embed, info_embed, success_embed
from services.discord.permissions import DiscordPermissionResolver
from shared.logging.logger import get_logger
from shared.storage.entity_store import EntityStore

log = get_logger("discord.commands.twitch.register", runtime="discord")


def resolve_is_admin(
    ctx: commands.Context,
    *,
    permissions: DiscordPermissionResolver,
    store: EntityStore,
) -> bool:
    admin_role_id: Optional[str] = None
    if ctx.guild is not None:
        try:
            admin_role_id = store.get_guild_settings(str(ctx.guild.id)).admin_role_id
        except PersistenceFailed as e:
            log.warning(f"Could not read admin role for guild {ctx.guild.id}: {e}")
    return permissions.check_member(ctx.author, admin_role_id=admin_role_id).allowed


async def reply_result(ctx: commands.Context, result: Dict[str, Any], *, title: str) -> None:
    """
    Render a plain handler result. Cooldown hits stay silent.
    """
    if result.get("cooldown"):
        return
    if result.get("ok"):
        await ctx.send(embed=success_embed(title, result.get("message")))
    else:
        await ctx.send(embed=error_embed(title, result.get("message")))


# ==================================================
# Registration Entry Point
# ==================================================

def setup(
    bot: commands.Bot,
    *,
    handler: TwitchCommandHandler,
    permissions: DiscordPermissionResolver,
    store: EntityStore,
):
    """
    Register the `twitch` command group on the bot.
    """

    def _base(ctx: commands.Context) -> Dict[str, Any]:
        return {
            "user_id": str(ctx.author.id),
            "guild_id": str(ctx.guild.id),
            "is_admin": resolve_is_admin(ctx, permissions=permissions, store=store),
        }

    @commands.group(name="twitch", invoke_without_command=True)
    @commands.guild_only()
    async def twitch(ctx: commands.Context):
        await ctx.send(
            embed=info_embed(
                "Twitch alerts",
                "`id <login>` `name <id>` `status <login>` `add <login> [#channel]` "
                "`remove <login>` `list` `cooldown <seconds>` `adminrole [@role]`",
            )
        )

    # --------------------------------------------------
    # !twitch id <login>
    # --------------------------------------------------

    @twitch.command(name="id")
    async def twitch_id(ctx: commands.Context, login: str):
        result = await handler.cmd_lookup_id(
            channel_id=str(ctx.channel.id),
            login=login,
            **_base(ctx),
        )
        if not result["ok"]:
            await reply_result(ctx, result, title="Twitch id")
            return

        profile = result["profile"]
        await ctx.send(embed=info_embed(profile.display_name, f"ID: `{profile.id}`"))

    # --------------------------------------------------
    # !twitch name <id>
    # --------------------------------------------------

    @twitch.command(name="name")
    async def twitch_name(ctx: commands.Context, entity_id: str):
        result = await handler.cmd_lookup_name(
            channel_id=str(ctx.channel.id),
            entity_id=entity_id,
            **_base(ctx),
        )
        if not result["ok"]:
            await reply_result(ctx, result, title="Twitch name")
            return

        profile = result["profile"]
        await ctx.send(
            embed=info_embed(profile.display_name, f"Login: `{profile.login}`\nID: `{profile.id}`")
        )

    # --------------------------------------------------
    # !twitch status <login>
    # --------------------------------------------------

    @twitch.command(name="status")
    async def twitch_status(ctx: commands.Context, login: str):
        result = await handler.cmd_status(
            channel_id=str(ctx.channel.id),
            login=login,
            **_base(ctx),
        )
        if not result["ok"]:
            await reply_result(ctx, result, title="Twitch status")
            return

        record = result["record"]
        if record is None:
            description = "Offline"
        else:
            description = f"Live: **{record.title}**\n{record.category_name or '???'} for {record.viewer_count} viewers"
        if not result["tracked"]:
            description += "\n_Not tracked here._"
        await ctx.send(embed=info_embed(result["display_name"], description))

    # --------------------------------------------------
    # !twitch add <login> [#channel]
    # --------------------------------------------------

    @twitch.command(name="add")
    async def twitch_add(
        ctx: commands.Context,
        login: str,
        channel: Optional[discord.TextChannel] = None,
    ):
        target = channel or ctx.channel
        result = await handler.cmd_add(
            login=login,
            target_channel_id=str(target.id),
            target_guild_id=str(target.guild.id),
            **_base(ctx),
        )
        await reply_result(ctx, result, title="Twitch alerts")

    # --------------------------------------------------
    # !twitch remove <login>
    # --------------------------------------------------

    @twitch.command(name="remove")
    async def twitch_remove(ctx: commands.Context, login: str):
        result = await handler.cmd_remove(
            login=login,
            target_channel_id=str(ctx.channel.id),
            **_base(ctx),
        )
        await reply_result(ctx, result, title="Twitch alerts")

    # --------------------------------------------------
    # !twitch list
    # --------------------------------------------------

    @twitch.command(name="list")
    async def twitch_list(ctx: commands.Context):
        result = await handler.cmd_list(channel_id=str(ctx.channel.id), **_base(ctx))
        if not result["ok"]:
            await reply_result(ctx, result, title="Twitch alerts")
            return

        entries = result["entries"]
        if not entries:
            await ctx.send(embed=info_embed("Twitch alerts", "Nothing is tracked in this server yet."))
            return

        lines = []
        for entry in entries:
            channels = " ".join(f"<#{cid}>" for cid in entry["channels"])
            marker = "\U0001F534 " if entry["live"] else ""
            lines.append(f"{marker}**{entry['name']}** → {channels}")
        await ctx.send(embed=info_embed("Twitch alerts", "\n".join(lines)))

    # --------------------------------------------------
    # !twitch cooldown <seconds>
    # --------------------------------------------------

    @twitch.command(name="cooldown")
    async def twitch_cooldown(ctx: commands.Context, seconds: int):
        result = await handler.cmd_set_cooldown(seconds=seconds, **_base(ctx))
        await reply_result(ctx, result, title="Command cooldown")

    # --------------------------------------------------
    # !twitch adminrole [@role]
    # --------------------------------------------------

    @twitch.command(name="adminrole")
    async def twitch_adminrole(ctx: commands.Context, role: Optional[discord.Role] = None):
        result = await handler.cmd_set_admin_role(
            role_id=str(role.id) if role else None,
            **_base(ctx),
        )
        await reply_result(ctx, result, title="Admin role")

    bot.add_command(twitch)

    log.info("Discord twitch commands registered")
