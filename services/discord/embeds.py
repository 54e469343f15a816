from __future__ import annotations

import time
from datetime import datetime, timezone, tzinfo

import discord

from core.models import TrackedEntity
from services.twitch.models.stream import StatusRecord
from shared.utils.durations import humanize_duration

LIVE_COLOR = 0xFF0000
PREVIEW_URL = "https://static-cdn.jtvnw.net/previews-ttv/live_user_{login}-1920x1080.jpg?t={ts}"
CARD_TIME_FORMAT = "%d %b %y %H:%M %Z"


def info_embed(title: str, description: str | None = None) -> discord.Embed:
    return discord.Embed(
        title=title,
        description=description,
        color=discord.Color.blurple(),
    )


def success_embed(title: str, description: str | None = None) -> discord.Embed:
    return discord.Embed(
        title=title,
        description=description,
        color=discord.Color.green(),
    )


def error_embed(title: str, description: str | None = None) -> discord.Embed:
    return discord.Embed(
        title=title,
        description=description,
        color=discord.Color.red(),
    )


def live_card(
    entity: TrackedEntity,
    status: StatusRecord,
    *,
    category_name: str,
    now: datetime | None = None,
) -> discord.Embed:
    now = now or datetime.now(timezone.utc)
    live_for = now - (entity.stream_start_time or status.started_at)

    embed = discord.Embed(
        title=status.title or None,
        url=entity.channel_url,
        color=LIVE_COLOR,
    )
    embed.set_author(name=entity.display_name, url=entity.channel_url)
    embed.set_image(url=PREVIEW_URL.format(login=entity.name, ts=int(time.time())))
    embed.add_field(name="Category", value=category_name or "???", inline=True)
    embed.add_field(name="Viewers", value=str(status.viewer_count), inline=True)
    if entity.profile_image_url:
        embed.set_thumbnail(url=entity.profile_image_url)
    embed.set_footer(text=f"Live for {humanize_duration(live_for)}")
    return embed


def ended_card(entity: TrackedEntity, *, tz: tzinfo = timezone.utc) -> discord.Embed:
    def _fmt(value: datetime | None) -> str:
        if value is None:
            return "unknown"
        return value.astimezone(tz).strftime(CARD_TIME_FORMAT)

    description = (
        f"**Started at:** {_fmt(entity.stream_start_time)}\n"
        f"__**Ended at:** {_fmt(entity.stream_end_time)}__\n"
        f"**Total Time:** {humanize_duration(entity.stream_length())}"
    )

    embed = discord.Embed(url=entity.channel_url, description=description)
    embed.set_author(name=f"{entity.display_name} was Live", url=entity.channel_url)
    if entity.profile_image_url:
        embed.set_thumbnail(url=entity.profile_image_url)
    return embed
