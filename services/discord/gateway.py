"""
Discord message gateway.

Sends notification cards to channels and edits them in place.
Discord errors are translated into DeliveryFailed / DestinationMissing
at this boundary; nothing discord-specific leaks into the engine.
"""

from __future__ import annotations

from typing import Protocol

import discord

from core.errors import DeliveryFailed, DestinationMissing
from shared.logging.logger import get_logger

log = get_logger("discord.gateway", runtime="discord")


class MessageGateway(Protocol):
    async def send(self, channel_id: str, card: discord.Embed) -> str: ...

    async def edit(self, channel_id: str, message_id: str, card: discord.Embed) -> None: ...


class DiscordMessageGateway:
    """
    MessageGateway backed by a connected discord.py client.
    """

    def __init__(self, bot: discord.Client):
        self._bot = bot

    async def _resolve_channel(self, channel_id: str) -> discord.abc.Messageable:
        try:
            snowflake = int(channel_id)
        except (TypeError, ValueError) as e:
            raise DestinationMissing(f"invalid channel id: {channel_id!r}") from e

        channel = self._bot.get_channel(snowflake)
        if channel is not None:
            return channel

        try:
            return await self._bot.fetch_channel(snowflake)
        except (discord.NotFound, discord.Forbidden) as e:
            raise DestinationMissing(f"channel {channel_id} is gone or not visible: {e}") from e
        except discord.HTTPException as e:
            raise DeliveryFailed(f"failed resolving channel {channel_id}: {e}") from e

    async def send(self, channel_id: str, card: discord.Embed) -> str:
        channel = await self._resolve_channel(channel_id)
        try:
            message = await channel.send(embed=card)
        except discord.Forbidden as e:
            raise DestinationMissing(f"no permission to post in {channel_id}: {e}") from e
        except discord.HTTPException as e:
            raise DeliveryFailed(f"failed sending card to {channel_id}: {e}") from e

        log.debug(f"Card sent to channel {channel_id} (message={message.id})")
        return str(message.id)

    async def edit(self, channel_id: str, message_id: str, card: discord.Embed) -> None:
        channel = await self._resolve_channel(channel_id)
        try:
            message = channel.get_partial_message(int(message_id))
            await message.edit(embed=card)
        except (TypeError, ValueError, AttributeError) as e:
            raise DeliveryFailed(f"cannot edit message {message_id} in {channel_id}: {e}") from e
        except discord.HTTPException as e:
            raise DeliveryFailed(
                f"failed editing card {message_id} in {channel_id}: {e}"
            ) from e

        log.debug(f"Card edited in channel {channel_id} (message={message_id})")
