"""
Discord Logging Adapter

Normalizes Discord-originated events (commands, guild lifecycle) into
structured log lines on the Discord runtime log.

IMPORTANT:
- This module MUST NOT send network requests
- This module MUST NOT depend on discord.py objects directly
"""

from __future__ import annotations

from typing import Optional, Dict, Any

from shared.logging.logger import get_logger

log = get_logger("discord.logging", runtime="discord")


class DiscordLogAdapter:
    """
    Structured logging for Discord command and guild events.
    """

    def log_event(
        self,
        *,
        event: str,
        level: str = "info",
        guild_id: Optional[int | str] = None,
        user_id: Optional[int | str] = None,
        channel_id: Optional[int | str] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        payload = {
            "event": event,
            "guild_id": guild_id,
            "user_id": user_id,
            "channel_id": channel_id,
            "data": data or {},
        }

        if level == "debug":
            log.debug(f"Discord event: {payload}")
        elif level == "warning":
            log.warning(f"Discord event: {payload}")
        elif level == "error":
            log.error(f"Discord event: {payload}")
        else:
            log.info(f"Discord event: {payload}")

    # --------------------------------------------------

    def log_command(
        self,
        *,
        command: str,
        guild_id: Optional[int | str],
        user_id: Optional[int | str],
        success: bool,
        extra: Optional[Dict[str, Any]] = None,
    ):
        self.log_event(
            event="discord_command",
            level="info" if success else "warning",
            data={
                "command": command,
                "success": success,
                "extra": extra or {},
            },
            guild_id=guild_id,
            user_id=user_id,
        )

    def log_guild_event(
        self,
        *,
        event: str,
        guild_id: Optional[int | str],
        user_id: Optional[int | str] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        self.log_event(
            event=event,
            guild_id=guild_id,
            user_id=user_id,
            data=data,
        )
