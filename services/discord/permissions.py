"""
Discord Permissions Module

Central place for deciding who counts as an administrator.

Rules:
- The configured bot owner is always allowed
- Members with the guild "Administrator" permission are allowed
- Members holding the guild's configured admin role are allowed

IMPORTANT CONSTRAINTS:
- This module MUST NOT register Discord commands
- This module MUST NOT perform Discord API calls directly
- Command-layer helpers only read already-resolved discord.py objects
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

import discord

from shared.logging.logger import get_logger

log = get_logger("discord.permissions", runtime="discord")


class PermissionResult:
    """
    Structured permission check result.
    """

    def __init__(
        self,
        allowed: bool,
        *,
        reason: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        self.allowed = allowed
        self.reason = reason
        self.metadata = metadata or {}

    def __bool__(self) -> bool:
        return self.allowed


class DiscordPermissionResolver:
    """
    Pure permission resolver: accepts raw IDs and flags only.
    """

    def __init__(self, *, owner_id: Optional[str] = None):
        self._owner_id = str(owner_id) if owner_id else None

    def is_owner(self, user_id: str | int) -> bool:
        return self._owner_id is not None and str(user_id) == self._owner_id

    def is_admin_or_owner(
        self,
        *,
        user_id: str | int,
        is_guild_admin: bool = False,
        role_ids: Optional[Iterable[str | int]] = None,
        admin_role_id: Optional[str] = None,
    ) -> PermissionResult:
        if self.is_owner(user_id):
            return PermissionResult(True, reason="owner")

        if is_guild_admin:
            return PermissionResult(True, reason="guild_admin")

        if admin_role_id and str(admin_role_id) in {str(r) for r in (role_ids or [])}:
            return PermissionResult(True, reason="admin_role")

        return PermissionResult(False, reason="not_admin")

    def check_member(
        self,
        author: discord.abc.User,
        *,
        admin_role_id: Optional[str] = None,
    ) -> PermissionResult:
        """
        Resolve admin status for the author of a message.
        """
        is_guild_admin = False
        role_ids: list[int] = []
        if isinstance(author, discord.Member):
            is_guild_admin = author.guild_permissions.administrator
            role_ids = [role.id for role in author.roles]

        result = self.is_admin_or_owner(
            user_id=author.id,
            is_guild_admin=is_guild_admin,
            role_ids=role_ids,
            admin_role_id=admin_role_id,
        )
        log.debug(f"Permission check user={author.id} allowed={result.allowed} ({result.reason})")
        return result

