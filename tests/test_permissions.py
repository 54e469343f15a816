"""Tests for DiscordPermissionResolver and admin resolution from guild settings."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import discord

from services.discord.commands.twitch_commands import resolve_is_admin
from services.discord.permissions import DiscordPermissionResolver


def test_owner_is_always_admin():
    resolver = DiscordPermissionResolver(owner_id="42")

    result = resolver.is_admin_or_owner(user_id=42)

    assert result
    assert result.reason == "owner"


def test_guild_administrator_allowed():
    result = DiscordPermissionResolver().is_admin_or_owner(user_id="1", is_guild_admin=True)

    assert result.reason == "guild_admin"


def test_configured_admin_role_allowed():
    result = DiscordPermissionResolver().is_admin_or_owner(
        user_id="1",
        role_ids=[111, 222],
        admin_role_id="222",
    )

    assert result.reason == "admin_role"


def test_plain_member_denied():
    resolver = DiscordPermissionResolver(owner_id="42")

    result = resolver.is_admin_or_owner(user_id="1", role_ids=[111], admin_role_id="222")

    assert not result
    assert result.reason == "not_admin"


def test_no_owner_configured():
    assert DiscordPermissionResolver().is_owner("42") is False


def _ctx(store_guild_id, role_ids):
    author = MagicMock(spec=discord.Member)
    author.id = 1
    author.guild_permissions.administrator = False
    author.roles = [SimpleNamespace(id=r) for r in role_ids]
    return SimpleNamespace(guild=SimpleNamespace(id=store_guild_id), author=author)


def test_stored_admin_role_grants_admin(store):
    resolver = DiscordPermissionResolver()
    store.set_admin_role("g1", "222")

    assert resolve_is_admin(_ctx("g1", [111, 222]), permissions=resolver, store=store)
    assert not resolve_is_admin(_ctx("g1", [111]), permissions=resolver, store=store)


def test_cleared_admin_role_no_longer_grants_admin(store):
    resolver = DiscordPermissionResolver()
    store.set_admin_role("g1", "222")
    store.set_admin_role("g1", None)

    assert not resolve_is_admin(_ctx("g1", [222]), permissions=resolver, store=store)
