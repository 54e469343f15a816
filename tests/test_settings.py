"""Tests for load_settings: JSON document plus environment overrides."""

import json

import pytest

from core.errors import ConfigError
from shared.config.settings import load_settings

BASE_ENV = {
    "DISCORD_BOT_TOKEN": "discord-token",
    "TWITCH_CLIENT_ID": "cid",
    "TWITCH_CLIENT_SECRET": "secret",
    "STREAMALERTS_DB_PATH": "data/test.db",
}


def test_minimal_environment_uses_defaults():
    settings = load_settings({}, env=BASE_ENV)

    assert settings.discord.prefix == "!"
    assert settings.poll.interval_seconds == 60.0
    assert settings.poll.max_concurrency == 10
    assert settings.display_timezone == "UTC"
    assert settings.command_cooldown_seconds == 3
    assert settings.tzinfo.key == "UTC"


@pytest.mark.parametrize(
    "missing",
    ["DISCORD_BOT_TOKEN", "TWITCH_CLIENT_ID", "STREAMALERTS_DB_PATH"],
)
def test_missing_mandatory_value_is_fatal(missing):
    env = {k: v for k, v in BASE_ENV.items() if k != missing}

    with pytest.raises(ConfigError, match=missing):
        load_settings({}, env=env)


def test_twitch_needs_secret_or_token():
    env = {k: v for k, v in BASE_ENV.items() if k != "TWITCH_CLIENT_SECRET"}

    with pytest.raises(ConfigError):
        load_settings({}, env=env)

    settings = load_settings({}, env={**env, "TWITCH_ACCESS_TOKEN": "tok"})
    assert settings.twitch.access_token == "tok"


def test_json_document_supplies_values():
    raw = {
        "discord": {"token": "from-json", "prefix": "?", "owner_id": 42},
        "twitch": {"client_id": "cid", "access_token": "tok"},
        "database": {"path": "alerts.db"},
        "poll": {"interval_seconds": 30, "max_concurrency": 4},
        "timezone": "Europe/Berlin",
        "command_cooldown_seconds": 0,
    }

    settings = load_settings(raw, env={})

    assert settings.discord.token == "from-json"
    assert settings.discord.prefix == "?"
    assert settings.discord.owner_id == "42"
    assert settings.poll.interval_seconds == 30.0
    assert settings.poll.max_concurrency == 4
    assert settings.display_timezone == "Europe/Berlin"
    assert settings.command_cooldown_seconds == 0


def test_environment_wins_over_json():
    raw = {"discord": {"token": "from-json"}, "poll": {"interval_seconds": 30}}

    settings = load_settings(raw, env={**BASE_ENV, "STREAMALERTS_POLL_INTERVAL": "15"})

    assert settings.discord.token == "discord-token"
    assert settings.poll.interval_seconds == 15.0


def test_bad_optional_values_fall_back():
    env = {
        **BASE_ENV,
        "STREAMALERTS_POLL_INTERVAL": "soon",
        "STREAMALERTS_POLL_CONCURRENCY": "0",
        "STREAMALERTS_TIMEZONE": "Mars/Olympus",
    }

    settings = load_settings({}, env=env)

    assert settings.poll.interval_seconds == 60.0
    assert settings.poll.max_concurrency == 10
    assert settings.display_timezone == "UTC"


def test_config_file_from_env_path(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"discord": {"prefix": "$"}}), encoding="utf-8")

    settings = load_settings(env={**BASE_ENV, "STREAMALERTS_CONFIG": str(path)})

    assert settings.discord.prefix == "$"


def test_unreadable_config_file_is_fatal(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_settings(env={**BASE_ENV, "STREAMALERTS_CONFIG": str(path)})
