"""
Runtime settings loader.

Settings come from an optional JSON document (config.json, or the path in
STREAMALERTS_CONFIG) with environment variables taking precedence. Call
load_dotenv() before load_settings() so a local .env participates.

Design rules:
- Import-safe (no side effects)
- Optional values fall back to defaults with a warning
- Missing mandatory values raise ConfigError (fatal at boot only)
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.errors import ConfigError
from shared.logging.logger import get_logger

log = get_logger("shared.config.settings")

DEFAULT_CONFIG_PATH = Path("config.json")


@dataclass
class DiscordSettings:
    token: str
    prefix: str = "!"
    owner_id: Optional[str] = None


@dataclass
class TwitchSettings:
    client_id: str
    client_secret: Optional[str] = None
    access_token: Optional[str] = None


@dataclass
class DatabaseSettings:
    path: str


@dataclass
class PollSettings:
    interval_seconds: float = 60.0
    max_concurrency: int = 10


@dataclass
class AppSettings:
    discord: DiscordSettings
    twitch: TwitchSettings
    database: DatabaseSettings
    poll: PollSettings = field(default_factory=PollSettings)
    display_timezone: str = "UTC"
    command_cooldown_seconds: int = 3

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.display_timezone)


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------

def _load_json(path: Path) -> Dict[str, Any]:
    if not path.exists():
        log.info(f"Config file not found at {path}; using environment only")
        return {}

    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Failed to read config file {path}: {e}") from e

    if not isinstance(data, dict):
        log.warning(f"Config root in {path} is not an object; ignoring")
        return {}
    return data


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = raw.get(name)
    return value if isinstance(value, dict) else {}


def _pick(env: Mapping[str, str], env_key: str, section: Dict[str, Any], key: str) -> Optional[str]:
    value = env.get(env_key)
    if value is None or not value.strip():
        value = section.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _as_float(value: Optional[str], name: str, default: float) -> float:
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        log.warning(f"{name} must be numeric (got {value!r}); defaulting to {default}")
        return default
    if parsed <= 0:
        log.warning(f"{name} must be positive (got {value!r}); defaulting to {default}")
        return default
    return parsed


def _as_int(value: Optional[str], name: str, default: int, *, minimum: int = 1) -> int:
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        log.warning(f"{name} must be an integer (got {value!r}); defaulting to {default}")
        return default
    if parsed < minimum:
        log.warning(f"{name} must be >= {minimum} (got {value!r}); defaulting to {default}")
        return default
    return parsed


def _require(value: Optional[str], name: str) -> str:
    if not value:
        raise ConfigError(f"Missing required setting: {name}")
    return value


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def load_settings(
    raw: Optional[Dict[str, Any]] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
) -> AppSettings:
    env = os.environ if env is None else env

    if raw is None:
        config_path = Path(env.get("STREAMALERTS_CONFIG") or DEFAULT_CONFIG_PATH)
        raw = _load_json(config_path)

    discord_raw = _section(raw, "discord")
    twitch_raw = _section(raw, "twitch")
    database_raw = _section(raw, "database")
    poll_raw = _section(raw, "poll")

    discord_settings = DiscordSettings(
        token=_require(_pick(env, "DISCORD_BOT_TOKEN", discord_raw, "token"), "DISCORD_BOT_TOKEN"),
        prefix=_pick(env, "DISCORD_PREFIX", discord_raw, "prefix") or "!",
        owner_id=_pick(env, "DISCORD_OWNER_ID", discord_raw, "owner_id"),
    )

    twitch_settings = TwitchSettings(
        client_id=_require(_pick(env, "TWITCH_CLIENT_ID", twitch_raw, "client_id"), "TWITCH_CLIENT_ID"),
        client_secret=_pick(env, "TWITCH_CLIENT_SECRET", twitch_raw, "client_secret"),
        access_token=_pick(env, "TWITCH_ACCESS_TOKEN", twitch_raw, "access_token"),
    )
    if not twitch_settings.client_secret and not twitch_settings.access_token:
        raise ConfigError(
            "Missing required setting: TWITCH_CLIENT_SECRET or TWITCH_ACCESS_TOKEN"
        )

    database_settings = DatabaseSettings(
        path=_require(_pick(env, "STREAMALERTS_DB_PATH", database_raw, "path"), "STREAMALERTS_DB_PATH"),
    )

    poll_settings = PollSettings(
        interval_seconds=_as_float(
            _pick(env, "STREAMALERTS_POLL_INTERVAL", poll_raw, "interval_seconds"),
            "poll interval",
            PollSettings.interval_seconds,
        ),
        max_concurrency=_as_int(
            _pick(env, "STREAMALERTS_POLL_CONCURRENCY", poll_raw, "max_concurrency"),
            "poll concurrency",
            PollSettings.max_concurrency,
        ),
    )

    timezone_name = _pick(env, "STREAMALERTS_TIMEZONE", raw, "timezone") or "UTC"
    try:
        ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError):
        log.warning(f"Unknown timezone {timezone_name!r}; defaulting to UTC")
        timezone_name = "UTC"

    cooldown = _as_int(
        _pick(env, "STREAMALERTS_COMMAND_COOLDOWN", raw, "command_cooldown_seconds"),
        "command cooldown",
        3,
        minimum=0,
    )

    settings = AppSettings(
        discord=discord_settings,
        twitch=twitch_settings,
        database=database_settings,
        poll=poll_settings,
        display_timezone=timezone_name,
        command_cooldown_seconds=cooldown,
    )

    log.info(
        "Settings loaded: "
        f"prefix={settings.discord.prefix!r}, "
        f"owner={'SET' if settings.discord.owner_id else 'MISSING'}, "
        f"twitch_secret={'SET' if settings.twitch.client_secret else 'MISSING'}, "
        f"twitch_token={'SET' if settings.twitch.access_token else 'MISSING'}, "
        f"db={settings.database.path}, "
        f"poll={settings.poll.interval_seconds}s x{settings.poll.max_concurrency}"
    )
    return settings
