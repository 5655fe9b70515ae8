"""Configuration loading utilities for the CTF events bot."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "data" / "settings.yaml"


def _parse_id(env_key: str) -> Optional[int]:
    value = os.environ.get(env_key)
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning("Invalid id %s for %s", value, env_key)
        return None


def _parse_id_list(env_key: str) -> FrozenSet[int]:
    raw = os.environ.get(env_key, "")
    ids = set()
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.add(int(part))
        except ValueError:
            logger.warning("Ignoring invalid id %s in %s", part, env_key)
    return frozenset(ids)


@dataclass(frozen=True)
class BotConfig:
    """Deployment-specific ids and secrets, injected into the lifecycle service."""

    admin_role_ids: FrozenSet[int] = field(default_factory=frozenset)
    announcement_channel_id: Optional[int] = None
    active_category_id: Optional[int] = None
    archive_category_id: Optional[int] = None
    guild_id: Optional[int] = None
    db_path: Path = Path("ctf_events.db")
    telemetry_db_path: Path = Path("telemetry.db")
    token: Optional[str] = None
    application_id: Optional[int] = None

    def is_admin(self, role_ids) -> bool:
        return any(role_id in self.admin_role_ids for role_id in role_ids)

    @staticmethod
    def from_env() -> "BotConfig":
        return BotConfig(
            admin_role_ids=_parse_id_list("CTF_ADMIN_ROLE_IDS"),
            announcement_channel_id=_parse_id("CTF_ANNOUNCE_CHANNEL_ID"),
            active_category_id=_parse_id("CTF_ACTIVE_CATEGORY_ID"),
            archive_category_id=_parse_id("CTF_ARCHIVE_CATEGORY_ID"),
            guild_id=_parse_id("CTF_GUILD_ID"),
            db_path=Path(os.environ.get("CTF_EVENTS_DB", "ctf_events.db")),
            telemetry_db_path=Path(
                os.environ.get("CTF_EVENTS_TELEMETRY_DB", "telemetry.db")
            ),
            token=os.environ.get("DISCORD_TOKEN") or None,
            application_id=_parse_id("DISCORD_APP_ID"),
        )


@dataclass(frozen=True)
class Settings:
    """Typed view over the settings YAML file."""

    timezone_offset_hours: int
    timezone_label: str
    tally_field_limit: int
    location_placeholder: str
    role_colour: int
    role_mentionable: bool
    info_thread_title: str
    tally_thread_title: str
    forum_rules: list[str]
    default_description: str

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Settings":
        timezone_cfg = data.get("timezone", {})
        tally_cfg = data.get("tally", {})
        role_cfg = data.get("role", {})
        forum_cfg = data.get("forum", {})
        event_cfg = data.get("scheduled_event", {})
        limit = int(tally_cfg.get("field_limit", 1024))
        if limit <= 0:
            raise ValueError("tally.field_limit must be positive")
        return Settings(
            timezone_offset_hours=int(timezone_cfg.get("offset_hours", 7)),
            timezone_label=str(timezone_cfg.get("label", "WIB")),
            tally_field_limit=limit,
            location_placeholder=str(event_cfg.get("location_placeholder", "CTF Platform")),
            role_colour=int(role_cfg.get("colour", 0xFF6B6B)),
            role_mentionable=bool(role_cfg.get("mentionable", True)),
            info_thread_title=str(
                forum_cfg.get("info_thread_title", "📌 Event Information & Guidelines")
            ),
            tally_thread_title=str(
                tally_cfg.get("thread_title", "📊 Final Participant List")
            ),
            forum_rules=list(forum_cfg.get("rules", [])),
            default_description=str(
                event_cfg.get("default_description", "CTF Competition Event")
            ),
        )


class SettingsLoader:
    """Loads and caches settings from YAML configuration files."""

    def __init__(self, path: Path | None = None) -> None:
        env_path = os.environ.get("CTF_EVENTS_SETTINGS")
        self._path = path or (Path(env_path) if env_path else DEFAULT_SETTINGS_PATH)
        self._cache: Settings | None = None

    @property
    def path(self) -> Path:
        return self._path

    def load(self, force: bool = False) -> Settings:
        if self._cache is not None and not force:
            return self._cache
        with self._path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        self._cache = Settings.from_dict(data)
        return self._cache


def get_settings() -> Settings:
    """Convenience accessor for default settings."""

    return SettingsLoader().load()


__all__ = ["BotConfig", "Settings", "SettingsLoader", "get_settings"]
