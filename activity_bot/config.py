from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Set

from dotenv import load_dotenv


load_dotenv()


def _env_lookup(name: str, aliases: tuple[str, ...] = ()) -> str | None:
    for key in (name, *aliases):
        # Be tolerant to UTF-8 BOM accidentally saved in .env key names.
        for candidate in (key, f"\ufeff{key}"):
            raw = os.getenv(candidate)
            if raw is not None:
                return raw
    return None


def _env_bool(name: str, default: bool, aliases: tuple[str, ...] = ()) -> bool:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int, aliases: tuple[str, ...] = ()) -> int:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_id_set(name: str, aliases: tuple[str, ...] = ()) -> Set[str]:
    """Comma separated snowflake ids, kept as strings to match stored channel/category ids."""
    raw = (_env_lookup(name, aliases) or "").strip()
    if not raw:
        return set()
    result: Set[str] = set()
    for chunk in raw.split(","):
        value = chunk.strip()
        if not value.isdigit():
            continue
        result.add(str(int(value)))
    return result


def _clean_token(value: str) -> str:
    cleaned = value.strip()
    if cleaned.lower().startswith("bot "):
        cleaned = cleaned[4:].strip()
    if (cleaned.startswith('"') and cleaned.endswith('"')) or (
        cleaned.startswith("'") and cleaned.endswith("'")
    ):
        cleaned = cleaned[1:-1].strip()
    return cleaned


def _env_str(name: str, default: str, aliases: tuple[str, ...] = ()) -> str:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    value = raw.strip()
    return value if value else default


@dataclass(slots=True)
class Settings:
    discord_token: str
    discord_message_content_intent: bool
    discord_members_intent: bool

    sqlite_path: Path
    vibes_config_path: Path

    track_messages: bool
    track_voice: bool
    track_interactions: bool

    min_first_vc_minutes: int
    max_most_seen_with: int
    leaderboard_default_size: int
    leaderboard_max_size: int

    exclude_creator_activity: bool
    ownership_use_audit_logs: bool
    ownership_use_manage_overwrites: bool

    scoped_message_category_ids: Set[str]
    scoped_voice_category_ids: Set[str]

    recap_top_n: int
    recap_include_moments: bool

    log_level: str

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            discord_token=_clean_token(_env_lookup("DISCORD_TOKEN") or ""),
            discord_message_content_intent=_env_bool("DISCORD_MESSAGE_CONTENT_INTENT", True),
            discord_members_intent=_env_bool("DISCORD_MEMBERS_INTENT", True),
            sqlite_path=Path(_env_str("SQLITE_PATH", "./data/activity.db")).expanduser(),
            vibes_config_path=Path(_env_str("VIBES_CONFIG_PATH", "./config/vibes.json")).expanduser(),
            track_messages=_env_bool("TRACK_MESSAGES", True),
            track_voice=_env_bool("TRACK_VOICE", True),
            track_interactions=_env_bool("TRACK_INTERACTIONS", True),
            min_first_vc_minutes=_env_int("MIN_FIRST_VC_MINUTES", 5),
            max_most_seen_with=_env_int("MAX_MOST_SEEN_WITH", 3),
            leaderboard_default_size=_env_int("LEADERBOARD_DEFAULT_SIZE", 10),
            leaderboard_max_size=_env_int("LEADERBOARD_MAX_SIZE", 25),
            exclude_creator_activity=_env_bool("EXCLUDE_CREATOR_ACTIVITY", True),
            ownership_use_audit_logs=_env_bool("OWNERSHIP_USE_AUDIT_LOGS", True),
            ownership_use_manage_overwrites=_env_bool("OWNERSHIP_USE_MANAGE_OVERWRITES", True),
            scoped_message_category_ids=_env_id_set(
                "SCOPED_MESSAGE_CATEGORY_IDS",
                aliases=("CREATOR_CATEGORY_IDS",),
            ),
            scoped_voice_category_ids=_env_id_set(
                "SCOPED_VOICE_CATEGORY_IDS",
                aliases=("CREATOR_VC_CATEGORY_IDS",),
            ),
            recap_top_n=_env_int("RECAP_TOP_N", 10),
            recap_include_moments=_env_bool("RECAP_INCLUDE_MOMENTS", True),
            log_level=_env_str("LOG_LEVEL", "INFO").upper(),
        )

    def validate(self) -> None:
        if not self.discord_token:
            raise ValueError("DISCORD_TOKEN is required")
        if self.discord_token == "put_your_discord_bot_token_here":
            raise ValueError("DISCORD_TOKEN is still placeholder")

        if self.min_first_vc_minutes < 0:
            raise ValueError("MIN_FIRST_VC_MINUTES must be >= 0")
        if self.max_most_seen_with < 1:
            raise ValueError("MAX_MOST_SEEN_WITH must be >= 1")
        if self.leaderboard_max_size < 1:
            raise ValueError("LEADERBOARD_MAX_SIZE must be >= 1")
        if self.leaderboard_default_size < 1 or self.leaderboard_default_size > self.leaderboard_max_size:
            raise ValueError("LEADERBOARD_DEFAULT_SIZE must be in [1, LEADERBOARD_MAX_SIZE]")
        if self.recap_top_n < 1:
            raise ValueError("RECAP_TOP_N must be >= 1")
        if self.log_level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("LOG_LEVEL must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")
