from __future__ import annotations

import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from activity_bot.config import Settings  # noqa: E402

_ENV_KEYS = (
    "DISCORD_TOKEN",
    "TRACK_VOICE",
    "MIN_FIRST_VC_MINUTES",
    "LEADERBOARD_DEFAULT_SIZE",
    "LEADERBOARD_MAX_SIZE",
    "SCOPED_MESSAGE_CATEGORY_IDS",
    "CREATOR_CATEGORY_IDS",
    "SCOPED_VOICE_CATEGORY_IDS",
    "CREATOR_VC_CATEGORY_IDS",
    "LOG_LEVEL",
    "SQLITE_PATH",
)


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_defaults(clean_env: pytest.MonkeyPatch) -> None:
    settings = Settings.from_env()

    assert settings.track_voice is True
    assert settings.min_first_vc_minutes == 5
    assert settings.leaderboard_default_size == 10
    assert settings.leaderboard_max_size == 25
    assert settings.scoped_message_category_ids == set()
    assert settings.sqlite_path == Path("./data/activity.db")


def test_env_parsing_is_tolerant(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("DISCORD_TOKEN", '  Bot "abc.def"  ')
    clean_env.setenv("TRACK_VOICE", "off")
    clean_env.setenv("MIN_FIRST_VC_MINUTES", "ten")
    clean_env.setenv("SCOPED_MESSAGE_CATEGORY_IDS", "111, 222,,abc, 0333")
    clean_env.setenv("CREATOR_VC_CATEGORY_IDS", "999")
    clean_env.setenv("LOG_LEVEL", "debug")

    settings = Settings.from_env()

    assert settings.discord_token == "abc.def"
    assert settings.track_voice is False
    assert settings.min_first_vc_minutes == 5
    assert settings.scoped_message_category_ids == {"111", "222", "333"}
    assert settings.scoped_voice_category_ids == {"999"}
    assert settings.log_level == "DEBUG"


def test_validate_rejects_bad_values(clean_env: pytest.MonkeyPatch) -> None:
    with pytest.raises(ValueError, match="DISCORD_TOKEN"):
        Settings.from_env().validate()

    clean_env.setenv("DISCORD_TOKEN", "token")
    Settings.from_env().validate()

    clean_env.setenv("LEADERBOARD_DEFAULT_SIZE", "40")
    with pytest.raises(ValueError, match="LEADERBOARD_DEFAULT_SIZE"):
        Settings.from_env().validate()
