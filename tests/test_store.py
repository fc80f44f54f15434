from __future__ import annotations

import asyncio
import sqlite3
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from activity_bot.models import (  # noqa: E402
    ActivityTotals,
    FirstMessageMeta,
    LeaderboardEntry,
    MomentNoteMeta,
    MomentType,
)
from activity_bot.storage import ActivityStore  # noqa: E402
from activity_bot.storage.schema import SchemaMixin  # noqa: E402


def _store(tmp_path: Path) -> ActivityStore:
    store = ActivityStore(tmp_path / "activity.db")
    asyncio.run(store.init())
    return store


def test_schema_mismatch_raises_without_opt_in(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("ACTIVITY_SQLITE_RESET_ON_SCHEMA_MISMATCH", raising=False)
    db_path = tmp_path / "activity.db"

    asyncio.run(SchemaMixin(db_path).init())
    with sqlite3.connect(db_path) as conn:
        conn.execute("PRAGMA user_version = 999")
        conn.commit()

    with pytest.raises(RuntimeError, match="schema version mismatch"):
        asyncio.run(SchemaMixin(db_path).init())


def test_schema_mismatch_can_reset_with_explicit_opt_in(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    db_path = tmp_path / "activity.db"
    asyncio.run(SchemaMixin(db_path).init())

    with sqlite3.connect(db_path) as conn:
        conn.execute("PRAGMA user_version = 999")
        conn.commit()

    monkeypatch.setenv("ACTIVITY_SQLITE_RESET_ON_SCHEMA_MISMATCH", "1")
    asyncio.run(SchemaMixin(db_path).init())

    with sqlite3.connect(db_path) as conn:
        version = conn.execute("PRAGMA user_version").fetchone()[0]
    assert version == SchemaMixin.SCHEMA_VERSION


def test_v1_database_is_migrated_in_place(tmp_path: Path) -> None:
    db_path = tmp_path / "activity.db"
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            """
            CREATE TABLE users (
                user_id TEXT PRIMARY KEY,
                join_date TEXT,
                chosen_vibe TEXT,
                inferred_vibe TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        conn.execute(
            "INSERT INTO users VALUES ('u1', '2023-05-01T00:00:00.000Z', NULL, NULL, 'x', 'x')"
        )
        conn.execute("PRAGMA user_version = 1")
        conn.commit()

    store = ActivityStore(db_path)
    asyncio.run(store.init())

    with sqlite3.connect(db_path) as conn:
        columns = {row[1] for row in conn.execute("PRAGMA table_info(users)")}
        tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
    assert {"last_seen_at", "last_vc_minutes", "last_connection_via"} <= columns
    assert {"activity_scoped_daily", "created_channels", "recap_runs"} <= tables
    user = asyncio.run(store.get_user("u1"))
    assert user is not None
    assert user.join_date == datetime(2023, 5, 1, tzinfo=timezone.utc)


def test_init_is_repeatable_on_current_schema(tmp_path: Path) -> None:
    store = _store(tmp_path)
    asyncio.run(store.add_message("u1", "2024-01-03", "night", False))

    asyncio.run(store.init())

    with sqlite3.connect(tmp_path / "activity.db") as conn:
        version = conn.execute("PRAGMA user_version").fetchone()[0]
    assert version == SchemaMixin.SCHEMA_VERSION
    assert asyncio.run(store.get_totals("u1")).messages == 1


def test_join_date_is_first_write_wins(tmp_path: Path) -> None:
    store = _store(tmp_path)

    async def scenario() -> None:
        await store.upsert_user("u1")
        await store.upsert_user("u1", "2024-01-01T00:00:00.000Z")
        await store.upsert_user("u1", "2025-06-01T00:00:00.000Z")
        await store.set_join_date_if_missing("u1", "2026-01-01T00:00:00.000Z")

    asyncio.run(scenario())
    user = asyncio.run(store.get_user("u1"))
    assert user is not None
    assert user.join_date == datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_snapshots_are_last_write_wins(tmp_path: Path) -> None:
    store = _store(tmp_path)

    async def scenario() -> None:
        await store.upsert_user("u1")
        await store.set_last_seen("u1", "2024-01-01T10:00:00.000Z", "message", "c1")
        await store.set_last_seen("u1", "2024-01-01T11:00:00.000Z", "voice", "c2")
        await store.set_last_voice("u1", "2024-01-01T11:00:00.000Z", "c2", 12)

    asyncio.run(scenario())
    user = asyncio.run(store.get_user("u1"))
    assert user is not None
    assert user.last_seen_type == "voice"
    assert user.last_seen_channel_id == "c2"
    assert user.last_vc_minutes == 12


def test_malformed_vibe_json_reads_as_zero(tmp_path: Path) -> None:
    store = _store(tmp_path)
    asyncio.run(store.upsert_user("u1"))
    with sqlite3.connect(tmp_path / "activity.db") as conn:
        conn.execute("UPDATE users SET chosen_vibe = '{oops', inferred_vibe = '[1, 2' WHERE user_id = 'u1'")
        conn.commit()

    user = asyncio.run(store.get_user("u1"))
    assert user is not None
    assert user.chosen_vibes == ()
    assert user.inferred_vibes == {"chat": 0, "game": 0, "movie": 0, "music": 0}


def test_message_leaderboard_counts_every_increment(tmp_path: Path) -> None:
    store = _store(tmp_path)

    async def scenario() -> None:
        await asyncio.gather(*(store.add_message("u1", "2024-01-03", "morning", False) for _ in range(5)))

    asyncio.run(scenario())
    assert asyncio.run(store.top_messages(1)) == [LeaderboardEntry(user_id="u1", value=5)]
    totals = asyncio.run(store.get_totals("u1"))
    assert totals.messages == 5
    assert totals.morning == 5
    assert totals.bucket_total == 5


def test_scoped_leaderboards_and_date_ranges(tmp_path: Path) -> None:
    store = _store(tmp_path)

    async def scenario() -> None:
        await store.add_message("u1", "2024-01-01", "night", False)
        await store.add_message("u1", "2024-01-01", "night", False, category_id="cat-a")
        await store.add_message("u2", "2024-01-10", "evening", True)
        await store.add_message("u2", "2024-01-10", "evening", True)

    asyncio.run(scenario())

    assert asyncio.run(store.top_messages(10, category_ids={"cat-a"})) == [LeaderboardEntry("u1", 1)]
    assert asyncio.run(store.top_messages(10, category_ids={"cat-b"})) == []
    assert asyncio.run(store.top_messages(10, category_ids=set())) == []
    assert asyncio.run(store.top_night(10, category_ids={"cat-a"})) == [LeaderboardEntry("u1", 1)]
    assert asyncio.run(store.top_messages(10, start_key="2024-01-05", end_key="2024-01-11")) == [
        LeaderboardEntry("u2", 2)
    ]
    assert asyncio.run(store.top_messages(10)) == [LeaderboardEntry("u2", 2), LeaderboardEntry("u1", 1)]

    window = asyncio.run(store.totals_between("2024-01-01", "2024-01-02"))
    assert window.messages == 1
    assert window.night == 1


def test_voice_increments_keep_bucket_sum(tmp_path: Path) -> None:
    store = _store(tmp_path)

    async def scenario() -> None:
        await store.add_voice("u1", "2024-01-06", 30, {"night": 30}, 30)
        await store.add_voice("u1", "2024-01-06", 15, {"morning": 15}, 15)

    asyncio.run(scenario())
    totals = asyncio.run(store.get_totals("u1"))
    assert totals == ActivityTotals(night=30, morning=15, weekend=45, voice=45)
    assert asyncio.run(store.top_voice(3)) == [LeaderboardEntry("u1", 45)]


def test_interaction_deltas_accumulate_directionally(tmp_path: Path) -> None:
    store = _store(tmp_path)

    async def scenario() -> None:
        await store.add_interaction_delta("a", "b", mentions=1, at="2024-01-01T10:00:00.000Z")
        await store.add_interaction_delta("a", "b", replies=1, at="2024-01-02T10:00:00.000Z")
        await store.add_interaction_delta("a", "c", voice_minutes=20, at="2024-01-01T09:00:00.000Z")
        await store.add_interaction_delta("b", "a", mentions=1, at="2024-01-03T10:00:00.000Z")

    asyncio.run(scenario())

    pair = asyncio.run(store.get_interaction_pair("a", "b"))
    assert pair is not None
    assert (pair.mentions, pair.replies, pair.voice_minutes) == (1, 1, 0)
    assert pair.score == 5
    assert pair.last_interaction_at == datetime(2024, 1, 2, 10, tzinfo=timezone.utc)

    top = asyncio.run(store.top_counterparties("a", 5))
    assert [(p.other_user_id, p.score) for p in top] == [("c", 20), ("b", 5)]

    summary = asyncio.run(store.get_interaction_summary("a"))
    assert (summary.links, summary.score) == (2, 25)

    assert asyncio.run(store.top_users_by_score(2)) == [LeaderboardEntry("a", 25), LeaderboardEntry("b", 2)]
    assert asyncio.run(store.add_interaction_delta("a", "a", mentions=1, at="2024-01-01T00:00:00.000Z")) is False


def test_moment_lookups_and_note_ownership(tmp_path: Path) -> None:
    store = _store(tmp_path)

    async def scenario() -> tuple[int | None, int | None]:
        await store.insert_moment(
            "u1",
            MomentType.FIRST_MESSAGE,
            FirstMessageMeta(channel_id="c1", channel_name="general"),
            "2024-01-02T00:00:00.000Z",
        )
        await store.insert_moment(
            "u1",
            MomentType.FIRST_MESSAGE,
            FirstMessageMeta(channel_id="c9", channel_name="late"),
            "2024-01-05T00:00:00.000Z",
        )
        first_note = await store.insert_moment(
            "u1", MomentType.MOMENT_NOTE, MomentNoteMeta(text="movie night"), "2024-01-03T00:00:00.000Z"
        )
        second_note = await store.insert_moment(
            "u1", MomentType.MOMENT_NOTE, MomentNoteMeta(text="karaoke"), "2024-01-04T00:00:00.000Z"
        )
        return first_note, second_note

    first_note, second_note = asyncio.run(scenario())
    assert first_note is not None and second_note is not None

    first = asyncio.run(store.get_moment_by_type("u1", MomentType.FIRST_MESSAGE))
    assert first is not None
    assert first.meta == FirstMessageMeta(channel_id="c1", channel_name="general")

    earliest = asyncio.run(store.get_earliest_moment("u1"))
    assert earliest is not None and earliest.moment_type is MomentType.FIRST_MESSAGE

    notes = asyncio.run(store.list_recent_notes("u1", 5))
    assert [n.meta.text for n in notes] == ["karaoke", "movie night"]  # type: ignore[union-attr]

    assert asyncio.run(store.delete_note(first_note, "someone-else")) is False
    assert asyncio.run(store.delete_note(first_note, "u1")) is True
    assert asyncio.run(store.count_notes_between("2024-01-01T00:00:00.000Z", "2024-01-08T00:00:00.000Z")) == 1


def test_malformed_moment_meta_decodes_to_none(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with sqlite3.connect(tmp_path / "activity.db") as conn:
        conn.execute(
            "INSERT INTO moments (user_id, type, meta, created_at) VALUES ('u1', 'FIRST_VC', 'nope', '2024-01-01')"
        )
        conn.commit()

    moment = asyncio.run(store.get_moment_by_type("u1", MomentType.FIRST_VC))
    assert moment is not None
    assert moment.meta is None


def test_channel_owner_and_recap_runs(tmp_path: Path) -> None:
    store = _store(tmp_path)

    async def scenario() -> None:
        await store.upsert_channel_owner("c1", "g1", "owner-1", "voice", "2024-01-01T00:00:00.000Z")
        await store.upsert_channel_owner("c1", "g1", "owner-2", "voice", "2024-01-02T00:00:00.000Z")
        await store.mark_recap_run("2024-01-01", "2024-01-07T23:59:00.000Z", "c-recap", None)
        await store.mark_recap_run("2024-01-01", "2024-01-08T00:00:00.000Z", "c-recap", "m1")

    asyncio.run(scenario())
    assert asyncio.run(store.get_channel_owner("c1")) == "owner-2"
    assert asyncio.run(store.get_channel_owner("missing")) is None
    assert asyncio.run(store.has_recap_run("2024-01-01")) is True
    assert asyncio.run(store.has_recap_run("2024-01-08")) is False


def test_store_failures_degrade_to_safe_defaults(tmp_path: Path) -> None:
    # No init(): every table is missing.
    store = ActivityStore(tmp_path / "empty.db")

    assert asyncio.run(store.add_message("u1", "2024-01-01", "night", False)) is False
    assert asyncio.run(store.top_messages(5)) == []
    assert asyncio.run(store.get_totals("u1")) == ActivityTotals()
    assert asyncio.run(store.get_user("u1")) is None
    assert asyncio.run(store.count_notes_between("a", "b")) == 0
    asyncio.run(store.ping())
