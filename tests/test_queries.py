from __future__ import annotations

import asyncio
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from activity_bot.models import ActivityTotals, FirstMessageMeta, MomentType  # noqa: E402
from activity_bot.queries import ActivityQueries  # noqa: E402
from activity_bot.storage import ActivityStore  # noqa: E402
from activity_bot.tracking.crew import classify_crew  # noqa: E402


def _store(tmp_path: Path) -> ActivityStore:
    store = ActivityStore(tmp_path / "activity.db")
    asyncio.run(store.init())
    return store


@pytest.mark.parametrize(
    ("totals", "expected"),
    [
        (ActivityTotals(), "Mixed"),
        (ActivityTotals(night=10, weekend=6), "Weekend Crew"),
        (ActivityTotals(night=5, morning=1, afternoon=2, evening=2), "Night Crew"),
        (ActivityTotals(night=3, morning=3, afternoon=3, evening=1), "Mixed"),
        (ActivityTotals(night=1, morning=1, afternoon=1, evening=7, weekend=5), "Evening Crew"),
        (ActivityTotals(night=4, morning=1, afternoon=5), "Afternoon Crew"),
    ],
)
def test_classify_crew(totals: ActivityTotals, expected: str) -> None:
    assert classify_crew(totals) == expected


def test_leaderboards_use_scoped_categories_with_global_fallback(tmp_path: Path) -> None:
    store = _store(tmp_path)

    async def scenario() -> None:
        await store.add_message("u1", "2024-01-03", "night", False)
        await store.add_message("u1", "2024-01-03", "night", False, category_id="cat-chat")
        await store.add_message("u2", "2024-01-03", "morning", False)
        await store.add_message("u2", "2024-01-03", "morning", False)
        await store.add_voice("u2", "2024-01-03", 40, {"evening": 40}, 0)

    asyncio.run(scenario())

    scoped = ActivityQueries(store, scoped_message_category_ids={"cat-chat"})
    unscoped = ActivityQueries(store)

    assert [(e.user_id, e.value) for e in asyncio.run(scoped.leaderboard("chat"))] == [("u1", 1)]
    assert [(e.user_id, e.value) for e in asyncio.run(scoped.leaderboard("night"))] == [("u1", 1)]
    assert [(e.user_id, e.value) for e in asyncio.run(unscoped.leaderboard("chat"))] == [("u2", 2), ("u1", 1)]
    assert [(e.user_id, e.value) for e in asyncio.run(unscoped.leaderboard("voice"))] == [("u2", 40)]
    assert [(e.user_id, e.value) for e in asyncio.run(unscoped.leaderboard("chat", limit=0))] == [("u2", 2)]

    with pytest.raises(ValueError):
        asyncio.run(unscoped.leaderboard("weekly"))  # type: ignore[arg-type]


def test_clamp_limit_uses_configured_bounds(tmp_path: Path) -> None:
    queries = ActivityQueries(_store(tmp_path), leaderboard_default_size=10, leaderboard_max_size=25)
    assert queries.clamp_limit(None) == 10
    assert queries.clamp_limit(-3) == 1
    assert queries.clamp_limit(100) == 25


def test_link_combines_both_directions(tmp_path: Path) -> None:
    store = _store(tmp_path)

    async def scenario() -> None:
        await store.add_interaction_delta("a", "b", mentions=2, at="2024-01-01T10:00:00.000Z")
        await store.add_interaction_delta("b", "a", replies=1, voice_minutes=30, at="2024-01-04T10:00:00.000Z")

    asyncio.run(scenario())
    link = asyncio.run(ActivityQueries(store).link("a", "b"))

    assert (link.mentions, link.replies, link.voice_minutes) == (2, 1, 30)
    assert link.score == 37
    assert link.last_interaction_at == datetime(2024, 1, 4, 10, tzinfo=timezone.utc)


def test_set_chosen_vibes_validates_input(tmp_path: Path) -> None:
    store = _store(tmp_path)
    queries = ActivityQueries(store)

    assert asyncio.run(queries.set_chosen_vibes("u1", ["Game", "music", "game", "dance"])) == ("game", "music")
    with pytest.raises(ValueError):
        asyncio.run(queries.set_chosen_vibes("u1", ["dance"]))

    summary = asyncio.run(queries.server_vibes())
    assert summary.counts == {"chat": 0, "game": 1, "movie": 0, "music": 1}


def test_profile_snapshot(tmp_path: Path) -> None:
    store = _store(tmp_path)

    async def scenario() -> None:
        await store.upsert_user("u1", "2024-01-01T00:00:00.000Z")
        await store.set_inferred_vibe("u1", {"movie": 3})
        await store.add_message("u1", "2024-01-03", "night", False)
        await store.insert_moment(
            "u1",
            MomentType.FIRST_MESSAGE,
            FirstMessageMeta(channel_id="c1", channel_name="general"),
            "2024-01-03T01:00:00.000Z",
        )
        for other, minutes in (("p1", 5), ("p2", 50), ("p3", 20), ("p4", 1)):
            await store.add_interaction_delta("u1", other, voice_minutes=minutes, at="2024-01-03T02:00:00.000Z")

    asyncio.run(scenario())
    profile = asyncio.run(ActivityQueries(store, max_most_seen_with=3).profile("u1"))

    assert profile.crew == "Night Crew"
    assert profile.vibes == ["movie"]
    assert profile.first_memory is not None
    assert profile.first_memory.moment_type is MomentType.FIRST_MESSAGE
    assert [p.other_user_id for p in profile.most_seen_with] == ["p2", "p3", "p1"]
    assert (profile.interactions.links, profile.interactions.score) == (4, 76)


def test_profile_for_unknown_user(tmp_path: Path) -> None:
    profile = asyncio.run(ActivityQueries(_store(tmp_path)).profile("ghost"))
    assert profile.user is None
    assert profile.crew == "Mixed"
    assert profile.vibes == []
    assert profile.most_seen_with == []
