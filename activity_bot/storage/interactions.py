from __future__ import annotations

from typing import List, Optional

import aiosqlite

from ..models import (
    MENTION_WEIGHT,
    REPLY_WEIGHT,
    VOICE_MINUTE_WEIGHT,
    InteractionPair,
    InteractionSummary,
    LeaderboardEntry,
)
from .utils import _sqlite_connection, parse_iso, store_operation

_SCORE_SQL = (
    f"(mentions * {MENTION_WEIGHT} + replies * {REPLY_WEIGHT} "
    f"+ vc_minutes_together * {VOICE_MINUTE_WEIGHT})"
)


def _pair_from_row(row: aiosqlite.Row) -> InteractionPair:
    return InteractionPair(
        user_id=str(row["user_id"]),
        other_user_id=str(row["other_user_id"]),
        mentions=int(row["mentions"] or 0),
        replies=int(row["replies"] or 0),
        voice_minutes=int(row["vc_minutes_together"] or 0),
        last_interaction_at=parse_iso(row["last_interaction_at"]),
    )


class InteractionsMixin:
    @store_operation(False)
    async def add_interaction_delta(
        self,
        user_id: str,
        other_user_id: str,
        *,
        mentions: int = 0,
        replies: int = 0,
        voice_minutes: int = 0,
        at: str,
    ) -> bool:
        if user_id == other_user_id:
            return False
        async with _sqlite_connection(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO interactions (
                    user_id, other_user_id, mentions, replies, vc_minutes_together, last_interaction_at
                )
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, other_user_id) DO UPDATE SET
                    mentions = interactions.mentions + excluded.mentions,
                    replies = interactions.replies + excluded.replies,
                    vc_minutes_together = interactions.vc_minutes_together + excluded.vc_minutes_together,
                    last_interaction_at = excluded.last_interaction_at
                """,
                (user_id, other_user_id, int(mentions), int(replies), int(voice_minutes), at),
            )
            await db.commit()
        return True

    @store_operation(factory=list)
    async def top_counterparties(self, user_id: str, limit: int) -> List[InteractionPair]:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"""
                SELECT user_id, other_user_id, mentions, replies, vc_minutes_together, last_interaction_at
                FROM interactions
                WHERE user_id = ?
                  AND {_SCORE_SQL} > 0
                ORDER BY {_SCORE_SQL} DESC, last_interaction_at DESC
                LIMIT ?
                """,
                (user_id, max(0, int(limit))),
            ) as cursor:
                rows = await cursor.fetchall()
        return [_pair_from_row(row) for row in rows]

    @store_operation(factory=list)
    async def top_users_by_score(self, limit: int) -> List[LeaderboardEntry]:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"""
                SELECT user_id, SUM({_SCORE_SQL}) AS value
                FROM interactions
                GROUP BY user_id
                HAVING value > 0
                ORDER BY value DESC, user_id ASC
                LIMIT ?
                """,
                (max(0, int(limit)),),
            ) as cursor:
                rows = await cursor.fetchall()
        return [LeaderboardEntry(user_id=str(row["user_id"]), value=int(row["value"])) for row in rows]

    @store_operation(None)
    async def get_interaction_pair(self, user_id: str, other_user_id: str) -> Optional[InteractionPair]:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                """
                SELECT user_id, other_user_id, mentions, replies, vc_minutes_together, last_interaction_at
                FROM interactions
                WHERE user_id = ? AND other_user_id = ?
                """,
                (user_id, other_user_id),
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return None
        return _pair_from_row(row)

    @store_operation(factory=InteractionSummary)
    async def get_interaction_summary(self, user_id: str) -> InteractionSummary:
        async with _sqlite_connection(self.db_path) as db:
            async with db.execute(
                f"""
                SELECT COUNT(*), COALESCE(SUM({_SCORE_SQL}), 0)
                FROM interactions
                WHERE user_id = ?
                """,
                (user_id,),
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return InteractionSummary()
        return InteractionSummary(links=int(row[0] or 0), score=int(row[1] or 0))
