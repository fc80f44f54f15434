from __future__ import annotations

from typing import Collection, List, Mapping

import aiosqlite

from ..models import BUCKETS, ActivityTotals, Bucket, LeaderboardEntry
from .utils import _sqlite_connection, store_operation

_LEADERBOARD_COLUMNS = {
    "messages": "messages_count",
    "voice": "voice_minutes",
    "night": "bucket_night",
}

_TOTALS_SELECT = """
    SELECT
        COALESCE(SUM(bucket_night), 0) AS night,
        COALESCE(SUM(bucket_morning), 0) AS morning,
        COALESCE(SUM(bucket_afternoon), 0) AS afternoon,
        COALESCE(SUM(bucket_evening), 0) AS evening,
        COALESCE(SUM(weekend_count), 0) AS weekend,
        COALESCE(SUM(messages_count), 0) AS messages,
        COALESCE(SUM(voice_minutes), 0) AS voice
"""


def _totals_from_row(row: aiosqlite.Row | None) -> ActivityTotals:
    if row is None:
        return ActivityTotals()
    return ActivityTotals(
        night=int(row["night"] or 0),
        morning=int(row["morning"] or 0),
        afternoon=int(row["afternoon"] or 0),
        evening=int(row["evening"] or 0),
        weekend=int(row["weekend"] or 0),
        messages=int(row["messages"] or 0),
        voice=int(row["voice"] or 0),
    )


class ActivityMixin:
    @store_operation(False)
    async def add_message(
        self,
        user_id: str,
        date_key: str,
        bucket: Bucket,
        weekend: bool,
        *,
        category_id: str | None = None,
    ) -> bool:
        deltas = {name: 1 if name == bucket else 0 for name in BUCKETS}
        await self._increment_activity(
            user_id,
            date_key,
            category_id=category_id,
            messages=1,
            voice_minutes=0,
            bucket_deltas=deltas,
            weekend_delta=1 if weekend else 0,
        )
        return True

    @store_operation(False)
    async def add_voice(
        self,
        user_id: str,
        date_key: str,
        minutes: int,
        bucket_minutes: Mapping[str, int],
        weekend_minutes: int,
        *,
        category_id: str | None = None,
    ) -> bool:
        await self._increment_activity(
            user_id,
            date_key,
            category_id=category_id,
            messages=0,
            voice_minutes=int(minutes),
            bucket_deltas={name: int(bucket_minutes.get(name, 0)) for name in BUCKETS},
            weekend_delta=int(weekend_minutes),
        )
        return True

    async def _increment_activity(
        self,
        user_id: str,
        date_key: str,
        *,
        category_id: str | None,
        messages: int,
        voice_minutes: int,
        bucket_deltas: Mapping[str, int],
        weekend_delta: int,
    ) -> None:
        counters = (
            messages,
            voice_minutes,
            bucket_deltas["night"],
            bucket_deltas["morning"],
            bucket_deltas["afternoon"],
            bucket_deltas["evening"],
            weekend_delta,
        )
        if category_id is None:
            table = "activity_daily"
            key_columns = "user_id, date"
            key_params: tuple[str, ...] = (user_id, date_key)
        else:
            table = "activity_scoped_daily"
            key_columns = "user_id, date, category_id"
            key_params = (user_id, date_key, category_id)
        placeholders = ", ".join("?" for _ in range(len(key_params) + len(counters)))
        async with _sqlite_connection(self.db_path) as db:
            await db.execute(
                f"""
                INSERT INTO {table} (
                    {key_columns},
                    messages_count, voice_minutes,
                    bucket_night, bucket_morning, bucket_afternoon, bucket_evening,
                    weekend_count
                )
                VALUES ({placeholders})
                ON CONFLICT({key_columns}) DO UPDATE SET
                    messages_count = {table}.messages_count + excluded.messages_count,
                    voice_minutes = {table}.voice_minutes + excluded.voice_minutes,
                    bucket_night = {table}.bucket_night + excluded.bucket_night,
                    bucket_morning = {table}.bucket_morning + excluded.bucket_morning,
                    bucket_afternoon = {table}.bucket_afternoon + excluded.bucket_afternoon,
                    bucket_evening = {table}.bucket_evening + excluded.bucket_evening,
                    weekend_count = {table}.weekend_count + excluded.weekend_count
                """,
                (*key_params, *counters),
            )
            await db.commit()

    @store_operation(factory=ActivityTotals)
    async def get_totals(self, user_id: str) -> ActivityTotals:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"{_TOTALS_SELECT} FROM activity_daily WHERE user_id = ?",
                (user_id,),
            ) as cursor:
                row = await cursor.fetchone()
        return _totals_from_row(row)

    @store_operation(factory=ActivityTotals)
    async def totals_between(self, start_key: str, end_key: str) -> ActivityTotals:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"{_TOTALS_SELECT} FROM activity_daily WHERE date >= ? AND date < ?",
                (start_key, end_key),
            ) as cursor:
                row = await cursor.fetchone()
        return _totals_from_row(row)

    @store_operation(factory=list)
    async def top_messages(
        self,
        limit: int,
        *,
        category_ids: Collection[str] | None = None,
        start_key: str | None = None,
        end_key: str | None = None,
    ) -> List[LeaderboardEntry]:
        return await self._top_activity("messages", limit, category_ids, start_key, end_key)

    @store_operation(factory=list)
    async def top_voice(
        self,
        limit: int,
        *,
        category_ids: Collection[str] | None = None,
        start_key: str | None = None,
        end_key: str | None = None,
    ) -> List[LeaderboardEntry]:
        return await self._top_activity("voice", limit, category_ids, start_key, end_key)

    @store_operation(factory=list)
    async def top_night(
        self,
        limit: int,
        *,
        category_ids: Collection[str] | None = None,
        start_key: str | None = None,
        end_key: str | None = None,
    ) -> List[LeaderboardEntry]:
        return await self._top_activity("night", limit, category_ids, start_key, end_key)

    async def _top_activity(
        self,
        metric: str,
        limit: int,
        category_ids: Collection[str] | None,
        start_key: str | None,
        end_key: str | None,
    ) -> List[LeaderboardEntry]:
        column = _LEADERBOARD_COLUMNS[metric]
        clauses: list[str] = []
        params: list[object] = []
        if category_ids is None:
            table = "activity_daily"
        else:
            ids = sorted({str(value) for value in category_ids})
            if not ids:
                return []
            table = "activity_scoped_daily"
            clauses.append(f"category_id IN ({', '.join('?' for _ in ids)})")
            params.extend(ids)
        if start_key is not None:
            clauses.append("date >= ?")
            params.append(start_key)
        if end_key is not None:
            clauses.append("date < ?")
            params.append(end_key)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(max(0, int(limit)))

        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"""
                SELECT user_id, COALESCE(SUM({column}), 0) AS value
                FROM {table}
                {where}
                GROUP BY user_id
                HAVING value > 0
                ORDER BY value DESC, user_id ASC
                LIMIT ?
                """,
                params,
            ) as cursor:
                rows = await cursor.fetchall()
        return [LeaderboardEntry(user_id=str(row["user_id"]), value=int(row["value"])) for row in rows]
