from __future__ import annotations

from .utils import _sqlite_connection, store_operation


class RecapRunsMixin:
    @store_operation(False)
    async def has_recap_run(self, week_start: str) -> bool:
        async with _sqlite_connection(self.db_path) as db:
            async with db.execute(
                "SELECT 1 FROM recap_runs WHERE week_start = ? LIMIT 1",
                (week_start,),
            ) as cursor:
                row = await cursor.fetchone()
        return row is not None

    @store_operation(False)
    async def mark_recap_run(
        self,
        week_start: str,
        posted_at: str,
        channel_id: str,
        message_id: str | None = None,
    ) -> bool:
        async with _sqlite_connection(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO recap_runs (week_start, posted_at, channel_id, message_id)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(week_start) DO UPDATE SET
                    posted_at = excluded.posted_at,
                    channel_id = excluded.channel_id,
                    message_id = excluded.message_id
                """,
                (week_start, posted_at, channel_id, message_id),
            )
            await db.commit()
        return True
