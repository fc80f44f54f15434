from __future__ import annotations

from typing import Optional

from .utils import _sqlite_connection, store_operation


class ChannelOwnershipMixin:
    @store_operation(False)
    async def upsert_channel_owner(
        self,
        channel_id: str,
        guild_id: str,
        creator_user_id: str,
        channel_type: str | None,
        created_at: str,
    ) -> bool:
        async with _sqlite_connection(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO created_channels (channel_id, guild_id, creator_user_id, channel_type, created_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(channel_id) DO UPDATE SET
                    guild_id = excluded.guild_id,
                    creator_user_id = excluded.creator_user_id,
                    channel_type = excluded.channel_type,
                    created_at = excluded.created_at
                """,
                (channel_id, guild_id, creator_user_id, channel_type, created_at),
            )
            await db.commit()
        return True

    @store_operation(None)
    async def get_channel_owner(self, channel_id: str) -> Optional[str]:
        async with _sqlite_connection(self.db_path) as db:
            async with db.execute(
                "SELECT creator_user_id FROM created_channels WHERE channel_id = ?",
                (channel_id,),
            ) as cursor:
                row = await cursor.fetchone()
        if row is None or not row[0]:
            return None
        return str(row[0])
