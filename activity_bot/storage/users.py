from __future__ import annotations

import math
from typing import Any, List, Mapping, Optional, Sequence

import aiosqlite

from ..models import VIBE_KEYS, SeenType, UserRecord, UserVibes
from .utils import (
    _sqlite_connection,
    dump_json,
    load_json_or_none,
    now_iso,
    parse_iso,
    store_operation,
)


def parse_chosen_vibes(raw: str | None) -> tuple[str, ...]:
    payload = load_json_or_none(raw)
    if not isinstance(payload, list):
        return ()
    picked: list[str] = []
    for item in payload:
        key = str(item).strip().lower()
        if key in VIBE_KEYS and key not in picked:
            picked.append(key)
    return tuple(picked)


def parse_vibe_scores(raw: str | None) -> dict[str, int]:
    scores = {key: 0 for key in VIBE_KEYS}
    payload = load_json_or_none(raw)
    if not isinstance(payload, dict):
        return scores
    for key in VIBE_KEYS:
        value = payload.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if not math.isfinite(value):
            continue
        scores[key] = max(0, int(value))
    return scores


def _optional_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _user_from_row(row: aiosqlite.Row) -> UserRecord:
    return UserRecord(
        user_id=str(row["user_id"]),
        join_date=parse_iso(row["join_date"]),
        chosen_vibes=parse_chosen_vibes(row["chosen_vibe"]),
        inferred_vibes=parse_vibe_scores(row["inferred_vibe"]),
        last_message_at=parse_iso(row["last_message_at"]),
        last_message_channel_id=row["last_message_channel_id"],
        last_vc_at=parse_iso(row["last_vc_at"]),
        last_vc_channel_id=row["last_vc_channel_id"],
        last_vc_minutes=_optional_int(row["last_vc_minutes"]),
        last_connection_at=parse_iso(row["last_connection_at"]),
        last_connection_user_id=row["last_connection_user_id"],
        last_connection_via=row["last_connection_via"],
        last_seen_at=parse_iso(row["last_seen_at"]),
        last_seen_type=row["last_seen_type"],
        last_seen_channel_id=row["last_seen_channel_id"],
        created_at=parse_iso(row["created_at"]),
        updated_at=parse_iso(row["updated_at"]),
    )


class UsersMixin:
    @store_operation(False)
    async def upsert_user(self, user_id: str, join_date: str | None = None) -> bool:
        stamp = now_iso()
        async with _sqlite_connection(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO users (user_id, join_date, chosen_vibe, inferred_vibe, created_at, updated_at)
                VALUES (?, ?, NULL, NULL, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    updated_at = excluded.updated_at,
                    join_date = COALESCE(users.join_date, excluded.join_date)
                """,
                (user_id, join_date, stamp, stamp),
            )
            await db.commit()
        return True

    @store_operation(False)
    async def set_join_date_if_missing(self, user_id: str, join_date: str) -> bool:
        async with _sqlite_connection(self.db_path) as db:
            await db.execute(
                """
                UPDATE users
                SET join_date = COALESCE(join_date, ?),
                    updated_at = ?
                WHERE user_id = ?
                """,
                (join_date, now_iso(), user_id),
            )
            await db.commit()
        return True

    @store_operation(False)
    async def set_chosen_vibe(self, user_id: str, vibes: Sequence[str]) -> bool:
        return await self._update_user_columns(user_id, {"chosen_vibe": dump_json(list(vibes))})

    @store_operation(False)
    async def set_inferred_vibe(self, user_id: str, scores: Mapping[str, int]) -> bool:
        payload = {key: int(scores.get(key, 0)) for key in VIBE_KEYS}
        return await self._update_user_columns(user_id, {"inferred_vibe": dump_json(payload)})

    @store_operation(False)
    async def add_inferred_vibe(self, user_id: str, deltas: Mapping[str, int]) -> bool:
        """Add per-vibe deltas to the stored vector inside one write transaction.

        A failed read aborts the whole update, so stored scores only ever grow.
        Malformed stored JSON counts as zeros.
        """
        stamp = now_iso()
        async with _sqlite_connection(self.db_path) as db:
            await db.execute("BEGIN IMMEDIATE")
            async with db.execute("SELECT inferred_vibe FROM users WHERE user_id = ?", (user_id,)) as cursor:
                row = await cursor.fetchone()
            current = parse_vibe_scores(row[0] if row else None)
            payload = {key: current[key] + max(0, int(deltas.get(key, 0))) for key in VIBE_KEYS}
            await db.execute(
                """
                INSERT INTO users (user_id, join_date, chosen_vibe, inferred_vibe, created_at, updated_at)
                VALUES (?, NULL, NULL, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    inferred_vibe = excluded.inferred_vibe,
                    updated_at = excluded.updated_at
                """,
                (user_id, dump_json(payload), stamp, stamp),
            )
            await db.commit()
        return True

    @store_operation(False)
    async def set_last_message(self, user_id: str, at: str, channel_id: str) -> bool:
        return await self._update_user_columns(
            user_id,
            {"last_message_at": at, "last_message_channel_id": channel_id},
        )

    @store_operation(False)
    async def set_last_voice(self, user_id: str, at: str, channel_id: str, minutes: int) -> bool:
        return await self._update_user_columns(
            user_id,
            {"last_vc_at": at, "last_vc_channel_id": channel_id, "last_vc_minutes": int(minutes)},
        )

    @store_operation(False)
    async def set_last_connection(self, user_id: str, at: str, other_user_id: str, via: str) -> bool:
        return await self._update_user_columns(
            user_id,
            {
                "last_connection_at": at,
                "last_connection_user_id": other_user_id,
                "last_connection_via": via,
            },
        )

    @store_operation(False)
    async def set_last_seen(
        self,
        user_id: str,
        at: str,
        seen_type: SeenType,
        channel_id: str | None,
    ) -> bool:
        return await self._update_user_columns(
            user_id,
            {"last_seen_at": at, "last_seen_type": seen_type, "last_seen_channel_id": channel_id},
        )

    async def _update_user_columns(self, user_id: str, values: Mapping[str, Any]) -> bool:
        # Column names come from the fixed call sites above, never from user input.
        assignments = ", ".join(f"{column} = ?" for column in values)
        params = [*values.values(), now_iso(), user_id]
        async with _sqlite_connection(self.db_path) as db:
            await db.execute(
                f"UPDATE users SET {assignments}, updated_at = ? WHERE user_id = ?",
                params,
            )
            await db.commit()
        return True

    @store_operation(None)
    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                """
                SELECT
                    user_id, join_date, chosen_vibe, inferred_vibe,
                    last_message_at, last_message_channel_id,
                    last_vc_at, last_vc_channel_id, last_vc_minutes,
                    last_connection_at, last_connection_user_id, last_connection_via,
                    last_seen_at, last_seen_type, last_seen_channel_id,
                    created_at, updated_at
                FROM users
                WHERE user_id = ?
                """,
                (user_id,),
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return None
        return _user_from_row(row)

    @store_operation(factory=list)
    async def list_user_vibes(self) -> List[UserVibes]:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                """
                SELECT user_id, chosen_vibe, inferred_vibe
                FROM users
                WHERE chosen_vibe IS NOT NULL OR inferred_vibe IS NOT NULL
                ORDER BY user_id
                """
            ) as cursor:
                rows = await cursor.fetchall()
        return [
            UserVibes(
                user_id=str(row["user_id"]),
                chosen=parse_chosen_vibes(row["chosen_vibe"]),
                inferred=parse_vibe_scores(row["inferred_vibe"]),
            )
            for row in rows
        ]
