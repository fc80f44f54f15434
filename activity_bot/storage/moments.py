from __future__ import annotations

import logging
from dataclasses import asdict, fields
from typing import List, Optional

import aiosqlite

from ..models import MOMENT_META_TYPES, MomentMeta, MomentRecord, MomentType
from .utils import _sqlite_connection, dump_json, load_json_or_none, parse_iso, store_operation

logger = logging.getLogger("activity_bot.storage")

_MOMENT_COLUMNS = "id, user_id, type, meta, created_at"


def encode_moment_meta(meta: MomentMeta | None) -> str | None:
    if meta is None:
        return None
    return dump_json(asdict(meta))


def decode_moment_meta(moment_type: MomentType, raw: str | None) -> MomentMeta | None:
    payload = load_json_or_none(raw)
    if not isinstance(payload, dict):
        return None
    meta_cls = MOMENT_META_TYPES[moment_type]
    known = {f.name for f in fields(meta_cls)}
    try:
        return meta_cls(**{key: value for key, value in payload.items() if key in known})
    except TypeError:
        logger.debug("Malformed %s moment metadata ignored: %r", moment_type.value, raw)
        return None


def _moment_from_row(row: aiosqlite.Row) -> MomentRecord | None:
    try:
        moment_type = MomentType(str(row["type"]))
    except ValueError:
        logger.debug("Unknown moment type %r skipped (id=%s)", row["type"], row["id"])
        return None
    return MomentRecord(
        moment_id=int(row["id"]),
        user_id=str(row["user_id"]),
        moment_type=moment_type,
        meta=decode_moment_meta(moment_type, row["meta"]),
        created_at=parse_iso(row["created_at"]),
    )


def _moments_from_rows(rows: list[aiosqlite.Row]) -> List[MomentRecord]:
    records: list[MomentRecord] = []
    for row in rows:
        record = _moment_from_row(row)
        if record is not None:
            records.append(record)
    return records


class MomentsMixin:
    @store_operation(None)
    async def insert_moment(
        self,
        user_id: str,
        moment_type: MomentType,
        meta: MomentMeta | None,
        created_at: str,
    ) -> Optional[int]:
        async with _sqlite_connection(self.db_path) as db:
            cursor = await db.execute(
                """
                INSERT INTO moments (user_id, type, meta, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (user_id, moment_type.value, encode_moment_meta(meta), created_at),
            )
            moment_id = int(cursor.lastrowid or 0)
            await db.commit()
        return moment_id or None

    @store_operation(None)
    async def get_moment_by_type(self, user_id: str, moment_type: MomentType) -> Optional[MomentRecord]:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"""
                SELECT {_MOMENT_COLUMNS}
                FROM moments
                WHERE user_id = ? AND type = ?
                ORDER BY created_at ASC, id ASC
                LIMIT 1
                """,
                (user_id, moment_type.value),
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return None
        return _moment_from_row(row)

    @store_operation(None)
    async def get_earliest_moment(self, user_id: str) -> Optional[MomentRecord]:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"""
                SELECT {_MOMENT_COLUMNS}
                FROM moments
                WHERE user_id = ?
                ORDER BY created_at ASC, id ASC
                LIMIT 1
                """,
                (user_id,),
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return None
        return _moment_from_row(row)

    @store_operation(factory=list)
    async def list_recent_notes(self, user_id: str, limit: int) -> List[MomentRecord]:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"""
                SELECT {_MOMENT_COLUMNS}
                FROM moments
                WHERE user_id = ? AND type = ?
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (user_id, MomentType.MOMENT_NOTE.value, max(0, int(limit))),
            ) as cursor:
                rows = await cursor.fetchall()
        return _moments_from_rows(rows)

    @store_operation(False)
    async def delete_note(self, moment_id: int, user_id: str) -> bool:
        async with _sqlite_connection(self.db_path) as db:
            cursor = await db.execute(
                "DELETE FROM moments WHERE id = ? AND user_id = ? AND type = ?",
                (int(moment_id), user_id, MomentType.MOMENT_NOTE.value),
            )
            deleted = int(cursor.rowcount or 0)
            await db.commit()
        return deleted > 0

    @store_operation(0)
    async def count_notes_between(self, start_iso: str, end_iso: str) -> int:
        async with _sqlite_connection(self.db_path) as db:
            async with db.execute(
                """
                SELECT COUNT(*)
                FROM moments
                WHERE type = ? AND created_at >= ? AND created_at < ?
                """,
                (MomentType.MOMENT_NOTE.value, start_iso, end_iso),
            ) as cursor:
                row = await cursor.fetchone()
        return int(row[0] or 0) if row else 0

    @store_operation(factory=list)
    async def list_notes_between(self, start_iso: str, end_iso: str, limit: int) -> List[MomentRecord]:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"""
                SELECT {_MOMENT_COLUMNS}
                FROM moments
                WHERE type = ? AND created_at >= ? AND created_at < ?
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (MomentType.MOMENT_NOTE.value, start_iso, end_iso, max(0, int(limit))),
            ) as cursor:
                rows = await cursor.fetchall()
        return _moments_from_rows(rows)
