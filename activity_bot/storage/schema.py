from __future__ import annotations

import os
from pathlib import Path

import aiosqlite

from .utils import _sqlite_connection


_USER_SNAPSHOT_COLUMNS = (
    "last_message_at TEXT",
    "last_message_channel_id TEXT",
    "last_vc_at TEXT",
    "last_vc_channel_id TEXT",
    "last_vc_minutes INTEGER",
    "last_connection_at TEXT",
    "last_connection_user_id TEXT",
    "last_connection_via TEXT",
    "last_seen_at TEXT",
    "last_seen_type TEXT",
    "last_seen_channel_id TEXT",
)


class SchemaMixin:
    SCHEMA_VERSION = 3

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _allow_destructive_reset_on_mismatch() -> bool:
        raw = os.getenv("ACTIVITY_SQLITE_RESET_ON_SCHEMA_MISMATCH", "")
        return raw.strip().lower() in {"1", "true", "yes", "y", "on"}

    async def _has_user_tables(self, db: aiosqlite.Connection) -> bool:
        async with db.execute(
            """
            SELECT 1
            FROM sqlite_master
            WHERE type = 'table'
              AND name NOT LIKE 'sqlite_%'
            LIMIT 1
            """
        ) as cursor:
            row = await cursor.fetchone()
        return bool(row)

    async def init(self) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await db.execute("PRAGMA journal_mode=WAL")
            async with db.execute("PRAGMA user_version") as cursor:
                row = await cursor.fetchone()
            version = int(row[0]) if row else 0
            has_tables = await self._has_user_tables(db)

            if version > self.SCHEMA_VERSION:
                if has_tables and self._allow_destructive_reset_on_mismatch():
                    await self._reset_schema(db)
                    await db.execute(f"PRAGMA user_version = {self.SCHEMA_VERSION}")
                    await db.commit()
                    return
                raise RuntimeError(
                    "SQLite schema version mismatch detected (database is newer than this bot build). "
                    f"Found user_version={version}, supported={self.SCHEMA_VERSION}. "
                    "Set ACTIVITY_SQLITE_RESET_ON_SCHEMA_MISMATCH=1 to allow destructive reset."
                )

            await self._create_schema(db)
            if has_tables:
                await self._migrate_schema(db, version)
            if version != self.SCHEMA_VERSION:
                await db.execute(f"PRAGMA user_version = {self.SCHEMA_VERSION}")

            await db.commit()

    async def _reset_schema(self, db: aiosqlite.Connection) -> None:
        tables = (
            "recap_runs",
            "created_channels",
            "moments",
            "interactions",
            "activity_scoped_daily",
            "activity_daily",
            "users",
        )
        for table in tables:
            await db.execute(f"DROP TABLE IF EXISTS {table}")
        await self._create_schema(db)

    async def _table_columns(self, db: aiosqlite.Connection, table_name: str) -> set[str]:
        cols: set[str] = set()
        async with db.execute(f"PRAGMA table_info({table_name})") as cursor:
            rows = await cursor.fetchall()
        for row in rows:
            cols.add(str(row[1]))
        return cols

    async def _add_column_if_missing(self, db: aiosqlite.Connection, table_name: str, column_sql: str) -> None:
        column_name = str(column_sql.split()[0]).strip()
        if not column_name:
            return
        cols = await self._table_columns(db, table_name)
        if column_name in cols:
            return
        await db.execute(f"ALTER TABLE {table_name} ADD COLUMN {column_sql}")

    async def _migrate_schema(self, db: aiosqlite.Connection, from_version: int) -> None:
        if from_version < 2:
            await self._migrate_v2_user_snapshots(db)
        if from_version < 3:
            await self._migrate_v3_scoped_activity_and_ownership(db)
        # Re-run idempotent migrations to self-heal partial deployments.
        await self._migrate_v2_user_snapshots(db)
        await self._migrate_v3_scoped_activity_and_ownership(db)

    async def _migrate_v2_user_snapshots(self, db: aiosqlite.Connection) -> None:
        for column_sql in _USER_SNAPSHOT_COLUMNS:
            await self._add_column_if_missing(db, "users", column_sql)

    async def _migrate_v3_scoped_activity_and_ownership(self, db: aiosqlite.Connection) -> None:
        await db.executescript(
            """
            CREATE TABLE IF NOT EXISTS activity_scoped_daily (
                user_id TEXT NOT NULL,
                date TEXT NOT NULL,
                category_id TEXT NOT NULL,
                messages_count INTEGER NOT NULL DEFAULT 0,
                voice_minutes INTEGER NOT NULL DEFAULT 0,
                bucket_night INTEGER NOT NULL DEFAULT 0,
                bucket_morning INTEGER NOT NULL DEFAULT 0,
                bucket_afternoon INTEGER NOT NULL DEFAULT 0,
                bucket_evening INTEGER NOT NULL DEFAULT 0,
                weekend_count INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (user_id, date, category_id)
            );

            CREATE TABLE IF NOT EXISTS created_channels (
                channel_id TEXT PRIMARY KEY,
                guild_id TEXT NOT NULL,
                creator_user_id TEXT NOT NULL,
                channel_type TEXT,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS recap_runs (
                week_start TEXT PRIMARY KEY,
                posted_at TEXT NOT NULL,
                channel_id TEXT NOT NULL,
                message_id TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_activity_scoped_user_date
            ON activity_scoped_daily(user_id, date);

            CREATE INDEX IF NOT EXISTS idx_activity_scoped_category_date
            ON activity_scoped_daily(category_id, date);

            CREATE INDEX IF NOT EXISTS idx_created_channels_creator
            ON created_channels(creator_user_id);
            """
        )

    async def _create_schema(self, db: aiosqlite.Connection) -> None:
        await db.executescript(
            """
            CREATE TABLE IF NOT EXISTS users (
                user_id TEXT PRIMARY KEY,
                join_date TEXT,
                chosen_vibe TEXT,
                inferred_vibe TEXT,
                last_message_at TEXT,
                last_message_channel_id TEXT,
                last_vc_at TEXT,
                last_vc_channel_id TEXT,
                last_vc_minutes INTEGER,
                last_connection_at TEXT,
                last_connection_user_id TEXT,
                last_connection_via TEXT,
                last_seen_at TEXT,
                last_seen_type TEXT,
                last_seen_channel_id TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS activity_daily (
                user_id TEXT NOT NULL,
                date TEXT NOT NULL,
                messages_count INTEGER NOT NULL DEFAULT 0,
                voice_minutes INTEGER NOT NULL DEFAULT 0,
                bucket_night INTEGER NOT NULL DEFAULT 0,
                bucket_morning INTEGER NOT NULL DEFAULT 0,
                bucket_afternoon INTEGER NOT NULL DEFAULT 0,
                bucket_evening INTEGER NOT NULL DEFAULT 0,
                weekend_count INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (user_id, date)
            );

            CREATE TABLE IF NOT EXISTS interactions (
                user_id TEXT NOT NULL,
                other_user_id TEXT NOT NULL,
                mentions INTEGER NOT NULL DEFAULT 0,
                replies INTEGER NOT NULL DEFAULT 0,
                vc_minutes_together INTEGER NOT NULL DEFAULT 0,
                last_interaction_at TEXT,
                PRIMARY KEY (user_id, other_user_id)
            );

            CREATE TABLE IF NOT EXISTS moments (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                type TEXT NOT NULL,
                meta TEXT,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_moments_user_created
            ON moments(user_id, created_at);

            CREATE INDEX IF NOT EXISTS idx_moments_type_created
            ON moments(type, created_at);

            CREATE INDEX IF NOT EXISTS idx_interactions_user
            ON interactions(user_id);

            CREATE INDEX IF NOT EXISTS idx_activity_user_date
            ON activity_daily(user_id, date);

            CREATE INDEX IF NOT EXISTS idx_activity_date
            ON activity_daily(date);
            """
        )
        await self._migrate_v3_scoped_activity_and_ownership(db)
