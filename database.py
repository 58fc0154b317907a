"""
Database module for storing status items
Supports both SQLite (development) and PostgreSQL (production)

Items are append-only: inserted once at ingestion, queried per owner and
time window by the digest, never updated or deleted here.
"""
import asyncio
import logging
import sqlite3
from datetime import datetime
from typing import List, Optional

import asyncpg

from models import StatusItem
from runtime.errors import PersistenceFailure
from runtime.time_utils import UTC, ensure_aware

logger = logging.getLogger(__name__)


def _to_utc(moment: datetime) -> datetime:
    return ensure_aware(moment).astimezone(UTC)


def _iso(moment: datetime) -> str:
    # Fixed width so stored strings sort chronologically
    return _to_utc(moment).isoformat(timespec="microseconds")


class StatusItemDatabase:
    """Record Store for status items"""

    def __init__(self, db_path: str = "status_items.db", db_url: Optional[str] = None):
        self.db_path = db_path
        self.db_url = db_url
        self.use_postgres = bool(db_url)
        self.pool = None

        if self.use_postgres:
            # PostgreSQL initialization is async, handled in initialize
            logger.info("Using PostgreSQL database")
        else:
            logger.info("Using SQLite database")
            self._init_sqlite()

    async def initialize(self):
        """Async initialization for PostgreSQL"""
        if self.use_postgres and not self.pool:
            try:
                await self._init_postgres()
            except (OSError, asyncpg.PostgresError) as e:
                raise PersistenceFailure(f"Cannot connect to PostgreSQL: {e}") from e

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_sqlite(self):
        """Initialize SQLite database and create tables if they don't exist"""
        conn = self._connect()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS status_items (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    user_id TEXT NOT NULL,
                    user_name TEXT NOT NULL,
                    text TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_status_items_owner_created
                ON status_items(user_id, created_at)
            """)
            conn.commit()
        finally:
            conn.close()
        logger.info(f"SQLite database initialized at {self.db_path}")

    async def _init_postgres(self):
        """Initialize PostgreSQL database and create tables if they don't exist"""
        # Convert DATABASE_URL to asyncpg format if needed (for Heroku)
        db_url = self.db_url
        if db_url.startswith('postgres://'):
            db_url = db_url.replace('postgres://', 'postgresql://', 1)

        self.pool = await asyncpg.create_pool(db_url, min_size=1, max_size=10)

        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS status_items (
                    seq BIGSERIAL PRIMARY KEY,
                    id TEXT NOT NULL UNIQUE,
                    user_id TEXT NOT NULL,
                    user_name TEXT NOT NULL,
                    text TEXT NOT NULL,
                    created_at TIMESTAMPTZ NOT NULL
                )
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_status_items_owner_created
                ON status_items(user_id, created_at)
            """)

        logger.info("PostgreSQL database initialized")

    # ========================= INSERT =========================

    async def insert(self, item: StatusItem) -> None:
        """Persist one item. Raises PersistenceFailure; the write is all-or-nothing."""
        try:
            if self.use_postgres:
                await self._insert_postgres(item)
            else:
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(None, self._insert_sqlite, item)
        except PersistenceFailure:
            raise
        except (sqlite3.Error, asyncpg.PostgresError, OSError) as e:
            logger.error(f"Failed to persist item {item.id} for {item.user_name}: {e}")
            raise PersistenceFailure(f"Cannot store item: {e}") from e

    def _insert_sqlite(self, item: StatusItem) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute("""
                    INSERT INTO status_items (id, user_id, user_name, text, created_at)
                    VALUES (?, ?, ?, ?, ?)
                """, (item.id, item.user_id, item.user_name, item.text,
                      _iso(item.created_at)))
        finally:
            conn.close()
        logger.info(f"Saved item {item.id} for {item.user_name} to SQLite database")

    async def _insert_postgres(self, item: StatusItem) -> None:
        await self.initialize()  # Ensure pool is created

        async with self.pool.acquire() as conn:
            await conn.execute("""
                INSERT INTO status_items (id, user_id, user_name, text, created_at)
                VALUES ($1, $2, $3, $4, $5)
            """, item.id, item.user_id, item.user_name, item.text, _to_utc(item.created_at))

        logger.info(f"Saved item {item.id} for {item.user_name} to PostgreSQL database")

    # ========================= QUERIES =========================

    async def query_by_owner_and_window(self, owner_id: str, window_start: datetime,
                                        window_end: datetime) -> List[StatusItem]:
        """Items by `owner_id` with window_start <= created_at < window_end, in insertion order"""
        start, end = _to_utc(window_start), _to_utc(window_end)
        try:
            if self.use_postgres:
                return await self._query_postgres(owner_id, start, end)
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, self._query_sqlite, owner_id, start, end)
        except PersistenceFailure:
            raise
        except (sqlite3.Error, asyncpg.PostgresError, OSError) as e:
            raise PersistenceFailure(f"Cannot query items for {owner_id}: {e}") from e

    def _query_sqlite(self, owner_id: str, start: datetime, end: datetime) -> List[StatusItem]:
        conn = self._connect()
        try:
            rows = conn.execute("""
                SELECT id, user_id, user_name, text, created_at
                FROM status_items
                WHERE user_id = ? AND created_at >= ? AND created_at < ?
                ORDER BY created_at, seq
            """, (owner_id, _iso(start), _iso(end))).fetchall()
        finally:
            conn.close()

        return [
            StatusItem(
                id=row['id'],
                user_id=row['user_id'],
                user_name=row['user_name'],
                text=row['text'],
                created_at=datetime.fromisoformat(row['created_at']),
            )
            for row in rows
        ]

    async def _query_postgres(self, owner_id: str, start: datetime, end: datetime) -> List[StatusItem]:
        await self.initialize()

        async with self.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT id, user_id, user_name, text, created_at
                FROM status_items
                WHERE user_id = $1 AND created_at >= $2 AND created_at < $3
                ORDER BY created_at, seq
            """, owner_id, start, end)

        return [StatusItem(**dict(row)) for row in rows]

    async def count_items(self) -> int:
        """Total number of stored items"""
        try:
            if self.use_postgres:
                await self.initialize()
                async with self.pool.acquire() as conn:
                    return await conn.fetchval("SELECT COUNT(*) FROM status_items")
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, self._count_sqlite)
        except PersistenceFailure:
            raise
        except (sqlite3.Error, asyncpg.PostgresError, OSError) as e:
            raise PersistenceFailure(f"Cannot count items: {e}") from e

    def _count_sqlite(self) -> int:
        conn = self._connect()
        try:
            return conn.execute("SELECT COUNT(*) FROM status_items").fetchone()[0]
        finally:
            conn.close()

    async def close(self):
        """Close database connections"""
        if self.use_postgres and self.pool:
            await self.pool.close()
            self.pool = None
