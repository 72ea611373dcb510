"""
Local cache of UserMigrationRecords.

The identity directory is the authoritative store for migration state;
these caches only save directory round-trips on the login path. Writes go
through the record store, which updates the directory and the cache in the
same call (last writer wins). Entries never expire on their own.

Implementations:
- InMemoryRecordCache: process-local dictionary (default)
- SQLiteRecordCache: aiosqlite, for a cache shared by workers on one host
- PostgreSQLRecordCache: SQLAlchemy async, for a cache shared across hosts
"""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from mfa_migration.models import UserMigrationRecord
from mfa_migration.observability import Tracer, create_tracer
from mfa_migration.observability.attributes import ATTR_USER_ID
from mfa_migration.repositories._connection import execute_with_connection

if TYPE_CHECKING:
    import aiosqlite

TABLE_NAME = "mfa_migration_records"


@runtime_checkable
class RecordCache(Protocol):
    """Protocol for UserMigrationRecord caches keyed by user id."""

    async def get(self, user_id: str) -> UserMigrationRecord | None:
        """
        Get a cached record.

        Args:
            user_id: User identifier

        Returns:
            A copy of the cached record, or None on a miss
        """
        ...

    async def put(self, record: UserMigrationRecord) -> None:
        """Insert or replace the record for ``record.user_id``."""
        ...

    async def delete(self, user_id: str) -> None:
        """Drop a record; missing entries are ignored."""
        ...

    async def clear(self) -> None:
        """Drop every record."""
        ...


class InMemoryRecordCache:
    """
    In-memory record cache.

    Records are stored as copies so callers mutating a returned record do
    not change the cache behind the record store's back.
    """

    def __init__(
        self,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._records: dict[str, dict] = {}
        self._lock: asyncio.Lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    async def get(self, user_id: str) -> UserMigrationRecord | None:
        with self._tracer.span("mfa_migration.record_cache.get", {ATTR_USER_ID: user_id}):
            async with self._lock:
                data = self._records.get(user_id)
            return UserMigrationRecord.from_dict(data) if data else None

    async def put(self, record: UserMigrationRecord) -> None:
        with self._tracer.span("mfa_migration.record_cache.put", {ATTR_USER_ID: record.user_id}):
            async with self._lock:
                self._records[record.user_id] = record.to_dict()

    async def delete(self, user_id: str) -> None:
        with self._tracer.span("mfa_migration.record_cache.delete", {ATTR_USER_ID: user_id}):
            async with self._lock:
                self._records.pop(user_id, None)

    async def clear(self) -> None:
        async with self._lock:
            self._records.clear()


class SQLiteRecordCache:
    """
    SQLite record cache.

    Stores records as JSON text in the ``mfa_migration_records`` table.
    Call initialize() once to create the table.

    Example:
        >>> async with aiosqlite.connect("cache.db") as db:
        ...     cache = SQLiteRecordCache(db)
        ...     await cache.initialize()
        ...     await cache.put(record)
    """

    def __init__(
        self,
        connection: aiosqlite.Connection,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the cache.

        Args:
            connection: aiosqlite database connection
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._connection = connection

    async def initialize(self) -> None:
        """Create the cache table if it does not exist."""
        await self._connection.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
                user_id TEXT PRIMARY KEY,
                record TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        await self._connection.commit()

    async def get(self, user_id: str) -> UserMigrationRecord | None:
        with self._tracer.span("mfa_migration.record_cache.get", {ATTR_USER_ID: user_id}):
            cursor = await self._connection.execute(
                f"SELECT record FROM {TABLE_NAME} WHERE user_id = ?",
                (user_id,),
            )
            row = await cursor.fetchone()
            if row and row[0]:
                return UserMigrationRecord.from_dict(json.loads(row[0]))
            return None

    async def put(self, record: UserMigrationRecord) -> None:
        with self._tracer.span("mfa_migration.record_cache.put", {ATTR_USER_ID: record.user_id}):
            await self._connection.execute(
                f"""
                INSERT INTO {TABLE_NAME} (user_id, record, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT (user_id) DO UPDATE
                SET record = excluded.record,
                    updated_at = excluded.updated_at
                """,
                (
                    record.user_id,
                    json.dumps(record.to_dict()),
                    datetime.now(UTC).isoformat(),
                ),
            )
            await self._connection.commit()

    async def delete(self, user_id: str) -> None:
        with self._tracer.span("mfa_migration.record_cache.delete", {ATTR_USER_ID: user_id}):
            await self._connection.execute(
                f"DELETE FROM {TABLE_NAME} WHERE user_id = ?",
                (user_id,),
            )
            await self._connection.commit()

    async def clear(self) -> None:
        await self._connection.execute(f"DELETE FROM {TABLE_NAME}")
        await self._connection.commit()


class PostgreSQLRecordCache:
    """
    PostgreSQL record cache.

    Stores records as JSON text in the ``mfa_migration_records`` table.

    Example:
        >>> engine = create_async_engine("postgresql+asyncpg://...")
        >>> cache = PostgreSQLRecordCache(engine)
        >>> await cache.initialize()
    """

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self.conn = conn

    async def initialize(self) -> None:
        """Create the cache table if it does not exist."""
        query = text(f"""
            CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
                user_id VARCHAR(255) PRIMARY KEY,
                record TEXT NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL
            )
        """)
        async with execute_with_connection(self.conn, transactional=True) as conn:
            await conn.execute(query)

    async def get(self, user_id: str) -> UserMigrationRecord | None:
        with self._tracer.span("mfa_migration.record_cache.get", {ATTR_USER_ID: user_id}):
            query = text(f"""
                SELECT record
                FROM {TABLE_NAME}
                WHERE user_id = :user_id
            """)
            params = {"user_id": user_id}

            async with execute_with_connection(self.conn, transactional=False) as conn:
                result = await conn.execute(query, params)
                row = result.fetchone()

            if row and row[0]:
                return UserMigrationRecord.from_dict(json.loads(row[0]))
            return None

    async def put(self, record: UserMigrationRecord) -> None:
        with self._tracer.span("mfa_migration.record_cache.put", {ATTR_USER_ID: record.user_id}):
            query = text(f"""
                INSERT INTO {TABLE_NAME} (user_id, record, updated_at)
                VALUES (:user_id, :record, :now)
                ON CONFLICT (user_id) DO UPDATE
                SET record = EXCLUDED.record,
                    updated_at = EXCLUDED.updated_at
            """)
            params = {
                "user_id": record.user_id,
                "record": json.dumps(record.to_dict()),
                "now": datetime.now(UTC),
            }

            async with execute_with_connection(self.conn, transactional=True) as conn:
                await conn.execute(query, params)

    async def delete(self, user_id: str) -> None:
        with self._tracer.span("mfa_migration.record_cache.delete", {ATTR_USER_ID: user_id}):
            query = text(f"DELETE FROM {TABLE_NAME} WHERE user_id = :user_id")
            async with execute_with_connection(self.conn, transactional=True) as conn:
                await conn.execute(query, {"user_id": user_id})

    async def clear(self) -> None:
        query = text(f"DELETE FROM {TABLE_NAME}")
        async with execute_with_connection(self.conn, transactional=True) as conn:
            await conn.execute(query)


__all__ = [
    "TABLE_NAME",
    "RecordCache",
    "InMemoryRecordCache",
    "SQLiteRecordCache",
    "PostgreSQLRecordCache",
]
