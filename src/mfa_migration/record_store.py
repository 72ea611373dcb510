"""
UserMigrationRecord store.

Reads and writes per-user migration state. The identity directory owns
the data (as ``custom:*`` attributes on the account); a RecordCache in
front of it saves round-trips on the login path.

Consistency model:
    - Reads are read-through: cache first, directory on a miss, then cached.
    - Writes are write-through: the directory is updated first, then the
      cached copy if there is one. Last writer wins.
    - Cached entries are never expired by time; refresh() or invalidate()
      drop stale ones explicitly.
    - Cache failures never fail a call: a read error counts as a miss and a
      write error is logged and dropped.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from datetime import datetime

from mfa_migration.directory.interface import IdentityDirectory
from mfa_migration.directory.pagination import iter_users
from mfa_migration.exceptions import ErrorHandler, UserNotFoundError
from mfa_migration.models import (
    ATTRIBUTE_EMAIL,
    ATTRIBUTE_LAST_NOTIFIED,
    ATTRIBUTE_LAST_UPDATED,
    ATTRIBUTE_MIGRATION_DEADLINE,
    ATTRIBUTE_MIGRATION_STATUS,
    ATTRIBUTE_PHONE_NUMBER,
    DirectoryUser,
    MigrationStatus,
    UserMigrationRecord,
)
from mfa_migration.observability import Tracer, create_tracer
from mfa_migration.observability.attributes import ATTR_STORE_ID, ATTR_USER_ID
from mfa_migration.policy import as_utc, utc_now
from mfa_migration.repositories.record_cache import InMemoryRecordCache, RecordCache

logger = logging.getLogger(__name__)


def _parse_timestamp(user_id: str, name: str, value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return as_utc(datetime.fromisoformat(value))
    except ValueError:
        logger.warning("Ignoring malformed %s for user %s: %r", name, user_id, value)
        return None


def record_from_directory(user: DirectoryUser) -> UserMigrationRecord:
    """
    Build a UserMigrationRecord from a directory account.

    A missing or unknown ``custom:migration_status`` reads as PENDING and a
    missing ``custom:migration_deadline`` leaves the campaign deadline in force.
    """
    raw_status = user.attribute(ATTRIBUTE_MIGRATION_STATUS)
    status = MigrationStatus.PENDING
    if raw_status:
        try:
            status = MigrationStatus(raw_status)
        except ValueError:
            logger.warning(
                "Unknown migration status %r for user %s, treating as pending",
                raw_status,
                user.username,
            )

    return UserMigrationRecord(
        user_id=user.username,
        mfa_enabled=user.mfa_enabled,
        mfa_methods=set(user.mfa_methods),
        migration_status=status,
        migration_deadline=_parse_timestamp(
            user.username,
            ATTRIBUTE_MIGRATION_DEADLINE,
            user.attribute(ATTRIBUTE_MIGRATION_DEADLINE),
        ),
        last_notified=_parse_timestamp(
            user.username,
            ATTRIBUTE_LAST_NOTIFIED,
            user.attribute(ATTRIBUTE_LAST_NOTIFIED),
        ),
    )


class UserMigrationRecordStore:
    """
    Read-through / write-through access to UserMigrationRecords of one store.

    Example:
        >>> store = UserMigrationRecordStore(directory, "us-east-1_legacy")
        >>> record = await store.get_record("alice")
        >>> await store.update_migration_status("alice", MigrationStatus.IN_PROGRESS)
    """

    def __init__(
        self,
        directory: IdentityDirectory,
        store_id: str,
        cache: RecordCache | None = None,
        error_handler: ErrorHandler | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the record store.

        Args:
            directory: Identity directory holding the accounts
            store_id: Store whose accounts carry the migration records
            cache: Record cache (an in-memory one if None)
            error_handler: Retry policy for paginated listings
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._directory = directory
        self._store_id = store_id
        self._cache = cache if cache is not None else InMemoryRecordCache(tracer=self._tracer)
        self._error_handler = error_handler or ErrorHandler()

    @property
    def store_id(self) -> str:
        return self._store_id

    @property
    def directory(self) -> IdentityDirectory:
        return self._directory

    @property
    def cache(self) -> RecordCache:
        return self._cache

    async def _cached(self, user_id: str) -> UserMigrationRecord | None:
        # A failing cache reads as a miss; the directory is authoritative.
        try:
            return await self._cache.get(user_id)
        except Exception:
            logger.warning("Record cache read failed for user %s", user_id, exc_info=True)
            return None

    async def _cache_put(self, record: UserMigrationRecord) -> None:
        try:
            await self._cache.put(record)
        except Exception:
            logger.warning(
                "Record cache write failed for user %s", record.user_id, exc_info=True
            )

    async def get_record(self, user_id: str) -> UserMigrationRecord:
        """
        Get a user's record, reading through to the directory on a cache miss.

        Raises:
            UserNotFoundError: If the account does not exist (nothing is cached).
            DirectoryError: If the directory call fails.
        """
        with self._tracer.span(
            "mfa_migration.record_store.get_record",
            {ATTR_USER_ID: user_id, ATTR_STORE_ID: self._store_id},
        ):
            cached = await self._cached(user_id)
            if cached is not None:
                return cached
            return await self.refresh(user_id)

    async def get_record_or_default(self, user_id: str) -> UserMigrationRecord:
        """
        Like get_record(), but an unknown user yields a default PENDING record.

        The default is not cached, so an account created later is picked up.
        """
        try:
            return await self.get_record(user_id)
        except UserNotFoundError:
            logger.info("User %s not found in %s, using default record", user_id, self._store_id)
            return UserMigrationRecord(user_id=user_id)

    async def refresh(self, user_id: str) -> UserMigrationRecord:
        """Reload a record from the directory and replace the cached copy."""
        user = await self._directory.get_user(self._store_id, user_id)
        record = record_from_directory(user)
        await self._cache_put(record)
        return record

    async def invalidate(self, user_id: str) -> None:
        """Drop the cached copy of a record."""
        try:
            await self._cache.delete(user_id)
        except Exception:
            logger.warning("Record cache delete failed for user %s", user_id, exc_info=True)

    async def update_migration_status(
        self,
        user_id: str,
        status: MigrationStatus,
        now: datetime | None = None,
    ) -> None:
        """
        Set a user's migration status (write-through).

        Also stamps ``custom:last_updated``.
        """
        now = as_utc(now) if now else utc_now()
        with self._tracer.span(
            "mfa_migration.record_store.update_migration_status",
            {ATTR_USER_ID: user_id, ATTR_STORE_ID: self._store_id},
        ):
            await self._directory.update_attributes(
                self._store_id,
                user_id,
                {
                    ATTRIBUTE_MIGRATION_STATUS: status.value,
                    ATTRIBUTE_LAST_UPDATED: now.isoformat(),
                },
            )
            cached = await self._cached(user_id)
            if cached is not None:
                cached.migration_status = status
                await self._cache_put(cached)
            logger.info("Updated migration status for user %s: %s", user_id, status.value)

    async def mark_notified(self, user_id: str, now: datetime) -> None:
        """Record that a user was notified at ``now`` (write-through)."""
        now = as_utc(now)
        with self._tracer.span(
            "mfa_migration.record_store.mark_notified",
            {ATTR_USER_ID: user_id, ATTR_STORE_ID: self._store_id},
        ):
            await self._directory.update_attributes(
                self._store_id,
                user_id,
                {ATTRIBUTE_LAST_NOTIFIED: now.isoformat()},
            )
            cached = await self._cached(user_id)
            if cached is not None:
                cached.last_notified = now
                await self._cache_put(cached)
            logger.debug("Updated last notified for user %s: %s", user_id, now.isoformat())

    async def set_migration_deadline(self, user_id: str, deadline: datetime) -> None:
        """Override the campaign deadline for one user (write-through)."""
        deadline = as_utc(deadline)
        await self._directory.update_attributes(
            self._store_id,
            user_id,
            {ATTRIBUTE_MIGRATION_DEADLINE: deadline.isoformat()},
        )
        cached = await self._cached(user_id)
        if cached is not None:
            cached.migration_deadline = deadline
            await self._cache_put(cached)

    async def put_cached(self, record: UserMigrationRecord) -> None:
        """Replace the cached copy of a record without touching the directory."""
        await self._cache_put(record)

    async def iter_records(self) -> AsyncIterator[UserMigrationRecord]:
        """
        Yield the records of every account in the store.

        Records are built from the listing itself (one request per page) and
        refresh the cache as they go.
        """
        async for user in iter_users(
            self._directory,
            self._store_id,
            error_handler=self._error_handler,
        ):
            record = record_from_directory(user)
            await self._cache_put(record)
            yield record

    async def list_records(self) -> list[UserMigrationRecord]:
        return [record async for record in self.iter_records()]

    async def get_contact(self, user_id: str) -> tuple[str | None, str | None]:
        """
        Look up where a user can be notified.

        Returns:
            (email, phone_number); either may be None.
        """
        user = await self._directory.get_user(self._store_id, user_id)
        return user.attribute(ATTRIBUTE_EMAIL), user.attribute(ATTRIBUTE_PHONE_NUMBER)


__all__ = ["UserMigrationRecordStore", "record_from_directory"]
