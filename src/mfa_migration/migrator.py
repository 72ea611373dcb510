"""
UserPoolMigrator - move accounts from the legacy store to the MFA-required store.

Per-user protocol:
    1. Read the source account. Unknown users fail without side effects.
    2. Reconcile: a target account tagged ``custom:migrated_from=<legacy id>``
       means an earlier run got past creation. While the source is still
       enabled the credential and transfer steps are redone before the commit;
       the result reports "already migrated". An untagged target account is
       left alone and the migration fails.
    3. Create the target account (contact attributes plus migration tags) and
       make its credential permanent.
    4. Transfer the remaining custom attributes and group memberships. A
       single group that cannot be joined is a warning; failure of the whole
       step is fatal.
    5. Commit: disable the source account and mark it migrated.
    6. Any fatal failure in 3-5 deletes the target account again. When
       create_user fails with a transient error the account may exist anyway;
       it is deleted if it carries this run's migration tags.

The identity stores share no transaction, so the terminal state of a
migration is either "no target account" or "populated target account and
disabled source account". A crash between steps 3 and 5 is repaired by
step 2 on the next attempt.

Usage:
    >>> migrator = UserPoolMigrator(directory, legacy_pool, new_pool, settings)
    >>> readiness = await migrator.validate_readiness()
    >>> if readiness.ready:
    ...     result = await migrator.batch_migrate(["alice", "bob"], batch_size=10)
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import string
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime
from typing import TypeVar

from mfa_migration.directory.interface import IdentityDirectory
from mfa_migration.directory.pagination import list_all_users
from mfa_migration.exceptions import (
    ConfigurationError,
    ErrorHandler,
    FatalCreationError,
    PartialTransferError,
    TransientDirectoryError,
    UserNotFoundError,
    log_classified,
)
from mfa_migration.models import (
    ATTRIBUTE_EMAIL,
    ATTRIBUTE_LAST_NOTIFIED,
    ATTRIBUTE_LAST_UPDATED,
    ATTRIBUTE_MIGRATED_FROM,
    ATTRIBUTE_MIGRATION_DATE,
    ATTRIBUTE_MIGRATION_DEADLINE,
    ATTRIBUTE_MIGRATION_STATUS,
    ATTRIBUTE_PHONE_NUMBER,
    BatchMigrationResult,
    DirectoryUser,
    MFAConfiguration,
    MigrationResult,
    MigrationSettings,
    MigrationStatus,
    PoolConfig,
    PoolMigrationStatus,
    ReadinessReport,
)
from mfa_migration.observability import MFAMigrationMetrics, Tracer, create_tracer
from mfa_migration.observability.attributes import (
    ATTR_BATCH_SIZE,
    ATTR_MIGRATION_OUTCOME,
    ATTR_SOURCE_STORE,
    ATTR_TARGET_STORE,
    ATTR_USER_COUNT,
    ATTR_USER_ID,
)
from mfa_migration.policy import as_utc, days_until, utc_now
from mfa_migration.record_store import UserMigrationRecordStore, record_from_directory
from mfa_migration.scheduling import DeferredScheduler

logger = logging.getLogger(__name__)

T = TypeVar("T")

USER_NOT_FOUND_MESSAGE = "User not found in source store"
ALREADY_MIGRATED_WARNING = "already migrated"
DEFAULT_BATCH_SIZE = 10
DEFAULT_INTER_BATCH_DELAY = 1.0
MIN_CREDENTIAL_LENGTH = 12

# Attributes written at creation time or owned by the legacy store's campaign.
NON_TRANSFERABLE_ATTRIBUTES = frozenset(
    {
        ATTRIBUTE_MIGRATED_FROM,
        ATTRIBUTE_MIGRATION_DATE,
        ATTRIBUTE_MIGRATION_STATUS,
        ATTRIBUTE_MIGRATION_DEADLINE,
        ATTRIBUTE_LAST_NOTIFIED,
        ATTRIBUTE_LAST_UPDATED,
    }
)

READINESS_RECOMMENDATIONS = (
    "Test migration with a small subset of users first",
    "Prepare user communication about the migration",
    "Set up monitoring for migration progress",
)

_CREDENTIAL_SYMBOLS = "!@#$%^&*"
_CREDENTIAL_ALPHABET = string.ascii_letters + string.digits + _CREDENTIAL_SYMBOLS


def generate_temporary_credential(length: int = 16) -> str:
    """
    Generate a random initial credential for a migrated account.

    The result always contains an upper-case letter, a lower-case letter,
    a digit and a symbol.

    Raises:
        ValueError: If length is below MIN_CREDENTIAL_LENGTH.
    """
    if length < MIN_CREDENTIAL_LENGTH:
        raise ValueError(f"length must be >= {MIN_CREDENTIAL_LENGTH}, got {length}")
    required = [
        secrets.choice(string.ascii_uppercase),
        secrets.choice(string.ascii_lowercase),
        secrets.choice(string.digits),
        secrets.choice(_CREDENTIAL_SYMBOLS),
    ]
    chars = required + [secrets.choice(_CREDENTIAL_ALPHABET) for _ in range(length - len(required))]
    # Shuffle so the required classes are not always in front.
    for i in range(len(chars) - 1, 0, -1):
        j = secrets.randbelow(i + 1)
        chars[i], chars[j] = chars[j], chars[i]
    return "".join(chars)


class UserPoolMigrator:
    """
    Moves accounts from the legacy store to the new store.

    Example:
        >>> migrator = UserPoolMigrator(
        ...     directory,
        ...     PoolConfig("legacy", "legacy-client"),
        ...     PoolConfig("new", "new-client", mfa_configuration=MFAConfiguration.ON),
        ...     settings,
        ... )
        >>> result = await migrator.migrate_user("alice")
        >>> result.outcome
        <MigrationOutcome.OK: 'ok'>
    """

    def __init__(
        self,
        directory: IdentityDirectory,
        legacy_pool: PoolConfig,
        new_pool: PoolConfig,
        settings: MigrationSettings,
        record_store: UserMigrationRecordStore | None = None,
        scheduler: DeferredScheduler | None = None,
        metrics: MFAMigrationMetrics | None = None,
        error_handler: ErrorHandler | None = None,
        *,
        inter_batch_delay: float = DEFAULT_INTER_BATCH_DELAY,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the migrator.

        Args:
            directory: Identity directory hosting both stores
            legacy_pool: Source store (MFA optional)
            new_pool: Target store (MFA required)
            settings: Campaign settings
            record_store: Record store of the legacy store, kept in sync on commit
            scheduler: Timer backend for schedule_user_migration()
            metrics: Optional metrics recorder
            error_handler: Retry policy for paginated listings
            inter_batch_delay: Seconds to wait between batch chunks
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._directory = directory
        self._legacy = legacy_pool
        self._new = new_pool
        self._settings = settings
        self._record_store = record_store or UserMigrationRecordStore(
            directory, legacy_pool.store_id, tracer=self._tracer
        )
        self._scheduler = scheduler or DeferredScheduler()
        self._metrics = metrics
        self._error_handler = error_handler or ErrorHandler()
        self._inter_batch_delay = inter_batch_delay

    @property
    def legacy_pool(self) -> PoolConfig:
        return self._legacy

    @property
    def new_pool(self) -> PoolConfig:
        return self._new

    @property
    def scheduler(self) -> DeferredScheduler:
        return self._scheduler

    async def migrate_user(
        self,
        user_id: str,
        temporary_credential: str | None = None,
        now: datetime | None = None,
    ) -> MigrationResult:
        """
        Move one account to the new store.

        Never raises for directory failures; see the module docstring for
        the protocol and its failure handling.

        Args:
            user_id: Username in the legacy store
            temporary_credential: Initial credential for the new account
                (a random one if None)
            now: Migration time stamped on both accounts
        """
        now = as_utc(now) if now else utc_now()
        with self._tracer.span(
            "mfa_migration.migrator.migrate_user",
            {
                ATTR_USER_ID: user_id,
                ATTR_SOURCE_STORE: self._legacy.store_id,
                ATTR_TARGET_STORE: self._new.store_id,
            },
        ) as span:
            if self._metrics is None:
                result = await self._migrate(user_id, temporary_credential, now)
            else:
                with self._metrics.time_migration() as timer:
                    result = await self._migrate(user_id, temporary_credential, now)
                self._metrics.record_migration(result, timer.duration_seconds)
            if span is not None:
                span.set_attribute(ATTR_MIGRATION_OUTCOME, result.outcome.value)
            return result

    async def _migrate(
        self,
        user_id: str,
        temporary_credential: str | None,
        now: datetime,
    ) -> MigrationResult:
        try:
            source = await self._directory.get_user(self._legacy.store_id, user_id)
        except UserNotFoundError:
            logger.warning("User %s not found in source store %s", user_id, self._legacy.store_id)
            return MigrationResult.err(user_id, USER_NOT_FOUND_MESSAGE)
        except Exception as e:
            logger.error("Error reading user %s from source store: %s", user_id, e)
            return MigrationResult.err(user_id, f"Failed to read source account: {e}")

        try:
            existing = await self._directory.get_user(self._new.store_id, user_id)
        except UserNotFoundError:
            existing = None
        except Exception as e:
            logger.error("Error checking target store for user %s: %s", user_id, e)
            return MigrationResult.err(user_id, f"Failed to check target store: {e}")

        if existing is not None:
            return await self._reconcile(source, existing, temporary_credential, now)

        credential = temporary_credential or generate_temporary_credential()
        new_user_id: str | None = None
        try:
            created = await self._fatal(
                "create_user",
                user_id,
                self._directory.create_user(
                    self._new.store_id,
                    user_id,
                    self._creation_attributes(source, now),
                    credential,
                ),
            )
            new_user_id = created.username
            await self._fatal(
                "set_permanent_credential",
                user_id,
                self._directory.set_permanent_credential(
                    self._new.store_id, new_user_id, credential
                ),
            )
            warnings = await self._transfer(source, new_user_id)
            warnings.extend(await self._commit(source, now))
        except FatalCreationError as e:
            log_classified(e, "Migration of user %s failed at %s", user_id, e.step, log=logger)
            if new_user_id:
                rolled_back = await self._rollback(new_user_id)
            elif isinstance(e.__cause__, (TransientDirectoryError, TimeoutError)):
                # The account may exist even though create_user reported failure.
                rolled_back = await self._remove_uncertain_target(user_id, now)
            else:
                rolled_back = False
            return MigrationResult.err(user_id, e.message, rolled_back=rolled_back)

        logger.info(
            "Migrated user %s to %s as %s (%d warning(s))",
            user_id,
            self._new.store_id,
            new_user_id,
            len(warnings),
        )
        return MigrationResult.ok(user_id, new_user_id, warnings)

    def _creation_attributes(self, source: DirectoryUser, now: datetime) -> dict[str, str]:
        attributes = {
            ATTRIBUTE_EMAIL: source.attribute(ATTRIBUTE_EMAIL),
            ATTRIBUTE_PHONE_NUMBER: source.attribute(ATTRIBUTE_PHONE_NUMBER),
            ATTRIBUTE_MIGRATED_FROM: self._legacy.store_id,
            ATTRIBUTE_MIGRATION_DATE: now.isoformat(),
        }
        return {name: value for name, value in attributes.items() if value}

    async def _fatal(self, step: str, user_id: str, operation: Awaitable[T]) -> T:
        try:
            return await operation
        except Exception as e:
            raise FatalCreationError(
                f"{step} failed: {e}",
                user_id=user_id,
                step=step,
                store_id=self._new.store_id,
            ) from e

    async def _transfer(self, source: DirectoryUser, new_user_id: str) -> list[str]:
        """Copy custom attributes and group memberships; returns warnings."""
        custom = {
            name: value
            for name, value in source.attributes.items()
            if name.startswith("custom:") and name not in NON_TRANSFERABLE_ATTRIBUTES and value
        }
        if custom:
            await self._fatal(
                "transfer_attributes",
                source.username,
                self._directory.update_attributes(self._new.store_id, new_user_id, custom),
            )

        groups = await self._fatal(
            "list_groups",
            source.username,
            self._directory.list_groups_for_user(self._legacy.store_id, source.username),
        )
        warnings: list[str] = []
        for group in groups:
            try:
                await self._directory.add_user_to_group(self._new.store_id, new_user_id, group)
            except Exception as e:
                partial = PartialTransferError(
                    f"Could not add user to group {group}: {e}",
                    user_id=source.username,
                    item=group,
                )
                logger.warning("%s", partial)
                warnings.append(partial.message)
        return warnings

    async def _commit(self, source: DirectoryUser, now: datetime) -> list[str]:
        """Disable the source account and mark it migrated; returns warnings."""
        user_id = source.username
        await self._fatal(
            "disable_source",
            user_id,
            self._directory.disable_user(self._legacy.store_id, user_id),
        )

        try:
            await self._directory.update_attributes(
                self._legacy.store_id,
                user_id,
                {
                    ATTRIBUTE_MIGRATION_STATUS: MigrationStatus.MIGRATED.value,
                    ATTRIBUTE_MIGRATION_DATE: now.isoformat(),
                },
            )
        except Exception as e:
            logger.warning("Source account %s disabled but not marked migrated: %s", user_id, e)
            await self._sync_cache(source, marked=False)
            return [f"Could not mark source account as migrated: {e}"]

        await self._sync_cache(source, marked=True)
        return []

    async def _sync_cache(self, source: DirectoryUser, *, marked: bool) -> None:
        try:
            if marked:
                record = record_from_directory(source)
                record.migration_status = MigrationStatus.MIGRATED
                await self._record_store.put_cached(record)
            else:
                await self._record_store.invalidate(source.username)
        except Exception:
            logger.warning(
                "Failed to update cached record for user %s", source.username, exc_info=True
            )

    async def _reconcile(
        self,
        source: DirectoryUser,
        existing: DirectoryUser,
        temporary_credential: str | None,
        now: datetime,
    ) -> MigrationResult:
        user_id = source.username
        if existing.attribute(ATTRIBUTE_MIGRATED_FROM) != self._legacy.store_id:
            logger.error(
                "User %s already exists in %s but was not migrated from %s, leaving it untouched",
                user_id,
                self._new.store_id,
                self._legacy.store_id,
            )
            return MigrationResult.err(
                user_id,
                "Account already exists in target store and was not created by this migration",
            )

        warnings = [ALREADY_MIGRATED_WARNING]
        status = source.attribute(ATTRIBUTE_MIGRATION_STATUS)
        if not source.enabled and status == MigrationStatus.MIGRATED.value:
            return MigrationResult.ok(user_id, existing.username, warnings)

        logger.info("Finishing interrupted migration of user %s", user_id)
        try:
            if source.enabled:
                # The source is disabled only after the target is populated, so
                # an enabled source means any step after creation may be missing.
                await self._fatal(
                    "set_permanent_credential",
                    user_id,
                    self._directory.set_permanent_credential(
                        self._new.store_id,
                        existing.username,
                        temporary_credential or generate_temporary_credential(),
                    ),
                )
                warnings.extend(await self._transfer(source, existing.username))
            warnings.extend(await self._commit(source, now))
        except FatalCreationError as e:
            logger.error("Could not finish migration of user %s: %s", user_id, e.message)
            return MigrationResult.err(user_id, e.message)
        return MigrationResult.ok(user_id, existing.username, warnings)

    async def _remove_uncertain_target(self, user_id: str, now: datetime) -> bool:
        """
        Delete a target account that a failed create_user call may still have made.

        Only an account carrying this run's migration tags is removed.
        """
        try:
            target = await self._directory.get_user(self._new.store_id, user_id)
        except UserNotFoundError:
            return False
        except Exception:
            logger.error(
                "Could not check %s for a half-created user %s",
                self._new.store_id,
                user_id,
                exc_info=True,
            )
            return False
        if (
            target.attribute(ATTRIBUTE_MIGRATED_FROM) != self._legacy.store_id
            or target.attribute(ATTRIBUTE_MIGRATION_DATE) != now.isoformat()
        ):
            return False
        return await self._rollback(target.username)

    async def _rollback(self, new_user_id: str) -> bool:
        """Delete a partially created target account; returns True when none is left."""
        try:
            await self._directory.delete_user(self._new.store_id, new_user_id)
        except UserNotFoundError:
            return True
        except Exception:
            logger.error(
                "Error rolling back user creation for %s in %s",
                new_user_id,
                self._new.store_id,
                exc_info=True,
            )
            return False
        logger.info("Rolled back creation of user %s in %s", new_user_id, self._new.store_id)
        return True

    async def batch_migrate(
        self,
        user_ids: Iterable[str],
        batch_size: int = DEFAULT_BATCH_SIZE,
        *,
        inter_batch_delay: float | None = None,
        credential_factory: Callable[[], str] | None = None,
    ) -> BatchMigrationResult:
        """
        Migrate many users, ``batch_size`` at a time.

        Duplicate ids are migrated once. Users within a chunk run
        concurrently; chunks run one after the other with a fixed pause in
        between. Each user's outcome is independent of the others.

        Raises:
            ValueError: If batch_size is less than 1.
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        delay = self._inter_batch_delay if inter_batch_delay is None else inter_batch_delay
        factory = credential_factory or generate_temporary_credential

        unique = list(dict.fromkeys(user_ids))
        chunks = [unique[i : i + batch_size] for i in range(0, len(unique), batch_size)]
        result = BatchMigrationResult()

        with self._tracer.span(
            "mfa_migration.migrator.batch_migrate",
            {ATTR_USER_COUNT: len(unique), ATTR_BATCH_SIZE: batch_size},
        ):
            for index, chunk in enumerate(chunks):
                outcomes = await asyncio.gather(
                    *(self.migrate_user(user_id, factory()) for user_id in chunk),
                    return_exceptions=True,
                )
                for user_id, outcome in zip(chunk, outcomes, strict=True):
                    if isinstance(outcome, BaseException):
                        log_classified(
                            outcome, "Unexpected error migrating user %s", user_id, log=logger
                        )
                        outcome = MigrationResult.err(user_id, str(outcome) or repr(outcome))
                    result.add(outcome)

                if index < len(chunks) - 1 and delay > 0:
                    await asyncio.sleep(delay)

        logger.info(
            "Batch migration finished: %d successful, %d failed",
            len(result.successful),
            len(result.failed),
        )
        return result

    async def validate_readiness(self, now: datetime | None = None) -> ReadinessReport:
        """
        Check that both stores and the deadline allow the migration to start.

        Directory failures are reported as issues rather than raised.
        """
        now = as_utc(now) if now else utc_now()
        issues: list[str] = []
        recommendations: list[str] = []

        try:
            legacy_mfa = await self._directory.describe_store(self._legacy.store_id)
            new_mfa = await self._directory.describe_store(self._new.store_id)
        except Exception as e:
            logger.error("Error validating pools: %s", e)
            issues.append(f"Error validating pools: {e}")
        else:
            if legacy_mfa != MFAConfiguration.OPTIONAL:
                issues.append(
                    self._config_issue(
                        "Legacy pool should have MFA set to OPTIONAL for migration",
                        self._legacy.store_id,
                    )
                )
            if new_mfa != MFAConfiguration.ON:
                issues.append(
                    self._config_issue("New pool should have MFA set to ON", self._new.store_id)
                )

        if now > self._settings.deadline:
            issues.append("Migration deadline has passed")
        if days_until(now, self._settings.deadline) < 7:
            recommendations.append("Consider extending migration deadline")
        recommendations.extend(READINESS_RECOMMENDATIONS)

        return ReadinessReport(ready=not issues, issues=issues, recommendations=recommendations)

    def _config_issue(self, message: str, store_id: str) -> str:
        error = ConfigurationError(message, store_id=store_id)
        logger.warning("Readiness check: %s", error)
        return error.message

    def schedule_user_migration(
        self,
        user_id: str,
        at: datetime,
        now: datetime | None = None,
    ) -> asyncio.Task[MigrationResult]:
        """
        Migrate a user at a later time (immediately if ``at`` is not in the future).

        Scheduling the same user again replaces the pending timer.
        """
        now = as_utc(now) if now else utc_now()
        logger.info("Scheduling migration for user %s at %s", user_id, as_utc(at).isoformat())
        return self._scheduler.schedule_at(
            self.migration_key(user_id),
            at,
            now,
            lambda: self.migrate_user(user_id),
        )

    def cancel_scheduled_migration(self, user_id: str) -> bool:
        return self._scheduler.cancel(self.migration_key(user_id))

    @staticmethod
    def migration_key(user_id: str) -> str:
        return f"migrate:{user_id}"

    async def get_pool_migration_status(self) -> PoolMigrationStatus:
        """
        Count accounts on both sides of the migration.

        Raises:
            DirectoryError: If either store cannot be listed.
        """
        legacy_users, new_users = await asyncio.gather(
            list_all_users(
                self._directory, self._legacy.store_id, error_handler=self._error_handler
            ),
            list_all_users(self._directory, self._new.store_id, error_handler=self._error_handler),
        )
        active = [user for user in legacy_users if user.enabled]
        total = len(active) + len(new_users)
        progress = round(len(new_users) / total * 100) if total else 0
        to_migrate = [
            user.username
            for user in active
            if user.attribute(ATTRIBUTE_MIGRATION_STATUS) != MigrationStatus.MIGRATED.value
        ]
        return PoolMigrationStatus(
            legacy_active_users=len(active),
            new_pool_users=len(new_users),
            progress=progress,
            users_to_migrate=to_migrate,
        )


__all__ = [
    "UserPoolMigrator",
    "generate_temporary_credential",
    "USER_NOT_FOUND_MESSAGE",
    "ALREADY_MIGRATED_WARNING",
    "NON_TRANSFERABLE_ATTRIBUTES",
    "READINESS_RECOMMENDATIONS",
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_INTER_BATCH_DELAY",
]
