"""
MFAMigrationService - one object wiring the whole campaign together.

The service owns the record store, admission engine, notifier, migrator and
reporter for a legacy/new store pair and exposes the operations an
authentication hook or an operator API needs.

Example:
    >>> env = MigrationEnvironment()
    >>> async with MFAMigrationService.from_environment(env, directory, channel) as service:
    ...     decision = await service.decide("alice")
    ...     report = await service.generate_report()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime
from types import TracebackType
from typing import TYPE_CHECKING

from mfa_migration.admission import AdmissionEngine
from mfa_migration.exceptions import CircuitBreaker, ConfigurationError
from mfa_migration.migrator import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_INTER_BATCH_DELAY,
    UserPoolMigrator,
)
from mfa_migration.models import (
    AdmissionDecision,
    BatchMigrationResult,
    BulkNotificationResult,
    MigrationProgress,
    MigrationReport,
    MigrationResult,
    MigrationSettings,
    MigrationStatus,
    NotificationDelivery,
    PoolConfig,
    PoolMigrationStatus,
    ReadinessReport,
    UserMigrationRecord,
)
from mfa_migration.notifications.channel import NotificationChannel
from mfa_migration.notifications.notifier import DEFAULT_EMAIL_FROM, MFANotifier
from mfa_migration.observability import MFAMigrationMetrics, Tracer, create_tracer
from mfa_migration.record_store import UserMigrationRecordStore
from mfa_migration.report import MigrationReporter
from mfa_migration.repositories.record_cache import RecordCache
from mfa_migration.scheduling import DeferredScheduler

if TYPE_CHECKING:
    from mfa_migration.config import MigrationEnvironment
    from mfa_migration.directory.interface import IdentityDirectory

logger = logging.getLogger(__name__)


class MFAMigrationService:
    """
    Facade over every component of an MFA migration campaign.

    Example:
        >>> service = MFAMigrationService(directory, legacy_pool, new_pool, settings, channel)
        >>> await service.enforce("alice")
        >>> result = await service.batch_migrate(["alice", "bob"])
        >>> await service.close()
    """

    def __init__(
        self,
        directory: IdentityDirectory,
        legacy_pool: PoolConfig,
        new_pool: PoolConfig,
        settings: MigrationSettings,
        channel: NotificationChannel | None = None,
        *,
        cache: RecordCache | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        metrics: MFAMigrationMetrics | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        inter_batch_delay: float = DEFAULT_INTER_BATCH_DELAY,
        email_from: str = DEFAULT_EMAIL_FROM,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the service.

        Args:
            directory: Identity directory hosting both stores
            legacy_pool: Source store (MFA optional)
            new_pool: Target store (MFA required)
            settings: Campaign settings
            channel: Notification transport; notification operations fail
                with ConfigurationError without one
            cache: Record cache backend (in-memory if None)
            circuit_breaker: Protects the login path from a failing directory
                (a default breaker if None)
            metrics: Optional metrics recorder
            batch_size: Default chunk size for batch_migrate()
            inter_batch_delay: Seconds between batch chunks
            email_from: Sender address for notification e-mails
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._settings = settings
        self._batch_size = batch_size
        self._metrics = metrics
        self._scheduler = DeferredScheduler()

        self.record_store = UserMigrationRecordStore(
            directory,
            legacy_pool.store_id,
            cache=cache,
            tracer=self._tracer,
        )
        self.admission = AdmissionEngine(
            self.record_store,
            settings,
            circuit_breaker=circuit_breaker or CircuitBreaker(name="admission"),
            metrics=metrics,
            tracer=self._tracer,
        )
        self.migrator = UserPoolMigrator(
            directory,
            legacy_pool,
            new_pool,
            settings,
            record_store=self.record_store,
            scheduler=self._scheduler,
            metrics=metrics,
            inter_batch_delay=inter_batch_delay,
            tracer=self._tracer,
        )
        self.reporter = MigrationReporter(self.record_store, settings, tracer=self._tracer)
        self.notifier: MFANotifier | None = None
        if channel is not None:
            self.notifier = MFANotifier(
                self.record_store,
                channel,
                settings,
                scheduler=self._scheduler,
                metrics=metrics,
                email_from=email_from,
                tracer=self._tracer,
            )

    @classmethod
    def from_environment(
        cls,
        env: MigrationEnvironment,
        directory: IdentityDirectory,
        channel: NotificationChannel | None = None,
        **kwargs: object,
    ) -> MFAMigrationService:
        """
        Build a service from environment configuration.

        Raises:
            ConfigurationError: If either store id is missing.
        """
        return cls(
            directory,
            env.legacy_pool(),
            env.new_pool(),
            env.to_settings(),
            channel,
            batch_size=env.batch_size,
            inter_batch_delay=env.batch_delay_seconds,
            email_from=env.notification_email_from,
            **kwargs,  # type: ignore[arg-type]
        )

    @property
    def settings(self) -> MigrationSettings:
        return self._settings

    @property
    def scheduler(self) -> DeferredScheduler:
        return self._scheduler

    # Authentication hook

    async def decide(self, user_id: str, now: datetime | None = None) -> AdmissionDecision:
        return await self.admission.decide(user_id, now)

    async def enforce(self, user_id: str, now: datetime | None = None) -> AdmissionDecision:
        """
        Decide a login and refuse it when it is not allowed.

        Raises:
            LoginBlockedError: When the login must be refused.
        """
        return await self.admission.enforce(user_id, now)

    def warning_message_for(self, decision: AdmissionDecision) -> str | None:
        return self.admission.warning_message_for(decision)

    # Operator API

    async def get_user_mfa_status(self, user_id: str) -> UserMigrationRecord:
        """A user's migration record; unknown users get a default PENDING record."""
        return await self.record_store.get_record_or_default(user_id)

    async def update_migration_status(
        self,
        user_id: str,
        status: MigrationStatus,
        now: datetime | None = None,
    ) -> None:
        await self.record_store.update_migration_status(user_id, status, now)

    async def migrate_user(
        self,
        user_id: str,
        temporary_credential: str | None = None,
        now: datetime | None = None,
    ) -> MigrationResult:
        return await self.migrator.migrate_user(user_id, temporary_credential, now)

    async def batch_migrate(
        self,
        user_ids: Iterable[str],
        batch_size: int | None = None,
    ) -> BatchMigrationResult:
        return await self.migrator.batch_migrate(user_ids, batch_size or self._batch_size)

    async def validate_readiness(self, now: datetime | None = None) -> ReadinessReport:
        return await self.migrator.validate_readiness(now)

    async def get_pool_migration_status(self) -> PoolMigrationStatus:
        return await self.migrator.get_pool_migration_status()

    async def get_migration_progress(self, now: datetime | None = None) -> MigrationProgress:
        return await self.reporter.get_migration_progress(now)

    async def generate_report(self, now: datetime | None = None) -> MigrationReport:
        return await self.reporter.generate_report(now)

    async def notify_due_users(self, now: datetime | None = None) -> BulkNotificationResult:
        """
        Send reminders to every user due one.

        Raises:
            ConfigurationError: If the service has no notification channel.
        """
        return await self._require_notifier().notify_due_users(now)

    def schedule_user_migration(
        self,
        user_id: str,
        at: datetime,
        now: datetime | None = None,
    ) -> asyncio.Task[MigrationResult]:
        return self.migrator.schedule_user_migration(user_id, at, now)

    def schedule_notification(
        self,
        user_id: str,
        at: datetime,
        now: datetime | None = None,
    ) -> asyncio.Task[NotificationDelivery | None]:
        return self._require_notifier().schedule_notification(user_id, at, now)

    def _require_notifier(self) -> MFANotifier:
        if self.notifier is None:
            raise ConfigurationError("No notification channel configured")
        return self.notifier

    async def close(self) -> None:
        """Cancel pending scheduled migrations and notifications."""
        cancelled = self._scheduler.cancel_all()
        if cancelled:
            logger.info("Cancelled %d scheduled task(s) on shutdown", cancelled)

    async def __aenter__(self) -> MFAMigrationService:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


__all__ = ["MFAMigrationService"]
