"""
Unit tests for MFAMigrationService.

Tests cover:
- Wiring of the components around one record store
- Login decisions and enforcement through the facade
- Operator operations (status, migration, reports, notifications)
- Construction from environment configuration
- Shutdown of scheduled work
"""

import asyncio
from datetime import timedelta

import pytest

from mfa_migration.config import MigrationEnvironment
from mfa_migration.directory import InMemoryIdentityDirectory
from mfa_migration.exceptions import ConfigurationError, LoginBlockedError
from mfa_migration.models import (
    MigrationOutcome,
    MigrationSettings,
    MigrationStatus,
    PoolConfig,
)
from mfa_migration.notifications import InMemoryNotificationChannel
from mfa_migration.service import MFAMigrationService
from tests.fixtures import DEADLINE, LEGACY, NEW

NOW = DEADLINE - timedelta(days=30)


@pytest.fixture
def service(
    seeded_directory: InMemoryIdentityDirectory,
    legacy_pool: PoolConfig,
    new_pool: PoolConfig,
    settings: MigrationSettings,
    channel: InMemoryNotificationChannel,
) -> MFAMigrationService:
    return MFAMigrationService(
        seeded_directory,
        legacy_pool,
        new_pool,
        settings,
        channel,
        inter_batch_delay=0,
        enable_tracing=False,
    )


class TestWiring:
    """Tests for how the service assembles its components."""

    def test_components_share_the_record_store(self, service: MFAMigrationService) -> None:
        assert service.admission.record_store is service.record_store
        assert service.record_store.store_id == LEGACY
        assert service.migrator.legacy_pool.store_id == LEGACY
        assert service.migrator.new_pool.store_id == NEW
        assert service.notifier is not None

    def test_shares_one_scheduler(self, service: MFAMigrationService) -> None:
        assert service.migrator.scheduler is service.scheduler

    def test_without_channel(
        self,
        seeded_directory: InMemoryIdentityDirectory,
        legacy_pool: PoolConfig,
        new_pool: PoolConfig,
        settings: MigrationSettings,
    ) -> None:
        service = MFAMigrationService(
            seeded_directory, legacy_pool, new_pool, settings, enable_tracing=False
        )
        assert service.notifier is None


class TestLoginHook:
    """Tests for decide(), enforce() and warning_message_for()."""

    @pytest.mark.asyncio
    async def test_decide_before_deadline(self, service: MFAMigrationService) -> None:
        decision = await service.decide("alice", NOW)
        assert decision.allow_login is True
        assert decision.show_warning is True
        assert decision.days_remaining == 30
        assert service.warning_message_for(decision) is not None

    @pytest.mark.asyncio
    async def test_enforce_blocks_after_grace(self, service: MFAMigrationService) -> None:
        with pytest.raises(LoginBlockedError):
            await service.enforce("alice", DEADLINE + timedelta(days=8))

    @pytest.mark.asyncio
    async def test_enforce_allows_mfa_users(self, service: MFAMigrationService) -> None:
        decision = await service.enforce("bob", DEADLINE + timedelta(days=30))
        assert decision.allow_login is True
        assert decision.show_warning is False


class TestOperatorApi:
    """Tests for the operator-facing operations."""

    @pytest.mark.asyncio
    async def test_status_of_unknown_user(self, service: MFAMigrationService) -> None:
        record = await service.get_user_mfa_status("ghost")
        assert record.user_id == "ghost"
        assert record.migration_status == MigrationStatus.PENDING

    @pytest.mark.asyncio
    async def test_update_migration_status(
        self,
        service: MFAMigrationService,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        await service.update_migration_status("alice", MigrationStatus.COMPLETED, NOW)

        record = await service.get_user_mfa_status("alice")
        assert record.migration_status == MigrationStatus.COMPLETED
        assert seeded_directory.peek(LEGACY, "alice").attribute("custom:migration_status") == (
            "completed"
        )

    @pytest.mark.asyncio
    async def test_migrate_user(
        self,
        service: MFAMigrationService,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        result = await service.migrate_user("alice", now=NOW)
        assert result.outcome == MigrationOutcome.OK
        assert seeded_directory.has_user(NEW, "alice") is True

        record = await service.get_user_mfa_status("alice")
        assert record.migration_status == MigrationStatus.MIGRATED

    @pytest.mark.asyncio
    async def test_batch_migrate_uses_default_batch_size(
        self,
        seeded_directory: InMemoryIdentityDirectory,
        legacy_pool: PoolConfig,
        new_pool: PoolConfig,
        settings: MigrationSettings,
    ) -> None:
        service = MFAMigrationService(
            seeded_directory,
            legacy_pool,
            new_pool,
            settings,
            batch_size=1,
            inter_batch_delay=0,
            enable_tracing=False,
        )

        result = await service.batch_migrate(["alice", "bob", "carol"])

        assert result.successful == ["alice", "bob", "carol"]
        status = await service.get_pool_migration_status()
        assert status.progress == 100
        assert status.users_to_migrate == []

    @pytest.mark.asyncio
    async def test_readiness(self, service: MFAMigrationService) -> None:
        report = await service.validate_readiness(NOW)
        assert report.ready is True

    @pytest.mark.asyncio
    async def test_progress_and_report(self, service: MFAMigrationService) -> None:
        progress = await service.get_migration_progress(NOW)
        report = await service.generate_report(NOW)
        assert progress.total == 3
        assert report.summary == progress


class TestNotifications:
    """Tests for notification operations on the service."""

    @pytest.mark.asyncio
    async def test_notify_due_users(
        self,
        service: MFAMigrationService,
        channel: InMemoryNotificationChannel,
    ) -> None:
        result = await service.notify_due_users(NOW)

        assert result.sent == 2
        assert result.failed == 0
        assert len(channel.emails_to("alice@example.com")) == 1
        assert len(channel.emails_to("carol@example.com")) == 1
        assert channel.emails_to("bob@example.com") == []

        record = await service.get_user_mfa_status("alice")
        assert record.last_notified == NOW

    @pytest.mark.asyncio
    async def test_notify_without_channel(
        self,
        seeded_directory: InMemoryIdentityDirectory,
        legacy_pool: PoolConfig,
        new_pool: PoolConfig,
        settings: MigrationSettings,
    ) -> None:
        service = MFAMigrationService(
            seeded_directory, legacy_pool, new_pool, settings, enable_tracing=False
        )

        with pytest.raises(ConfigurationError, match="No notification channel"):
            await service.notify_due_users(NOW)
        with pytest.raises(ConfigurationError):
            service.schedule_notification("alice", NOW, NOW)

    @pytest.mark.asyncio
    async def test_scheduled_notification(
        self,
        service: MFAMigrationService,
        channel: InMemoryNotificationChannel,
    ) -> None:
        delivery = await service.schedule_notification("alice", NOW, NOW)
        assert delivery is not None
        assert delivery.success is True
        assert len(channel.emails_to("alice@example.com")) == 1


class TestLifecycle:
    """Tests for close() and the async context manager."""

    @pytest.mark.asyncio
    async def test_close_cancels_scheduled_work(self, service: MFAMigrationService) -> None:
        migration = service.schedule_user_migration("alice", NOW + timedelta(hours=1), NOW)
        notification = service.schedule_notification("carol", NOW + timedelta(hours=1), NOW)

        await service.close()
        await asyncio.gather(migration, notification, return_exceptions=True)

        assert service.scheduler.pending_count == 0
        assert migration.cancelled()
        assert notification.cancelled()

    @pytest.mark.asyncio
    async def test_context_manager(
        self,
        service: MFAMigrationService,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        async with service as entered:
            assert entered is service
            entered.schedule_user_migration("alice", NOW + timedelta(hours=1), NOW)

        assert service.scheduler.pending_count == 0
        assert seeded_directory.has_user(NEW, "alice") is False


class TestFromEnvironment:
    """Tests for MFAMigrationService.from_environment()."""

    @pytest.fixture(autouse=True)
    def environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LEGACY_USER_POOL_ID", LEGACY)
        monkeypatch.setenv("NEW_USER_POOL_ID", NEW)
        monkeypatch.setenv("MFA_MIGRATION_DEADLINE", "2025-09-01")
        monkeypatch.setenv("MFA_GRACE_PERIOD_DAYS", "3")
        monkeypatch.setenv("MFA_MIGRATION_BATCH_DELAY_SECONDS", "0")
        monkeypatch.delenv("MFA_WARNING_DAYS", raising=False)

    @pytest.mark.asyncio
    async def test_builds_service(
        self,
        seeded_directory: InMemoryIdentityDirectory,
        channel: InMemoryNotificationChannel,
    ) -> None:
        env = MigrationEnvironment(_env_file=None)  # type: ignore[call-arg]

        service = MFAMigrationService.from_environment(
            env, seeded_directory, channel, enable_tracing=False
        )

        assert service.settings.deadline == DEADLINE
        assert service.settings.grace_period_days == 3
        assert service.record_store.store_id == LEGACY
        decision = await service.decide("alice", DEADLINE + timedelta(days=4))
        assert decision.allow_login is False

    def test_missing_store_id(
        self,
        monkeypatch: pytest.MonkeyPatch,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        monkeypatch.delenv("NEW_USER_POOL_ID")
        env = MigrationEnvironment(_env_file=None)  # type: ignore[call-arg]

        with pytest.raises(ConfigurationError, match="NEW_USER_POOL_ID"):
            MFAMigrationService.from_environment(env, seeded_directory)
