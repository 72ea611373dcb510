"""
Unit tests for UserPoolMigrator.

Tests cover:
- Successful migration (target populated, source disabled and marked)
- Unknown users and unreadable stores
- Compensating rollback after fatal failures, including lost create responses
- Partial transfers reported as warnings
- Reconciliation and repair of interrupted migrations
- Batch migration with per-user outcomes
- Readiness validation, pool status and scheduling
- Temporary credential generation
"""

import string
from datetime import timedelta

import pytest
from opentelemetry.sdk.metrics.export import InMemoryMetricReader

from mfa_migration.directory import InMemoryIdentityDirectory
from mfa_migration.exceptions import DirectoryError, TransientDirectoryError
from mfa_migration.migrator import (
    ALREADY_MIGRATED_WARNING,
    READINESS_RECOMMENDATIONS,
    USER_NOT_FOUND_MESSAGE,
    UserPoolMigrator,
    generate_temporary_credential,
)
from mfa_migration.models import (
    DirectoryUser,
    FailedMigration,
    MFAConfiguration,
    MigrationOutcome,
    MigrationSettings,
    MigrationStatus,
    PoolConfig,
)
from mfa_migration.observability import MFAMigrationMetrics, MockTracer
from mfa_migration.record_store import UserMigrationRecordStore
from tests.fixtures import DEADLINE, LEGACY, NEW, collect_sums, contact

NOW = DEADLINE - timedelta(days=30)
CREDENTIAL = "Perm4nent-Credential!"


@pytest.fixture
def migrator(
    seeded_directory: InMemoryIdentityDirectory,
    legacy_pool: PoolConfig,
    new_pool: PoolConfig,
    settings: MigrationSettings,
    record_store: UserMigrationRecordStore,
) -> UserPoolMigrator:
    return UserPoolMigrator(
        seeded_directory,
        legacy_pool,
        new_pool,
        settings,
        record_store=record_store,
        inter_batch_delay=0,
        enable_tracing=False,
    )


class LostResponseDirectory(InMemoryIdentityDirectory):
    """Creates the account but reports a transient failure to the caller."""

    async def create_user(
        self,
        store_id: str,
        user_id: str,
        attributes: dict[str, str],
        temporary_credential: str | None = None,
    ) -> DirectoryUser:
        await super().create_user(store_id, user_id, attributes, temporary_credential)
        raise TransientDirectoryError("connection reset")


class TestMigrateUser:
    """Tests for a successful migrate_user()."""

    @pytest.mark.asyncio
    async def test_success(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        result = await migrator.migrate_user("alice", CREDENTIAL, NOW)

        assert result.outcome == MigrationOutcome.OK
        assert result.new_user_id == "alice"
        assert result.warnings == ()

        target = seeded_directory.peek(NEW, "alice")
        assert target.attribute("email") == "alice@example.com"
        assert target.attribute("phone_number") == "+15550100"
        assert target.attribute("custom:migrated_from") == LEGACY
        assert target.attribute("custom:migration_date") == NOW.isoformat()
        assert seeded_directory.credential_of(NEW, "alice") == (CREDENTIAL, True)

        source = seeded_directory.peek(LEGACY, "alice")
        assert source.enabled is False
        assert source.attribute("custom:migration_status") == "migrated"
        assert source.attribute("custom:migration_date") == NOW.isoformat()

    @pytest.mark.asyncio
    async def test_updates_cached_record(
        self,
        migrator: UserPoolMigrator,
        record_store: UserMigrationRecordStore,
    ) -> None:
        await record_store.get_record("alice")
        await migrator.migrate_user("alice", CREDENTIAL, NOW)

        record = await record_store.get_record("alice")
        assert record.migration_status == MigrationStatus.MIGRATED

    @pytest.mark.asyncio
    async def test_generates_credential(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        await migrator.migrate_user("alice", now=NOW)
        credential, permanent = seeded_directory.credential_of(NEW, "alice")
        assert credential is not None
        assert len(credential) == 16
        assert permanent is True

    @pytest.mark.asyncio
    async def test_copies_custom_attributes(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        seeded_directory.add_user(
            LEGACY,
            "dave",
            {
                **contact("dave"),
                "custom:department": "engineering",
                "custom:migration_status": "in_progress",
                "custom:last_notified": NOW.isoformat(),
                "custom:empty": "",
            },
        )

        await migrator.migrate_user("dave", CREDENTIAL, NOW)

        target = seeded_directory.peek(NEW, "dave")
        assert target.attribute("custom:department") == "engineering"
        assert target.attribute("custom:migration_status") is None
        assert target.attribute("custom:last_notified") is None
        assert "custom:empty" not in target.attributes

    @pytest.mark.asyncio
    async def test_copies_groups(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        result = await migrator.migrate_user("carol", CREDENTIAL, NOW)
        assert result.outcome == MigrationOutcome.OK
        assert seeded_directory.groups_of(NEW, "carol") == ["admins"]

    @pytest.mark.asyncio
    async def test_user_without_phone(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        seeded_directory.add_user(LEGACY, "erin", {"email": "erin@example.com"})
        result = await migrator.migrate_user("erin", CREDENTIAL, NOW)
        assert result.success is True
        assert "phone_number" not in seeded_directory.peek(NEW, "erin").attributes


class TestMigrateUserFailures:
    """Tests for failed migrations and their rollback."""

    @pytest.mark.asyncio
    async def test_unknown_user(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        result = await migrator.migrate_user("ghost", CREDENTIAL, NOW)
        assert result.outcome == MigrationOutcome.ERR
        assert result.error == USER_NOT_FOUND_MESSAGE
        assert seeded_directory.has_user(NEW, "ghost") is False

    @pytest.mark.asyncio
    async def test_source_unreadable(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        seeded_directory.fail_on("get_user", store_id=LEGACY, error=TransientDirectoryError("slow"))
        result = await migrator.migrate_user("alice", CREDENTIAL, NOW)
        assert result.error == "Failed to read source account: slow"

    @pytest.mark.asyncio
    async def test_target_unreadable(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        seeded_directory.fail_on("get_user", store_id=NEW)
        result = await migrator.migrate_user("alice", CREDENTIAL, NOW)
        assert result.success is False
        assert result.error is not None
        assert result.error.startswith("Failed to check target store")
        assert seeded_directory.peek(LEGACY, "alice").enabled is True

    @pytest.mark.asyncio
    async def test_create_failure_leaves_nothing_behind(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        seeded_directory.fail_on("create_user")

        result = await migrator.migrate_user("alice", CREDENTIAL, NOW)

        assert result.outcome == MigrationOutcome.ERR
        assert result.error == "create_user failed: Injected failure in create_user"
        assert result.rolled_back is False
        assert seeded_directory.has_user(NEW, "alice") is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("operation", "store_id"),
        [
            ("set_permanent_credential", NEW),
            ("list_groups_for_user", LEGACY),
            ("disable_user", LEGACY),
        ],
    )
    async def test_fatal_failure_after_creation_rolls_back(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
        operation: str,
        store_id: str,
    ) -> None:
        seeded_directory.fail_on(operation, store_id=store_id)

        result = await migrator.migrate_user("alice", CREDENTIAL, NOW)

        assert result.outcome == MigrationOutcome.ERR
        assert result.rolled_back is True
        assert seeded_directory.has_user(NEW, "alice") is False
        source = seeded_directory.peek(LEGACY, "alice")
        assert source.enabled is True
        assert source.attribute("custom:migration_status") is None

    @pytest.mark.asyncio
    async def test_attribute_transfer_failure_rolls_back(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        seeded_directory.add_user(LEGACY, "dave", {**contact("dave"), "custom:team": "ops"})
        seeded_directory.fail_on("update_attributes", store_id=NEW)

        result = await migrator.migrate_user("dave", CREDENTIAL, NOW)

        assert result.error is not None
        assert result.error.startswith("transfer_attributes failed")
        assert result.rolled_back is True
        assert seeded_directory.has_user(NEW, "dave") is False

    @pytest.mark.asyncio
    async def test_failed_rollback_is_reported(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        seeded_directory.fail_on("disable_user")
        seeded_directory.fail_on("delete_user")

        result = await migrator.migrate_user("alice", CREDENTIAL, NOW)

        assert result.success is False
        assert result.rolled_back is False
        assert seeded_directory.has_user(NEW, "alice") is True

    @pytest.mark.asyncio
    async def test_lost_create_response_rolls_back(
        self,
        legacy_pool: PoolConfig,
        new_pool: PoolConfig,
        settings: MigrationSettings,
    ) -> None:
        directory = LostResponseDirectory()
        directory.add_store(LEGACY, MFAConfiguration.OPTIONAL)
        directory.add_store(NEW, MFAConfiguration.ON)
        directory.add_user(LEGACY, "alice", contact("alice"))
        migrator = UserPoolMigrator(
            directory, legacy_pool, new_pool, settings, inter_batch_delay=0, enable_tracing=False
        )

        result = await migrator.migrate_user("alice", CREDENTIAL, NOW)

        assert result.outcome == MigrationOutcome.ERR
        assert result.error == "create_user failed: connection reset"
        assert result.rolled_back is True
        assert directory.has_user(NEW, "alice") is False
        assert directory.peek(LEGACY, "alice").enabled is True

    @pytest.mark.asyncio
    async def test_transient_create_failure_without_account(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        seeded_directory.fail_on("create_user", error=TransientDirectoryError("throttled"))

        result = await migrator.migrate_user("alice", CREDENTIAL, NOW)

        assert result.success is False
        assert result.rolled_back is False
        assert not any(call[0] == "delete_user" for call in seeded_directory.calls)


class TestPartialTransfer:
    """Tests for warnings that do not fail the migration."""

    @pytest.mark.asyncio
    async def test_group_failure_is_warning(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        seeded_directory.fail_on("add_user_to_group", group_name="admins")

        result = await migrator.migrate_user("carol", CREDENTIAL, NOW)

        assert result.outcome == MigrationOutcome.OK_WITH_WARNINGS
        assert result.warnings == (
            "Could not add user to group admins: Injected failure in add_user_to_group",
        )
        assert seeded_directory.has_user(NEW, "carol") is True
        assert seeded_directory.peek(LEGACY, "carol").enabled is False

    @pytest.mark.asyncio
    async def test_other_groups_still_copied(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        seeded_directory.add_user(LEGACY, "dave", contact("dave"), groups=["admins", "ops"])
        seeded_directory.fail_on("add_user_to_group", group_name="admins")

        result = await migrator.migrate_user("dave", CREDENTIAL, NOW)

        assert len(result.warnings) == 1
        assert seeded_directory.groups_of(NEW, "dave") == ["ops"]

    @pytest.mark.asyncio
    async def test_status_write_failure_is_warning(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
        record_store: UserMigrationRecordStore,
    ) -> None:
        await record_store.get_record("alice")
        seeded_directory.fail_on("update_attributes", store_id=LEGACY)

        result = await migrator.migrate_user("alice", CREDENTIAL, NOW)

        assert result.outcome == MigrationOutcome.OK_WITH_WARNINGS
        assert result.warnings[0].startswith("Could not mark source account as migrated")
        assert seeded_directory.peek(LEGACY, "alice").enabled is False
        assert await record_store.cache.get("alice") is None


class TestReconciliation:
    """Tests for accounts already present in the target store."""

    @pytest.mark.asyncio
    async def test_finishes_interrupted_migration(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        seeded_directory.add_user(
            NEW, "alice", {**contact("alice"), "custom:migrated_from": LEGACY}
        )

        result = await migrator.migrate_user("alice", CREDENTIAL, NOW)

        assert result.outcome == MigrationOutcome.OK_WITH_WARNINGS
        assert result.warnings == (ALREADY_MIGRATED_WARNING,)
        source = seeded_directory.peek(LEGACY, "alice")
        assert source.enabled is False
        assert source.attribute("custom:migration_status") == "migrated"
        assert not any(call[0] == "create_user" for call in seeded_directory.calls)

    @pytest.mark.asyncio
    async def test_second_run_is_idempotent(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        await migrator.migrate_user("alice", CREDENTIAL, NOW)
        seeded_directory.calls.clear()

        result = await migrator.migrate_user("alice", CREDENTIAL, NOW)

        assert result.success is True
        assert result.warnings == (ALREADY_MIGRATED_WARNING,)
        writes = {"create_user", "disable_user", "update_attributes", "delete_user"}
        assert not any(call[0] in writes for call in seeded_directory.calls)

    @pytest.mark.asyncio
    async def test_untagged_target_is_left_alone(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        seeded_directory.add_user(NEW, "alice", contact("alice"))

        result = await migrator.migrate_user("alice", CREDENTIAL, NOW)

        assert result.success is False
        assert result.error is not None
        assert "not created by this migration" in result.error
        assert seeded_directory.has_user(NEW, "alice") is True
        assert seeded_directory.peek(LEGACY, "alice").enabled is True

    @pytest.mark.asyncio
    async def test_failed_commit_keeps_target(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        seeded_directory.add_user(NEW, "alice", {"custom:migrated_from": LEGACY})
        seeded_directory.fail_on("disable_user")

        result = await migrator.migrate_user("alice", CREDENTIAL, NOW)

        assert result.success is False
        assert result.rolled_back is False
        assert seeded_directory.has_user(NEW, "alice") is True

    @pytest.mark.asyncio
    async def test_retry_repairs_target_left_by_failed_rollback(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        seeded_directory.fail_on("set_permanent_credential", times=1)
        seeded_directory.fail_on("delete_user", times=1)

        first = await migrator.migrate_user("carol", CREDENTIAL, NOW)
        assert first.success is False
        assert first.rolled_back is False
        assert seeded_directory.groups_of(NEW, "carol") == []

        second = await migrator.migrate_user("carol", CREDENTIAL, NOW)

        assert second.outcome == MigrationOutcome.OK_WITH_WARNINGS
        assert second.warnings == (ALREADY_MIGRATED_WARNING,)
        assert seeded_directory.groups_of(NEW, "carol") == ["admins"]
        assert seeded_directory.credential_of(NEW, "carol") == (CREDENTIAL, True)
        source = seeded_directory.peek(LEGACY, "carol")
        assert source.enabled is False
        assert source.attribute("custom:migration_status") == "migrated"

    @pytest.mark.asyncio
    async def test_unrepairable_target_keeps_source_enabled(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        seeded_directory.add_user(NEW, "carol", {"custom:migrated_from": LEGACY})
        seeded_directory.fail_on("set_permanent_credential")

        result = await migrator.migrate_user("carol", CREDENTIAL, NOW)

        assert result.success is False
        assert result.error is not None
        assert result.error.startswith("set_permanent_credential failed")
        assert result.rolled_back is False
        assert seeded_directory.has_user(NEW, "carol") is True
        assert seeded_directory.peek(LEGACY, "carol").enabled is True

    @pytest.mark.asyncio
    async def test_disabled_source_only_finishes_commit(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        seeded_directory.fail_on("update_attributes", store_id=LEGACY, times=1)
        first = await migrator.migrate_user("alice", CREDENTIAL, NOW)
        assert first.outcome == MigrationOutcome.OK_WITH_WARNINGS
        seeded_directory.calls.clear()

        second = await migrator.migrate_user("alice", "An0ther-Credential!", NOW)

        assert second.warnings == (ALREADY_MIGRATED_WARNING,)
        assert seeded_directory.peek(LEGACY, "alice").attribute("custom:migration_status") == (
            "migrated"
        )
        assert seeded_directory.credential_of(NEW, "alice") == (CREDENTIAL, True)
        assert not any(call[0] == "set_permanent_credential" for call in seeded_directory.calls)


class TestBatchMigrate:
    """Tests for batch_migrate()."""

    @pytest.mark.asyncio
    async def test_one_failure_does_not_affect_others(
        self,
        directory: InMemoryIdentityDirectory,
        migrator: UserPoolMigrator,
    ) -> None:
        for user_id in ("a", "b", "c", "d"):
            directory.add_user(LEGACY, user_id, contact(user_id))
        directory.fail_on("create_user", user_id="b")

        result = await migrator.batch_migrate(["a", "b", "c", "d"], batch_size=2)

        assert set(result.successful) == {"a", "c", "d"}
        assert len(result.failed) == 1
        assert result.failed[0].user_id == "b"
        assert result.failed[0].error.startswith("create_user failed")
        assert directory.has_user(NEW, "b") is False

    @pytest.mark.asyncio
    async def test_unknown_users_fail(self, migrator: UserPoolMigrator) -> None:
        result = await migrator.batch_migrate(["alice", "ghost"])
        assert result.successful == ["alice"]
        assert result.failed == [FailedMigration("ghost", USER_NOT_FOUND_MESSAGE)]

    @pytest.mark.asyncio
    async def test_duplicates_migrated_once(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        result = await migrator.batch_migrate(["alice", "alice", "carol"], batch_size=1)
        assert result.successful == ["alice", "carol"]
        creates = [c for c in seeded_directory.calls if c[0] == "create_user"]
        assert len(creates) == 2

    @pytest.mark.asyncio
    async def test_collects_warnings(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        seeded_directory.fail_on("add_user_to_group", group_name="admins")
        result = await migrator.batch_migrate(["alice", "carol"])
        assert list(result.warnings) == ["carol"]

    @pytest.mark.asyncio
    async def test_credential_factory(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        await migrator.batch_migrate(["alice"], credential_factory=lambda: CREDENTIAL)
        assert seeded_directory.credential_of(NEW, "alice") == (CREDENTIAL, True)

    @pytest.mark.asyncio
    async def test_empty_batch(self, migrator: UserPoolMigrator) -> None:
        result = await migrator.batch_migrate([])
        assert result.total == 0

    @pytest.mark.asyncio
    async def test_invalid_batch_size(self, migrator: UserPoolMigrator) -> None:
        with pytest.raises(ValueError, match="batch_size"):
            await migrator.batch_migrate(["alice"], batch_size=0)

    @pytest.mark.asyncio
    async def test_traces_batch(
        self,
        seeded_directory: InMemoryIdentityDirectory,
        legacy_pool: PoolConfig,
        new_pool: PoolConfig,
        settings: MigrationSettings,
    ) -> None:
        tracer = MockTracer()
        migrator = UserPoolMigrator(
            seeded_directory, legacy_pool, new_pool, settings, inter_batch_delay=0, tracer=tracer
        )

        await migrator.batch_migrate(["alice", "carol"], batch_size=1)

        assert tracer.spans[0] == (
            "mfa_migration.migrator.batch_migrate",
            {"mfa_migration.user.count": 2, "mfa_migration.batch.size": 1},
        )
        assert tracer.span_names.count("mfa_migration.migrator.migrate_user") == 2


class TestMigrationMetrics:
    """Tests for migration metrics."""

    @pytest.mark.asyncio
    async def test_outcomes_and_rollbacks(
        self,
        seeded_directory: InMemoryIdentityDirectory,
        legacy_pool: PoolConfig,
        new_pool: PoolConfig,
        settings: MigrationSettings,
        metrics: MFAMigrationMetrics,
        metric_reader: InMemoryMetricReader,
    ) -> None:
        migrator = UserPoolMigrator(
            seeded_directory,
            legacy_pool,
            new_pool,
            settings,
            metrics=metrics,
            enable_tracing=False,
        )
        seeded_directory.fail_on("disable_user", user_id="carol")

        await migrator.migrate_user("alice", CREDENTIAL, NOW)
        await migrator.migrate_user("carol", CREDENTIAL, NOW)

        migrations = collect_sums(metric_reader, "mfa_migration.migrations")
        assert migrations == {
            (("campaign", "test"), ("outcome", "ok")): 1,
            (("campaign", "test"), ("outcome", "err")): 1,
        }
        rollbacks = collect_sums(metric_reader, "mfa_migration.rollbacks")
        assert rollbacks == {(("campaign", "test"),): 1}
        durations = collect_sums(metric_reader, "mfa_migration.migration.duration")
        assert sum(durations.values()) == 2


class TestValidateReadiness:
    """Tests for validate_readiness()."""

    @pytest.mark.asyncio
    async def test_ready(self, migrator: UserPoolMigrator) -> None:
        report = await migrator.validate_readiness(NOW)
        assert report.ready is True
        assert report.issues == []
        assert report.recommendations == list(READINESS_RECOMMENDATIONS)

    @pytest.mark.asyncio
    async def test_wrong_store_configuration(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        seeded_directory.set_mfa_configuration(LEGACY, MFAConfiguration.ON)
        seeded_directory.set_mfa_configuration(NEW, MFAConfiguration.OPTIONAL)

        report = await migrator.validate_readiness(NOW)

        assert report.ready is False
        assert report.issues == [
            "Legacy pool should have MFA set to OPTIONAL for migration",
            "New pool should have MFA set to ON",
        ]

    @pytest.mark.asyncio
    async def test_deadline_close(self, migrator: UserPoolMigrator) -> None:
        report = await migrator.validate_readiness(DEADLINE - timedelta(days=3))
        assert report.ready is True
        assert report.recommendations[0] == "Consider extending migration deadline"

    @pytest.mark.asyncio
    async def test_deadline_passed(self, migrator: UserPoolMigrator) -> None:
        report = await migrator.validate_readiness(DEADLINE + timedelta(days=1))
        assert report.ready is False
        assert "Migration deadline has passed" in report.issues
        assert "Consider extending migration deadline" in report.recommendations

    @pytest.mark.asyncio
    async def test_directory_failure_is_an_issue(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        seeded_directory.fail_on("describe_store", error=DirectoryError("access denied"))

        report = await migrator.validate_readiness(NOW)

        assert report.ready is False
        assert report.issues == ["Error validating pools: access denied"]
        assert report.recommendations == list(READINESS_RECOMMENDATIONS)


class TestPoolMigrationStatus:
    """Tests for get_pool_migration_status()."""

    @pytest.mark.asyncio
    async def test_before_migration(self, migrator: UserPoolMigrator) -> None:
        status = await migrator.get_pool_migration_status()
        assert status.legacy_active_users == 3
        assert status.new_pool_users == 0
        assert status.progress == 0
        assert status.users_to_migrate == ["alice", "bob", "carol"]

    @pytest.mark.asyncio
    async def test_after_one_migration(self, migrator: UserPoolMigrator) -> None:
        await migrator.migrate_user("alice", CREDENTIAL, NOW)

        status = await migrator.get_pool_migration_status()

        assert status.legacy_active_users == 2
        assert status.new_pool_users == 1
        assert status.progress == 33
        assert status.users_to_migrate == ["bob", "carol"]

    @pytest.mark.asyncio
    async def test_empty_stores(
        self,
        directory: InMemoryIdentityDirectory,
        legacy_pool: PoolConfig,
        new_pool: PoolConfig,
        settings: MigrationSettings,
    ) -> None:
        migrator = UserPoolMigrator(
            directory, legacy_pool, new_pool, settings, enable_tracing=False
        )
        status = await migrator.get_pool_migration_status()
        assert status.progress == 0
        assert status.users_to_migrate == []

    @pytest.mark.asyncio
    async def test_listing_failure_propagates(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        seeded_directory.fail_on("list_users", store_id=NEW)
        with pytest.raises(DirectoryError):
            await migrator.get_pool_migration_status()


class TestScheduledMigration:
    """Tests for schedule_user_migration()."""

    @pytest.mark.asyncio
    async def test_runs_when_due(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        task = migrator.schedule_user_migration("alice", NOW, NOW)
        result = await task
        assert result.success is True
        assert seeded_directory.has_user(NEW, "alice") is True

    @pytest.mark.asyncio
    async def test_cancel(
        self,
        migrator: UserPoolMigrator,
        seeded_directory: InMemoryIdentityDirectory,
    ) -> None:
        migrator.schedule_user_migration("alice", NOW + timedelta(hours=1), NOW)
        assert migrator.scheduler.is_scheduled(UserPoolMigrator.migration_key("alice"))

        assert migrator.cancel_scheduled_migration("alice") is True
        assert seeded_directory.has_user(NEW, "alice") is False


class TestGenerateTemporaryCredential:
    """Tests for generate_temporary_credential()."""

    def test_default_length(self) -> None:
        assert len(generate_temporary_credential()) == 16

    @pytest.mark.parametrize("length", [12, 20, 64])
    def test_character_classes(self, length: int) -> None:
        credential = generate_temporary_credential(length)
        assert len(credential) == length
        assert any(c in string.ascii_uppercase for c in credential)
        assert any(c in string.ascii_lowercase for c in credential)
        assert any(c in string.digits for c in credential)
        assert any(c in "!@#$%^&*" for c in credential)

    def test_too_short(self) -> None:
        with pytest.raises(ValueError, match="length"):
            generate_temporary_credential(8)

    def test_random(self) -> None:
        assert len({generate_temporary_credential() for _ in range(20)}) == 20
