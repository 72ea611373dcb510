"""
Shared pytest fixtures for the mfa_migration tests.

This module provides:
- Campaign fixtures (deadline, settings, legacy_pool, new_pool)
- Directory fixtures (directory, seeded_directory)
- Component fixtures (record_store, channel, mock_tracer)
- OpenTelemetry metrics fixtures (metric_reader, metrics)
- SQLite fixtures (sqlite_connection)
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime

import aiosqlite
import pytest
import pytest_asyncio
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader

from mfa_migration.directory import InMemoryIdentityDirectory
from mfa_migration.models import (
    MFAConfiguration,
    MigrationSettings,
    PoolConfig,
)
from mfa_migration.notifications import InMemoryNotificationChannel
from mfa_migration.observability import MFAMigrationMetrics, MockTracer
from mfa_migration.record_store import UserMigrationRecordStore
from tests.fixtures import DEADLINE, LEGACY, NEW, contact

# ============================================================================
# Campaign Fixtures
# ============================================================================


@pytest.fixture
def deadline() -> datetime:
    return DEADLINE


@pytest.fixture
def settings() -> MigrationSettings:
    """Campaign with the default checkpoints and a 7 day grace period."""
    return MigrationSettings(
        deadline=DEADLINE,
        warning_days=(30, 14, 7, 3, 1),
        grace_period_days=7,
        directory_timeout_seconds=0.5,
    )


@pytest.fixture
def legacy_pool() -> PoolConfig:
    return PoolConfig(store_id=LEGACY, client_id="legacy-client")


@pytest.fixture
def new_pool() -> PoolConfig:
    return PoolConfig(
        store_id=NEW,
        client_id="new-client",
        mfa_configuration=MFAConfiguration.ON,
    )


# ============================================================================
# Directory Fixtures
# ============================================================================


@pytest.fixture
def directory() -> InMemoryIdentityDirectory:
    """Directory with an empty legacy (OPTIONAL) and new (ON) store."""
    directory = InMemoryIdentityDirectory()
    directory.add_store(LEGACY, MFAConfiguration.OPTIONAL)
    directory.add_store(NEW, MFAConfiguration.ON)
    return directory


@pytest.fixture
def seeded_directory(directory: InMemoryIdentityDirectory) -> InMemoryIdentityDirectory:
    """
    Directory with three legacy users.

    - alice: no MFA, pending
    - bob: TOTP enabled
    - carol: no MFA, in_progress, in the "admins" group
    """
    directory.add_user(LEGACY, "alice", contact("alice"))
    directory.add_user(LEGACY, "bob", contact("bob"), mfa_methods=["TOTP"])
    directory.add_user(
        LEGACY,
        "carol",
        {**contact("carol"), "custom:migration_status": "in_progress"},
        groups=["admins"],
    )
    return directory


# ============================================================================
# Component Fixtures
# ============================================================================


@pytest.fixture
def mock_tracer() -> MockTracer:
    return MockTracer()


@pytest.fixture
def record_store(directory: InMemoryIdentityDirectory) -> UserMigrationRecordStore:
    return UserMigrationRecordStore(directory, LEGACY, enable_tracing=False)


@pytest.fixture
def channel() -> InMemoryNotificationChannel:
    return InMemoryNotificationChannel()


# ============================================================================
# OpenTelemetry Metrics Fixtures
# ============================================================================


@pytest.fixture
def metric_reader() -> InMemoryMetricReader:
    """Fresh in-memory metric reader for each test."""
    return InMemoryMetricReader()


@pytest.fixture
def metrics(metric_reader: InMemoryMetricReader) -> MFAMigrationMetrics:
    """Metrics recorder wired to metric_reader through its own MeterProvider."""
    provider = MeterProvider(metric_readers=[metric_reader])
    return MFAMigrationMetrics(campaign="test", meter_provider=provider)


# ============================================================================
# SQLite Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def sqlite_connection() -> AsyncGenerator[aiosqlite.Connection, None]:
    """
    Provide a raw aiosqlite connection to an in-memory database.

    The connection is closed after the test.
    """
    conn = await aiosqlite.connect(":memory:")
    yield conn
    await conn.close()
