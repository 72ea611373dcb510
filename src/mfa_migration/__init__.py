"""
mfa_migration - Phased migration of user accounts to mandatory MFA.

This library provides:
- A deadline/grace-period admission policy for the login path
- Per-user migration records stored on the identity directory, with a local cache
- Tiered e-mail/SMS reminders with throttling
- A compensating two-store account migration with batch support
- Readiness checks and progress reports
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("mfa-migration")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from mfa_migration.admission import AdmissionEngine
from mfa_migration.config import MigrationEnvironment
from mfa_migration.directory import (
    IdentityDirectory,
    InMemoryIdentityDirectory,
    iter_users,
    list_all_users,
)
from mfa_migration.exceptions import (
    BLOCKED_LOGIN_MESSAGE,
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerOpenError,
    ConfigurationError,
    DirectoryError,
    ErrorHandler,
    FatalCreationError,
    LoginBlockedError,
    MFAMigrationError,
    NotificationDeliveryError,
    PartialTransferError,
    RetryConfig,
    TransientDirectoryError,
    UserNotFoundError,
    classify_exception,
    log_classified,
)
from mfa_migration.migrator import UserPoolMigrator, generate_temporary_credential
from mfa_migration.models import (
    AdmissionDecision,
    BatchMigrationResult,
    BulkNotificationResult,
    DirectoryUser,
    DirectoryUserPage,
    FailedMigration,
    MFAConfiguration,
    MFAMethod,
    MigrationOutcome,
    MigrationProgress,
    MigrationReport,
    MigrationResult,
    MigrationSettings,
    MigrationStatus,
    NotificationDelivery,
    NotificationMessage,
    NotificationTier,
    PoolConfig,
    PoolMigrationStatus,
    ReadinessReport,
    UpcomingDeadline,
    UserMigrationRecord,
)
from mfa_migration.notifications import (
    InMemoryNotificationChannel,
    MFANotifier,
    NotificationChannel,
    message_for,
    needs_notification,
)
from mfa_migration.observability import (
    MFAMigrationMetrics,
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)
from mfa_migration.policy import days_over, days_until, evaluate, in_grace_period, is_checkpoint
from mfa_migration.record_store import UserMigrationRecordStore
from mfa_migration.report import MigrationReporter
from mfa_migration.repositories import (
    InMemoryRecordCache,
    PostgreSQLRecordCache,
    RecordCache,
    SQLiteRecordCache,
)
from mfa_migration.scheduling import DeferredScheduler
from mfa_migration.service import MFAMigrationService

__all__ = [
    "__version__",
    # Policy
    "evaluate",
    "days_until",
    "days_over",
    "is_checkpoint",
    "in_grace_period",
    # Models
    "MFAMethod",
    "MigrationStatus",
    "MFAConfiguration",
    "NotificationTier",
    "MigrationOutcome",
    "MigrationSettings",
    "PoolConfig",
    "UserMigrationRecord",
    "DirectoryUser",
    "DirectoryUserPage",
    "AdmissionDecision",
    "NotificationMessage",
    "MigrationResult",
    "FailedMigration",
    "BatchMigrationResult",
    "ReadinessReport",
    "MigrationProgress",
    "UpcomingDeadline",
    "MigrationReport",
    "PoolMigrationStatus",
    "NotificationDelivery",
    "BulkNotificationResult",
    # Components
    "AdmissionEngine",
    "UserMigrationRecordStore",
    "MFANotifier",
    "message_for",
    "needs_notification",
    "UserPoolMigrator",
    "generate_temporary_credential",
    "MigrationReporter",
    "DeferredScheduler",
    "MFAMigrationService",
    "MigrationEnvironment",
    # Directory and channels
    "IdentityDirectory",
    "InMemoryIdentityDirectory",
    "iter_users",
    "list_all_users",
    "NotificationChannel",
    "InMemoryNotificationChannel",
    # Record cache
    "RecordCache",
    "InMemoryRecordCache",
    "SQLiteRecordCache",
    "PostgreSQLRecordCache",
    # Exceptions
    "BLOCKED_LOGIN_MESSAGE",
    "MFAMigrationError",
    "UserNotFoundError",
    "DirectoryError",
    "TransientDirectoryError",
    "PartialTransferError",
    "FatalCreationError",
    "ConfigurationError",
    "NotificationDeliveryError",
    "LoginBlockedError",
    "CircuitBreakerOpenError",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "RetryConfig",
    "ErrorHandler",
    "classify_exception",
    "log_classified",
    # Observability
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
    "MFAMigrationMetrics",
]
