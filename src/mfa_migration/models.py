"""
Data models for the MFA migration system.

Models in this module:

Enums:
    - MFAMethod: Second factors a campaign can accept
    - MigrationStatus: Per-user migration lifecycle
    - MFAConfiguration: Identity store MFA setting
    - NotificationTier: Severity tier of a user notification
    - MigrationOutcome: Tag of a single-account migration result

Configuration:
    - MigrationSettings: Immutable campaign configuration
    - PoolConfig: Identity store descriptor

Core Models:
    - UserMigrationRecord: Per-user migration state
    - DirectoryUser / DirectoryUserPage: Accounts as returned by the directory
    - AdmissionDecision: Verdict for one login attempt
    - NotificationMessage: Tiered message for a user
    - MigrationResult / BatchMigrationResult: Outcome of moving accounts
    - ReadinessReport, MigrationProgress, MigrationReport, PoolMigrationStatus
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

# Directory attribute names used to persist migration state.
ATTRIBUTE_EMAIL = "email"
ATTRIBUTE_PHONE_NUMBER = "phone_number"
ATTRIBUTE_MIGRATION_STATUS = "custom:migration_status"
ATTRIBUTE_MIGRATION_DEADLINE = "custom:migration_deadline"
ATTRIBUTE_LAST_NOTIFIED = "custom:last_notified"
ATTRIBUTE_LAST_UPDATED = "custom:last_updated"
ATTRIBUTE_MIGRATED_FROM = "custom:migrated_from"
ATTRIBUTE_MIGRATION_DATE = "custom:migration_date"


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


DEFAULT_WARNING_DAYS: tuple[int, ...] = (30, 14, 7, 3, 1)


class MFAMethod(Enum):
    """Second factors a campaign can accept."""

    SMS = "SMS"
    """One-time code delivered by text message."""

    TOTP = "TOTP"
    """Authenticator app (time-based one-time password)."""

    EMAIL = "EMAIL"
    """One-time code delivered by e-mail."""


class MigrationStatus(Enum):
    """
    Per-user migration lifecycle.

    State transitions:
        PENDING -> IN_PROGRESS -> COMPLETED   (operator / MFA setup flow)
        PENDING | IN_PROGRESS -> MIGRATED     (account moved to the new store)
    """

    PENDING = "pending"
    """User has not started MFA setup."""

    IN_PROGRESS = "in_progress"
    """User started but has not finished MFA setup."""

    COMPLETED = "completed"
    """User finished MFA setup."""

    MIGRATED = "migrated"
    """Account was moved to the MFA-required store; the source copy is disabled."""

    @property
    def satisfies_mfa(self) -> bool:
        """True when the status alone exempts the user from enforcement."""
        return self == MigrationStatus.COMPLETED


class MFAConfiguration(Enum):
    """MFA setting of an identity store."""

    OFF = "OFF"
    ON = "ON"
    OPTIONAL = "OPTIONAL"


class NotificationTier(Enum):
    """Severity tier of a user notification."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class MigrationOutcome(Enum):
    """Tag of a single-account migration result."""

    OK = "ok"
    """Account moved and source disabled, nothing was lost."""

    OK_WITH_WARNINGS = "ok_with_warnings"
    """Account moved and source disabled, some auxiliary state was not copied."""

    ERR = "err"
    """Migration failed; no target account was left behind."""


@dataclass(frozen=True)
class MigrationSettings:
    """
    Immutable configuration of a migration campaign.

    Attributes:
        deadline: Campaign-wide deadline (timezone-aware, normalized to UTC).
        warning_days: Days-before-deadline checkpoints, distinct and > 0,
            stored in descending order.
        grace_period_days: Days after the deadline during which login without
            MFA is still allowed.
        enabled_methods: MFA methods users may set up.
        directory_timeout_seconds: Upper bound for directory calls made while
            deciding a login.

    Example:
        >>> settings = MigrationSettings(
        ...     deadline=datetime(2025, 9, 1, tzinfo=UTC),
        ...     warning_days=(30, 14, 7, 3, 1),
        ...     grace_period_days=7,
        ... )
        >>> settings.max_warning_days
        30
    """

    deadline: datetime
    warning_days: tuple[int, ...] = DEFAULT_WARNING_DAYS
    grace_period_days: int = 7
    enabled_methods: frozenset[MFAMethod] = frozenset(MFAMethod)
    directory_timeout_seconds: float = 2.0

    def __post_init__(self) -> None:
        """Validate and normalize configuration values."""
        if self.deadline.tzinfo is None:
            raise ValueError("deadline must be timezone-aware")
        object.__setattr__(self, "deadline", self.deadline.astimezone(UTC))

        days = list(self.warning_days)
        if any(day <= 0 for day in days):
            raise ValueError(f"warning_days must be positive, got {days}")
        if len(set(days)) != len(days):
            raise ValueError(f"warning_days must be distinct, got {days}")
        object.__setattr__(self, "warning_days", tuple(sorted(days, reverse=True)))

        if self.grace_period_days < 0:
            raise ValueError(f"grace_period_days must be >= 0, got {self.grace_period_days}")

        object.__setattr__(
            self,
            "enabled_methods",
            frozenset(MFAMethod(method) for method in self.enabled_methods),
        )

        if self.directory_timeout_seconds <= 0:
            raise ValueError(
                f"directory_timeout_seconds must be > 0, got {self.directory_timeout_seconds}"
            )

    @property
    def max_warning_days(self) -> int | None:
        """Largest warning checkpoint, None when no checkpoints are configured."""
        return self.warning_days[0] if self.warning_days else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "deadline": self.deadline.isoformat(),
            "warning_days": list(self.warning_days),
            "grace_period_days": self.grace_period_days,
            "enabled_methods": sorted(method.value for method in self.enabled_methods),
            "directory_timeout_seconds": self.directory_timeout_seconds,
        }


@dataclass(frozen=True)
class PoolConfig:
    """
    Descriptor of an identity store (user pool).

    Attributes:
        store_id: Identity store identifier.
        client_id: Application client identifier.
        region: Region hosting the store.
        mfa_configuration: Expected MFA setting (legacy OPTIONAL, new ON).
    """

    store_id: str
    client_id: str
    region: str = "us-east-1"
    mfa_configuration: MFAConfiguration = MFAConfiguration.OPTIONAL


@dataclass
class UserMigrationRecord:
    """
    Migration state of one user.

    Created lazily on first query from directory attributes; never deleted.

    Attributes:
        user_id: Stable, unique user identifier.
        mfa_enabled: Whether the user has at least one MFA factor.
        mfa_methods: Names of the user's MFA factors.
        migration_status: Lifecycle status.
        migration_deadline: Per-user deadline override; None means the
            campaign deadline applies.
        last_notified: When the user was last notified, if ever.
    """

    user_id: str
    mfa_enabled: bool = False
    mfa_methods: set[str] = field(default_factory=set)
    migration_status: MigrationStatus = MigrationStatus.PENDING
    migration_deadline: datetime | None = None
    last_notified: datetime | None = None

    @property
    def mfa_satisfied(self) -> bool:
        """True if the user is exempt from enforcement."""
        return self.mfa_enabled or self.migration_status.satisfies_mfa

    def effective_deadline(self, settings: MigrationSettings) -> datetime:
        """The user's own deadline, falling back to the campaign deadline."""
        return self.migration_deadline or settings.deadline

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to dictionary for JSON storage.

        Returns:
            Dictionary representation suitable for JSON serialization.
        """
        return {
            "user_id": self.user_id,
            "mfa_enabled": self.mfa_enabled,
            "mfa_methods": sorted(self.mfa_methods),
            "migration_status": self.migration_status.value,
            "migration_deadline": _isoformat(self.migration_deadline),
            "last_notified": _isoformat(self.last_notified),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserMigrationRecord:
        """
        Create from dictionary.

        Args:
            data: Dictionary produced by to_dict().

        Returns:
            UserMigrationRecord instance.
        """
        return cls(
            user_id=data["user_id"],
            mfa_enabled=data.get("mfa_enabled", False),
            mfa_methods=set(data.get("mfa_methods", [])),
            migration_status=MigrationStatus(data.get("migration_status", "pending")),
            migration_deadline=_parse_datetime(data.get("migration_deadline")),
            last_notified=_parse_datetime(data.get("last_notified")),
        )


@dataclass(frozen=True)
class DirectoryUser:
    """
    An account as returned by the identity directory.

    Attributes:
        username: Account identifier inside its store.
        attributes: Attribute name to value (e.g. "email", "custom:migration_status").
        mfa_methods: Names of configured MFA factors.
        enabled: False once the account has been disabled.
        created_at: Creation time, if the directory reports it.
    """

    username: str
    attributes: dict[str, str] = field(default_factory=dict)
    mfa_methods: tuple[str, ...] = ()
    enabled: bool = True
    created_at: datetime | None = None

    @property
    def mfa_enabled(self) -> bool:
        return len(self.mfa_methods) > 0

    def attribute(self, name: str) -> str | None:
        """Return an attribute value, treating empty strings as absent."""
        return self.attributes.get(name) or None


@dataclass(frozen=True)
class DirectoryUserPage:
    """One page of a paginated directory listing."""

    users: list[DirectoryUser]
    next_page_token: str | None = None


@dataclass(frozen=True)
class AdmissionDecision:
    """
    Verdict for one login attempt.

    Attributes:
        required: MFA is mandatory for this login.
        allow_login: Whether the login may proceed.
        show_warning: Whether the client should surface an MFA warning.
        days_remaining: Days until the deadline before it passes; inside the
            grace period, days of grace left; 0 once blocked.
        degraded: True when the decision is a fail-open fallback because the
            directory could not be consulted.
    """

    required: bool
    allow_login: bool
    show_warning: bool
    days_remaining: int
    degraded: bool = False

    @classmethod
    def fail_open(cls) -> AdmissionDecision:
        """Decision used when the directory is unreachable."""
        return cls(
            required=False,
            allow_login=True,
            show_warning=False,
            days_remaining=0,
            degraded=True,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "required": self.required,
            "allow_login": self.allow_login,
            "show_warning": self.show_warning,
            "days_remaining": self.days_remaining,
            "degraded": self.degraded,
        }


@dataclass(frozen=True)
class NotificationMessage:
    """
    Tiered message telling a user to set up MFA.

    Attributes:
        tier: Severity tier.
        body: Plain-text message.
        action_required: Whether the user must act.
        days_remaining: Days left, reported as 0 once the deadline passed.
        template: Name of the e-mail template used to render it.
    """

    tier: NotificationTier
    body: str
    action_required: bool
    days_remaining: int | None
    template: str = "info"

    def to_dict(self) -> dict[str, Any]:
        return {
            "tier": self.tier.value,
            "body": self.body,
            "action_required": self.action_required,
            "days_remaining": self.days_remaining,
        }


@dataclass(frozen=True)
class MigrationResult:
    """
    Outcome of moving one account between stores.

    Attributes:
        user_id: Account that was migrated.
        outcome: OK, OK_WITH_WARNINGS or ERR.
        new_user_id: Identifier of the account in the target store.
        error: Error text for ERR outcomes.
        warnings: Auxiliary state that could not be copied.
        rolled_back: Whether a partially created target account was deleted.
    """

    user_id: str
    outcome: MigrationOutcome
    new_user_id: str | None = None
    error: str | None = None
    warnings: tuple[str, ...] = ()
    rolled_back: bool = False

    @property
    def success(self) -> bool:
        return self.outcome != MigrationOutcome.ERR

    @classmethod
    def ok(cls, user_id: str, new_user_id: str, warnings: Iterable[str] = ()) -> MigrationResult:
        """Successful result, tagged OK_WITH_WARNINGS when warnings are present."""
        warnings = tuple(warnings)
        return cls(
            user_id=user_id,
            outcome=MigrationOutcome.OK_WITH_WARNINGS if warnings else MigrationOutcome.OK,
            new_user_id=new_user_id,
            warnings=warnings,
        )

    @classmethod
    def err(cls, user_id: str, error: str, *, rolled_back: bool = False) -> MigrationResult:
        return cls(
            user_id=user_id,
            outcome=MigrationOutcome.ERR,
            error=error,
            rolled_back=rolled_back,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "outcome": self.outcome.value,
            "success": self.success,
            "new_user_id": self.new_user_id,
            "error": self.error,
            "warnings": list(self.warnings),
            "rolled_back": self.rolled_back,
        }


@dataclass(frozen=True)
class FailedMigration:
    """A user whose migration failed inside a batch."""

    user_id: str
    error: str


@dataclass
class BatchMigrationResult:
    """
    Collected outcomes of a batch migration.

    Attributes:
        successful: Users migrated (with or without warnings).
        failed: Users whose migration failed, with the error text.
        warnings: Per-user warnings for successful migrations.
    """

    successful: list[str] = field(default_factory=list)
    failed: list[FailedMigration] = field(default_factory=list)
    warnings: dict[str, list[str]] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.successful) + len(self.failed)

    def add(self, result: MigrationResult) -> None:
        """Record the outcome of one user's migration."""
        if result.success:
            self.successful.append(result.user_id)
            if result.warnings:
                self.warnings[result.user_id] = list(result.warnings)
        else:
            self.failed.append(
                FailedMigration(user_id=result.user_id, error=result.error or "Unknown error")
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "successful": list(self.successful),
            "failed": [{"user_id": f.user_id, "error": f.error} for f in self.failed],
            "warnings": {user_id: list(w) for user_id, w in self.warnings.items()},
        }


@dataclass(frozen=True)
class ReadinessReport:
    """
    Pre-flight validation result.

    Attributes:
        ready: True when there are no blocking issues.
        issues: Blocking problems.
        recommendations: Advisory items.
    """

    ready: bool
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ready": self.ready,
            "issues": list(self.issues),
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True)
class MigrationProgress:
    """
    Aggregate progress over all known users.

    Attributes:
        total: Number of users considered.
        completed: Users with MFA enabled or status COMPLETED.
        in_progress: Users with status IN_PROGRESS.
        pending: Users still PENDING.
        migrated: Users whose account was moved to the new store.
        overdue: Pending users past their personal deadline.
        percentage: round(completed / total * 100), 0 when there are no users.
    """

    total: int = 0
    completed: int = 0
    in_progress: int = 0
    pending: int = 0
    migrated: int = 0
    overdue: int = 0
    percentage: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "completed": self.completed,
            "in_progress": self.in_progress,
            "pending": self.pending,
            "migrated": self.migrated,
            "overdue": self.overdue,
            "percentage": self.percentage,
        }


@dataclass(frozen=True)
class UpcomingDeadline:
    """A user eligible for notification with their computed days remaining."""

    user_id: str
    status: MigrationStatus
    deadline: datetime
    days_remaining: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "status": self.status.value,
            "deadline": self.deadline.isoformat(),
            "days_remaining": self.days_remaining,
        }


@dataclass(frozen=True)
class MigrationReport:
    """
    Point-in-time migration report.

    Attributes:
        generated_at: When the report was built.
        summary: Aggregate progress.
        upcoming_deadlines: Users that currently need a notification.
    """

    generated_at: datetime
    summary: MigrationProgress
    upcoming_deadlines: list[UpcomingDeadline] = field(default_factory=list)

    @property
    def users_by_status(self) -> dict[str, int]:
        return {
            "completed": self.summary.completed,
            "in_progress": self.summary.in_progress,
            "pending": self.summary.pending,
            "migrated": self.summary.migrated,
            "overdue": self.summary.overdue,
        }

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to dictionary for JSON serialization.

        Returns:
            Dictionary representation suitable for JSON.
        """
        return {
            "generated_at": self.generated_at.isoformat(),
            "summary": self.summary.to_dict(),
            "users_by_status": self.users_by_status,
            "upcoming_deadlines": [d.to_dict() for d in self.upcoming_deadlines],
        }


@dataclass(frozen=True)
class PoolMigrationStatus:
    """
    Account counts across the legacy and new stores.

    Attributes:
        legacy_active_users: Enabled accounts still in the legacy store.
        new_pool_users: Accounts in the new store.
        progress: round(new / (legacy_active + new) * 100), 0 when both are empty.
        users_to_migrate: Usernames of enabled legacy accounts.
    """

    legacy_active_users: int
    new_pool_users: int
    progress: int
    users_to_migrate: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "legacy_active_users": self.legacy_active_users,
            "new_pool_users": self.new_pool_users,
            "progress": self.progress,
            "users_to_migrate": list(self.users_to_migrate),
        }


@dataclass(frozen=True)
class NotificationDelivery:
    """Result of notifying one user over every channel they have."""

    user_id: str
    email_sent: bool = False
    sms_sent: bool = False
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None and (self.email_sent or self.sms_sent)


@dataclass
class BulkNotificationResult:
    """
    Collected outcomes of notifying many users.

    Attributes:
        sent: Users notified on at least one channel.
        failed: Users that could not be notified.
        errors: One "User <id>: <error>" line per failure.
    """

    sent: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def add(self, delivery: NotificationDelivery) -> None:
        if delivery.success:
            self.sent += 1
        else:
            self.failed += 1
            self.errors.append(
                f"User {delivery.user_id}: {delivery.error or 'no contact channel available'}"
            )

    def to_dict(self) -> dict[str, Any]:
        return {"sent": self.sent, "failed": self.failed, "errors": list(self.errors)}


__all__ = [
    "DEFAULT_WARNING_DAYS",
    "ATTRIBUTE_EMAIL",
    "ATTRIBUTE_PHONE_NUMBER",
    "ATTRIBUTE_MIGRATION_STATUS",
    "ATTRIBUTE_MIGRATION_DEADLINE",
    "ATTRIBUTE_LAST_NOTIFIED",
    "ATTRIBUTE_LAST_UPDATED",
    "ATTRIBUTE_MIGRATED_FROM",
    "ATTRIBUTE_MIGRATION_DATE",
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
]
