"""
Notification tiers and cadence.

message_for() maps days remaining to a tiered message:

    days_remaining   tier      action_required   template
    > 30             info      False             info
    8..30            warning   True              warning
    1..7             error     True              urgent
    <= 0             error     True              grace / expired

needs_notification() throttles repeat notifications to at most one a week
outside the configured warning checkpoints.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from mfa_migration.models import (
    MigrationSettings,
    MigrationStatus,
    NotificationMessage,
    NotificationTier,
    UserMigrationRecord,
)
from mfa_migration.policy import as_utc, days_until

REMINDER_INTERVAL = timedelta(days=7)


def _days(n: int) -> str:
    return f"{n} day" if n == 1 else f"{n} days"


def message_for(days_remaining: int, grace_period_days: int = 0) -> NotificationMessage:
    """
    Build the message for a user ``days_remaining`` days before their deadline.

    Args:
        days_remaining: Signed days until the deadline (<= 0 once it passed).
        grace_period_days: Campaign grace period; decides between the grace
            and the expired wording once the deadline has passed.
    """
    if days_remaining > 30:
        return NotificationMessage(
            tier=NotificationTier.INFO,
            body="To strengthen account security, please set up multi-factor authentication.",
            action_required=False,
            days_remaining=days_remaining,
            template="info",
        )
    if days_remaining > 7:
        return NotificationMessage(
            tier=NotificationTier.WARNING,
            body=(
                f"{_days(days_remaining)} remain until the multi-factor authentication "
                "deadline. Please set it up soon."
            ),
            action_required=True,
            days_remaining=days_remaining,
            template="warning",
        )
    if days_remaining > 0:
        return NotificationMessage(
            tier=NotificationTier.ERROR,
            body=(
                f"Only {_days(days_remaining)} left until the multi-factor authentication "
                "deadline. Without it you will not be able to sign in."
            ),
            action_required=True,
            days_remaining=days_remaining,
            template="urgent",
        )

    days_over = -days_remaining
    if grace_period_days > 0 and days_over <= grace_period_days:
        grace_left = grace_period_days - days_over
        return NotificationMessage(
            tier=NotificationTier.ERROR,
            body=(
                "The multi-factor authentication deadline has passed. "
                f"You have {_days(grace_left)} of grace left before sign-in is blocked."
            ),
            action_required=True,
            days_remaining=0,
            template="grace",
        )
    return NotificationMessage(
        tier=NotificationTier.ERROR,
        body=(
            "The multi-factor authentication deadline has passed. "
            "Multi-factor authentication must be set up before you can sign in."
        ),
        action_required=True,
        days_remaining=0,
        template="expired",
    )


def needs_notification(
    record: UserMigrationRecord,
    now: datetime,
    settings: MigrationSettings,
) -> bool:
    """
    Decide whether a user should be notified at ``now``.

    Users with MFA (or already migrated) are never notified. Otherwise a
    user is notified on a warning checkpoint, at or past the deadline, when
    never notified before, or when the last notification is a week old.
    """
    if record.mfa_satisfied or record.migration_status == MigrationStatus.MIGRATED:
        return False

    remaining = days_until(now, record.effective_deadline(settings))
    if remaining in settings.warning_days:
        return True
    if remaining <= 0:
        return True
    if record.last_notified is None:
        return True
    return as_utc(now) - as_utc(record.last_notified) >= REMINDER_INTERVAL


__all__ = ["REMINDER_INTERVAL", "message_for", "needs_notification"]
