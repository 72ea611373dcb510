"""
User notifications for the MFA migration campaign.

- message_for / needs_notification: Tiers and cadence
- NotificationChannel: Transport protocol (InMemoryNotificationChannel for tests)
- MFANotifier: Renders and sends reminders, in bulk or on a timer
"""

from mfa_migration.notifications.channel import (
    InMemoryNotificationChannel,
    NotificationChannel,
    SentEmail,
    SentSms,
)
from mfa_migration.notifications.messages import (
    REMINDER_INTERVAL,
    message_for,
    needs_notification,
)
from mfa_migration.notifications.notifier import MFANotifier

__all__ = [
    "REMINDER_INTERVAL",
    "message_for",
    "needs_notification",
    "NotificationChannel",
    "InMemoryNotificationChannel",
    "SentEmail",
    "SentSms",
    "MFANotifier",
]
