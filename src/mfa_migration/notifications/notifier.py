"""
MFA setup reminders over e-mail and SMS.

MFANotifier renders the tiered message from message_for() into an e-mail
(Jinja2 templates under ``templates/``) and an SMS text, looks the user's
contact details up in the directory and hands both to a NotificationChannel.

A user without an e-mail address or phone number simply skips that leg.
A delivery counts as sent when at least one leg went out and none failed;
a successful delivery stamps ``last_notified`` on the user's record.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Iterable
from datetime import datetime
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from mfa_migration.models import (
    BulkNotificationResult,
    MigrationSettings,
    NotificationDelivery,
    NotificationMessage,
    UserMigrationRecord,
)
from mfa_migration.notifications.channel import NotificationChannel
from mfa_migration.notifications.messages import message_for, needs_notification
from mfa_migration.observability import MFAMigrationMetrics, Tracer, create_tracer
from mfa_migration.observability.attributes import (
    ATTR_DAYS_REMAINING,
    ATTR_NOTIFICATION_CHANNEL,
    ATTR_NOTIFICATION_TIER,
    ATTR_USER_COUNT,
    ATTR_USER_ID,
)
from mfa_migration.policy import as_utc, days_over, days_until, utc_now
from mfa_migration.record_store import UserMigrationRecordStore
from mfa_migration.scheduling import DeferredScheduler

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"
DEFAULT_EMAIL_FROM = "no-reply@example.com"

EMAIL_SUBJECTS: dict[str, str] = {
    "info": "Strengthening account security: please set up multi-factor authentication",
    "warning": "[Important] {days} left to set up multi-factor authentication",
    "urgent": "[Urgent] {days} left to set up multi-factor authentication, act now",
    "grace": "[Action required] Multi-factor authentication is now required",
    "expired": "[Action required] Multi-factor authentication is required to sign in",
}

SMS_PREFIXES: dict[str, str] = {
    "info": "",
    "warning": "[Important] ",
    "urgent": "[Urgent] ",
    "grace": "[Action required] ",
    "expired": "[Action required] ",
}


def _days(n: int) -> str:
    return f"{n} day" if n == 1 else f"{n} days"


class MFANotifier:
    """
    Sends MFA setup reminders.

    Example:
        >>> notifier = MFANotifier(record_store, channel, settings)
        >>> delivery = await notifier.notify(record)
        >>> result = await notifier.notify_due_users()
        >>> print(f"{result.sent} sent, {result.failed} failed")
    """

    def __init__(
        self,
        record_store: UserMigrationRecordStore,
        channel: NotificationChannel,
        settings: MigrationSettings,
        scheduler: DeferredScheduler | None = None,
        metrics: MFAMigrationMetrics | None = None,
        email_from: str = DEFAULT_EMAIL_FROM,
        templates_dir: Path | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the notifier.

        Args:
            record_store: Records and contact details of the users to notify
            channel: Transport for e-mail and SMS
            settings: Campaign settings
            scheduler: Timer backend for schedule_notification()
            metrics: Optional metrics recorder
            email_from: Sender address passed to templates
            templates_dir: Override for the e-mail template directory
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._record_store = record_store
        self._channel = channel
        self._settings = settings
        self._scheduler = scheduler or DeferredScheduler()
        self._metrics = metrics
        self._email_from = email_from
        self._env = Environment(
            loader=FileSystemLoader(str(templates_dir or TEMPLATES_DIR)),
            autoescape=select_autoescape(["html", "html.jinja2", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    @property
    def scheduler(self) -> DeferredScheduler:
        return self._scheduler

    def message_at(self, record: UserMigrationRecord, now: datetime) -> NotificationMessage:
        """The tiered message a user should receive at ``now``."""
        deadline = record.effective_deadline(self._settings)
        remaining = days_until(now, deadline)
        if remaining <= 0:
            # Past the deadline the grace arithmetic counts whole days over.
            remaining = -days_over(now, deadline)
        return message_for(remaining, self._settings.grace_period_days)

    def render_email(
        self,
        message: NotificationMessage,
        deadline: datetime,
        now: datetime,
    ) -> tuple[str, str]:
        """
        Render the e-mail for a message.

        Returns:
            (subject, html_body)
        """
        days_remaining = message.days_remaining or 0
        grace_left = max(0, self._settings.grace_period_days - days_over(now, deadline))
        context: dict[str, Any] = {
            "message": message,
            "days_remaining": days_remaining,
            "grace_left": grace_left,
            "deadline": as_utc(deadline).strftime("%Y-%m-%d"),
            "methods": sorted(method.value for method in self._settings.enabled_methods),
            "email_from": self._email_from,
        }
        subject = EMAIL_SUBJECTS[message.template].format(days=_days(days_remaining))
        html_body = self._env.get_template(f"{message.template}.html.jinja2").render(**context)
        return subject, html_body

    def render_sms(self, message: NotificationMessage) -> str:
        return SMS_PREFIXES[message.template] + message.body

    async def notify(
        self,
        record: UserMigrationRecord,
        now: datetime | None = None,
    ) -> NotificationDelivery:
        """
        Notify one user over every channel they have.

        Never raises; failures are reported on the returned delivery.
        """
        now = as_utc(now) if now else utc_now()
        user_id = record.user_id
        message = self.message_at(record, now)

        with self._tracer.span(
            "mfa_migration.notifier.notify",
            {
                ATTR_USER_ID: user_id,
                ATTR_NOTIFICATION_TIER: message.tier.value,
                ATTR_DAYS_REMAINING: message.days_remaining or 0,
            },
        ):
            try:
                email, phone = await self._record_store.get_contact(user_id)
            except Exception as e:
                logger.warning("Could not look up contact details for user %s: %s", user_id, e)
                return NotificationDelivery(user_id=user_id, error=str(e))

            errors: list[str] = []
            email_sent = False
            sms_sent = False

            if email:
                subject, html_body = self.render_email(
                    message, record.effective_deadline(self._settings), now
                )
                email_sent = await self._deliver(
                    "email", user_id, errors, self._channel.send_email(email, subject, html_body)
                )
            else:
                logger.warning("No email found for user %s, skipping email notification", user_id)

            if phone:
                sms_sent = await self._deliver(
                    "sms", user_id, errors, self._channel.send_sms(phone, self.render_sms(message))
                )
            else:
                logger.warning(
                    "No phone number found for user %s, skipping SMS notification", user_id
                )

            delivery = NotificationDelivery(
                user_id=user_id,
                email_sent=email_sent,
                sms_sent=sms_sent,
                error="; ".join(errors) or None,
            )
            if delivery.success:
                logger.info("MFA notification sent to user %s", user_id)
                try:
                    await self._record_store.mark_notified(user_id, now)
                except Exception:
                    logger.warning(
                        "Failed to record notification for user %s", user_id, exc_info=True
                    )
            return delivery

    async def _deliver(
        self,
        channel: str,
        user_id: str,
        errors: list[str],
        send: Awaitable[None],
    ) -> bool:
        with self._tracer.span(
            "mfa_migration.notifier.deliver",
            {ATTR_USER_ID: user_id, ATTR_NOTIFICATION_CHANNEL: channel},
        ):
            try:
                await send
            except Exception as e:
                logger.error("Error sending %s notification to user %s: %s", channel, user_id, e)
                errors.append(f"{channel}: {e}")
                success = False
            else:
                success = True
        if self._metrics is not None:
            self._metrics.record_notification(channel, success)
        return success

    async def send_bulk(
        self,
        records: Iterable[UserMigrationRecord],
        now: datetime | None = None,
    ) -> BulkNotificationResult:
        """
        Notify many users, one after the other.

        A failure for one recipient never stops the others.
        """
        now = as_utc(now) if now else utc_now()
        result = BulkNotificationResult()
        for record in records:
            result.add(await self.notify(record, now))
        logger.info("Bulk notification finished: %d sent, %d failed", result.sent, result.failed)
        return result

    async def notify_due_users(self, now: datetime | None = None) -> BulkNotificationResult:
        """Notify every user of the store that is due a reminder at ``now``."""
        now = as_utc(now) if now else utc_now()
        with self._tracer.span("mfa_migration.notifier.notify_due_users") as span:
            due = [
                record
                async for record in self._record_store.iter_records()
                if needs_notification(record, now, self._settings)
            ]
            if span is not None:
                span.set_attribute(ATTR_USER_COUNT, len(due))
            return await self.send_bulk(due, now)

    def schedule_notification(
        self,
        user_id: str,
        at: datetime,
        now: datetime | None = None,
    ) -> asyncio.Task[NotificationDelivery | None]:
        """
        Notify a user at a later time.

        The record is re-read when the timer fires; users that have set up MFA
        by then are skipped. Scheduling again for the same user replaces the
        pending timer.
        """
        now = as_utc(now) if now else utc_now()
        logger.info("Scheduling notification for user %s at %s", user_id, as_utc(at).isoformat())
        return self._scheduler.schedule_at(
            self.notification_key(user_id),
            at,
            now,
            lambda: self._notify_scheduled(user_id),
        )

    def cancel_scheduled_notification(self, user_id: str) -> bool:
        return self._scheduler.cancel(self.notification_key(user_id))

    @staticmethod
    def notification_key(user_id: str) -> str:
        return f"notify:{user_id}"

    async def _notify_scheduled(self, user_id: str) -> NotificationDelivery | None:
        record = await self._record_store.refresh(user_id)
        if record.mfa_satisfied:
            logger.info("User %s already has MFA, skipping scheduled notification", user_id)
            return None
        return await self.notify(record)


__all__ = [
    "MFANotifier",
    "TEMPLATES_DIR",
    "DEFAULT_EMAIL_FROM",
    "EMAIL_SUBJECTS",
    "SMS_PREFIXES",
]
