"""
Migration progress and reporting.

MigrationReporter walks every account of the legacy store (following
listing pages) and summarizes where the campaign stands.
"""

from __future__ import annotations

import logging
from datetime import datetime

from mfa_migration.models import (
    MigrationProgress,
    MigrationReport,
    MigrationSettings,
    MigrationStatus,
    UpcomingDeadline,
    UserMigrationRecord,
)
from mfa_migration.notifications.messages import needs_notification
from mfa_migration.observability import Tracer, create_tracer
from mfa_migration.observability.attributes import ATTR_STORE_ID, ATTR_USER_COUNT
from mfa_migration.policy import as_utc, days_until, utc_now
from mfa_migration.record_store import UserMigrationRecordStore

logger = logging.getLogger(__name__)


def summarize(
    records: list[UserMigrationRecord],
    now: datetime,
    settings: MigrationSettings,
) -> MigrationProgress:
    """
    Count records by migration state.

    ``completed`` counts users whose MFA requirement is satisfied; the
    remaining users are counted by status. ``overdue`` counts pending users
    past their personal deadline.
    """
    completed = in_progress = pending = migrated = overdue = 0
    for record in records:
        if record.mfa_satisfied:
            completed += 1
        elif record.migration_status == MigrationStatus.MIGRATED:
            migrated += 1
        elif record.migration_status == MigrationStatus.IN_PROGRESS:
            in_progress += 1
        else:
            pending += 1
            if as_utc(now) > record.effective_deadline(settings):
                overdue += 1

    total = len(records)
    return MigrationProgress(
        total=total,
        completed=completed,
        in_progress=in_progress,
        pending=pending,
        migrated=migrated,
        overdue=overdue,
        percentage=round(completed / total * 100) if total else 0,
    )


class MigrationReporter:
    """
    Builds progress summaries and reports for a migration campaign.

    Example:
        >>> reporter = MigrationReporter(record_store, settings)
        >>> report = await reporter.generate_report()
        >>> report.summary.percentage
        42
    """

    def __init__(
        self,
        record_store: UserMigrationRecordStore,
        settings: MigrationSettings,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._record_store = record_store
        self._settings = settings

    async def get_migration_progress(self, now: datetime | None = None) -> MigrationProgress:
        """Summarize every account of the store."""
        now = as_utc(now) if now else utc_now()
        records = await self._record_store.list_records()
        return summarize(records, now, self._settings)

    async def get_users_needing_notification(
        self,
        now: datetime | None = None,
    ) -> list[UpcomingDeadline]:
        """Users due a reminder at ``now``, soonest deadline first."""
        now = as_utc(now) if now else utc_now()
        records = await self._record_store.list_records()
        return self._upcoming(records, now)

    def _upcoming(
        self, records: list[UserMigrationRecord], now: datetime
    ) -> list[UpcomingDeadline]:
        upcoming = []
        for record in records:
            if not needs_notification(record, now, self._settings):
                continue
            deadline = record.effective_deadline(self._settings)
            upcoming.append(
                UpcomingDeadline(
                    user_id=record.user_id,
                    status=record.migration_status,
                    deadline=deadline,
                    days_remaining=days_until(now, deadline),
                )
            )
        upcoming.sort(key=lambda d: (d.days_remaining, d.user_id))
        return upcoming

    async def generate_report(self, now: datetime | None = None) -> MigrationReport:
        """
        Build a full report from a single pass over the store.

        Args:
            now: Report time (defaults to the current time)

        Returns:
            MigrationReport with the summary and the users due a reminder.
        """
        now = as_utc(now) if now else utc_now()
        with self._tracer.span(
            "mfa_migration.report.generate",
            {ATTR_STORE_ID: self._record_store.store_id},
        ) as span:
            records = await self._record_store.list_records()
            report = MigrationReport(
                generated_at=now,
                summary=summarize(records, now, self._settings),
                upcoming_deadlines=self._upcoming(records, now),
            )
            if span is not None:
                span.set_attribute(ATTR_USER_COUNT, report.summary.total)
            logger.info(
                "Migration report: %d users, %d%% completed, %d overdue",
                report.summary.total,
                report.summary.percentage,
                report.summary.overdue,
            )
            return report


__all__ = ["MigrationReporter", "summarize"]
