"""
OpenTelemetry metrics for MFA migration operations.

Metrics Exposed:
    - mfa_migration.admission.decisions (Counter): Login decisions by outcome
    - mfa_migration.migrations (Counter): Account migrations by outcome
    - mfa_migration.migration.duration (Histogram): Time to migrate one account
    - mfa_migration.rollbacks (Counter): Compensating deletes of target accounts
    - mfa_migration.notifications (Counter): Notification deliveries by channel/result

Instruments come from the globally installed MeterProvider unless one is
passed in. With metrics disabled the OpenTelemetry no-op meter is used, so
recording is always safe.

Example:
    >>> metrics = MFAMigrationMetrics()
    >>> metrics.record_admission(decision)
    >>> with metrics.time_migration() as timer:
    ...     result = await migrator.migrate_user("alice")
    >>> metrics.record_migration(result, timer.duration_seconds)
"""

from __future__ import annotations

import time
from collections import Counter
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from opentelemetry import metrics

if TYPE_CHECKING:
    from opentelemetry.metrics import MeterProvider

    from mfa_migration.models import AdmissionDecision, MigrationResult

METER_NAME = "mfa_migration"


def _admission_outcome(decision: AdmissionDecision) -> str:
    if decision.degraded:
        return "fail_open"
    if not decision.allow_login:
        return "blocked"
    if decision.required:
        return "grace"
    if decision.show_warning:
        return "warned"
    return "allowed"


@dataclass(frozen=True)
class MetricSnapshot:
    """
    Snapshot of what has been recorded by an MFAMigrationMetrics instance.

    Attributes:
        admissions: Decision count keyed by outcome label.
        migrations: Migration count keyed by outcome tag.
        rollbacks: Number of compensating deletes.
        notifications: Delivery count keyed by "<channel>:<result>".
    """

    admissions: dict[str, int] = field(default_factory=dict)
    migrations: dict[str, int] = field(default_factory=dict)
    rollbacks: int = 0
    notifications: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "admissions": dict(self.admissions),
            "migrations": dict(self.migrations),
            "rollbacks": self.rollbacks,
            "notifications": dict(self.notifications),
        }


class _MigrationTimer:
    """Timer handed out by MFAMigrationMetrics.time_migration()."""

    def __init__(self) -> None:
        self._start: float | None = None
        self._end: float | None = None

    def start(self) -> None:
        self._start = time.perf_counter()

    def stop(self) -> None:
        self._end = time.perf_counter()

    @property
    def duration_seconds(self) -> float:
        if self._start is None:
            return 0.0
        end = self._end if self._end is not None else time.perf_counter()
        return end - self._start


@dataclass
class MFAMigrationMetrics:
    """
    Container for MFA migration metric instruments.

    Attributes:
        campaign: Campaign label attached to every measurement.
        enable_metrics: Whether to record to a real meter (default True).
        meter_provider: Provider to take the meter from (the global one if None).
    """

    campaign: str = "default"
    enable_metrics: bool = True
    meter_provider: MeterProvider | None = field(default=None, repr=False)

    _admission_counter: Any = field(default=None, init=False, repr=False)
    _migration_counter: Any = field(default=None, init=False, repr=False)
    _migration_histogram: Any = field(default=None, init=False, repr=False)
    _rollback_counter: Any = field(default=None, init=False, repr=False)
    _notification_counter: Any = field(default=None, init=False, repr=False)

    _admissions: Counter[str] = field(default_factory=Counter, init=False, repr=False)
    _migrations: Counter[str] = field(default_factory=Counter, init=False, repr=False)
    _notifications: Counter[str] = field(default_factory=Counter, init=False, repr=False)
    _rollbacks: int = field(default=0, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.enable_metrics:
            meter = metrics.get_meter(
                METER_NAME, version="1.0.0", meter_provider=self.meter_provider
            )
        else:
            meter = metrics.NoOpMeter(METER_NAME)

        self._admission_counter = meter.create_counter(
            name="mfa_migration.admission.decisions",
            unit="decisions",
            description="Login admission decisions by outcome",
        )
        self._migration_counter = meter.create_counter(
            name="mfa_migration.migrations",
            unit="accounts",
            description="Account migrations between identity stores by outcome",
        )
        self._migration_histogram = meter.create_histogram(
            name="mfa_migration.migration.duration",
            unit="s",
            description="Time taken to migrate one account in seconds",
        )
        self._rollback_counter = meter.create_counter(
            name="mfa_migration.rollbacks",
            unit="accounts",
            description="Target accounts deleted to compensate a failed migration",
        )
        self._notification_counter = meter.create_counter(
            name="mfa_migration.notifications",
            unit="messages",
            description="MFA setup notifications by channel and result",
        )

    def _attributes(self, **extra: str) -> dict[str, str]:
        return {"campaign": self.campaign, **extra}

    def record_admission(self, decision: AdmissionDecision) -> None:
        """Count one admission decision."""
        outcome = _admission_outcome(decision)
        self._admissions[outcome] += 1
        self._admission_counter.add(1, self._attributes(outcome=outcome))

    def record_migration(self, result: MigrationResult, duration_seconds: float) -> None:
        """Count one migration and record how long it took."""
        outcome = result.outcome.value
        self._migrations[outcome] += 1
        self._migration_counter.add(1, self._attributes(outcome=outcome))
        self._migration_histogram.record(duration_seconds, self._attributes(outcome=outcome))
        if result.rolled_back:
            self._rollbacks += 1
            self._rollback_counter.add(1, self._attributes())

    def record_notification(self, channel: str, success: bool) -> None:
        """Count one notification delivery attempt."""
        result = "sent" if success else "failed"
        self._notifications[f"{channel}:{result}"] += 1
        self._notification_counter.add(1, self._attributes(channel=channel, result=result))

    @contextmanager
    def time_migration(self) -> Generator[_MigrationTimer, None, None]:
        """Context manager timing a single migration."""
        timer = _MigrationTimer()
        timer.start()
        try:
            yield timer
        finally:
            timer.stop()

    def get_snapshot(self) -> MetricSnapshot:
        """Return the values recorded so far by this instance."""
        return MetricSnapshot(
            admissions=dict(self._admissions),
            migrations=dict(self._migrations),
            rollbacks=self._rollbacks,
            notifications=dict(self._notifications),
        )


__all__ = [
    "METER_NAME",
    "MFAMigrationMetrics",
    "MetricSnapshot",
]
