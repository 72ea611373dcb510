"""
Migration clock and admission policy.

Pure functions turning "now vs. deadline vs. grace period" into an
AdmissionDecision. Nothing here performs I/O or reads the wall clock
except utc_now(); every other function takes ``now`` explicitly.

Decision table (days are whole days, rounded up):

    now <= deadline         required=False allow=True  warn=(days_remaining <= max(warning_days))
    0 < days_over <= grace  required=True  allow=True  warn=True days_remaining=grace - days_over
    days_over > grace       required=True  allow=False warn=True days_remaining=0
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

from mfa_migration.models import AdmissionDecision, MigrationSettings

ONE_DAY = timedelta(days=1)


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Normalize a datetime to UTC, treating naive values as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _ceil_days(delta: timedelta) -> int:
    days, remainder = divmod(delta, ONE_DAY)
    return days + 1 if remainder else days


def days_until(now: datetime, deadline: datetime) -> int:
    """Whole days from ``now`` until ``deadline``, rounded up; negative once past."""
    return _ceil_days(as_utc(deadline) - as_utc(now))


def days_over(now: datetime, deadline: datetime) -> int:
    """Whole days ``now`` is past ``deadline``, rounded up; <= 0 before it."""
    return _ceil_days(as_utc(now) - as_utc(deadline))


def is_checkpoint(days_remaining: int, warning_days: Iterable[int]) -> bool:
    """True if ``days_remaining`` is exactly one of the warning checkpoints."""
    return days_remaining in set(warning_days)


def in_grace_period(now: datetime, deadline: datetime, grace_period_days: int) -> bool:
    """True once the deadline has passed but the grace period has not run out."""
    if as_utc(now) <= as_utc(deadline):
        return False
    return days_over(now, deadline) <= grace_period_days


def evaluate(
    now: datetime,
    deadline: datetime,
    grace_period_days: int,
    warning_days: Iterable[int],
) -> AdmissionDecision:
    """
    Decide a login for a user without MFA.

    Args:
        now: Time of the login attempt.
        deadline: The user's migration deadline.
        grace_period_days: Days after the deadline logins are still allowed.
        warning_days: Days-before-deadline warning checkpoints.

    Returns:
        AdmissionDecision. The last day of grace (days_over == grace_period_days)
        still allows the login; the day after blocks it.
    """
    now = as_utc(now)
    deadline = as_utc(deadline)

    if now <= deadline:
        remaining = days_until(now, deadline)
        checkpoints = list(warning_days)
        show_warning = bool(checkpoints) and remaining <= max(checkpoints)
        return AdmissionDecision(
            required=False,
            allow_login=True,
            show_warning=show_warning,
            days_remaining=remaining,
        )

    over = days_over(now, deadline)
    if over <= grace_period_days:
        return AdmissionDecision(
            required=True,
            allow_login=True,
            show_warning=True,
            days_remaining=grace_period_days - over,
        )

    return AdmissionDecision(
        required=True,
        allow_login=False,
        show_warning=True,
        days_remaining=0,
    )


def evaluate_with_settings(
    settings: MigrationSettings,
    now: datetime,
    deadline: datetime | None = None,
) -> AdmissionDecision:
    """evaluate() using a campaign's grace period and checkpoints."""
    return evaluate(
        now,
        deadline or settings.deadline,
        settings.grace_period_days,
        settings.warning_days,
    )


__all__ = [
    "ONE_DAY",
    "utc_now",
    "as_utc",
    "days_until",
    "days_over",
    "is_checkpoint",
    "in_grace_period",
    "evaluate",
    "evaluate_with_settings",
]
