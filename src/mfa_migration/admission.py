"""
Admission engine.

Called once per login attempt (typically from a pre-authentication hook)
to decide whether the user may sign in and whether to warn them.

Decision flow:
    1. Load the user's record (cache, then directory) within the directory
       timeout. An unknown user is treated as a PENDING user without MFA.
    2. MFA enabled or status COMPLETED: allow, no warning.
    3. Otherwise apply the migration policy to the user's deadline.
    4. On a warning checkpoint, or on first login inside the grace period,
       stamp last_notified (best-effort).

The directory being unreachable never blocks a login: the engine returns
an explicit fail-open decision (``degraded=True``) and logs it.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from mfa_migration.exceptions import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    DirectoryError,
    LoginBlockedError,
    UserNotFoundError,
    log_classified,
)
from mfa_migration.models import AdmissionDecision, MigrationSettings, UserMigrationRecord
from mfa_migration.notifications.messages import message_for
from mfa_migration.observability import MFAMigrationMetrics, Tracer, create_tracer
from mfa_migration.observability.attributes import (
    ATTR_ALLOW_LOGIN,
    ATTR_DAYS_REMAINING,
    ATTR_DEGRADED,
    ATTR_MFA_REQUIRED,
    ATTR_USER_ID,
)
from mfa_migration.policy import (
    as_utc,
    days_until,
    evaluate,
    in_grace_period,
    is_checkpoint,
    utc_now,
)
from mfa_migration.record_store import UserMigrationRecordStore

if TYPE_CHECKING:
    from opentelemetry.trace import Span

logger = logging.getLogger(__name__)

NOTIFY_DEDUP_WINDOW = timedelta(hours=24)


class AdmissionEngine:
    """
    Produces an AdmissionDecision for each login attempt.

    Example:
        >>> engine = AdmissionEngine(record_store, settings)
        >>> decision = await engine.decide("alice")
        >>> if decision.show_warning:
        ...     banner = engine.warning_message_for(decision)
    """

    def __init__(
        self,
        record_store: UserMigrationRecordStore,
        settings: MigrationSettings,
        circuit_breaker: CircuitBreaker | None = None,
        metrics: MFAMigrationMetrics | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the admission engine.

        Args:
            record_store: Source of per-user migration records
            settings: Campaign settings
            circuit_breaker: Short-circuits directory reads after repeated failures
            metrics: Optional metrics recorder
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._record_store = record_store
        self._settings = settings
        self._circuit_breaker = circuit_breaker
        self._metrics = metrics

    @property
    def record_store(self) -> UserMigrationRecordStore:
        return self._record_store

    @property
    def settings(self) -> MigrationSettings:
        return self._settings

    async def decide(self, user_id: str, now: datetime | None = None) -> AdmissionDecision:
        """
        Decide a login attempt.

        Never raises for directory problems; see the module docstring.

        Args:
            user_id: User attempting to sign in
            now: Time of the attempt (defaults to the current time)
        """
        now = as_utc(now) if now else utc_now()
        with self._tracer.span(
            "mfa_migration.admission.decide",
            {ATTR_USER_ID: user_id},
        ) as span:
            try:
                async with asyncio.timeout(self._settings.directory_timeout_seconds):
                    record = await self._load_record(user_id)
            except (DirectoryError, CircuitBreakerOpenError, TimeoutError) as e:
                log_classified(
                    e,
                    "Directory unavailable while admitting user %s, failing open",
                    user_id,
                    level=logging.WARNING,
                    log=logger,
                )
                decision = AdmissionDecision.fail_open()
                self._finish(decision, span)
                return decision

            known = record is not None
            if record is None:
                record = UserMigrationRecord(user_id=user_id)

            deadline = record.effective_deadline(self._settings)
            if record.mfa_satisfied:
                decision = AdmissionDecision(
                    required=False,
                    allow_login=True,
                    show_warning=False,
                    days_remaining=days_until(now, deadline),
                )
            else:
                decision = evaluate(
                    now,
                    deadline,
                    self._settings.grace_period_days,
                    self._settings.warning_days,
                )
                if known and self._should_mark_notified(record, decision, now, deadline):
                    await self._mark_notified(user_id, now)

            if decision.show_warning:
                logger.info(
                    "MFA warning for user %s, required=%s, days remaining: %d",
                    user_id,
                    decision.required,
                    decision.days_remaining,
                )
            self._finish(decision, span)
            return decision

    async def enforce(self, user_id: str, now: datetime | None = None) -> AdmissionDecision:
        """
        Decide a login and refuse it when it is not allowed.

        Returns:
            The decision for allowed logins.

        Raises:
            LoginBlockedError: When the login must be refused. Its message is
                the fixed, user-facing BLOCKED_LOGIN_MESSAGE.
        """
        decision = await self.decide(user_id, now)
        if not decision.allow_login:
            logger.warning("MFA required for user %s, blocking login", user_id)
            raise LoginBlockedError(user_id)
        return decision

    def warning_message_for(self, decision: AdmissionDecision) -> str | None:
        """
        Client-facing warning text for a decision, None when there is nothing to show.
        """
        if not decision.show_warning:
            return None
        if decision.required:
            if not decision.allow_login:
                return message_for(0).body
            grace_left = decision.days_remaining
            return (
                "Multi-factor authentication is now required. "
                f"You have {grace_left} day{'s' if grace_left != 1 else ''} of grace left "
                "to set it up before sign-in is blocked."
            )
        return message_for(decision.days_remaining, self._settings.grace_period_days).body

    async def _load_record(self, user_id: str) -> UserMigrationRecord | None:
        if self._circuit_breaker is None:
            return await self._get_record(user_id)
        async with await self._circuit_breaker.protect("admission.get_record"):
            return await self._get_record(user_id)

    async def _get_record(self, user_id: str) -> UserMigrationRecord | None:
        try:
            return await self._record_store.get_record(user_id)
        except UserNotFoundError:
            logger.info("User %s unknown to the directory, evaluating as pending", user_id)
            return None

    def _should_mark_notified(
        self,
        record: UserMigrationRecord,
        decision: AdmissionDecision,
        now: datetime,
        deadline: datetime,
    ) -> bool:
        if not decision.show_warning:
            return False
        last = as_utc(record.last_notified) if record.last_notified else None
        if last is not None and now - last < NOTIFY_DEDUP_WINDOW:
            return False
        if now <= deadline:
            return is_checkpoint(days_until(now, deadline), self._settings.warning_days)
        if in_grace_period(now, deadline, self._settings.grace_period_days):
            # First login since the deadline passed.
            return last is None or last <= deadline
        return False

    async def _mark_notified(self, user_id: str, now: datetime) -> None:
        try:
            async with asyncio.timeout(self._settings.directory_timeout_seconds):
                await self._record_store.mark_notified(user_id, now)
        except Exception:
            logger.warning("Failed to record notification for user %s", user_id, exc_info=True)

    def _finish(self, decision: AdmissionDecision, span: Span | None) -> None:
        if span is not None:
            span.set_attributes(
                {
                    ATTR_ALLOW_LOGIN: decision.allow_login,
                    ATTR_MFA_REQUIRED: decision.required,
                    ATTR_DAYS_REMAINING: decision.days_remaining,
                    ATTR_DEGRADED: decision.degraded,
                }
            )
        if self._metrics is not None:
            self._metrics.record_admission(decision)


__all__ = ["AdmissionEngine", "NOTIFY_DEDUP_WINDOW"]
