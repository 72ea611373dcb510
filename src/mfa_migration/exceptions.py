"""
Exceptions for the MFA migration system.

Exception Hierarchy:
    MFAMigrationError (base)
    +-- UserNotFoundError
    +-- DirectoryError
    |   +-- TransientDirectoryError
    +-- PartialTransferError
    +-- FatalCreationError
    +-- ConfigurationError
    +-- LoginBlockedError
    +-- CircuitBreakerOpenError

Error Classification System:
    - ErrorSeverity: CRITICAL, ERROR, WARNING, INFO levels
    - ErrorRecoverability: RECOVERABLE, TRANSIENT, FATAL categories
    - ErrorClassification: Rich metadata for each error type
    - ErrorHandler: Automatic retry for transient errors with circuit breaker
    - classify_exception / log_classified: Classification and logging of any exception
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

BLOCKED_LOGIN_MESSAGE = (
    "Multi-factor authentication is now required for your account. "
    "Please contact your administrator or visit the MFA setup page to enable it "
    "before signing in."
)


class ErrorSeverity(Enum):
    """
    Severity level of migration errors.

    Used for alerting and logging decisions.
    """

    CRITICAL = "critical"
    """System-level failure requiring immediate attention."""

    ERROR = "error"
    """Significant failure that may require operator intervention."""

    WARNING = "warning"
    """Issue that should be monitored but may self-resolve."""

    INFO = "info"
    """Informational condition, not a failure."""

    @property
    def log_level(self) -> int:
        """Corresponding Python logging level."""
        level_map = {
            ErrorSeverity.CRITICAL: logging.CRITICAL,
            ErrorSeverity.ERROR: logging.ERROR,
            ErrorSeverity.WARNING: logging.WARNING,
            ErrorSeverity.INFO: logging.INFO,
        }
        return level_map[self]


class ErrorRecoverability(Enum):
    """
    Recoverability classification for migration errors.

    Attributes:
        RECOVERABLE: The operation can continue, or be retried after an
            operator resolves the issue (e.g. a group membership was not copied).
        TRANSIENT: Temporary error that may resolve on retry with backoff
            (e.g. directory throttling, network timeout).
        FATAL: The operation must be abandoned; for an account migration this
            means the compensating rollback runs.
    """

    RECOVERABLE = "recoverable"
    """Error can be recovered from with operator action."""

    TRANSIENT = "transient"
    """Temporary error that may resolve on retry."""

    FATAL = "fatal"
    """Unrecoverable error; the operation is abandoned."""

    @property
    def should_retry(self) -> bool:
        """True only for TRANSIENT errors."""
        return self == ErrorRecoverability.TRANSIENT


@dataclass(frozen=True)
class RetryConfig:
    """
    Configuration for automatic error retry.

    Implements exponential backoff with jitter for transient errors.

    Attributes:
        max_attempts: Maximum number of attempts (including the initial one).
        base_delay_ms: Base delay between retries in milliseconds.
        max_delay_ms: Maximum delay between retries in milliseconds.
        exponential_base: Base for exponential backoff (default 2.0).
        jitter_factor: Random jitter factor (0.0 to 1.0, default 0.1).

    Example:
        >>> config = RetryConfig(max_attempts=5, base_delay_ms=100)
        >>> config.get_delay_ms(attempt=3)  # ~800ms plus jitter
    """

    max_attempts: int = 3
    base_delay_ms: float = 100.0
    max_delay_ms: float = 30000.0
    exponential_base: float = 2.0
    jitter_factor: float = 0.1

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay_ms < 0:
            raise ValueError(f"base_delay_ms must be >= 0, got {self.base_delay_ms}")
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError(
                f"max_delay_ms ({self.max_delay_ms}) must be >= "
                f"base_delay_ms ({self.base_delay_ms})"
            )
        if self.exponential_base < 1.0:
            raise ValueError(f"exponential_base must be >= 1.0, got {self.exponential_base}")
        if not 0.0 <= self.jitter_factor <= 1.0:
            raise ValueError(f"jitter_factor must be between 0.0 and 1.0, got {self.jitter_factor}")

    def get_delay_ms(self, attempt: int) -> float:
        """
        Calculate delay for a specific retry attempt.

        Args:
            attempt: Current attempt number (0-indexed).

        Returns:
            Delay in milliseconds before the next retry.
        """
        delay = self.base_delay_ms * (self.exponential_base**attempt)
        if self.jitter_factor > 0:
            jitter = delay * self.jitter_factor * random.random()  # nosec B311 - retry jitter
            delay = delay + jitter
        return min(delay, self.max_delay_ms)


DIRECTORY_RETRY_CONFIG = RetryConfig(
    max_attempts=5,
    base_delay_ms=100.0,
    max_delay_ms=10000.0,
    exponential_base=2.0,
    jitter_factor=0.1,
)


@dataclass(frozen=True)
class ErrorClassification:
    """
    Rich metadata for error classification.

    Attributes:
        severity: The severity level of the error.
        recoverability: How the error can be recovered from.
        error_code: Unique error code for programmatic handling.
        category: Error category for grouping related errors.
        suggested_action: Human-readable guidance for operators.
        retry_config: Backoff used when the error is retried (transient errors only).
    """

    severity: ErrorSeverity
    recoverability: ErrorRecoverability
    error_code: str
    category: str
    suggested_action: str
    retry_config: RetryConfig | None = None


class MFAMigrationError(Exception):
    """
    Base exception for all MFA migration errors.

    Attributes:
        message: Human-readable error description.
        user_id: The user the error concerns, if applicable.
        store_id: The identity store involved, if applicable.
        suggested_action: Suggested action for recovery.
    """

    _default_classification: ErrorClassification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="MFA_MIGRATION_ERROR",
        category="general",
        suggested_action="Review migration logs and contact support if issue persists",
    )

    def __init__(
        self,
        message: str,
        *,
        user_id: str | None = None,
        store_id: str | None = None,
        suggested_action: str | None = None,
    ) -> None:
        self.message = message
        self.user_id = user_id
        self.store_id = store_id
        self.suggested_action = suggested_action
        super().__init__(message)

    def __str__(self) -> str:
        """Return formatted error string with context."""
        parts = [self.message]
        if self.user_id:
            parts.append(f"user_id={self.user_id}")
        if self.store_id:
            parts.append(f"store_id={self.store_id}")
        return " ".join(parts)

    @property
    def classification(self) -> ErrorClassification:
        """Classification metadata; subclasses override _default_classification."""
        return self._default_classification

    @property
    def severity(self) -> ErrorSeverity:
        return self.classification.severity

    @property
    def recoverability_type(self) -> ErrorRecoverability:
        return self.classification.recoverability

    @property
    def error_code(self) -> str:
        """Unique error code (e.g. "USER_NOT_FOUND")."""
        return self.classification.error_code

    @property
    def retry_config(self) -> RetryConfig | None:
        return self.classification.retry_config


class UserNotFoundError(MFAMigrationError):
    """
    Raised when a user does not exist in an identity store.

    Terminal: retrying will not make the user appear.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.FATAL,
        error_code="USER_NOT_FOUND",
        category="lookup",
        suggested_action="Verify the user ID and the identity store it was looked up in",
    )

    def __init__(self, user_id: str, store_id: str | None = None) -> None:
        super().__init__(
            message=f"User not found: {user_id}",
            user_id=user_id,
            store_id=store_id,
        )


class DirectoryError(MFAMigrationError):
    """
    Raised when an identity directory call fails.

    Attributes:
        operation: The directory operation that failed.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="DIRECTORY_ERROR",
        category="directory",
        suggested_action="Check the identity directory request and its permissions",
    )

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        user_id: str | None = None,
        store_id: str | None = None,
    ) -> None:
        self.operation = operation
        super().__init__(message, user_id=user_id, store_id=store_id)


class TransientDirectoryError(DirectoryError):
    """
    Raised for network failures or throttling by the identity directory.

    Retryable by the caller; the admission engine fails open on it.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="DIRECTORY_UNAVAILABLE",
        category="connectivity",
        suggested_action="Check connectivity to the identity directory and its rate limits",
        retry_config=DIRECTORY_RETRY_CONFIG,
    )


class PartialTransferError(MFAMigrationError):
    """
    Raised when auxiliary state could not be copied to the target account.

    The account itself is usable, so the migration still commits and the
    failure is reported as a warning.

    Attributes:
        item: The group name or attribute that failed to copy.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="PARTIAL_TRANSFER",
        category="migration",
        suggested_action="Copy the missing group membership or attribute manually",
    )

    def __init__(self, message: str, *, user_id: str, item: str) -> None:
        self.item = item
        super().__init__(message, user_id=user_id)


class FatalCreationError(MFAMigrationError):
    """
    Raised when the target account cannot be created or fully populated.

    Triggers deletion of the partially created target account.

    Attributes:
        step: The migration step that failed.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="FATAL_CREATION",
        category="migration",
        suggested_action="Fix the cause and retry; the source account was left untouched",
    )

    def __init__(
        self,
        message: str,
        *,
        user_id: str,
        step: str,
        store_id: str | None = None,
    ) -> None:
        self.step = step
        super().__init__(message, user_id=user_id, store_id=store_id)


class ConfigurationError(MFAMigrationError):
    """
    Raised when store MFA settings do not match the campaign phase.

    Surfaced by readiness validation, never on the login path.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="CONFIGURATION_ERROR",
        category="configuration",
        suggested_action="Align the identity store MFA configuration with the migration plan",
    )


class NotificationDeliveryError(MFAMigrationError):
    """
    Raised by a NotificationChannel when a message could not be delivered.

    Attributes:
        channel: "email" or "sms".
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="NOTIFICATION_FAILED",
        category="notification",
        suggested_action="Check the notification channel and retry on the next run",
    )

    def __init__(self, message: str, *, channel: str, user_id: str | None = None) -> None:
        self.channel = channel
        super().__init__(message, user_id=user_id)


class LoginBlockedError(MFAMigrationError):
    """
    Raised by AdmissionEngine.enforce when a login must be refused.

    ``str()`` of this error is always BLOCKED_LOGIN_MESSAGE so it can be shown
    to end users without leaking identifiers; the user id stays available on
    the attribute for server-side logging.

    Attributes:
        days_over: Days past the user's deadline when the login was refused.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.INFO,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="MFA_REQUIRED",
        category="admission",
        suggested_action="The user must enable MFA before signing in",
    )

    def __init__(self, user_id: str, days_over: int | None = None) -> None:
        self.days_over = days_over
        super().__init__(BLOCKED_LOGIN_MESSAGE, user_id=user_id)

    def __str__(self) -> str:
        return self.message


class CircuitState(Enum):
    """Circuit breaker state."""

    CLOSED = "closed"
    """Circuit is closed, operations proceed normally."""

    OPEN = "open"
    """Circuit is open, operations are rejected immediately."""

    HALF_OPEN = "half_open"
    """Circuit is testing if operations can succeed again."""


@dataclass
class CircuitBreakerConfig:
    """
    Configuration for circuit breaker behavior.

    Attributes:
        failure_threshold: Number of failures before opening circuit.
        success_threshold: Number of successes in half-open state to close.
        timeout_seconds: Seconds before trying half-open state.
        excluded_exceptions: Exception types that don't trip the circuit.
    """

    failure_threshold: int = 5
    success_threshold: int = 2
    timeout_seconds: float = 30.0
    excluded_exceptions: tuple[type[Exception], ...] = ()


class CircuitBreakerOpenError(MFAMigrationError):
    """
    Raised when an operation is rejected due to an open circuit breaker.

    Attributes:
        operation_name: Name of the operation that was rejected.
        time_until_retry: Seconds until the circuit will try again.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="CIRCUIT_BREAKER_OPEN",
        category="circuit_breaker",
        suggested_action=(
            "Circuit breaker is open due to repeated directory failures. "
            "Investigate the identity directory if this persists."
        ),
    )

    def __init__(self, operation_name: str, time_until_retry: float) -> None:
        self.operation_name = operation_name
        self.time_until_retry = time_until_retry
        super().__init__(
            f"Circuit breaker open for '{operation_name}'. Retry after {time_until_retry:.1f}s",
            suggested_action=f"Wait {time_until_retry:.0f}s before retrying",
        )


class CircuitBreaker:
    """
    Circuit breaker for identity directory calls.

    Usage:
        >>> cb = CircuitBreaker(config=CircuitBreakerConfig(failure_threshold=5))
        >>> async with await cb.protect("get_user"):
        ...     await directory.get_user(store_id, user_id)
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        name: str = "default",
    ) -> None:
        self.config = config or CircuitBreakerConfig()
        self.name = name
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: float | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def _check_state(self) -> None:
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            elapsed = time.monotonic() - self._last_failure_time
            if elapsed >= self.config.timeout_seconds:
                logger.info(
                    "Circuit breaker '%s' transitioning to half-open after %.1fs",
                    self.name,
                    elapsed,
                )
                self._state = CircuitState.HALF_OPEN
                self._success_count = 0

    async def _record_success(self) -> None:
        async with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.config.success_threshold:
                    logger.info(
                        "Circuit breaker '%s' closing after %d successes",
                        self.name,
                        self._success_count,
                    )
                    self._state = CircuitState.CLOSED
                    self._failure_count = 0
            elif self._state == CircuitState.CLOSED:
                self._failure_count = 0

    async def _record_failure(self, exc: BaseException) -> None:
        if isinstance(exc, self.config.excluded_exceptions):
            return

        async with self._lock:
            self._failure_count += 1
            self._last_failure_time = time.monotonic()

            if self._state == CircuitState.HALF_OPEN:
                logger.warning(
                    "Circuit breaker '%s' opening from half-open after failure",
                    self.name,
                )
                self._state = CircuitState.OPEN
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.config.failure_threshold
            ):
                logger.warning(
                    "Circuit breaker '%s' opening after %d failures",
                    self.name,
                    self._failure_count,
                )
                self._state = CircuitState.OPEN

    def get_time_until_retry(self) -> float:
        """Seconds until the circuit will try half-open."""
        if self._state != CircuitState.OPEN or self._last_failure_time is None:
            return 0.0
        elapsed = time.monotonic() - self._last_failure_time
        return max(0.0, self.config.timeout_seconds - elapsed)

    async def protect(self, operation_name: str) -> CircuitBreakerContext:
        """
        Create a context manager for protecting an operation.

        Args:
            operation_name: Name of the operation for logging.

        Returns:
            Context manager that records the operation outcome.

        Raises:
            CircuitBreakerOpenError: If the circuit is open.
        """
        self._check_state()

        if self._state == CircuitState.OPEN:
            raise CircuitBreakerOpenError(
                operation_name=operation_name,
                time_until_retry=self.get_time_until_retry(),
            )

        return CircuitBreakerContext(circuit_breaker=self, operation_name=operation_name)

    def reset(self) -> None:
        """Reset the circuit breaker to closed state."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time = None


class CircuitBreakerContext:
    """Context manager for circuit breaker protected operations."""

    def __init__(self, circuit_breaker: CircuitBreaker, operation_name: str) -> None:
        self._cb = circuit_breaker
        self._operation_name = operation_name

    async def __aenter__(self) -> CircuitBreakerContext:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        if exc_val is None:
            await self._cb._record_success()
        elif isinstance(exc_val, Exception | asyncio.CancelledError):
            # Cancellation here means the directory call hit its timeout.
            await self._cb._record_failure(exc_val)
        return False


class ErrorHandler:
    """
    Error handler with automatic retry for transient errors.

    Usage:
        >>> handler = ErrorHandler()
        >>> page = await handler.execute_with_retry(
        ...     lambda: directory.list_users(store_id, token, 60),
        ...     operation_name="list_users",
        ... )

    Attributes:
        circuit_breaker: Optional breaker every attempt goes through.
        retry_config: Backoff overriding the one carried by the error.
    """

    def __init__(
        self,
        circuit_breaker: CircuitBreaker | None = None,
        retry_config: RetryConfig | None = None,
    ) -> None:
        self.circuit_breaker = circuit_breaker
        self.retry_config = retry_config

    async def execute_with_retry(
        self,
        operation: Callable[[], Coroutine[Any, Any, T]],
        operation_name: str,
        *,
        retry_config: RetryConfig | None = None,
        on_retry: Callable[[int, Exception, float], None] | None = None,
    ) -> T:
        """
        Execute an operation with automatic retry for transient errors.

        Args:
            operation: Async callable to execute.
            operation_name: Name for logging.
            retry_config: Override retry configuration.
            on_retry: Callback invoked on each retry (attempt, exception, delay_ms).

        Returns:
            The result of the operation.

        Raises:
            MFAMigrationError: If all retries are exhausted or the error is not transient.
            CircuitBreakerOpenError: If the circuit breaker is open.
        """
        override = retry_config or self.retry_config
        attempt = 0

        while True:
            try:
                if self.circuit_breaker:
                    async with await self.circuit_breaker.protect(operation_name):
                        result = await operation()
                else:
                    result = await operation()

                if attempt > 0:
                    logger.info(
                        "Operation '%s' succeeded after %d retries",
                        operation_name,
                        attempt,
                    )
                return result

            except MFAMigrationError as e:
                self._handle_error(e, operation_name)

                if not e.recoverability_type.should_retry:
                    raise

                config = override or e.retry_config or DIRECTORY_RETRY_CONFIG
                if attempt + 1 >= config.max_attempts:
                    logger.error(
                        "Exhausted %d attempts for '%s': %s",
                        config.max_attempts,
                        operation_name,
                        e.message,
                    )
                    raise

                delay_ms = config.get_delay_ms(attempt)
                logger.warning(
                    "Retryable error in '%s' (attempt %d/%d): %s. Retrying in %.1fs",
                    operation_name,
                    attempt + 1,
                    config.max_attempts,
                    e.message,
                    delay_ms / 1000.0,
                )
                if on_retry:
                    on_retry(attempt, e, delay_ms)

                await asyncio.sleep(delay_ms / 1000.0)
                attempt += 1

    def _handle_error(self, error: MFAMigrationError, operation_name: str) -> None:
        log_classified(error, "Error in '%s'", operation_name)


def classify_exception(exc: BaseException) -> ErrorClassification:
    """
    Classify any exception and return its error classification.

    MFAMigrationError subclasses return their own classification; timeouts are
    treated as transient directory failures; anything else gets a generic one.
    """
    if isinstance(exc, MFAMigrationError):
        return exc.classification

    if isinstance(exc, TimeoutError):
        return TransientDirectoryError._default_classification

    return ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="UNKNOWN_ERROR",
        category="unknown",
        suggested_action="An unexpected error occurred. Review logs and contact support.",
    )


def log_classified(
    exc: BaseException,
    message: str,
    *args: Any,
    level: int | None = None,
    log: logging.Logger | None = None,
) -> ErrorClassification:
    """
    Log an exception together with its error code and category.

    The record is emitted at the level of the classification severity unless
    ``level`` is given, on ``log`` or this module's logger.

    Returns:
        The classification used.
    """
    classification = classify_exception(exc)
    (log or logger).log(
        classification.severity.log_level if level is None else level,
        message + ": %s [code=%s, category=%s, recoverability=%s]",
        *args,
        str(exc) or type(exc).__name__,
        classification.error_code,
        classification.category,
        classification.recoverability.value,
    )
    return classification


__all__ = [
    "BLOCKED_LOGIN_MESSAGE",
    "ErrorSeverity",
    "ErrorRecoverability",
    "ErrorClassification",
    "RetryConfig",
    "DIRECTORY_RETRY_CONFIG",
    "MFAMigrationError",
    "UserNotFoundError",
    "DirectoryError",
    "TransientDirectoryError",
    "PartialTransferError",
    "FatalCreationError",
    "ConfigurationError",
    "NotificationDeliveryError",
    "LoginBlockedError",
    "CircuitState",
    "CircuitBreakerConfig",
    "CircuitBreakerOpenError",
    "CircuitBreaker",
    "CircuitBreakerContext",
    "ErrorHandler",
    "classify_exception",
    "log_classified",
]
