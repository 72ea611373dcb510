"""
Standard span and metric attributes for mfa_migration.

Attribute keys shared by all components so spans and metrics can be
filtered consistently.

Example:
    >>> from mfa_migration.observability.attributes import ATTR_USER_ID
    >>>
    >>> with tracer.span(
    ...     "mfa_migration.admission.decide",
    ...     {ATTR_USER_ID: user_id},
    ... ):
    ...     pass
"""

# =============================================================================
# User / Store Attributes
# =============================================================================

ATTR_USER_ID = "mfa_migration.user.id"
"""Stable identifier of the user account."""

ATTR_STORE_ID = "mfa_migration.store.id"
"""Identifier of the identity store (user pool) involved."""

ATTR_SOURCE_STORE = "mfa_migration.store.source"
"""Store the account is migrated from."""

ATTR_TARGET_STORE = "mfa_migration.store.target"
"""Store the account is migrated to."""

# =============================================================================
# Admission Attributes
# =============================================================================

ATTR_ALLOW_LOGIN = "mfa_migration.admission.allow_login"
"""Whether the admission decision lets the login proceed (bool)."""

ATTR_MFA_REQUIRED = "mfa_migration.admission.required"
"""Whether MFA is mandatory for this login (bool)."""

ATTR_DAYS_REMAINING = "mfa_migration.admission.days_remaining"
"""Signed day count reported with the decision (integer)."""

ATTR_DEGRADED = "mfa_migration.admission.degraded"
"""True when the decision is a fail-open fallback (bool)."""

# =============================================================================
# Migration Attributes
# =============================================================================

ATTR_MIGRATION_OUTCOME = "mfa_migration.migration.outcome"
"""Outcome tag of a migration (ok, ok_with_warnings, err)."""

ATTR_BATCH_SIZE = "mfa_migration.batch.size"
"""Number of users migrated concurrently per chunk (integer)."""

ATTR_USER_COUNT = "mfa_migration.user.count"
"""Number of users in an operation (integer)."""

# =============================================================================
# Notification Attributes
# =============================================================================

ATTR_NOTIFICATION_TIER = "mfa_migration.notification.tier"
"""Tier of a notification message (info, warning, error)."""

ATTR_NOTIFICATION_CHANNEL = "mfa_migration.notification.channel"
"""Delivery channel (email, sms)."""

__all__ = [
    "ATTR_USER_ID",
    "ATTR_STORE_ID",
    "ATTR_SOURCE_STORE",
    "ATTR_TARGET_STORE",
    "ATTR_ALLOW_LOGIN",
    "ATTR_MFA_REQUIRED",
    "ATTR_DAYS_REMAINING",
    "ATTR_DEGRADED",
    "ATTR_MIGRATION_OUTCOME",
    "ATTR_BATCH_SIZE",
    "ATTR_USER_COUNT",
    "ATTR_NOTIFICATION_TIER",
    "ATTR_NOTIFICATION_CHANNEL",
]
