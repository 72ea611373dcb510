"""
Observability utilities for mfa_migration.

Tracing, metrics and standard attribute definitions shared by all
components.

Example:
    >>> from mfa_migration.observability import create_tracer
    >>>
    >>> class MyComponent:
    ...     def __init__(self, tracer: Tracer | None = None, enable_tracing: bool = True):
    ...         self._tracer = tracer or create_tracer(__name__, enable_tracing)
    ...         self._enable_tracing = self._tracer.enabled
"""

from mfa_migration.observability.attributes import (
    ATTR_ALLOW_LOGIN,
    ATTR_BATCH_SIZE,
    ATTR_DAYS_REMAINING,
    ATTR_DEGRADED,
    ATTR_MFA_REQUIRED,
    ATTR_MIGRATION_OUTCOME,
    ATTR_NOTIFICATION_CHANNEL,
    ATTR_NOTIFICATION_TIER,
    ATTR_SOURCE_STORE,
    ATTR_STORE_ID,
    ATTR_TARGET_STORE,
    ATTR_USER_COUNT,
    ATTR_USER_ID,
)
from mfa_migration.observability.metrics import (
    METER_NAME,
    MetricSnapshot,
    MFAMigrationMetrics,
)
from mfa_migration.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)

__all__ = [
    # Tracer
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
    # Metrics
    "METER_NAME",
    "MFAMigrationMetrics",
    "MetricSnapshot",
    # Attributes
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
