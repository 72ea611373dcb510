"""
Environment-sourced configuration.

MigrationEnvironment reads the campaign settings from environment variables
(or an ``.env`` file) and builds the frozen domain objects the rest of the
package works with:

    MFA_MIGRATION_DEADLINE             ISO date or datetime, naive values are UTC
    MFA_GRACE_PERIOD_DAYS              default 7
    MFA_WARNING_DAYS                   comma separated, default "30,14,7,3,1"
    MFA_ENABLED_METHODS                comma separated, default "SMS,TOTP,EMAIL"
    LEGACY_USER_POOL_ID / LEGACY_CLIENT_ID
    NEW_USER_POOL_ID / NEW_CLIENT_ID
    AWS_REGION                         default "us-east-1"
    MFA_DIRECTORY_TIMEOUT_SECONDS      default 2.0
    MFA_MIGRATION_BATCH_SIZE           default 10
    MFA_MIGRATION_BATCH_DELAY_SECONDS  default 1.0
    MFA_NOTIFICATION_EMAIL_FROM        default "no-reply@example.com"
"""

from datetime import UTC, date, datetime
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from mfa_migration.exceptions import ConfigurationError
from mfa_migration.models import (
    DEFAULT_WARNING_DAYS,
    MFAConfiguration,
    MFAMethod,
    MigrationSettings,
    PoolConfig,
)
from mfa_migration.notifications.notifier import DEFAULT_EMAIL_FROM

DEFAULT_DEADLINE = datetime(2025, 9, 1, tzinfo=UTC)


def _split(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class MigrationEnvironment(BaseSettings):
    """Campaign configuration loaded from the environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    deadline: datetime = Field(
        default=DEFAULT_DEADLINE,
        validation_alias="MFA_MIGRATION_DEADLINE",
        description="End of the optional phase",
    )
    grace_period_days: int = Field(
        default=7,
        ge=0,
        validation_alias="MFA_GRACE_PERIOD_DAYS",
        description="Days after the deadline during which login is still allowed",
    )
    warning_days: Annotated[tuple[int, ...], NoDecode] = Field(
        default=DEFAULT_WARNING_DAYS,
        validation_alias="MFA_WARNING_DAYS",
        description="Days before the deadline on which users are reminded",
    )
    enabled_methods: Annotated[frozenset[MFAMethod], NoDecode] = Field(
        default=frozenset(MFAMethod),
        validation_alias="MFA_ENABLED_METHODS",
        description="MFA factors users may enroll",
    )

    legacy_user_pool_id: str | None = Field(default=None, validation_alias="LEGACY_USER_POOL_ID")
    legacy_client_id: str = Field(default="", validation_alias="LEGACY_CLIENT_ID")
    new_user_pool_id: str | None = Field(default=None, validation_alias="NEW_USER_POOL_ID")
    new_client_id: str = Field(default="", validation_alias="NEW_CLIENT_ID")
    region: str = Field(default="us-east-1", validation_alias="AWS_REGION")

    directory_timeout_seconds: float = Field(
        default=2.0,
        gt=0,
        validation_alias="MFA_DIRECTORY_TIMEOUT_SECONDS",
        description="Upper bound for directory calls on the login path",
    )
    batch_size: int = Field(default=10, ge=1, validation_alias="MFA_MIGRATION_BATCH_SIZE")
    batch_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        validation_alias="MFA_MIGRATION_BATCH_DELAY_SECONDS",
    )
    notification_email_from: str = Field(
        default=DEFAULT_EMAIL_FROM,
        validation_alias="MFA_NOTIFICATION_EMAIL_FROM",
    )

    @field_validator("deadline", mode="before")
    @classmethod
    def parse_deadline(cls, v: Any) -> Any:
        """Accept a bare date ("2025-09-01") as midnight UTC."""
        if isinstance(v, str) and len(v.strip()) == 10:
            v = date.fromisoformat(v.strip())
        if isinstance(v, date) and not isinstance(v, datetime):
            return datetime(v.year, v.month, v.day, tzinfo=UTC)
        return v

    @field_validator("deadline")
    @classmethod
    def deadline_to_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v.astimezone(UTC)

    @field_validator("warning_days", mode="before")
    @classmethod
    def parse_warning_days(cls, v: Any) -> Any:
        if isinstance(v, str):
            return tuple(int(item) for item in _split(v))
        return v

    @field_validator("enabled_methods", mode="before")
    @classmethod
    def parse_enabled_methods(cls, v: Any) -> Any:
        if isinstance(v, str):
            return frozenset(MFAMethod(item.upper()) for item in _split(v))
        return v

    def to_settings(self) -> MigrationSettings:
        """
        Build the campaign settings.

        Raises:
            ValueError: If the values are inconsistent (e.g. duplicate warning days).
        """
        return MigrationSettings(
            deadline=self.deadline,
            warning_days=self.warning_days,
            grace_period_days=self.grace_period_days,
            enabled_methods=self.enabled_methods,
            directory_timeout_seconds=self.directory_timeout_seconds,
        )

    def legacy_pool(self) -> PoolConfig:
        """
        Descriptor of the legacy (MFA optional) store.

        Raises:
            ConfigurationError: If LEGACY_USER_POOL_ID is not set.
        """
        if not self.legacy_user_pool_id:
            raise ConfigurationError("LEGACY_USER_POOL_ID is not set")
        return PoolConfig(
            store_id=self.legacy_user_pool_id,
            client_id=self.legacy_client_id,
            region=self.region,
            mfa_configuration=MFAConfiguration.OPTIONAL,
        )

    def new_pool(self) -> PoolConfig:
        """
        Descriptor of the new (MFA required) store.

        Raises:
            ConfigurationError: If NEW_USER_POOL_ID is not set.
        """
        if not self.new_user_pool_id:
            raise ConfigurationError("NEW_USER_POOL_ID is not set")
        return PoolConfig(
            store_id=self.new_user_pool_id,
            client_id=self.new_client_id,
            region=self.region,
            mfa_configuration=MFAConfiguration.ON,
        )


__all__ = ["MigrationEnvironment", "DEFAULT_DEADLINE"]
