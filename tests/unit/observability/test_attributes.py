"""Tests for mfa_migration.observability.attributes module."""

from mfa_migration import observability
from mfa_migration.observability import attributes
from mfa_migration.observability.attributes import (
    ATTR_ALLOW_LOGIN,
    ATTR_DAYS_REMAINING,
    ATTR_DEGRADED,
    ATTR_MFA_REQUIRED,
    ATTR_SOURCE_STORE,
    ATTR_STORE_ID,
    ATTR_TARGET_STORE,
    ATTR_USER_ID,
)


class TestAttributeConstants:
    """Tests for attribute constant definitions."""

    def test_all_attributes_have_package_prefix(self) -> None:
        for name in attributes.__all__:
            assert getattr(attributes, name).startswith("mfa_migration."), name

    def test_attribute_values_are_unique(self) -> None:
        values = [getattr(attributes, name) for name in attributes.__all__]
        assert len(values) == len(set(values))

    def test_store_attributes(self) -> None:
        assert ATTR_STORE_ID == "mfa_migration.store.id"
        assert ATTR_SOURCE_STORE.startswith("mfa_migration.store.")
        assert ATTR_TARGET_STORE.startswith("mfa_migration.store.")

    def test_admission_attributes(self) -> None:
        for attr in (ATTR_ALLOW_LOGIN, ATTR_MFA_REQUIRED, ATTR_DAYS_REMAINING, ATTR_DEGRADED):
            assert attr.startswith("mfa_migration.admission.")

    def test_user_attribute(self) -> None:
        assert ATTR_USER_ID == "mfa_migration.user.id"


class TestExports:
    """Tests for re-exports from the observability package."""

    def test_every_attribute_is_reexported(self) -> None:
        for name in attributes.__all__:
            assert name in observability.__all__
            assert getattr(observability, name) == getattr(attributes, name)
