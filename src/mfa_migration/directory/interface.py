"""
Identity directory protocol.

The identity directory owns accounts, their attributes, MFA factors and
group memberships. It is the authoritative store for UserMigrationRecord
state; everything in this package reaches it through this protocol.

Error contract for implementations:
    - UserNotFoundError when the account does not exist in the store
    - TransientDirectoryError for network failures and throttling
    - DirectoryError for any other rejected request
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from mfa_migration.models import DirectoryUser, DirectoryUserPage, MFAConfiguration


@runtime_checkable
class IdentityDirectory(Protocol):
    """
    Protocol for identity directories (user pools).

    Every method is keyed by ``store_id`` so one directory client can serve
    both the legacy and the new store.
    """

    async def get_user(self, store_id: str, user_id: str) -> DirectoryUser:
        """
        Get an account with its attributes and MFA factors.

        Raises:
            UserNotFoundError: If the account does not exist.
        """
        ...

    async def create_user(
        self,
        store_id: str,
        user_id: str,
        attributes: dict[str, str],
        temporary_credential: str | None = None,
    ) -> DirectoryUser:
        """
        Create an account without sending the directory's welcome message.

        Args:
            store_id: Store to create the account in.
            user_id: Username of the new account.
            attributes: Initial attributes (empty values are not stored).
            temporary_credential: Initial credential, if any.

        Returns:
            The created account.
        """
        ...

    async def set_permanent_credential(self, store_id: str, user_id: str, credential: str) -> None:
        """Set ``credential`` as the account's permanent credential."""
        ...

    async def disable_user(self, store_id: str, user_id: str) -> None:
        """Disable an account so it can no longer sign in."""
        ...

    async def delete_user(self, store_id: str, user_id: str) -> None:
        """
        Delete an account.

        Raises:
            UserNotFoundError: If the account does not exist.
        """
        ...

    async def update_attributes(
        self,
        store_id: str,
        user_id: str,
        attributes: dict[str, str],
    ) -> None:
        """Create or overwrite the given attributes on an account."""
        ...

    async def list_users(
        self,
        store_id: str,
        page_token: str | None = None,
        limit: int = 60,
    ) -> DirectoryUserPage:
        """
        List one page of accounts.

        Args:
            store_id: Store to list.
            page_token: Token from the previous page, None for the first page.
            limit: Maximum number of accounts per page.

        Returns:
            DirectoryUserPage whose next_page_token is None on the last page.
        """
        ...

    async def list_groups_for_user(self, store_id: str, user_id: str) -> list[str]:
        """Names of the groups the account belongs to."""
        ...

    async def add_user_to_group(self, store_id: str, user_id: str, group_name: str) -> None:
        """Add an account to a group."""
        ...

    async def describe_store(self, store_id: str) -> MFAConfiguration:
        """Live MFA configuration of a store."""
        ...


__all__ = ["IdentityDirectory"]
