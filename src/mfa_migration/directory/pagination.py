"""
Full-pagination helpers for directory listings.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

from mfa_migration.directory.interface import IdentityDirectory
from mfa_migration.exceptions import ErrorHandler
from mfa_migration.models import DirectoryUser

DEFAULT_PAGE_SIZE = 60


async def iter_users(
    directory: IdentityDirectory,
    store_id: str,
    *,
    error_handler: ErrorHandler | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> AsyncIterator[DirectoryUser]:
    """
    Yield every account of a store, following page tokens to the end.

    Each page request is retried on transient directory errors.

    Args:
        directory: Directory to list.
        store_id: Store to list.
        error_handler: Retry policy for page requests (a default one if None).
        page_size: Accounts per page.
    """
    handler = error_handler or ErrorHandler()
    page_token: str | None = None
    while True:
        token = page_token
        page = await handler.execute_with_retry(
            lambda: directory.list_users(store_id, token, page_size),
            operation_name="list_users",
        )
        for user in page.users:
            yield user
        if not page.next_page_token:
            return
        page_token = page.next_page_token


async def list_all_users(
    directory: IdentityDirectory,
    store_id: str,
    *,
    error_handler: ErrorHandler | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> list[DirectoryUser]:
    """Collect iter_users() into a list."""
    return [
        user
        async for user in iter_users(
            directory,
            store_id,
            error_handler=error_handler,
            page_size=page_size,
        )
    ]


__all__ = ["DEFAULT_PAGE_SIZE", "iter_users", "list_all_users"]
