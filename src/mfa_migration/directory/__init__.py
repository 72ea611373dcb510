"""
Identity directory access.

- IdentityDirectory: Protocol every directory client implements
- InMemoryIdentityDirectory: In-process directory for tests and demos
- iter_users / list_all_users: Follow listing page tokens to the end
"""

from mfa_migration.directory.in_memory import InMemoryIdentityDirectory
from mfa_migration.directory.interface import IdentityDirectory
from mfa_migration.directory.pagination import DEFAULT_PAGE_SIZE, iter_users, list_all_users

__all__ = [
    "IdentityDirectory",
    "InMemoryIdentityDirectory",
    "DEFAULT_PAGE_SIZE",
    "iter_users",
    "list_all_users",
]
