"""
In-memory identity directory.

Keeps accounts, credentials and group memberships per store in process
memory. Used by tests and demos, and supports fault injection so error
paths (throttling, failed writes, slow responses) can be exercised.

Example:
    >>> directory = InMemoryIdentityDirectory()
    >>> directory.add_store("legacy", MFAConfiguration.OPTIONAL)
    >>> directory.add_user("legacy", "alice", {"email": "alice@example.com"})
    >>> user = await directory.get_user("legacy", "alice")
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from mfa_migration.exceptions import DirectoryError, UserNotFoundError
from mfa_migration.models import DirectoryUser, DirectoryUserPage, MFAConfiguration

logger = logging.getLogger(__name__)


@dataclass
class _Account:
    username: str
    attributes: dict[str, str] = field(default_factory=dict)
    mfa_methods: list[str] = field(default_factory=list)
    groups: list[str] = field(default_factory=list)
    enabled: bool = True
    credential: str | None = None
    credential_permanent: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def snapshot(self) -> DirectoryUser:
        return DirectoryUser(
            username=self.username,
            attributes=dict(self.attributes),
            mfa_methods=tuple(self.mfa_methods),
            enabled=self.enabled,
            created_at=self.created_at,
        )


@dataclass
class _Store:
    mfa_configuration: MFAConfiguration
    accounts: dict[str, _Account] = field(default_factory=dict)


@dataclass
class _Fault:
    operation: str
    error: Exception
    store_id: str | None
    user_id: str | None
    group_name: str | None
    remaining: int | None

    def matches(
        self,
        operation: str,
        store_id: str,
        user_id: str | None,
        group_name: str | None,
    ) -> bool:
        if self.operation != operation:
            return False
        if self.store_id is not None and self.store_id != store_id:
            return False
        if self.user_id is not None and self.user_id != user_id:
            return False
        if self.group_name is not None and self.group_name != group_name:
            return False
        return self.remaining is None or self.remaining > 0


class InMemoryIdentityDirectory:
    """
    In-memory implementation of IdentityDirectory.

    Attributes:
        calls: (operation, store_id, user_id) for every call, in order.
        latency: Seconds every call sleeps before doing its work.
    """

    def __init__(self, latency: float = 0.0) -> None:
        self._stores: dict[str, _Store] = {}
        self._faults: list[_Fault] = []
        self._lock = asyncio.Lock()
        self.latency = latency
        self.calls: list[tuple[str, str, str | None]] = []

    # -- seeding and inspection ------------------------------------------------

    def add_store(
        self,
        store_id: str,
        mfa_configuration: MFAConfiguration = MFAConfiguration.OPTIONAL,
    ) -> None:
        """Register an empty store."""
        self._stores[store_id] = _Store(mfa_configuration=mfa_configuration)

    def set_mfa_configuration(self, store_id: str, mfa_configuration: MFAConfiguration) -> None:
        self._store(store_id).mfa_configuration = mfa_configuration

    def add_user(
        self,
        store_id: str,
        user_id: str,
        attributes: dict[str, str] | None = None,
        *,
        mfa_methods: list[str] | None = None,
        groups: list[str] | None = None,
        enabled: bool = True,
    ) -> None:
        """Seed an account, creating the store if needed."""
        if store_id not in self._stores:
            self.add_store(store_id)
        self._stores[store_id].accounts[user_id] = _Account(
            username=user_id,
            attributes=dict(attributes or {}),
            mfa_methods=list(mfa_methods or []),
            groups=list(groups or []),
            enabled=enabled,
        )

    def set_mfa_methods(self, store_id: str, user_id: str, methods: list[str]) -> None:
        self._account(store_id, user_id).mfa_methods = list(methods)

    def has_user(self, store_id: str, user_id: str) -> bool:
        store = self._stores.get(store_id)
        return store is not None and user_id in store.accounts

    def peek(self, store_id: str, user_id: str) -> DirectoryUser:
        """Return an account without recording a call or applying faults."""
        return self._account(store_id, user_id).snapshot()

    def groups_of(self, store_id: str, user_id: str) -> list[str]:
        return list(self._account(store_id, user_id).groups)

    def credential_of(self, store_id: str, user_id: str) -> tuple[str | None, bool]:
        """(credential, permanent) of an account."""
        account = self._account(store_id, user_id)
        return account.credential, account.credential_permanent

    def fail_on(
        self,
        operation: str,
        *,
        error: Exception | None = None,
        store_id: str | None = None,
        user_id: str | None = None,
        group_name: str | None = None,
        times: int | None = None,
    ) -> None:
        """
        Make matching calls raise ``error``.

        Args:
            operation: Method name, e.g. "update_attributes".
            error: Exception to raise (DirectoryError by default).
            store_id: Only fail calls against this store.
            user_id: Only fail calls for this user.
            group_name: Only fail add_user_to_group for this group.
            times: Number of calls to fail, None for every call.
        """
        self._faults.append(
            _Fault(
                operation=operation,
                error=error or DirectoryError(f"Injected failure in {operation}"),
                store_id=store_id,
                user_id=user_id,
                group_name=group_name,
                remaining=times,
            )
        )

    def clear_faults(self) -> None:
        self._faults.clear()

    # -- internals -------------------------------------------------------------

    def _store(self, store_id: str) -> _Store:
        store = self._stores.get(store_id)
        if store is None:
            raise DirectoryError(
                f"Unknown identity store: {store_id}",
                operation="lookup_store",
                store_id=store_id,
            )
        return store

    def _account(self, store_id: str, user_id: str) -> _Account:
        account = self._store(store_id).accounts.get(user_id)
        if account is None:
            raise UserNotFoundError(user_id, store_id)
        return account

    async def _enter(
        self,
        operation: str,
        store_id: str,
        user_id: str | None = None,
        group_name: str | None = None,
    ) -> None:
        self.calls.append((operation, store_id, user_id))
        if self.latency:
            await asyncio.sleep(self.latency)
        for fault in self._faults:
            if fault.matches(operation, store_id, user_id, group_name):
                if fault.remaining is not None:
                    fault.remaining -= 1
                logger.debug(
                    "Injecting %s into %s for %s",
                    type(fault.error).__name__,
                    operation,
                    user_id,
                )
                raise fault.error

    # -- IdentityDirectory -----------------------------------------------------

    async def get_user(self, store_id: str, user_id: str) -> DirectoryUser:
        await self._enter("get_user", store_id, user_id)
        async with self._lock:
            return self._account(store_id, user_id).snapshot()

    async def create_user(
        self,
        store_id: str,
        user_id: str,
        attributes: dict[str, str],
        temporary_credential: str | None = None,
    ) -> DirectoryUser:
        await self._enter("create_user", store_id, user_id)
        async with self._lock:
            store = self._store(store_id)
            if user_id in store.accounts:
                raise DirectoryError(
                    f"User already exists: {user_id}",
                    operation="create_user",
                    user_id=user_id,
                    store_id=store_id,
                )
            account = _Account(
                username=user_id,
                attributes={name: value for name, value in attributes.items() if value},
                credential=temporary_credential,
            )
            store.accounts[user_id] = account
            return account.snapshot()

    async def set_permanent_credential(self, store_id: str, user_id: str, credential: str) -> None:
        await self._enter("set_permanent_credential", store_id, user_id)
        async with self._lock:
            account = self._account(store_id, user_id)
            account.credential = credential
            account.credential_permanent = True

    async def disable_user(self, store_id: str, user_id: str) -> None:
        await self._enter("disable_user", store_id, user_id)
        async with self._lock:
            self._account(store_id, user_id).enabled = False

    async def delete_user(self, store_id: str, user_id: str) -> None:
        await self._enter("delete_user", store_id, user_id)
        async with self._lock:
            self._account(store_id, user_id)
            del self._stores[store_id].accounts[user_id]

    async def update_attributes(
        self,
        store_id: str,
        user_id: str,
        attributes: dict[str, str],
    ) -> None:
        await self._enter("update_attributes", store_id, user_id)
        async with self._lock:
            self._account(store_id, user_id).attributes.update(attributes)

    async def list_users(
        self,
        store_id: str,
        page_token: str | None = None,
        limit: int = 60,
    ) -> DirectoryUserPage:
        await self._enter("list_users", store_id)
        async with self._lock:
            accounts = list(self._store(store_id).accounts.values())
        try:
            offset = int(page_token) if page_token else 0
        except ValueError as e:
            raise DirectoryError(
                f"Invalid page token: {page_token}",
                operation="list_users",
                store_id=store_id,
            ) from e
        page = accounts[offset : offset + limit]
        next_offset = offset + limit
        return DirectoryUserPage(
            users=[account.snapshot() for account in page],
            next_page_token=str(next_offset) if next_offset < len(accounts) else None,
        )

    async def list_groups_for_user(self, store_id: str, user_id: str) -> list[str]:
        await self._enter("list_groups_for_user", store_id, user_id)
        async with self._lock:
            return list(self._account(store_id, user_id).groups)

    async def add_user_to_group(self, store_id: str, user_id: str, group_name: str) -> None:
        await self._enter("add_user_to_group", store_id, user_id, group_name)
        async with self._lock:
            account = self._account(store_id, user_id)
            if group_name not in account.groups:
                account.groups.append(group_name)

    async def describe_store(self, store_id: str) -> MFAConfiguration:
        await self._enter("describe_store", store_id)
        return self._store(store_id).mfa_configuration


__all__ = ["InMemoryIdentityDirectory"]
