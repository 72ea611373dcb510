"""
Deferred, cancellable timers.

Scheduled notifications and scheduled migrations run as asyncio tasks that
sleep until their due time. Each timer is keyed by name (e.g.
``"notify:alice"``); scheduling an existing key replaces the old timer.
There is no ordering guarantee between timers with different keys.

Example:
    >>> scheduler = DeferredScheduler()
    >>> scheduler.schedule_at(
    ...     "migrate:alice",
    ...     at=run_at,
    ...     now=now,
    ...     factory=lambda: migrator.migrate_user("alice"),
    ... )
    >>> scheduler.cancel("migrate:alice")
    True
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable, Coroutine
from datetime import datetime
from typing import Any

from mfa_migration.policy import as_utc

logger = logging.getLogger(__name__)

TaskFactory = Callable[[], Coroutine[Any, Any, Any]]


class DeferredScheduler:
    """
    Keyed timers backed by asyncio tasks.

    Failures inside a timer are logged, never raised to the scheduler's caller.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[Any]] = {}

    def schedule(
        self,
        key: str,
        delay_seconds: float,
        factory: TaskFactory,
    ) -> asyncio.Task[Any]:
        """
        Run ``factory()`` after ``delay_seconds`` (immediately if <= 0).

        Args:
            key: Timer name; an existing timer with this key is cancelled.
            delay_seconds: Seconds to wait before running.
            factory: Zero-argument callable returning the coroutine to run.
                The coroutine is only created when the timer fires.

        Returns:
            The task driving the timer.
        """
        self.cancel(key)
        task = asyncio.create_task(self._run(key, max(0.0, delay_seconds), factory))
        self._tasks[key] = task
        task.add_done_callback(lambda t, k=key: self._on_task_done(k, t))
        logger.debug("Scheduled %s in %.1fs", key, delay_seconds)
        return task

    def schedule_at(
        self,
        key: str,
        at: datetime,
        now: datetime,
        factory: TaskFactory,
    ) -> asyncio.Task[Any]:
        """Run ``factory()`` at wall-clock time ``at``, given the current time ``now``."""
        delay = (as_utc(at) - as_utc(now)).total_seconds()
        return self.schedule(key, delay, factory)

    async def _run(self, key: str, delay_seconds: float, factory: TaskFactory) -> Any:
        if delay_seconds > 0:
            await asyncio.sleep(delay_seconds)
        logger.info("Running scheduled task %s", key)
        return await factory()

    def _on_task_done(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
        if not task.cancelled():
            exc = task.exception()
            if exc:
                logger.error("Scheduled task %s failed: %s", key, exc, exc_info=exc)

    def is_scheduled(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    @property
    def pending_keys(self) -> list[str]:
        return [key for key, task in self._tasks.items() if not task.done()]

    @property
    def pending_count(self) -> int:
        return len(self.pending_keys)

    def cancel(self, key: str) -> bool:
        """
        Cancel a timer.

        Returns:
            True if a pending timer was cancelled.
        """
        task = self._tasks.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug("Cancelled scheduled task %s", key)
        return True

    def cancel_all(self) -> int:
        """
        Cancel every pending timer.

        Returns:
            Number of timers cancelled.
        """
        pending = [task for task in self._tasks.values() if not task.done()]
        for task in pending:
            task.cancel()
        self._tasks.clear()
        return len(pending)

    async def await_all(self, timeout: float | None = None) -> int:
        """
        Wait for pending timers to fire and finish.

        Timers still running after ``timeout`` seconds are cancelled.

        Returns:
            Number of timers that were awaited.
        """
        pending = [task for task in self._tasks.values() if not task.done()]
        if not pending:
            return 0

        done, remaining = await asyncio.wait(pending, timeout=timeout)
        if remaining:
            logger.warning(
                "%d scheduled task(s) did not complete within timeout",
                len(remaining),
            )
            for task in remaining:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        return len(pending)

    def __repr__(self) -> str:
        return f"DeferredScheduler(pending={self.pending_count})"


__all__ = ["DeferredScheduler", "TaskFactory"]
