"""One-shot keyed timers for handshake and delivery retries.

Each timer fires at most once, after at least ``delay`` milliseconds, and runs its
coroutine callback on its own asyncio task. Scheduling the same key again replaces
the pending timer, so one subscription never has two handshakes queued.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


def handshake_key(subscription_id: int) -> str:
    return f"sendSubscriptionHandshake_{subscription_id}"


def notification_key(notification_id: int) -> str:
    return f"sendNotification_{notification_id}"


class Scheduler:
    """asyncio timer facility.

    Usage::

        scheduler = Scheduler()
        scheduler.add_timeout("job", callback, 5_000)
        scheduler.cancel("job")
        await scheduler.close()
    """

    def __init__(self) -> None:
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._ids = itertools.count(1)
        self._closed = False

    @property
    def pending(self) -> list[str]:
        """Keys of timers that have not fired yet."""
        return sorted(self._timers)

    @property
    def in_flight(self) -> int:
        """Number of callbacks currently running."""
        return len(self._tasks)

    def add_timeout(self, key: str, callback: Callable[[], Awaitable[None]], delay: float) -> None:
        """Run *callback* once after *delay* ms, replacing any timer under *key*."""
        if self._closed:
            logger.debug("Scheduler closed; dropping %s", key)
            return
        self.cancel(key)
        loop = asyncio.get_running_loop()
        self._timers[key] = loop.call_later(max(delay, 0) / 1000, self._fire, key, callback)

    def after(self, delay: float, callback: Callable[[], Awaitable[None]]) -> str:
        """Anonymous variant of :meth:`add_timeout`; returns the generated key."""
        key = f"timeout_{next(self._ids)}"
        self.add_timeout(key, callback, delay)
        return key

    def cancel(self, key: str) -> bool:
        """Cancel the pending timer under *key*. In-flight callbacks are not interrupted."""
        handle = self._timers.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    async def join(self, timeout: float | None = None) -> bool:
        """Wait until no timers are pending and no callbacks are running.

        Args:
            timeout: Upper bound in seconds; ``None`` waits indefinitely.

        Returns:
            True if the scheduler went idle, False if *timeout* elapsed first.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._timers or self._tasks:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                return False
            if self._tasks:
                await asyncio.wait(set(self._tasks), timeout=remaining)
            else:
                await asyncio.sleep(0.005 if remaining is None else min(0.005, remaining))
        return True

    async def close(self) -> None:
        """Cancel every pending timer and running callback (idempotent)."""
        self._closed = True
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    def _fire(self, key: str, callback: Callable[[], Awaitable[None]]) -> None:
        self._timers.pop(key, None)
        task = asyncio.create_task(self._run(key, callback), name=key)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, key: str, callback: Callable[[], Awaitable[None]]) -> None:
        try:
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Scheduled job %s failed", key)
