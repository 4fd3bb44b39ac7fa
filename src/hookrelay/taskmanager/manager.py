"""Task manager lifecycle — start, stop, schedule.

The ``TaskManager`` owns a set of ``CronJob`` definitions and runs each on its own
asyncio task, sleeping ``period`` seconds between runs. Failures are logged and the
loop carries on. With a ``lock`` (the cluster client's ``try_lock``) a scheduled run
only happens on the instance that wins the per-job lock for that period.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from hookrelay.metrics.collector import RelayMetrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CronJob:
    """A recurring background job."""

    handler: Callable[[], Awaitable[None]]
    period: float  # seconds
    name: str = ""


class TaskManager:
    """Manages asyncio-based cron jobs.

    Usage::

        tm = TaskManager(metrics=relay_metrics)
        tm.register("expire_subscriptions", CronJob(handler=..., period=60))
        await tm.start()
        ...
        await tm.stop()
    """

    def __init__(
        self,
        *,
        metrics: RelayMetrics | None = None,
        lock: Callable[..., Awaitable[bool]] | None = None,
    ) -> None:
        self._lock = lock
        self._jobs: dict[str, CronJob] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._running = False
        self._metrics = metrics

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def jobs(self) -> dict[str, CronJob]:
        """Registered jobs (name → CronJob)."""
        return dict(self._jobs)

    def register(self, name: str, job: CronJob) -> None:
        """Register a cron job. If the manager is already running the job starts now."""
        resolved = CronJob(handler=job.handler, period=job.period, name=name)
        self._jobs[name] = resolved
        if self._running:
            self._tasks[name] = asyncio.create_task(self._run_loop(resolved))

    async def run_now(self, name: str) -> None:
        """Execute a registered job once, outside its schedule.

        Raises:
            KeyError: If no job is registered under *name*.
        """
        await self._execute(self._jobs[name])

    async def start(self) -> None:
        """Start all registered cron jobs."""
        if self._running:
            return
        self._running = True
        for name, job in self._jobs.items():
            self._tasks[name] = asyncio.create_task(self._run_loop(job))
        logger.info("TaskManager started with %d jobs", len(self._jobs))

    async def stop(self) -> None:
        """Cancel all running jobs and wait for them to unwind."""
        if not self._running:
            return
        self._running = False
        for task in self._tasks.values():
            task.cancel()
        results = await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        for r in results:
            if isinstance(r, Exception) and not isinstance(r, asyncio.CancelledError):
                logger.error("Task error during shutdown: %s", r)
        self._tasks.clear()
        logger.info("TaskManager stopped")

    async def _execute(self, job: CronJob) -> None:
        if self._metrics:
            with self._metrics.track_cron(job.name or "unnamed"):
                await job.handler()
        else:
            await job.handler()

    async def _run_loop(self, job: CronJob) -> None:
        """Repeatedly execute *job* every *job.period* seconds."""
        while self._running:
            try:
                await asyncio.sleep(job.period)
                if not self._running:
                    break
                if self._lock is not None and not await self._lock(
                    f"cron:{job.name}", ttl=max(int(job.period), 1)
                ):
                    logger.debug("Cron job %r skipped; another instance holds the lock", job.name)
                    continue
                await self._execute(job)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Cron job %r failed", job.name or "unnamed")
