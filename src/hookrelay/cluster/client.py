"""Cluster client — the event bus plus locks for scheduled jobs."""

from __future__ import annotations

import logging
from typing import Any

from hookrelay.cluster.eventbus import EventBus, MemoryEventBus, RedisEventBus
from hookrelay.config.settings import Coordinator

logger = logging.getLogger(__name__)


class ClusterClient:
    """Owns the coordinator connection shared by the event bus and job locks.

    Usage::

        cluster = ClusterClient(coordinator=Coordinator.REDIS, redis_url=url)
        await cluster.connect()
        await cluster.events.subscribe(handler)
        if await cluster.try_lock("cron:expire_subscriptions", ttl=60):
            ...
        await cluster.close()
    """

    def __init__(
        self,
        *,
        coordinator: Coordinator | str = Coordinator.MEMORY,
        redis_url: str = "",
        prefix: str = "hookrelay_",
        claim_ttl: int = 3600,
    ) -> None:
        self._coordinator = Coordinator(coordinator)
        self._redis_url = redis_url
        self._prefix = prefix
        self._claim_ttl = claim_ttl
        self._redis: Any = None
        self._events: EventBus | None = None

    @property
    def coordinator(self) -> Coordinator:
        return self._coordinator

    @property
    def events(self) -> EventBus:
        if self._events is None:
            msg = "ClusterClient not connected"
            raise RuntimeError(msg)
        return self._events

    @property
    def is_connected(self) -> bool:
        return self._events is not None

    async def connect(self) -> None:
        if self._events is not None:
            return
        if self._coordinator == Coordinator.REDIS:
            import redis.asyncio as aioredis

            self._redis = aioredis.from_url(self._redis_url)
            self._events = RedisEventBus(self._redis, prefix=self._prefix, claim_ttl=self._claim_ttl)
            logger.info("Cluster coordinated through Redis (%s)", self._redis_url)
        else:
            self._events = MemoryEventBus(claim_ttl=self._claim_ttl)
            logger.info("Cluster running single-instance (in-memory bus)")

    async def close(self) -> None:
        if self._events is not None:
            await self._events.close()
            self._events = None
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def try_lock(self, key: str, ttl: int = 60) -> bool:
        """Take *key* for *ttl* seconds unless another instance holds it.

        Without Redis there is only one instance, so the lock is always granted.

        Raises:
            RuntimeError: If the Redis coordinator is not connected.
        """
        if self._coordinator == Coordinator.MEMORY:
            return True
        if self._redis is None:
            msg = "ClusterClient not connected"
            raise RuntimeError(msg)
        return await self._redis.set(f"{self._prefix}lock:{key}", "1", nx=True, ex=ttl) is not None
