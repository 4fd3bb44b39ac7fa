"""RelayEngine — central engine client owning all relay components."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from functools import partial
from typing import TYPE_CHECKING, Any

from hookrelay.config.settings import DatabaseEngine
from hookrelay.errors.relay_errors import RelayError
from hookrelay.events.messages import EventMessage

if TYPE_CHECKING:
    from collections.abc import Callable

    import httpx

    from hookrelay.cluster.client import ClusterClient
    from hookrelay.config.settings import AppConfig
    from hookrelay.datastore.client import Datastore
    from hookrelay.events.log import EventLog
    from hookrelay.events.models import Event, EventType
    from hookrelay.metrics.collector import RelayMetrics
    from hookrelay.notifications.dispatcher import NotificationDispatcher
    from hookrelay.notifications.models import Notification
    from hookrelay.notifications.webhook import WebhookClient
    from hookrelay.store.client import StoreClient
    from hookrelay.subscriptions.registry import SubscriptionRegistry
    from hookrelay.taskmanager.manager import TaskManager
    from hookrelay.taskmanager.scheduler import Scheduler

logger = logging.getLogger(__name__)

_ERR_NOT_INITIALIZED = "Engine not initialized. Call initialize() first."


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class RelayEngine:
    """Owns the store, webhook client, scheduler and the pipeline services.

    Usage::

        engine = RelayEngine(config)
        await engine.initialize()
        event, notifications = await engine.record_event("transaction.update", txid, payload)
        await engine.close()
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] | None = None,
        metrics: RelayMetrics | None = None,
    ) -> None:
        """Initialize engine with configuration.

        Args:
            config: Application configuration.
            transport: Optional httpx transport for outbound webhooks (tests).
            clock: Source of "now" for expiry checks; defaults to UTC wall time.
            metrics: Shared metrics (the API app serves its registry); created if omitted.
        """
        self._config = config
        self._transport = transport
        self._clock = clock or _utcnow
        self._shared_metrics = metrics
        self._initialized = False

        self._datastore: Datastore | None = None
        self._store: StoreClient | None = None
        self._webhook_client: WebhookClient | None = None
        self._scheduler: Scheduler | None = None
        self._event_log: EventLog | None = None
        self._registry: SubscriptionRegistry | None = None
        self._dispatcher: NotificationDispatcher | None = None
        self._metrics: RelayMetrics | None = None
        self._cluster: ClusterClient | None = None
        self._task_manager: TaskManager | None = None

    async def initialize(self) -> None:
        """Open storage, start services and resume unfinished work.

        Raises:
            RuntimeError: If already initialized.
        """
        if self._initialized:
            msg = "Engine already initialized"
            raise RuntimeError(msg)

        from hookrelay.cluster.client import ClusterClient
        from hookrelay.datastore.client import Datastore
        from hookrelay.datastore.migrations import run_auto_migrate
        from hookrelay.events.log import EventLog
        from hookrelay.metrics.collector import RelayMetrics
        from hookrelay.notifications.dispatcher import NotificationDispatcher
        from hookrelay.notifications.webhook import WebhookClient
        from hookrelay.store.client import StoreClient
        from hookrelay.subscriptions.registry import SubscriptionRegistry
        from hookrelay.taskmanager.scheduler import Scheduler

        config = self._config
        self._metrics = self._shared_metrics or RelayMetrics()

        if config.db.engine != DatabaseEngine.MEMORY:
            self._datastore = Datastore(config.db)
            await self._datastore.open()
            await run_auto_migrate(self._datastore.engine)

        self._store = StoreClient(config.db, self._datastore)
        await self._store.connect()

        self._webhook_client = WebhookClient(
            max_concurrent=config.notifications.max_concurrent,
            transport=self._transport,
        )
        await self._webhook_client.start()

        self._scheduler = Scheduler()
        self._event_log = EventLog(self._store.events, clock=self._clock)
        self._registry = SubscriptionRegistry(
            self._store.subscriptions,
            self._webhook_client,
            self._scheduler,
            config.subscriptions,
            metrics=self._metrics,
            clock=self._clock,
        )
        self._dispatcher = NotificationDispatcher(
            self._store.notifications,
            self._registry,
            self._event_log,
            self._webhook_client,
            self._scheduler,
            config.notifications,
            metrics=self._metrics,
            clock=self._clock,
        )

        self._cluster = ClusterClient(
            coordinator=config.cluster.coordinator,
            redis_url=config.cluster.redis_url,
            prefix=config.cluster.prefix,
            claim_ttl=config.cluster.claim_ttl,
        )
        await self._cluster.connect()
        await self._cluster.events.subscribe(self._on_event_message)

        if config.task.enabled:
            self._build_task_manager()
            await self._task_manager.start()  # type: ignore[union-attr]

        self._initialized = True
        logger.info("RelayEngine initialized (store=%s)", config.db.engine)

        await self._registry.resume_handshakes()
        await self._dispatcher.resume_deliveries()

    def _build_task_manager(self) -> None:
        from hookrelay.taskmanager.manager import CronJob, TaskManager
        from hookrelay.taskmanager.tasks import (
            task_calculate_metrics,
            task_expire_subscriptions,
            task_replay_unprocessed_events,
        )

        task_config = self._config.task
        self._task_manager = TaskManager(metrics=self._metrics, lock=self.cluster.try_lock)
        self._task_manager.register(
            "replay_unprocessed_events",
            CronJob(
                handler=partial(task_replay_unprocessed_events, self),
                period=task_config.replay_period,
            ),
        )
        self._task_manager.register(
            "expire_subscriptions",
            CronJob(
                handler=partial(task_expire_subscriptions, self),
                period=task_config.expiry_period,
            ),
        )
        self._task_manager.register(
            "calculate_metrics",
            CronJob(
                handler=partial(task_calculate_metrics, self, self._metrics),
                period=task_config.metrics_period,
            ),
        )

    async def close(self) -> None:
        """Gracefully shut down all services and connections.

        Can be called multiple times (idempotent).
        """
        if not self._initialized:
            return

        if self._task_manager is not None:
            await self._task_manager.stop()
            self._task_manager = None

        if self._cluster is not None:
            await self._cluster.close()
            self._cluster = None

        # Pending retries are dropped; Active rows are resumed on the next start.
        if self._scheduler is not None:
            await self._scheduler.close()
            self._scheduler = None

        if self._webhook_client is not None:
            await self._webhook_client.stop()
            self._webhook_client = None

        self._dispatcher = None
        self._registry = None
        self._event_log = None

        if self._store is not None:
            await self._store.close()
            self._store = None

        if self._datastore is not None:
            await self._datastore.close()
            self._datastore = None

        self._metrics = None
        self._initialized = False
        logger.info("RelayEngine closed")

    # -- Event intake -------------------------------------------------------

    async def record_event(
        self,
        type: EventType | str,  # noqa: A002
        scope: str,
        payload: dict[str, Any] | None = None,
    ) -> tuple[Event, list[Notification]]:
        """Record an event and fan it out to matching subscriptions.

        Raises:
            RelayError: ``ErrInvalidEventType`` for unknown types.
            PayloadError: For payloads that are not JSON objects.
        """
        event = await self.event_log.record_event(type, scope, payload)
        notifications = await self.dispatcher.fan_out(event)
        return event, notifications

    async def publish_event(
        self,
        type: EventType | str,  # noqa: A002
        scope: str,
        payload: dict[str, Any] | None = None,
    ) -> str:
        """Publish an event on the cluster bus; returns the message id."""
        message = EventMessage(id=uuid.uuid4().hex, type=str(type), scope=scope, payload=payload or {})
        await self.cluster.events.publish(message)
        return message.id

    async def _on_event_message(self, message: EventMessage) -> None:
        try:
            await self.record_event(message.type, message.scope, message.payload)
        except RelayError as exc:
            logger.warning("Rejected event message %s: %s", message.id, exc)

    # -- Accessors ----------------------------------------------------------

    def now(self) -> datetime:
        return self._clock()

    @property
    def is_initialized(self) -> bool:
        """Check if the engine is initialized."""
        return self._initialized

    @property
    def config(self) -> AppConfig:
        """Get the application configuration."""
        return self._config

    @property
    def datastore(self) -> Datastore | None:
        """The relational datastore (None for the in-memory store)."""
        return self._datastore

    @property
    def store(self) -> StoreClient:
        if self._store is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._store

    @property
    def scheduler(self) -> Scheduler:
        if self._scheduler is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._scheduler

    @property
    def event_log(self) -> EventLog:
        if self._event_log is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._event_log

    @property
    def registry(self) -> SubscriptionRegistry:
        if self._registry is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._registry

    @property
    def dispatcher(self) -> NotificationDispatcher:
        if self._dispatcher is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._dispatcher

    @property
    def cluster(self) -> ClusterClient:
        if self._cluster is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._cluster

    @property
    def metrics(self) -> RelayMetrics | None:
        """Get the relay metrics (None if not initialized)."""
        return self._metrics

    @property
    def task_manager(self) -> TaskManager | None:
        """Get the task manager (None if not enabled)."""
        return self._task_manager

    async def health_check(self) -> dict[str, str]:
        """Check health status of all engine components.

        Returns:
            Dictionary with component statuses ('ok', 'error', 'not_initialized', ...).
        """
        status = {
            "engine": "ok" if self._initialized else "not_initialized",
            "store": "unknown",
            "datastore": "unknown",
            "webhook_client": "unknown",
            "cluster": "unknown",
            "task_manager": "unknown",
        }
        if not self._initialized:
            return status

        status["store"] = "ok" if self._store and self._store.is_connected else "error"
        if self._datastore is None:
            status["datastore"] = "not_used"
        else:
            status["datastore"] = "ok" if self._datastore.is_open else "error"
        status["webhook_client"] = (
            "ok" if self._webhook_client and self._webhook_client.is_running else "error"
        )
        status["cluster"] = "ok" if self._cluster and self._cluster.is_connected else "error"
        if self._task_manager is None:
            status["task_manager"] = "disabled"
        else:
            status["task_manager"] = "ok" if self._task_manager.is_running else "error"
        return status
