"""Store client: picks the in-memory or relational repository backend."""

from __future__ import annotations

from typing import TYPE_CHECKING

from hookrelay.config.settings import DatabaseEngine

if TYPE_CHECKING:
    from hookrelay.config.settings import DatabaseConfig
    from hookrelay.datastore.client import Datastore
    from hookrelay.store.base import EventRepo, NotificationRepo, SubscriptionRepo


class StoreClient:
    """Holds one repository per record type, backed by memory or SQL.

    The relational backend needs an open :class:`Datastore`; the in-memory one
    needs nothing and loses everything on close.
    """

    def __init__(self, config: DatabaseConfig, datastore: Datastore | None = None) -> None:
        self._config = config
        self._datastore = datastore
        self._subscriptions: SubscriptionRepo | None = None
        self._notifications: NotificationRepo | None = None
        self._events: EventRepo | None = None

    async def connect(self) -> None:
        """Build the repositories for the configured engine.

        Raises:
            ValueError: If the engine is unsupported.
            RuntimeError: If a SQL engine is configured without an open datastore.
        """
        from hookrelay.store.memory import MemoryEventRepo, MemoryNotificationRepo, MemorySubscriptionRepo
        from hookrelay.store.sql import SqlEventRepo, SqlNotificationRepo, SqlSubscriptionRepo

        engine = self._config.engine
        if engine == DatabaseEngine.MEMORY:
            subscriptions = MemorySubscriptionRepo()
            self._subscriptions = subscriptions
            self._notifications = MemoryNotificationRepo(subscriptions)
            self._events = MemoryEventRepo()
        elif engine in (DatabaseEngine.SQLITE, DatabaseEngine.POSTGRESQL):
            if self._datastore is None or not self._datastore.is_open:
                msg = f"Store engine {engine} requires an open datastore"
                raise RuntimeError(msg)
            self._subscriptions = SqlSubscriptionRepo(self._datastore)
            self._notifications = SqlNotificationRepo(self._datastore)
            self._events = SqlEventRepo(self._datastore)
        else:
            msg = f"Unsupported store engine: {engine}"
            raise ValueError(msg)

    async def close(self) -> None:
        """Drop the repositories (idempotent). The datastore is closed by its owner."""
        self._subscriptions = None
        self._notifications = None
        self._events = None

    @property
    def is_connected(self) -> bool:
        return self._subscriptions is not None

    @property
    def subscriptions(self) -> SubscriptionRepo:
        self._ensure_connected()
        assert self._subscriptions is not None
        return self._subscriptions

    @property
    def notifications(self) -> NotificationRepo:
        self._ensure_connected()
        assert self._notifications is not None
        return self._notifications

    @property
    def events(self) -> EventRepo:
        self._ensure_connected()
        assert self._events is not None
        return self._events

    def _ensure_connected(self) -> None:
        if not self.is_connected:
            msg = "Store is not connected. Call connect() first."
            raise RuntimeError(msg)
