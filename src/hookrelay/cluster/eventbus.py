"""Event bus — :class:`EventMessage` broadcast between relay instances.

Upstream sources publish events; every instance listening on the bus receives
them. A message carrying an ``id`` is claimed before handlers run, so exactly one
instance records it. Messages without an ``id`` are handled by every receiver.

Transports only move JSON text. Validation, claiming and handler isolation live
in :class:`EventBus` so both backends behave the same.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from hookrelay.events.messages import EventMessage

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    EventHandler = Callable[[EventMessage], Awaitable[None]]

logger = logging.getLogger(__name__)

EVENTS_CHANNEL = "relay-events"


class EventBus(ABC):
    """Typed publish/subscribe over a raw text transport."""

    def __init__(self, *, claim_ttl: int = 3600) -> None:
        self._claim_ttl = claim_ttl
        self._handlers: list[EventHandler] = []

    async def subscribe(self, handler: EventHandler) -> None:
        """Call *handler* for every message this instance claims."""
        self._handlers.append(handler)
        await self._listen()

    async def publish(self, message: EventMessage) -> None:
        await self._send(message.model_dump_json())

    async def receive(self, raw: str | bytes) -> EventMessage | None:
        """Handle one message off the wire; returns it if this instance handled it.

        Malformed messages and messages claimed elsewhere are dropped. A failing
        handler is logged and does not stop the others.
        """
        try:
            message = EventMessage.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("Dropping malformed event message: %s", exc)
            return None
        if message.id and not await self._claim(message.id, self._claim_ttl):
            logger.debug("Event message %s claimed by another receiver", message.id)
            return None
        for handler in list(self._handlers):
            try:
                await handler(message)
            except Exception:
                logger.exception("Event handler failed for message %s", message.id or "<no id>")
        return message

    async def close(self) -> None:
        self._handlers.clear()

    async def _listen(self) -> None:  # noqa: B027
        """Start reading the transport (no-op where delivery is synchronous)."""

    @abstractmethod
    async def _send(self, raw: str) -> None: ...

    @abstractmethod
    async def _claim(self, message_id: str, ttl: int) -> bool:
        """Return True for the first claim of *message_id* within *ttl* seconds."""


class MemoryEventBus(EventBus):
    """In-process bus for single-instance deployments and tests.

    Publishing hands the message straight to :meth:`receive`. Claims are kept in
    an insertion-ordered table, so a redelivered id is dropped until it ages out.
    """

    def __init__(self, *, claim_ttl: int = 3600, clock: Callable[[], float] = time.monotonic) -> None:
        super().__init__(claim_ttl=claim_ttl)
        self._clock = clock
        self._claims: OrderedDict[str, float] = OrderedDict()

    async def _send(self, raw: str) -> None:
        await self.receive(raw)

    async def _claim(self, message_id: str, ttl: int) -> bool:
        now = self._clock()
        while self._claims:
            oldest, expires_at = next(iter(self._claims.items()))
            if expires_at > now:
                break
            del self._claims[oldest]
        if message_id in self._claims:
            return False
        self._claims[message_id] = now + ttl
        return True

    async def close(self) -> None:
        await super().close()
        self._claims.clear()


class RedisEventBus(EventBus):
    """Redis pub/sub transport for multi-instance deployments.

    One listener task reads the prefixed channel. Claims are ``SET NX EX`` keys
    on the same connection, so every instance races for the same key.
    """

    def __init__(self, redis: Any, *, prefix: str = "hookrelay_", claim_ttl: int = 3600) -> None:
        super().__init__(claim_ttl=claim_ttl)
        self._redis = redis
        self._prefix = prefix
        self._pubsub: Any = None
        self._listener: asyncio.Task[None] | None = None

    @property
    def channel(self) -> str:
        return f"{self._prefix}{EVENTS_CHANNEL}"

    async def _listen(self) -> None:
        if self._listener is not None:
            return
        self._pubsub = self._redis.pubsub()
        await self._pubsub.subscribe(self.channel)
        self._listener = asyncio.create_task(self._read(), name="event-bus-listener")

    async def _read(self) -> None:
        async for item in self._pubsub.listen():
            if item["type"] == "message":
                await self.receive(item["data"])

    async def _send(self, raw: str) -> None:
        await self._redis.publish(self.channel, raw)

    async def _claim(self, message_id: str, ttl: int) -> bool:
        key = f"{self._prefix}event:{message_id}"
        return await self._redis.set(key, "1", nx=True, ex=ttl) is not None

    async def close(self) -> None:
        """Stop the listener and unsubscribe; the connection belongs to the caller."""
        await super().close()
        if self._listener is not None:
            self._listener.cancel()
            await asyncio.gather(self._listener, return_exceptions=True)
            self._listener = None
        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None
