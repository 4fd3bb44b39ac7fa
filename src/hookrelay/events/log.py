"""Event log — records domain events and tracks fan-out completion.

``processed`` flips to true only after every matching notification exists, so an
event still unprocessed after a crash can be fanned out again safely.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from hookrelay.errors.store_errors import PayloadError
from hookrelay.events.models import parse_event_type
from hookrelay.utils.crypto import canonical_json

if TYPE_CHECKING:
    from collections.abc import Callable

    from hookrelay.events.models import Event, EventType
    from hookrelay.store.base import EventRepo

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class EventLog:
    """Append-only log of domain events."""

    def __init__(self, repo: EventRepo, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._repo = repo
        self._clock = clock

    async def record_event(
        self,
        type: EventType | str,  # noqa: A002
        scope: str,
        payload: dict[str, Any] | None = None,
    ) -> Event:
        """Persist a new unprocessed event.

        Raises:
            RelayError: ``ErrInvalidEventType`` for an unknown *type*.
            PayloadError: If *payload* is not a JSON object.
        """
        event_type = parse_event_type(type)
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            msg = "event payload must be a JSON object"
            raise PayloadError(msg)
        canonical_json(payload)

        event = await self._repo.create(
            type=event_type,
            scope=scope or "",
            payload=payload,
            created_at=self._clock(),
        )
        logger.info("Event %d recorded (%s, scope=%r)", event.id, event.type, event.scope)
        return event

    async def mark_processed(self, event_id: int) -> Event | None:
        return await self._repo.update(event_id, processed=True)

    async def find_one(self, event_id: int) -> Event | None:
        return await self._repo.find_by_id(event_id)

    async def find_unprocessed(self, *, older_than: datetime | None = None) -> list[Event]:
        """Events whose fan-out never completed, optionally only those created before *older_than*."""
        return await self._repo.find_unprocessed(older_than=older_than)
