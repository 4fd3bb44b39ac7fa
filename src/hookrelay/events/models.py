"""Event records and event types."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


class EventType(enum.StrEnum):
    """Kinds of domain events consumers can subscribe to."""

    TRANSACTION_UPDATE = "transaction.update"


@dataclass(frozen=True)
class Event:
    """A recorded domain occurrence. The payload is never modified after creation."""

    id: int
    type: str
    scope: str
    payload: dict[str, Any] = field(default_factory=dict)
    processed: bool = False
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict."""
        return {
            "id": self.id,
            "type": self.type,
            "scope": self.scope,
            "payload": self.payload,
            "processed": self.processed,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


def parse_event_type(value: str) -> EventType:
    """Coerce *value* to an :class:`EventType`.

    Raises:
        RelayError: ``ErrInvalidEventType`` for unknown types.
    """
    from hookrelay.errors.definitions import ErrInvalidEventType

    try:
        return EventType(value)
    except ValueError:
        raise ErrInvalidEventType from None
