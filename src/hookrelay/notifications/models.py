"""Notification records and the webhook wire payload."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


class NotificationStatus(enum.StrEnum):
    """Delivery states. Everything but ``ACTIVE`` is terminal."""

    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    FAILED = "failed"
    ORPHANED = "orphaned"


@dataclass(frozen=True)
class Notification:
    """One pending or resolved delivery of an event to a subscription."""

    id: int
    subscription_id: int
    event_id: int
    nonce: int
    status: NotificationStatus
    tries_left: int
    created_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status != NotificationStatus.ACTIVE

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict."""
        return {
            "id": self.id,
            "subscriptionId": self.subscription_id,
            "eventId": self.event_id,
            "nonce": self.nonce,
            "status": str(self.status),
            "triesLeft": self.tries_left,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class NotificationPayload:
    """Body POSTed to a subscriber, minus the signature."""

    subscription_id: int
    type: str
    scope: str
    nonce: int
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Wire representation (camelCase keys); this is what gets signed."""
        return {
            "subscriptionId": self.subscription_id,
            "type": str(self.type),
            "scope": self.scope,
            "nonce": self.nonce,
            "payload": self.payload,
        }

    def signed(self, signature: str) -> dict[str, Any]:
        """Wire representation including the ``signature`` field."""
        return {**self.to_dict(), "signature": signature}
