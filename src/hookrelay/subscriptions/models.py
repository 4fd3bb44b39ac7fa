"""Subscription records."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any


class SubscriptionStatus(enum.StrEnum):
    """Lifecycle states of a subscription. ``REJECTED`` and ``DONE`` are terminal."""

    INACTIVE = "inactive"
    ACTIVE = "active"
    REJECTED = "rejected"
    DONE = "done"


TERMINAL_SUBSCRIPTION_STATUSES = frozenset({SubscriptionStatus.REJECTED, SubscriptionStatus.DONE})


@dataclass(frozen=True)
class Subscription:
    """A consumer's request to receive events of one type (optionally one scope).

    ``legitimacy_secret`` is shared with the consumer once, at creation time, and
    keys the HMAC attached to every notification sent to ``webhook_url``.
    """

    id: int
    event_type: str
    event_scope: str
    webhook_url: str
    ttl: int  # ms
    status: SubscriptionStatus
    tries_left: int
    next_nonce: int
    legitimacy_secret: str
    created_at: datetime

    @property
    def expires_at(self) -> datetime:
        return self.created_at + timedelta(milliseconds=self.ttl)

    def is_expired(self, now: datetime | None = None) -> bool:
        """True once ``created_at + ttl <= now``."""
        if now is None:
            now = datetime.now(tz=UTC)
        return self.expires_at <= now

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_SUBSCRIPTION_STATUSES

    def to_dict(self, *, include_secret: bool = False) -> dict[str, Any]:
        """Serialize to a plain dict. The secret is omitted unless asked for."""
        data: dict[str, Any] = {
            "id": self.id,
            "eventType": self.event_type,
            "eventScope": self.event_scope,
            "webhookUrl": self.webhook_url,
            "ttl": self.ttl,
            "status": str(self.status),
            "triesLeft": self.tries_left,
            "nextNonce": self.next_nonce,
            "createdAt": self.created_at.isoformat(),
        }
        if include_secret:
            data["legitimacySecret"] = self.legitimacy_secret
        return data
