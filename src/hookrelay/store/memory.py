"""In-memory repositories.

Every mutation runs under an ``asyncio.Lock`` so the backend honours the same
per-row atomicity the relational store gets from the database.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from hookrelay.errors.store_errors import ConflictError
from hookrelay.events.models import Event
from hookrelay.notifications.models import Notification, NotificationStatus
from hookrelay.store.base import (
    EVENT_MUTABLE_FIELDS,
    NOTIFICATION_MUTABLE_FIELDS,
    SUBSCRIPTION_MUTABLE_FIELDS,
    check_changes,
)
from hookrelay.subscriptions.models import Subscription, SubscriptionStatus

if TYPE_CHECKING:
    from collections.abc import Sequence


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class MemorySubscriptionRepo:
    """Dict-backed subscription storage."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._ids = itertools.count(1)
        self._rows: dict[int, Subscription] = {}

    async def create(
        self,
        *,
        event_type: str,
        event_scope: str,
        webhook_url: str,
        ttl: int,
        status: SubscriptionStatus,
        tries_left: int,
        legitimacy_secret: str,
        next_nonce: int = 0,
        created_at: datetime | None = None,
    ) -> Subscription:
        async with self._lock:
            subscription = Subscription(
                id=next(self._ids),
                event_type=str(event_type),
                event_scope=event_scope,
                webhook_url=webhook_url,
                ttl=ttl,
                status=SubscriptionStatus(status),
                tries_left=tries_left,
                next_nonce=next_nonce,
                legitimacy_secret=legitimacy_secret,
                created_at=created_at or _utcnow(),
            )
            self._rows[subscription.id] = subscription
            return subscription

    async def find_all(self) -> list[Subscription]:
        return [self._rows[key] for key in sorted(self._rows)]

    async def find_active(self, event_type: str, event_scope: str) -> list[Subscription]:
        return [
            s
            for _, s in sorted(self._rows.items())
            if s.status == SubscriptionStatus.ACTIVE
            and s.event_type == str(event_type)
            and s.event_scope in ("", event_scope)
        ]

    async def find_by_id(self, subscription_id: int) -> Subscription | None:
        return self._rows.get(subscription_id)

    async def update(self, subscription_id: int, **changes: Any) -> Subscription | None:
        check_changes(changes, SUBSCRIPTION_MUTABLE_FIELDS, "subscription")
        if "status" in changes:
            changes["status"] = SubscriptionStatus(changes["status"])
        async with self._lock:
            current = self._rows.get(subscription_id)
            if current is None:
                return None
            updated = replace(current, **changes)
            self._rows[subscription_id] = updated
            return updated

    async def increment_nonces(self, ids: Sequence[int]) -> dict[int, int]:
        reserved: dict[int, int] = {}
        async with self._lock:
            for subscription_id in dict.fromkeys(ids):
                current = self._rows.get(subscription_id)
                if current is None:
                    continue
                reserved[subscription_id] = current.next_nonce
                self._rows[subscription_id] = replace(current, next_nonce=current.next_nonce + 1)
        return reserved


class MemoryNotificationRepo:
    """Dict-backed notification storage with a unique (event, subscription) index.

    Nonces are claimed from *subscriptions*, the repository this one shares a
    process with.
    """

    def __init__(self, subscriptions: MemorySubscriptionRepo) -> None:
        self._subscriptions = subscriptions
        self._lock = asyncio.Lock()
        self._ids = itertools.count(1)
        self._rows: dict[int, Notification] = {}
        self._by_pair: dict[tuple[int, int], int] = {}

    async def create(
        self,
        *,
        subscription_id: int,
        event_id: int,
        nonce: int,
        status: NotificationStatus,
        tries_left: int,
        created_at: datetime | None = None,
    ) -> Notification:
        pair = (event_id, subscription_id)
        async with self._lock:
            if pair in self._by_pair:
                raise ConflictError("notification", f"{event_id}:{subscription_id}")
            return self._insert(pair, nonce, status, tries_left, created_at)

    async def create_for_event(
        self,
        event_id: int,
        subscription_ids: Sequence[int],
        *,
        status: NotificationStatus,
        tries_left: int,
        created_at: datetime | None = None,
    ) -> list[Notification]:
        async with self._lock:
            unclaimed = [
                sid for sid in dict.fromkeys(subscription_ids) if (event_id, sid) not in self._by_pair
            ]
            reserved = await self._subscriptions.increment_nonces(unclaimed)
            return [
                self._insert((event_id, sid), nonce, status, tries_left, created_at)
                for sid, nonce in sorted(reserved.items())
            ]

    def _insert(
        self,
        pair: tuple[int, int],
        nonce: int,
        status: NotificationStatus,
        tries_left: int,
        created_at: datetime | None,
    ) -> Notification:
        event_id, subscription_id = pair
        notification = Notification(
            id=next(self._ids),
            subscription_id=subscription_id,
            event_id=event_id,
            nonce=nonce,
            status=NotificationStatus(status),
            tries_left=tries_left,
            created_at=created_at or _utcnow(),
        )
        self._rows[notification.id] = notification
        self._by_pair[pair] = notification.id
        return notification

    async def find_by_id(self, notification_id: int) -> Notification | None:
        return self._rows.get(notification_id)

    async def update(self, notification_id: int, **changes: Any) -> Notification | None:
        check_changes(changes, NOTIFICATION_MUTABLE_FIELDS, "notification")
        if "status" in changes:
            changes["status"] = NotificationStatus(changes["status"])
        async with self._lock:
            current = self._rows.get(notification_id)
            if current is None:
                return None
            updated = replace(current, **changes)
            self._rows[notification_id] = updated
            return updated

    async def find_by_event(self, event_id: int) -> list[Notification]:
        return [n for _, n in sorted(self._rows.items()) if n.event_id == event_id]

    async def find_by_status(self, status: NotificationStatus) -> list[Notification]:
        return [n for _, n in sorted(self._rows.items()) if n.status == status]


class MemoryEventRepo:
    """Dict-backed event storage. Payloads are copied in so they stay immutable."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._ids = itertools.count(1)
        self._rows: dict[int, Event] = {}

    async def create(
        self,
        *,
        type: str,  # noqa: A002
        scope: str,
        payload: dict[str, Any],
        processed: bool = False,
        created_at: datetime | None = None,
    ) -> Event:
        async with self._lock:
            event = Event(
                id=next(self._ids),
                type=str(type),
                scope=scope,
                payload=copy.deepcopy(payload),
                processed=processed,
                created_at=created_at or _utcnow(),
            )
            self._rows[event.id] = event
            return event

    async def find_by_id(self, event_id: int) -> Event | None:
        return self._rows.get(event_id)

    async def update(self, event_id: int, **changes: Any) -> Event | None:
        check_changes(changes, EVENT_MUTABLE_FIELDS, "event")
        async with self._lock:
            current = self._rows.get(event_id)
            if current is None:
                return None
            updated = replace(current, **changes)
            self._rows[event_id] = updated
            return updated

    async def find_unprocessed(self, *, older_than: datetime | None = None) -> list[Event]:
        return [
            e
            for _, e in sorted(self._rows.items())
            if not e.processed
            and (older_than is None or e.created_at is None or e.created_at <= older_than)
        ]
