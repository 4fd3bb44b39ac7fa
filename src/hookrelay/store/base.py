"""Repository contracts shared by the in-memory and relational backends.

Both implementations must behave identically: reads return ``None`` (or an empty
list) for unknown ids, duplicate notifications raise :class:`ConflictError`, and
``next_nonce`` only changes through ``increment_nonces`` or through
``create_for_event``, which consumes a nonce per row it actually inserts.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from hookrelay.events.models import Event
    from hookrelay.notifications.models import Notification, NotificationStatus
    from hookrelay.subscriptions.models import Subscription, SubscriptionStatus

SUBSCRIPTION_MUTABLE_FIELDS = frozenset({"status", "tries_left"})
NOTIFICATION_MUTABLE_FIELDS = frozenset({"status", "tries_left"})
EVENT_MUTABLE_FIELDS = frozenset({"processed"})


def check_changes(changes: dict[str, Any], allowed: frozenset[str], resource: str) -> None:
    """Reject updates to fields the contract does not allow to change.

    Raises:
        ValueError: On an unknown or immutable field (a programming error).
    """
    illegal = set(changes) - allowed
    if illegal:
        msg = f"cannot update {resource} field(s): {', '.join(sorted(illegal))}"
        raise ValueError(msg)


class SubscriptionRepo(Protocol):
    """Durable storage for subscriptions."""

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
    ) -> Subscription: ...

    async def find_all(self) -> list[Subscription]: ...

    async def find_active(self, event_type: str, event_scope: str) -> list[Subscription]:
        """Active subscriptions for *event_type* whose scope is empty or *event_scope*."""
        ...

    async def find_by_id(self, subscription_id: int) -> Subscription | None: ...

    async def update(self, subscription_id: int, **changes: Any) -> Subscription | None: ...

    async def increment_nonces(self, ids: Sequence[int]) -> dict[int, int]:
        """Bump ``next_nonce`` by one for every id and return the reserved values.

        The returned mapping holds the pre-increment nonce for each subscription that
        exists; unknown ids are skipped.
        """
        ...


class NotificationRepo(Protocol):
    """Durable storage for notifications."""

    async def create(
        self,
        *,
        subscription_id: int,
        event_id: int,
        nonce: int,
        status: NotificationStatus,
        tries_left: int,
        created_at: datetime | None = None,
    ) -> Notification: ...

    async def create_for_event(
        self,
        event_id: int,
        subscription_ids: Sequence[int],
        *,
        status: NotificationStatus,
        tries_left: int,
        created_at: datetime | None = None,
    ) -> list[Notification]:
        """Create one notification per subscription for *event_id* in a single step.

        Subscriptions that already hold a notification for the event, and unknown
        ids, are skipped. Each inserted row takes its subscription's current
        ``next_nonce``, which is then bumped; skipped subscriptions keep theirs.
        Returns the inserted notifications ordered by subscription id.
        """
        ...

    async def find_by_id(self, notification_id: int) -> Notification | None: ...

    async def update(self, notification_id: int, **changes: Any) -> Notification | None: ...

    async def find_by_event(self, event_id: int) -> list[Notification]: ...

    async def find_by_status(self, status: NotificationStatus) -> list[Notification]: ...


class EventRepo(Protocol):
    """Durable storage for recorded events."""

    async def create(
        self,
        *,
        type: str,  # noqa: A002
        scope: str,
        payload: dict[str, Any],
        processed: bool = False,
        created_at: datetime | None = None,
    ) -> Event: ...

    async def find_by_id(self, event_id: int) -> Event | None: ...

    async def update(self, event_id: int, **changes: Any) -> Event | None: ...

    async def find_unprocessed(self, *, older_than: datetime | None = None) -> list[Event]: ...
