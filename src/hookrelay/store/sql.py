"""Relational repositories over a :class:`~hookrelay.datastore.client.Datastore`.

Works against SQLite (aiosqlite) and PostgreSQL (asyncpg). Fan-out claims the
(event, subscription) pairs, stamps nonces and bumps ``next_nonce`` in one
transaction: an ``INSERT ... SELECT ... ON CONFLICT DO NOTHING RETURNING`` whose
returned rows are the only subscriptions whose counter moves.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import DateTime, Integer, String, literal, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError

from hookrelay.datastore.models import EventRecord, NotificationRecord, SubscriptionRecord
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

    from hookrelay.datastore.client import Datastore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _to_subscription(row: SubscriptionRecord) -> Subscription:
    return Subscription(
        id=row.id,
        event_type=row.event_type,
        event_scope=row.event_scope,
        webhook_url=row.webhook_url,
        ttl=row.ttl,
        status=SubscriptionStatus(row.status),
        tries_left=row.tries_left,
        next_nonce=row.next_nonce,
        legitimacy_secret=row.legitimacy_secret,
        created_at=_aware(row.created_at),
    )


def _to_notification(row: NotificationRecord) -> Notification:
    return Notification(
        id=row.id,
        subscription_id=row.subscription_id,
        event_id=row.event_id,
        nonce=row.nonce,
        status=NotificationStatus(row.status),
        tries_left=row.tries_left,
        created_at=_aware(row.created_at),
    )


def _to_event(row: EventRecord) -> Event:
    return Event(
        id=row.id,
        type=row.type,
        scope=row.scope,
        payload=dict(row.payload or {}),
        processed=row.processed,
        created_at=_aware(row.created_at),
    )


def _column_values(changes: dict[str, Any]) -> dict[str, Any]:
    return {k: (str(v) if k == "status" else v) for k, v in changes.items()}


class SqlSubscriptionRepo:
    """Subscription storage backed by the ``subscriptions`` table."""

    def __init__(self, datastore: Datastore) -> None:
        self._ds = datastore

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
        record = SubscriptionRecord(
            event_type=str(event_type),
            event_scope=event_scope,
            webhook_url=webhook_url,
            ttl=ttl,
            status=str(status),
            tries_left=tries_left,
            next_nonce=next_nonce,
            legitimacy_secret=legitimacy_secret,
            created_at=created_at or _utcnow(),
        )
        async with self._ds.transaction() as session:
            session.add(record)
        return _to_subscription(record)

    async def find_all(self) -> list[Subscription]:
        async with self._ds.session() as session:
            result = await session.execute(select(SubscriptionRecord).order_by(SubscriptionRecord.id))
            return [_to_subscription(row) for row in result.scalars()]

    async def find_active(self, event_type: str, event_scope: str) -> list[Subscription]:
        stmt = (
            select(SubscriptionRecord)
            .where(
                SubscriptionRecord.status == str(SubscriptionStatus.ACTIVE),
                SubscriptionRecord.event_type == str(event_type),
                or_(SubscriptionRecord.event_scope == "", SubscriptionRecord.event_scope == event_scope),
            )
            .order_by(SubscriptionRecord.id)
        )
        async with self._ds.session() as session:
            result = await session.execute(stmt)
            return [_to_subscription(row) for row in result.scalars()]

    async def find_by_id(self, subscription_id: int) -> Subscription | None:
        async with self._ds.session() as session:
            row = await session.get(SubscriptionRecord, subscription_id)
            return _to_subscription(row) if row is not None else None

    async def update(self, subscription_id: int, **changes: Any) -> Subscription | None:
        check_changes(changes, SUBSCRIPTION_MUTABLE_FIELDS, "subscription")
        async with self._ds.transaction() as session:
            row = await session.get(SubscriptionRecord, subscription_id)
            if row is None:
                return None
            for key, value in _column_values(changes).items():
                setattr(row, key, value)
        return _to_subscription(row)

    async def increment_nonces(self, ids: Sequence[int]) -> dict[int, int]:
        if not ids:
            return {}
        table = SubscriptionRecord.__table__
        stmt = (
            update(table)
            .where(table.c.id.in_(list(ids)))
            .values(next_nonce=table.c.next_nonce + 1)
            .returning(table.c.id, table.c.next_nonce)
        )
        async with self._ds.transaction() as session:
            rows = (await session.execute(stmt)).all()
        return {row.id: row.next_nonce - 1 for row in rows}


class SqlNotificationRepo:
    """Notification storage backed by the ``notifications`` table."""

    def __init__(self, datastore: Datastore) -> None:
        self._ds = datastore

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
        record = NotificationRecord(
            subscription_id=subscription_id,
            event_id=event_id,
            nonce=nonce,
            status=str(status),
            tries_left=tries_left,
            created_at=created_at or _utcnow(),
        )
        try:
            async with self._ds.transaction() as session:
                session.add(record)
        except IntegrityError as exc:
            logger.debug("Duplicate notification for event %d subscription %d", event_id, subscription_id)
            raise ConflictError("notification", f"{event_id}:{subscription_id}") from exc
        return _to_notification(record)

    async def create_for_event(
        self,
        event_id: int,
        subscription_ids: Sequence[int],
        *,
        status: NotificationStatus,
        tries_left: int,
        created_at: datetime | None = None,
    ) -> list[Notification]:
        if not subscription_ids:
            return []
        ids = list(dict.fromkeys(subscription_ids))
        subs = SubscriptionRecord.__table__
        notes = NotificationRecord.__table__
        insert = postgresql.insert if self._ds.engine.dialect.name == "postgresql" else sqlite.insert

        source = select(
            subs.c.id,
            literal(event_id, Integer),
            subs.c.next_nonce,
            literal(str(status), String),
            literal(tries_left, Integer),
            literal(created_at or _utcnow(), DateTime(timezone=True)),
        ).where(subs.c.id.in_(ids))
        claim = (
            insert(notes)
            .from_select(
                ["subscription_id", "event_id", "nonce", "status", "tries_left", "created_at"],
                source,
            )
            .on_conflict_do_nothing(index_elements=["event_id", "subscription_id"])
            .returning(*notes.c)
        )

        async with self._ds.transaction() as session:
            # Row locks hold concurrent fan-outs off next_nonce until commit (PostgreSQL).
            await session.execute(select(subs.c.id).where(subs.c.id.in_(ids)).with_for_update())
            rows = (await session.execute(claim)).all()
            claimed = [row.subscription_id for row in rows]
            if claimed:
                await session.execute(
                    update(subs).where(subs.c.id.in_(claimed)).values(next_nonce=subs.c.next_nonce + 1)
                )
        return [_to_notification(row) for row in sorted(rows, key=lambda r: r.subscription_id)]

    async def find_by_id(self, notification_id: int) -> Notification | None:
        async with self._ds.session() as session:
            row = await session.get(NotificationRecord, notification_id)
            return _to_notification(row) if row is not None else None

    async def update(self, notification_id: int, **changes: Any) -> Notification | None:
        check_changes(changes, NOTIFICATION_MUTABLE_FIELDS, "notification")
        async with self._ds.transaction() as session:
            row = await session.get(NotificationRecord, notification_id)
            if row is None:
                return None
            for key, value in _column_values(changes).items():
                setattr(row, key, value)
        return _to_notification(row)

    async def find_by_event(self, event_id: int) -> list[Notification]:
        stmt = (
            select(NotificationRecord)
            .where(NotificationRecord.event_id == event_id)
            .order_by(NotificationRecord.id)
        )
        async with self._ds.session() as session:
            result = await session.execute(stmt)
            return [_to_notification(row) for row in result.scalars()]

    async def find_by_status(self, status: NotificationStatus) -> list[Notification]:
        stmt = (
            select(NotificationRecord)
            .where(NotificationRecord.status == str(status))
            .order_by(NotificationRecord.id)
        )
        async with self._ds.session() as session:
            result = await session.execute(stmt)
            return [_to_notification(row) for row in result.scalars()]


class SqlEventRepo:
    """Event storage backed by the ``events`` table."""

    def __init__(self, datastore: Datastore) -> None:
        self._ds = datastore

    async def create(
        self,
        *,
        type: str,  # noqa: A002
        scope: str,
        payload: dict[str, Any],
        processed: bool = False,
        created_at: datetime | None = None,
    ) -> Event:
        record = EventRecord(
            type=str(type),
            scope=scope,
            payload=payload,
            processed=processed,
            created_at=created_at or _utcnow(),
        )
        async with self._ds.transaction() as session:
            session.add(record)
        return _to_event(record)

    async def find_by_id(self, event_id: int) -> Event | None:
        async with self._ds.session() as session:
            row = await session.get(EventRecord, event_id)
            return _to_event(row) if row is not None else None

    async def update(self, event_id: int, **changes: Any) -> Event | None:
        check_changes(changes, EVENT_MUTABLE_FIELDS, "event")
        async with self._ds.transaction() as session:
            row = await session.get(EventRecord, event_id)
            if row is None:
                return None
            for key, value in changes.items():
                setattr(row, key, value)
        return _to_event(row)

    async def find_unprocessed(self, *, older_than: datetime | None = None) -> list[Event]:
        stmt = select(EventRecord).where(EventRecord.processed.is_(False))
        if older_than is not None:
            stmt = stmt.where(EventRecord.created_at <= older_than)
        async with self._ds.session() as session:
            result = await session.execute(stmt.order_by(EventRecord.id))
            return [_to_event(row) for row in result.scalars()]
