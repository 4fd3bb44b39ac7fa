"""SQLAlchemy ORM models for the relational store.

Rows are mapped to the frozen domain dataclasses by the SQL repositories;
nothing outside :mod:`hookrelay.store.sql` touches these classes directly.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all relay tables."""

    type_annotation_map = {  # noqa: RUF012
        dict[str, Any]: JSON,
    }


class CreatedAtMixin:
    """Creation timestamp (set in Python so SQLite and PostgreSQL agree on UTC)."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        nullable=False,
    )


class SubscriptionRecord(Base, CreatedAtMixin):
    """A webhook subscription row."""

    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    event_scope: Mapped[str] = mapped_column(Text, nullable=False, default="")
    webhook_url: Mapped[str] = mapped_column(Text, nullable=False)
    ttl: Mapped[int] = mapped_column(Integer, nullable=False, comment="Lifetime in ms")
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    tries_left: Mapped[int] = mapped_column(Integer, nullable=False)
    next_nonce: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    legitimacy_secret: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<SubscriptionRecord id={self.id} status={self.status}>"


class NotificationRecord(Base, CreatedAtMixin):
    """A notification row; at most one per (event, subscription) pair."""

    __tablename__ = "notifications"
    __table_args__ = (
        UniqueConstraint("event_id", "subscription_id", name="uq_notifications_event_subscription"),
        Index("ix_notifications_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subscription_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    event_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    nonce: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    tries_left: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        return f"<NotificationRecord id={self.id} nonce={self.nonce} status={self.status}>"


class EventRecord(Base, CreatedAtMixin):
    """A recorded domain event."""

    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    scope: Mapped[str] = mapped_column(Text, nullable=False, default="")
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)

    def __repr__(self) -> str:
        return f"<EventRecord id={self.id} type={self.type} processed={self.processed}>"


ALL_MODELS: list[type[Base]] = [SubscriptionRecord, NotificationRecord, EventRecord]
