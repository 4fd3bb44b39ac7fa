"""Notification dispatcher — fan-out, nonce assignment and the delivery state machine.

Per notification::

    Active ──2xx──────────────▶ Acknowledged
      │  ├─error, tries left──▶ Active (retry after retry_interval)
      │  └─error, no tries────▶ Failed
      └─subscription gone/expired/not Active ─▶ Orphaned

A subscription's nonce is consumed only by a notification that actually gets
inserted, so nonces are gap-free and monotonic per subscription even when the
same event is fanned out twice at once. Delivery order is not: retries run
independently and consumers reorder by nonce.
"""

from __future__ import annotations

import contextlib
import logging
from datetime import UTC, datetime
from functools import partial
from typing import TYPE_CHECKING

import httpx

from hookrelay.notifications.models import NotificationPayload, NotificationStatus
from hookrelay.notifications.webhook import SIGNATURE_HEADER
from hookrelay.subscriptions.models import SubscriptionStatus
from hookrelay.taskmanager.scheduler import notification_key
from hookrelay.utils.crypto import sign_payload

if TYPE_CHECKING:
    from collections.abc import Callable

    from hookrelay.config.settings import NotificationsConfig
    from hookrelay.events.log import EventLog
    from hookrelay.events.models import Event
    from hookrelay.metrics.collector import RelayMetrics
    from hookrelay.notifications.models import Notification
    from hookrelay.notifications.webhook import WebhookClient
    from hookrelay.store.base import NotificationRepo
    from hookrelay.subscriptions.registry import SubscriptionRegistry
    from hookrelay.taskmanager.scheduler import Scheduler

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class NotificationDispatcher:
    """Turns recorded events into signed webhook deliveries."""

    def __init__(
        self,
        repo: NotificationRepo,
        registry: SubscriptionRegistry,
        event_log: EventLog,
        client: WebhookClient,
        scheduler: Scheduler,
        config: NotificationsConfig,
        *,
        metrics: RelayMetrics | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repo = repo
        self._registry = registry
        self._event_log = event_log
        self._client = client
        self._scheduler = scheduler
        self._config = config
        self._metrics = metrics
        self._clock = clock

    async def find_one(self, notification_id: int) -> Notification | None:
        return await self._repo.find_by_id(notification_id)

    async def find_by_event(self, event_id: int) -> list[Notification]:
        return await self._repo.find_by_event(event_id)

    # -- Fan-out ------------------------------------------------------------

    async def fan_out(self, event: Event) -> list[Notification]:
        """Create one ``Active`` notification per matching subscription and queue delivery.

        Safe to replay for the same event, concurrently or not: subscriptions that
        already hold a notification for it are skipped without consuming a nonce.
        """
        subscriptions = await self._registry.find_matching(event.type, event.scope)
        created = await self._repo.create_for_event(
            event.id,
            [s.id for s in subscriptions],
            status=NotificationStatus.ACTIVE,
            tries_left=self._config.max_tries,
            created_at=self._clock(),
        )
        skipped = len(subscriptions) - len(created)
        if skipped:
            logger.info("Event %d already notified %d subscriptions", event.id, skipped)

        await self._event_log.mark_processed(event.id)
        for notification in created:
            self.enqueue(notification.id)
        logger.info("Event %d fanned out to %d subscriptions", event.id, len(created))
        return created

    def enqueue(self, notification_id: int, delay: float = 0) -> None:
        """Schedule a delivery attempt after *delay* ms."""
        self._scheduler.add_timeout(
            notification_key(notification_id),
            partial(self.deliver, notification_id),
            delay,
        )

    async def resume_deliveries(self) -> int:
        """Re-queue every ``Active`` notification (after a restart)."""
        active = await self._repo.find_by_status(NotificationStatus.ACTIVE)
        for notification in active:
            self.enqueue(notification.id)
        if active:
            logger.info("Resumed %d pending deliveries", len(active))
        return len(active)

    # -- Delivery -----------------------------------------------------------

    async def deliver(self, notification_id: int) -> Notification | None:
        """Make one delivery attempt and apply its outcome."""
        notification = await self._repo.find_by_id(notification_id)
        if notification is None:
            logger.warning("Delivery skipped: notification %d not found", notification_id)
            return None
        if notification.is_terminal:
            return notification

        subscription = await self._registry.find_one(notification.subscription_id)
        if (
            subscription is None
            or subscription.status != SubscriptionStatus.ACTIVE
            or subscription.is_expired(self._clock())
        ):
            return await self._resolve(notification, NotificationStatus.ORPHANED)

        event = await self._event_log.find_one(notification.event_id)
        if event is None:
            logger.error(
                "Notification %d references missing event %d", notification.id, notification.event_id
            )
            return await self._resolve(notification, NotificationStatus.FAILED, tries_left=0)

        body = NotificationPayload(
            subscription_id=subscription.id,
            type=event.type,
            scope=event.scope,
            nonce=notification.nonce,
            payload=event.payload,
        )
        signature = sign_payload(body.to_dict(), subscription.legitimacy_secret)

        tracker = self._metrics.track_delivery() if self._metrics else contextlib.nullcontext()
        try:
            with tracker:
                response = await self._client.post(
                    subscription.webhook_url,
                    body.signed(signature),
                    headers={SIGNATURE_HEADER: signature},
                    timeout_ms=self._config.timeout,
                )
        except httpx.HTTPError as exc:
            self._record_attempt("error")
            logger.warning(
                "Delivery of notification %d to %s failed: %s",
                notification.id,
                subscription.webhook_url,
                exc,
            )
            return await self._retry(notification)

        if response.is_success:
            self._record_attempt("success")
            return await self._resolve(notification, NotificationStatus.ACKNOWLEDGED)

        self._record_attempt("rejected")
        logger.warning(
            "Delivery of notification %d to %s returned %d",
            notification.id,
            subscription.webhook_url,
            response.status_code,
        )
        return await self._retry(notification)

    async def _retry(self, notification: Notification) -> Notification | None:
        tries_left = notification.tries_left - 1
        if tries_left <= 0:
            return await self._resolve(notification, NotificationStatus.FAILED, tries_left=0)
        updated = await self._repo.update(notification.id, tries_left=tries_left)
        logger.warning(
            "Notification %d will be retried in %d ms (%d tries left)",
            notification.id,
            self._config.retry_interval,
            tries_left,
        )
        self.enqueue(notification.id, self._config.retry_interval)
        return updated

    async def _resolve(
        self, notification: Notification, status: NotificationStatus, **changes: int
    ) -> Notification | None:
        updated = await self._repo.update(notification.id, status=status, **changes)
        if self._metrics:
            self._metrics.notification_resolved(str(status))
        logger.info("Notification %d (nonce %d) %s", notification.id, notification.nonce, status)
        return updated

    def _record_attempt(self, result: str) -> None:
        if self._metrics:
            self._metrics.delivery_attempt(result)
