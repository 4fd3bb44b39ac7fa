"""Subscription registry — lifecycle and handshake state machine.

``Inactive`` → handshake → ``Active`` | ``Rejected``; ``Active`` → ``Done`` on expiry
or explicit termination. Handshakes run on the scheduler, so ``create`` never waits
on the consumer.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from functools import partial
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from hookrelay.errors.definitions import ErrInvalidWebhookUrl
from hookrelay.errors.store_errors import PayloadError
from hookrelay.events.models import parse_event_type
from hookrelay.subscriptions.handshake import perform_handshake
from hookrelay.subscriptions.models import SubscriptionStatus
from hookrelay.taskmanager.scheduler import handshake_key
from hookrelay.utils.crypto import generate_base64_secret

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from hookrelay.config.settings import SubscriptionsConfig
    from hookrelay.events.models import EventType
    from hookrelay.metrics.collector import RelayMetrics
    from hookrelay.notifications.webhook import WebhookClient
    from hookrelay.store.base import SubscriptionRepo
    from hookrelay.subscriptions.models import Subscription
    from hookrelay.taskmanager.scheduler import Scheduler

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def _validate_webhook_url(url: str) -> str:
    parsed = urlparse(url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ErrInvalidWebhookUrl
    return url


class SubscriptionRegistry:
    """Owns subscription records and drives their handshakes."""

    def __init__(
        self,
        repo: SubscriptionRepo,
        client: WebhookClient,
        scheduler: Scheduler,
        config: SubscriptionsConfig,
        *,
        metrics: RelayMetrics | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repo = repo
        self._client = client
        self._scheduler = scheduler
        self._config = config
        self._metrics = metrics
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    async def create(
        self,
        event_type: EventType | str,
        event_scope: str,
        webhook_url: str,
        ttl: int | None = None,
        *,
        legitimacy_secret: str | None = None,
    ) -> Subscription:
        """Persist an ``Inactive`` subscription and queue its first handshake.

        Args:
            ttl: Lifetime in ms; defaults to the configured TTL.
            legitimacy_secret: Fixed secret (tests); a random one is generated otherwise.

        Raises:
            RelayError: ``ErrInvalidEventType`` / ``ErrInvalidWebhookUrl``.
            PayloadError: On a negative *ttl*.
        """
        parsed_type = parse_event_type(event_type)
        _validate_webhook_url(webhook_url)
        if ttl is None:
            ttl = self._config.ttl
        if ttl < 0:
            msg = "ttl must be non-negative"
            raise PayloadError(msg)

        subscription = await self._repo.create(
            event_type=parsed_type,
            event_scope=event_scope or "",
            webhook_url=webhook_url,
            ttl=ttl,
            status=SubscriptionStatus.INACTIVE,
            tries_left=self._config.max_handshake_tries,
            legitimacy_secret=legitimacy_secret or generate_base64_secret(),
            next_nonce=0,
            created_at=self._clock(),
        )
        logger.info(
            "Subscription %d created for %s (scope=%r) -> %s",
            subscription.id,
            subscription.event_type,
            subscription.event_scope,
            subscription.webhook_url,
        )
        self._schedule_handshake(subscription.id, 0)
        return subscription

    # -- Handshake ----------------------------------------------------------

    def _schedule_handshake(self, subscription_id: int, delay: float) -> None:
        self._scheduler.add_timeout(
            handshake_key(subscription_id),
            partial(self.send_handshake, subscription_id),
            delay,
        )

    async def send_handshake(self, subscription_id: int) -> Subscription | None:
        """Run one handshake attempt and apply its outcome."""
        subscription = await self._repo.find_by_id(subscription_id)
        if subscription is None:
            logger.warning("Handshake skipped: subscription %d not found", subscription_id)
            return None
        if subscription.status != SubscriptionStatus.INACTIVE:
            return subscription
        if subscription.is_expired(self._clock()):
            logger.info("Subscription %d expired before its handshake completed", subscription_id)
            return await self._repo.update(subscription_id, status=SubscriptionStatus.DONE)

        confirmed = await perform_handshake(
            self._client,
            subscription,
            mode=self._config.handshake_proof,
            timeout_ms=self._config.handshake_timeout,
        )
        if self._metrics:
            self._metrics.handshake_attempt("confirmed" if confirmed else "failed")

        # Terminated while the request was in flight.
        current = await self._repo.find_by_id(subscription_id)
        if current is None or current.status != SubscriptionStatus.INACTIVE:
            return current

        if confirmed:
            logger.info("Subscription %d active", subscription_id)
            return await self._repo.update(subscription_id, status=SubscriptionStatus.ACTIVE)

        tries_left = current.tries_left - 1
        if tries_left <= 0:
            logger.info(
                "Subscription %d rejected after %d handshake attempts",
                subscription_id,
                self._config.max_handshake_tries,
            )
            return await self._repo.update(
                subscription_id, status=SubscriptionStatus.REJECTED, tries_left=0
            )

        logger.warning(
            "Handshake for subscription %d failed, %d tries left, retrying in %d ms",
            subscription_id,
            tries_left,
            self._config.handshake_retry_interval,
        )
        updated = await self._repo.update(subscription_id, tries_left=tries_left)
        self._schedule_handshake(subscription_id, self._config.handshake_retry_interval)
        return updated

    async def resume_handshakes(self) -> int:
        """Re-queue handshakes for ``Inactive`` subscriptions with tries left (after a restart)."""
        count = 0
        for subscription in await self._repo.find_all():
            if subscription.status == SubscriptionStatus.INACTIVE and subscription.tries_left > 0:
                self._schedule_handshake(subscription.id, 0)
                count += 1
        if count:
            logger.info("Resumed %d pending handshakes", count)
        return count

    # -- Queries ------------------------------------------------------------

    async def find_one(self, subscription_id: int) -> Subscription | None:
        return await self._repo.find_by_id(subscription_id)

    async def find_all(
        self,
        *,
        event_type: str | None = None,
        event_scope: str | None = None,
        status: SubscriptionStatus | str | None = None,
        exclude_expired: bool = False,
    ) -> list[Subscription]:
        now = self._clock()
        return [
            s
            for s in await self._repo.find_all()
            if (event_type is None or s.event_type == event_type)
            and (event_scope is None or s.event_scope == event_scope)
            and (status is None or s.status == status)
            and not (exclude_expired and s.is_expired(now))
        ]

    async def find_matching(self, event_type: str, event_scope: str) -> list[Subscription]:
        """Active, unexpired subscriptions for the event.

        An empty subscription scope matches every event scope. Expired subscriptions
        encountered here are moved to ``Done``.
        """
        now = self._clock()
        matching: list[Subscription] = []
        expired: list[int] = []
        for subscription in await self._repo.find_active(str(event_type), event_scope):
            if subscription.is_expired(now):
                expired.append(subscription.id)
                continue
            matching.append(subscription)
        if expired:
            await self.batch_mark_done(expired)
        return matching

    async def increment_nonces(self, subscription_ids: Sequence[int]) -> dict[int, int]:
        """Reserve one nonce per subscription; returns ``{id: reserved_nonce}``."""
        return await self._repo.increment_nonces(subscription_ids)

    # -- Transitions --------------------------------------------------------

    async def terminate(self, subscription_id: int) -> Subscription | None:
        """Move a subscription to ``Done`` and drop any queued handshake."""
        subscription = await self._repo.find_by_id(subscription_id)
        if subscription is None:
            return None
        self._scheduler.cancel(handshake_key(subscription_id))
        if subscription.is_terminal:
            return subscription
        logger.info("Subscription %d terminated", subscription_id)
        return await self._repo.update(subscription_id, status=SubscriptionStatus.DONE)

    async def batch_mark_done(self, subscription_ids: Iterable[int]) -> None:
        for subscription_id in subscription_ids:
            self._scheduler.cancel(handshake_key(subscription_id))
            await self._repo.update(subscription_id, status=SubscriptionStatus.DONE)
            logger.info("Subscription %d expired", subscription_id)

    async def expire_stale(self) -> int:
        """Move every expired ``Inactive``/``Active`` subscription to ``Done``."""
        now = self._clock()
        stale = [
            s.id
            for s in await self._repo.find_all()
            if not s.is_terminal and s.is_expired(now)
        ]
        await self.batch_mark_done(stale)
        return len(stale)
