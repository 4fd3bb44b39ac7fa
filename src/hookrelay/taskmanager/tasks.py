"""Background task definitions — cron job handlers.

- ``replay_unprocessed_events`` (60 s) — fan out events whose fan-out never completed
- ``expire_subscriptions`` (60 s) — move expired Inactive/Active subscriptions to Done
- ``calculate_metrics`` (15 s) — subscription counts for the Prometheus gauge

Handlers do no locking of their own: the task manager takes the cluster lock for
a job before each scheduled run. Errors are logged and swallowed so the loop
keeps its schedule.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import timedelta
from typing import TYPE_CHECKING

from hookrelay.subscriptions.models import SubscriptionStatus

if TYPE_CHECKING:
    from hookrelay.engine.client import RelayEngine
    from hookrelay.metrics.collector import RelayMetrics

logger = logging.getLogger(__name__)


async def task_replay_unprocessed_events(engine: RelayEngine) -> None:
    """Fan out events still unprocessed after the grace period."""
    try:
        older_than = engine.now() - timedelta(seconds=engine.config.task.replay_grace)
        events = await engine.event_log.find_unprocessed(older_than=older_than)
        for event in events:
            await engine.dispatcher.fan_out(event)
        if events:
            logger.info("Replayed fan-out for %d unprocessed events", len(events))
    except Exception:
        logger.exception("replay_unprocessed_events failed")


async def task_expire_subscriptions(engine: RelayEngine) -> None:
    """Move expired subscriptions to ``Done``."""
    try:
        count = await engine.registry.expire_stale()
        if count:
            logger.info("Expired %d subscriptions", count)
    except Exception:
        logger.exception("expire_subscriptions failed")


async def task_calculate_metrics(engine: RelayEngine, metrics: RelayMetrics) -> None:
    """Count subscriptions by status and push to the Prometheus gauge."""
    try:
        subscriptions = await engine.registry.find_all()
        counts = Counter(str(s.status) for s in subscriptions)
        metrics.set_subscription_counts(
            {str(status): counts.get(str(status), 0) for status in SubscriptionStatus}
        )
    except Exception:
        logger.exception("calculate_metrics failed")
