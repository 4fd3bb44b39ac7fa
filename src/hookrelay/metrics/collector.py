"""Metrics collector — Prometheus counters, gauges, histograms.

Exposed series:
- ``hookrelay_subscriptions_total`` gauge-vec (by status)
- ``hookrelay_notifications_total`` counter-vec (terminal outcome by status)
- ``hookrelay_delivery_attempts_total`` counter-vec (by result)
- ``hookrelay_handshakes_total`` counter-vec (by result)
- ``hookrelay_delivery_duration_seconds`` histogram
- ``hookrelay_cron_histogram`` / ``hookrelay_cron_last_execution_gauge``
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

_PREFIX = "hookrelay"


class MetricsCollector:
    """Low-level Prometheus collector that owns the registry.

    Use :class:`RelayMetrics` for the high-level tracking interface.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._registry

    def gauge(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Gauge:
        return Gauge(name, doc, labels, registry=self._registry)

    def histogram(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Histogram:
        return Histogram(name, doc, labels, registry=self._registry)

    def counter(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Counter:
        return Counter(name, doc, labels, registry=self._registry)


class RelayMetrics:
    """Pipeline metrics: subscriptions, deliveries, handshakes and cron jobs."""

    def __init__(self, collector: MetricsCollector | None = None) -> None:
        self._collector = collector or MetricsCollector()

        self._subscriptions = self._collector.gauge(
            f"{_PREFIX}_subscriptions_total",
            "Subscriptions by lifecycle status",
            ("status",),
        )
        self._notifications = self._collector.counter(
            f"{_PREFIX}_notifications",
            "Notifications that reached a terminal status",
            ("status",),
        )
        self._attempts = self._collector.counter(
            f"{_PREFIX}_delivery_attempts",
            "Webhook delivery attempts by result",
            ("result",),
        )
        self._handshakes = self._collector.counter(
            f"{_PREFIX}_handshakes",
            "Handshake attempts by result",
            ("result",),
        )
        self._delivery_duration = self._collector.histogram(
            f"{_PREFIX}_delivery_duration_seconds",
            "Duration of webhook delivery POSTs",
        )

        self._cron_histogram = self._collector.histogram(
            f"{_PREFIX}_cron_histogram",
            "Duration of cron job executions",
            ("job_name",),
        )
        self._cron_last = self._collector.gauge(
            f"{_PREFIX}_cron_last_execution_gauge",
            "Timestamp of last cron execution",
            ("job_name",),
        )

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._collector.registry

    # -- Setters / counters --

    def set_subscription_counts(self, counts: Mapping[str, int]) -> None:
        """Replace the per-status subscription gauge values."""
        for status, count in counts.items():
            self._subscriptions.labels(status=status).set(count)

    def notification_resolved(self, status: str) -> None:
        self._notifications.labels(status=status).inc()

    def delivery_attempt(self, result: str) -> None:
        self._attempts.labels(result=result).inc()

    def handshake_attempt(self, result: str) -> None:
        self._handshakes.labels(result=result).inc()

    # -- Operation trackers (context managers) --

    @contextmanager
    def track_delivery(self) -> Iterator[None]:
        """Track the duration of one webhook POST."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._delivery_duration.observe(time.monotonic() - start)

    @contextmanager
    def track_cron(self, job_name: str) -> Iterator[None]:
        """Track the duration of a cron job and record last execution time."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._cron_histogram.labels(job_name=job_name).observe(time.monotonic() - start)
            self._cron_last.labels(job_name=job_name).set(time.time())
