"""Shared test fixtures for the py-hookrelay test suite."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import httpx
import pytest

from hookrelay.config.settings import (
    AppConfig,
    DatabaseConfig,
    DatabaseEngine,
    HandshakeProof,
    NotificationsConfig,
    SubscriptionsConfig,
    TaskConfig,
)
from hookrelay.notifications.webhook import HANDSHAKE_HEADER
from hookrelay.subscriptions.handshake import answer_challenge

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

SECRET = "test-legitimacy-secret"
WEBHOOK_URL = "https://consumer.example.com/hook"
TXID = "a3f1c0de" * 8


class FakeClock:
    """Settable time source handed to the registry, dispatcher and event log."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += timedelta(milliseconds=ms)


class WebhookConsumer:
    """Scripted webhook consumer served through ``httpx.MockTransport``.

    Handshake requests (those carrying ``x-hook-secret``) are answered with the
    proof for *secret*; everything else is a notification. Each script holds
    status codes or exceptions consumed one per request; once empty every request
    gets a 200.
    """

    def __init__(self, *, secret: str = SECRET, mode: HandshakeProof = HandshakeProof.HMAC) -> None:
        self.secret = secret
        self.mode = mode
        self.handshake_script: list[int | Exception] = []
        self.delivery_script: list[int | Exception] = []
        self.handshakes: list[httpx.Request] = []
        self.deliveries: list[httpx.Request] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def delivered_bodies(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.deliveries]

    def handler(self, request: httpx.Request) -> httpx.Response:
        challenge = request.headers.get(HANDSHAKE_HEADER)
        if challenge is not None:
            self.handshakes.append(request)
            outcome = self.handshake_script.pop(0) if self.handshake_script else 200
            if isinstance(outcome, Exception):
                raise outcome
            headers = {}
            if outcome < 300:
                headers[HANDSHAKE_HEADER] = answer_challenge(self.mode, challenge, self.secret)
            return httpx.Response(outcome, headers=headers)

        self.deliveries.append(request)
        outcome = self.delivery_script.pop(0) if self.delivery_script else 200
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome)


class ManualScheduler:
    """Scheduler double that only fires timers when the test says so."""

    def __init__(self) -> None:
        self.timers: dict[str, tuple[Callable[[], Awaitable[Any]], float]] = {}

    @property
    def pending(self) -> list[str]:
        return sorted(self.timers)

    def add_timeout(self, key: str, callback: Callable[[], Awaitable[Any]], delay: float) -> None:
        self.timers[key] = (callback, delay)

    def cancel(self, key: str) -> bool:
        return self.timers.pop(key, None) is not None

    def delay_of(self, key: str) -> float:
        return self.timers[key][1]

    async def run_pending(self) -> None:
        """Fire every pending timer once; timers they schedule stay pending."""
        timers, self.timers = self.timers, {}
        for _, (callback, _) in sorted(timers.items()):
            await callback()

    async def drain(self, limit: int = 50) -> None:
        """Fire timers until none are left."""
        for _ in range(limit):
            if not self.timers:
                return
            await self.run_pending()
        msg = "scheduler did not drain"
        raise AssertionError(msg)


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


@pytest.fixture
def app_config() -> AppConfig:
    """Provide a test AppConfig: in-memory store, fast retries, no cron loop."""
    return AppConfig(
        debug=True,
        db=DatabaseConfig(engine=DatabaseEngine.MEMORY),
        subscriptions=SubscriptionsConfig(
            ttl=60_000,
            max_handshake_tries=3,
            handshake_retry_interval=10,
            handshake_timeout=1_000,
        ),
        notifications=NotificationsConfig(max_tries=3, retry_interval=10, timeout=1_000),
        task=TaskConfig(enabled=False),
    )


@pytest.fixture
def sqlite_config(tmp_path) -> DatabaseConfig:
    """SQLite database in a per-test file."""
    return DatabaseConfig(
        engine=DatabaseEngine.SQLITE,
        dsn=f"sqlite+aiosqlite:///{tmp_path / 'relay.db'}",
    )


# ---------------------------------------------------------------------------
# Pipeline components
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def consumer() -> WebhookConsumer:
    return WebhookConsumer()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
async def webhook_client(consumer: WebhookConsumer) -> AsyncIterator:
    from hookrelay.notifications.webhook import WebhookClient

    client = WebhookClient(transport=consumer.transport)
    await client.start()
    yield client
    await client.stop()


@pytest.fixture
async def store(app_config: AppConfig) -> AsyncIterator:
    from hookrelay.store.client import StoreClient

    client = StoreClient(app_config.db)
    await client.connect()
    yield client
    await client.close()


@pytest.fixture
def registry(store, webhook_client, scheduler, app_config, clock):
    from hookrelay.metrics.collector import RelayMetrics
    from hookrelay.subscriptions.registry import SubscriptionRegistry

    return SubscriptionRegistry(
        store.subscriptions,
        webhook_client,
        scheduler,
        app_config.subscriptions,
        metrics=RelayMetrics(),
        clock=clock,
    )


@pytest.fixture
def event_log(store, clock):
    from hookrelay.events.log import EventLog

    return EventLog(store.events, clock=clock)


@pytest.fixture
def dispatcher(store, registry, event_log, webhook_client, scheduler, app_config, clock):
    from hookrelay.metrics.collector import RelayMetrics
    from hookrelay.notifications.dispatcher import NotificationDispatcher

    return NotificationDispatcher(
        store.notifications,
        registry,
        event_log,
        webhook_client,
        scheduler,
        app_config.notifications,
        metrics=RelayMetrics(),
        clock=clock,
    )


@pytest.fixture
def make_active_subscription(registry, scheduler):
    """Factory: create a subscription and run its handshake to ``Active``."""

    async def _make(
        event_scope: str = TXID,
        *,
        ttl: int | None = None,
        webhook_url: str = WEBHOOK_URL,
    ):
        subscription = await registry.create(
            "transaction.update",
            event_scope,
            webhook_url,
            ttl,
            legitimacy_secret=SECRET,
        )
        await scheduler.drain()
        return await registry.find_one(subscription.id)

    return _make
