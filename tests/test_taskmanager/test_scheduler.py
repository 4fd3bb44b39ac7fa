"""Tests for the keyed one-shot Scheduler."""

from __future__ import annotations

import asyncio

import pytest

from hookrelay.taskmanager.scheduler import Scheduler, handshake_key, notification_key


class Recorder:
    def __init__(self) -> None:
        self.calls: list[str] = []

    def callback(self, label: str):
        async def _cb() -> None:
            self.calls.append(label)

        return _cb


class TestKeys:
    """Timer key naming."""

    def test_handshake_key(self) -> None:
        assert handshake_key(7) == "sendSubscriptionHandshake_7"

    def test_notification_key(self) -> None:
        assert notification_key(12) == "sendNotification_12"


class TestScheduler:
    """Tests for Scheduler."""

    @pytest.mark.asyncio
    async def test_fires_once_after_delay(self) -> None:
        scheduler = Scheduler()
        rec = Recorder()
        scheduler.add_timeout("a", rec.callback("a"), 10)
        assert scheduler.pending == ["a"]
        assert await scheduler.join(timeout=2)
        assert rec.calls == ["a"]
        assert scheduler.pending == []
        await scheduler.close()

    @pytest.mark.asyncio
    async def test_delay_respected(self) -> None:
        scheduler = Scheduler()
        rec = Recorder()
        scheduler.add_timeout("slow", rec.callback("slow"), 200)
        await asyncio.sleep(0.02)
        assert rec.calls == []
        assert await scheduler.join(timeout=2)
        assert rec.calls == ["slow"]
        await scheduler.close()

    @pytest.mark.asyncio
    async def test_same_key_replaces(self) -> None:
        scheduler = Scheduler()
        rec = Recorder()
        scheduler.add_timeout("k", rec.callback("first"), 20)
        scheduler.add_timeout("k", rec.callback("second"), 20)
        assert scheduler.pending == ["k"]
        assert await scheduler.join(timeout=2)
        assert rec.calls == ["second"]
        await scheduler.close()

    @pytest.mark.asyncio
    async def test_cancel(self) -> None:
        scheduler = Scheduler()
        rec = Recorder()
        scheduler.add_timeout("k", rec.callback("k"), 20)
        assert scheduler.cancel("k") is True
        assert scheduler.cancel("k") is False
        await asyncio.sleep(0.05)
        assert rec.calls == []
        await scheduler.close()

    @pytest.mark.asyncio
    async def test_after_generates_keys(self) -> None:
        scheduler = Scheduler()
        rec = Recorder()
        k1 = scheduler.after(0, rec.callback("x"))
        k2 = scheduler.after(0, rec.callback("y"))
        assert k1 != k2
        assert k1.startswith("timeout_")
        assert await scheduler.join(timeout=2)
        assert sorted(rec.calls) == ["x", "y"]
        await scheduler.close()

    @pytest.mark.asyncio
    async def test_failing_callback_logged_not_raised(self, caplog: pytest.LogCaptureFixture) -> None:
        scheduler = Scheduler()

        async def _boom() -> None:
            raise RuntimeError("kaboom")

        scheduler.add_timeout("bad", _boom, 0)
        assert await scheduler.join(timeout=2)
        assert "Scheduled job bad failed" in caplog.text
        await scheduler.close()

    @pytest.mark.asyncio
    async def test_join_timeout(self) -> None:
        scheduler = Scheduler()
        rec = Recorder()
        scheduler.add_timeout("late", rec.callback("late"), 5_000)
        assert await scheduler.join(timeout=0.05) is False
        await scheduler.close()
        assert rec.calls == []

    @pytest.mark.asyncio
    async def test_close_cancels_in_flight(self) -> None:
        scheduler = Scheduler()
        started = asyncio.Event()
        cancelled = asyncio.Event()

        async def _long() -> None:
            started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        scheduler.add_timeout("long", _long, 0)
        await asyncio.wait_for(started.wait(), 2)
        assert scheduler.in_flight == 1
        await scheduler.close()
        assert cancelled.is_set()
        assert scheduler.in_flight == 0

    @pytest.mark.asyncio
    async def test_add_after_close_ignored(self) -> None:
        scheduler = Scheduler()
        await scheduler.close()
        rec = Recorder()
        scheduler.add_timeout("k", rec.callback("k"), 0)
        assert scheduler.pending == []
