"""Tests for the outbound webhook client."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from hookrelay.errors.store_errors import PayloadError
from hookrelay.notifications.webhook import SIGNATURE_HEADER, WebhookClient


class TestWebhookClient:
    """Tests for WebhookClient."""

    @pytest.mark.asyncio
    async def test_start_stop(self) -> None:
        client = WebhookClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        assert not client.is_running
        await client.start()
        assert client.is_running
        await client.stop()
        assert not client.is_running
        await client.stop()

    @pytest.mark.asyncio
    async def test_post_before_start(self) -> None:
        client = WebhookClient()
        with pytest.raises(RuntimeError, match="not started"):
            await client.post("https://example.com", {}, timeout_ms=100)

    @pytest.mark.asyncio
    async def test_posts_canonical_json(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(202)

        client = WebhookClient(transport=httpx.MockTransport(handler))
        await client.start()
        response = await client.post(
            "https://consumer.example.com/hook",
            {"b": 1, "a": "x"},
            timeout_ms=500,
            headers={SIGNATURE_HEADER: "sig"},
        )
        await client.stop()

        assert response.status_code == 202
        request = seen[0]
        assert request.method == "POST"
        assert request.content == b'{"a":"x","b":1}'
        assert request.headers["content-type"] == "application/json"
        assert request.headers[SIGNATURE_HEADER] == "sig"
        assert request.extensions["timeout"]["read"] == 0.5

    @pytest.mark.asyncio
    async def test_redirects_not_followed(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(302, headers={"location": "https://elsewhere.example.com/"})

        client = WebhookClient(transport=httpx.MockTransport(handler))
        await client.start()
        response = await client.post("https://consumer.example.com/hook", {}, timeout_ms=500)
        await client.stop()
        assert response.status_code == 302
        assert not response.is_success

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        client = WebhookClient(transport=httpx.MockTransport(handler))
        await client.start()
        with pytest.raises(httpx.HTTPError):
            await client.post("https://consumer.example.com/hook", {}, timeout_ms=10)
        await client.stop()

    @pytest.mark.asyncio
    async def test_unserializable_body(self) -> None:
        client = WebhookClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        await client.start()
        with pytest.raises(PayloadError):
            await client.post("https://consumer.example.com/hook", {"x": {1}}, timeout_ms=10)
        await client.stop()

    @pytest.mark.asyncio
    async def test_concurrency_bounded(self) -> None:
        active = 0
        peak = 0

        async def handler(request: httpx.Request) -> httpx.Response:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return httpx.Response(200)

        client = WebhookClient(max_concurrent=2, transport=httpx.MockTransport(handler))
        await client.start()
        await asyncio.gather(
            *(client.post("https://consumer.example.com/hook", {"i": i}, timeout_ms=1_000) for i in range(8))
        )
        await client.stop()
        assert peak == 2
