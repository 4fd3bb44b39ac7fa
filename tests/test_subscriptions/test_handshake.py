"""Tests for handshake proof computation and a single handshake attempt."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import httpx
import pytest

from hookrelay.config.settings import HandshakeProof
from hookrelay.notifications.webhook import HANDSHAKE_HEADER, WebhookClient
from hookrelay.subscriptions.handshake import (
    answer_challenge,
    challenge_body,
    is_valid_proof,
    perform_handshake,
)
from hookrelay.subscriptions.models import Subscription, SubscriptionStatus
from hookrelay.utils.crypto import sign_payload, verify_signature

from conftest import SECRET, WEBHOOK_URL


def _subscription() -> Subscription:
    return Subscription(
        id=7,
        event_type="transaction.update",
        event_scope="",
        webhook_url=WEBHOOK_URL,
        ttl=60_000,
        status=SubscriptionStatus.INACTIVE,
        tries_left=3,
        next_nonce=0,
        legitimacy_secret=SECRET,
        created_at=datetime(2026, 1, 1, tzinfo=UTC),
    )


async def _attempt(handler, mode: HandshakeProof = HandshakeProof.HMAC) -> bool:
    client = WebhookClient(transport=httpx.MockTransport(handler))
    await client.start()
    try:
        return await perform_handshake(client, _subscription(), mode=mode, timeout_ms=1_000)
    finally:
        await client.stop()


class TestProofs:
    """Tests for challenge bodies and proofs."""

    def test_challenge_body_signed(self) -> None:
        body = challenge_body(_subscription(), "abc")
        assert body["subscriptionId"] == 7
        assert body["challenge"] == "abc"
        signature = body.pop("signature")
        assert verify_signature(body, SECRET, signature)

    def test_hmac_answer(self) -> None:
        assert answer_challenge("hmac", "abc", SECRET) == sign_payload({"challenge": "abc"}, SECRET)

    def test_echo_answer(self) -> None:
        assert answer_challenge(HandshakeProof.ECHO, "abc", SECRET) == "abc"

    def test_valid_proof(self) -> None:
        proof = answer_challenge("hmac", "abc", SECRET)
        assert is_valid_proof("hmac", "abc", SECRET, proof)

    def test_wrong_secret_invalid(self) -> None:
        proof = answer_challenge("hmac", "abc", "other-secret")
        assert not is_valid_proof("hmac", "abc", SECRET, proof)

    def test_echo_not_accepted_in_hmac_mode(self) -> None:
        assert not is_valid_proof("hmac", "abc", SECRET, "abc")

    @pytest.mark.parametrize("proof", [None, ""])
    def test_missing_proof(self, proof: str | None) -> None:
        assert not is_valid_proof("echo", "abc", SECRET, proof)


class TestPerformHandshake:
    """Tests for one handshake round trip."""

    @pytest.mark.asyncio
    async def test_confirmed_via_header(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            challenge = request.headers[HANDSHAKE_HEADER]
            proof = answer_challenge("hmac", challenge, SECRET)
            return httpx.Response(200, headers={HANDSHAKE_HEADER: proof})

        assert await _attempt(handler) is True
        body = json.loads(seen[0].content)
        assert body["challenge"] == seen[0].headers[HANDSHAKE_HEADER]
        assert seen[0].headers["content-type"] == "application/json"

    @pytest.mark.asyncio
    async def test_confirmed_via_json_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            challenge = request.headers[HANDSHAKE_HEADER]
            return httpx.Response(200, json={"proof": answer_challenge("hmac", challenge, SECRET)})

        assert await _attempt(handler) is True

    @pytest.mark.asyncio
    async def test_echo_mode(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers={HANDSHAKE_HEADER: request.headers[HANDSHAKE_HEADER]})

        assert await _attempt(handler, HandshakeProof.ECHO) is True

    @pytest.mark.asyncio
    async def test_non_2xx_fails(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            challenge = request.headers[HANDSHAKE_HEADER]
            proof = answer_challenge("hmac", challenge, SECRET)
            return httpx.Response(500, headers={HANDSHAKE_HEADER: proof})

        assert await _attempt(handler) is False

    @pytest.mark.asyncio
    async def test_missing_proof_fails(self) -> None:
        assert await _attempt(lambda request: httpx.Response(200, text="ok")) is False

    @pytest.mark.asyncio
    async def test_wrong_proof_fails(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers={HANDSHAKE_HEADER: "not-the-proof"})

        assert await _attempt(handler) is False

    @pytest.mark.asyncio
    async def test_transport_error_fails(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        assert await _attempt(handler) is False

    @pytest.mark.asyncio
    async def test_fresh_challenge_each_attempt(self) -> None:
        challenges: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            challenges.append(request.headers[HANDSHAKE_HEADER])
            return httpx.Response(500)

        await _attempt(handler)
        await _attempt(handler)
        assert len(set(challenges)) == 2
