"""Handshake proof-of-possession.

Each attempt draws a fresh random challenge and POSTs::

    {"subscriptionId": 7, "challenge": "<b64>", "signature": "<hmac of the two>"}

with the challenge repeated in the ``x-hook-secret`` header. The consumer confirms
ownership with a 2xx response carrying the proof in the same header (or, failing
that, in a JSON body field ``proof``):

* ``hmac`` mode: ``sign_payload({"challenge": challenge}, legitimacy_secret)``
* ``echo`` mode: the challenge itself
"""

from __future__ import annotations

import hmac
import logging
from typing import TYPE_CHECKING, Any

import httpx

from hookrelay.config.settings import HandshakeProof
from hookrelay.notifications.webhook import HANDSHAKE_HEADER
from hookrelay.utils.crypto import generate_base64_secret, sign_payload

if TYPE_CHECKING:
    from hookrelay.notifications.webhook import WebhookClient
    from hookrelay.subscriptions.models import Subscription

logger = logging.getLogger(__name__)


def challenge_body(subscription: Subscription, challenge: str) -> dict[str, Any]:
    """Build the signed handshake request body."""
    unsigned = {"subscriptionId": subscription.id, "challenge": challenge}
    return {**unsigned, "signature": sign_payload(unsigned, subscription.legitimacy_secret)}


def answer_challenge(mode: HandshakeProof | str, challenge: str, secret: str) -> str:
    """Compute the proof a consumer returns for *challenge*."""
    if HandshakeProof(mode) == HandshakeProof.ECHO:
        return challenge
    return sign_payload({"challenge": challenge}, secret)


def is_valid_proof(mode: HandshakeProof | str, challenge: str, secret: str, proof: str | None) -> bool:
    if not proof:
        return False
    expected = answer_challenge(mode, challenge, secret)
    return hmac.compare_digest(expected.encode(), proof.encode())


def _extract_proof(response: httpx.Response) -> str | None:
    proof = response.headers.get(HANDSHAKE_HEADER)
    if proof:
        return proof
    try:
        data = response.json()
    except ValueError:
        return None
    value = data.get("proof") if isinstance(data, dict) else None
    return value if isinstance(value, str) else None


async def perform_handshake(
    client: WebhookClient,
    subscription: Subscription,
    *,
    mode: HandshakeProof | str,
    timeout_ms: float,
) -> bool:
    """Run one handshake attempt. Transport errors count as a failed attempt."""
    challenge = generate_base64_secret()
    try:
        response = await client.post(
            subscription.webhook_url,
            challenge_body(subscription, challenge),
            headers={HANDSHAKE_HEADER: challenge},
            timeout_ms=timeout_ms,
        )
    except httpx.HTTPError as exc:
        logger.warning(
            "Handshake with %s for subscription %d failed: %s",
            subscription.webhook_url,
            subscription.id,
            exc,
        )
        return False

    if not response.is_success:
        logger.warning(
            "Handshake with %s for subscription %d returned %d",
            subscription.webhook_url,
            subscription.id,
            response.status_code,
        )
        return False

    if not is_valid_proof(mode, challenge, subscription.legitimacy_secret, _extract_proof(response)):
        logger.warning(
            "Handshake with %s for subscription %d returned no valid proof",
            subscription.webhook_url,
            subscription.id,
        )
        return False
    return True
