"""Sample webhook consumer for local development.

Point a subscription's ``webhookUrl`` at ``/api/v1/developer-testing/webhook`` on
the relay itself: handshakes are answered with the configured proof and
notifications are verified and logged.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from hookrelay.api.dependencies import get_engine
from hookrelay.engine.client import RelayEngine  # noqa: TC001
from hookrelay.errors.definitions import ErrSubscriptionNotFound
from hookrelay.errors.store_errors import PayloadError
from hookrelay.notifications.webhook import HANDSHAKE_HEADER
from hookrelay.subscriptions.handshake import answer_challenge
from hookrelay.utils.crypto import verify_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/developer-testing", tags=["developer"])


async def _read_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as exc:
        msg = "webhook body must be JSON"
        raise PayloadError(msg) from exc
    if not isinstance(body, dict) or not isinstance(body.get("subscriptionId"), int):
        msg = "webhook body must be an object with an integer subscriptionId"
        raise PayloadError(msg)
    return body


@router.post("/webhook")
async def developer_webhook(
    request: Request,
    engine: Annotated[RelayEngine, Depends(get_engine)],
) -> JSONResponse:
    body = await _read_body(request)
    subscription = await engine.registry.find_one(body["subscriptionId"])
    if subscription is None:
        raise ErrSubscriptionNotFound

    challenge = request.headers.get(HANDSHAKE_HEADER)
    if challenge:
        proof = answer_challenge(
            engine.config.subscriptions.handshake_proof,
            challenge,
            subscription.legitimacy_secret,
        )
        logger.info("Developer webhook answered handshake for subscription %d", subscription.id)
        return JSONResponse({"proof": proof}, headers={HANDSHAKE_HEADER: proof})

    signature = body.pop("signature", "")
    verified = verify_signature(body, subscription.legitimacy_secret, signature)
    logger.info(
        "Developer webhook received nonce %s for subscription %d (verified=%s): %s",
        body.get("nonce"),
        subscription.id,
        verified,
        body.get("payload"),
    )
    return JSONResponse({"received": True, "verified": verified})
