"""V1 subscription endpoints.

Creation returns immediately with status ``inactive``; poll the subscription to
observe the handshake outcome.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from hookrelay.api.dependencies import get_engine
from hookrelay.api.v1.schemas import SubscriptionCreateRequest  # noqa: TC001
from hookrelay.engine.client import RelayEngine  # noqa: TC001
from hookrelay.errors.definitions import ErrSubscriptionNotFound

router = APIRouter(tags=["subscriptions"])


@router.post("/subscriptions", status_code=201)
async def create_subscription(
    body: SubscriptionCreateRequest,
    engine: Annotated[RelayEngine, Depends(get_engine)],
) -> dict:
    """Register a webhook. The legitimacy secret is returned here and never again."""
    subscription = await engine.registry.create(
        body.event_type,
        body.event_scope,
        body.webhook_url,
        body.ttl,
    )
    return subscription.to_dict(include_secret=True)


@router.get("/subscriptions")
async def list_subscriptions(
    engine: Annotated[RelayEngine, Depends(get_engine)],
    event_type: Annotated[str | None, Query(alias="eventType")] = None,
    event_scope: Annotated[str | None, Query(alias="eventScope")] = None,
    status: str | None = None,
    exclude_expired: Annotated[bool, Query(alias="excludeExpired")] = False,
) -> list[dict]:
    subscriptions = await engine.registry.find_all(
        event_type=event_type,
        event_scope=event_scope,
        status=status,
        exclude_expired=exclude_expired,
    )
    return [s.to_dict() for s in subscriptions]


@router.get("/subscriptions/{subscription_id}")
async def get_subscription(
    subscription_id: int,
    engine: Annotated[RelayEngine, Depends(get_engine)],
) -> dict:
    subscription = await engine.registry.find_one(subscription_id)
    if subscription is None:
        raise ErrSubscriptionNotFound
    return subscription.to_dict()


@router.delete("/subscriptions/{subscription_id}")
async def terminate_subscription(
    subscription_id: int,
    engine: Annotated[RelayEngine, Depends(get_engine)],
) -> dict:
    """Stop notifying a subscription (status ``done``)."""
    subscription = await engine.registry.terminate(subscription_id)
    if subscription is None:
        raise ErrSubscriptionNotFound
    return subscription.to_dict()
