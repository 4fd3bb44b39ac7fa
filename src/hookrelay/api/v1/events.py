"""V1 event endpoints — the HTTP entry point for event sources."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from hookrelay.api.dependencies import get_engine
from hookrelay.api.v1.schemas import EventCreateRequest  # noqa: TC001
from hookrelay.engine.client import RelayEngine  # noqa: TC001
from hookrelay.errors.definitions import ErrEventNotFound

router = APIRouter(tags=["events"])


@router.post("/events", status_code=201)
async def record_event(
    body: EventCreateRequest,
    engine: Annotated[RelayEngine, Depends(get_engine)],
) -> dict:
    """Record an event and fan it out; deliveries happen in the background."""
    event, notifications = await engine.record_event(body.type, body.scope, body.payload)
    return {"event": event.to_dict(), "notificationIds": [n.id for n in notifications]}


@router.get("/events/{event_id}")
async def get_event(
    event_id: int,
    engine: Annotated[RelayEngine, Depends(get_engine)],
) -> dict:
    event = await engine.event_log.find_one(event_id)
    if event is None:
        raise ErrEventNotFound
    notifications = await engine.dispatcher.find_by_event(event_id)
    return {**event.to_dict(), "notifications": [n.to_dict() for n in notifications]}
