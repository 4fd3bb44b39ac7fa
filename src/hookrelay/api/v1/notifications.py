"""V1 notification endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from hookrelay.api.dependencies import get_engine
from hookrelay.engine.client import RelayEngine  # noqa: TC001
from hookrelay.errors.definitions import ErrNotificationNotFound

router = APIRouter(tags=["notifications"])


@router.get("/notifications/{notification_id}")
async def get_notification(
    notification_id: int,
    engine: Annotated[RelayEngine, Depends(get_engine)],
) -> dict:
    notification = await engine.dispatcher.find_one(notification_id)
    if notification is None:
        raise ErrNotificationNotFound
    return notification.to_dict()
