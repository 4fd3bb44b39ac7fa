"""V1 REST API routes.

Combines all sub-routers under the ``/api/v1`` prefix.
"""

from fastapi import APIRouter

from hookrelay.api.v1.developer import router as developer_router
from hookrelay.api.v1.events import router as events_router
from hookrelay.api.v1.notifications import router as notifications_router
from hookrelay.api.v1.subscriptions import router as subscriptions_router

v1_router = APIRouter(prefix="/api/v1")

v1_router.include_router(subscriptions_router)
v1_router.include_router(events_router)
v1_router.include_router(notifications_router)
v1_router.include_router(developer_router)

__all__ = ["v1_router"]
