"""V1 API request Pydantic schemas.

Request bodies use the camelCase field names consumers already send; responses
are the domain records' ``to_dict()`` output.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """Standard error body ``{"code": "...", "message": "..."}``."""

    code: str
    message: str


class SubscriptionCreateRequest(BaseModel):
    """POST /api/v1/subscriptions"""

    model_config = ConfigDict(populate_by_name=True)

    event_type: str = Field(alias="eventType")
    event_scope: str = Field(default="", alias="eventScope")
    webhook_url: str = Field(alias="webhookUrl")
    ttl: int | None = Field(default=None, description="Lifetime in ms")


class EventCreateRequest(BaseModel):
    """POST /api/v1/events"""

    type: str
    scope: str = ""
    payload: dict[str, Any] = Field(default_factory=dict)
