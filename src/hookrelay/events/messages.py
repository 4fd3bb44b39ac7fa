"""Pub/sub wire format for events published by upstream sources."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class EventMessage(BaseModel):
    """``{"id", "type", "scope", "payload"}`` as published on the events channel.

    ``id`` lets several relay instances agree on which one records a message;
    messages without it are recorded by every instance that receives them.
    """

    id: str = ""
    type: str
    scope: str = ""
    payload: dict[str, Any] = Field(default_factory=dict)
