"""Domain events and the event log."""

from __future__ import annotations

from hookrelay.events.log import EventLog
from hookrelay.events.models import Event, EventType

__all__ = ["Event", "EventLog", "EventType"]
