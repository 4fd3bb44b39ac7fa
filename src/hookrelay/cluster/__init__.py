"""Cluster — coordination for multi-instance deployments.

The event bus carries published events between instances and the job locks keep
each scheduled job to one instance per period. Redis backs both when configured.
"""

from __future__ import annotations

from hookrelay.cluster.client import ClusterClient
from hookrelay.cluster.eventbus import EventBus, MemoryEventBus, RedisEventBus

__all__ = ["ClusterClient", "EventBus", "MemoryEventBus", "RedisEventBus"]
