"""Persistence for subscriptions, notifications and events."""

from hookrelay.store.client import StoreClient

__all__ = ["StoreClient"]
