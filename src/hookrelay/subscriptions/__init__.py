"""Subscriptions — records, handshake protocol and lifecycle registry."""

from __future__ import annotations

from hookrelay.subscriptions.models import Subscription, SubscriptionStatus

__all__ = ["Subscription", "SubscriptionStatus"]
