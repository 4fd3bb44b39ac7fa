"""Notifications — records, webhook client and the delivery dispatcher."""

from __future__ import annotations

from hookrelay.notifications.models import Notification, NotificationPayload, NotificationStatus

__all__ = ["Notification", "NotificationPayload", "NotificationStatus"]
