"""Predefined errors surfaced by the REST layer."""

from __future__ import annotations

from hookrelay.errors.relay_errors import RelayError

# -- Not Found -------------------------------------------------------------

ErrSubscriptionNotFound = RelayError(
    "subscription not found", status_code=404, code="subscription-not-found"
)
ErrNotificationNotFound = RelayError(
    "notification not found", status_code=404, code="notification-not-found"
)
ErrEventNotFound = RelayError("event not found", status_code=404, code="event-not-found")

# -- Validation ------------------------------------------------------------

ErrInvalidWebhookUrl = RelayError(
    "webhook url must be an absolute http(s) url", status_code=400, code="invalid-webhook-url"
)
ErrInvalidEventType = RelayError("unknown event type", status_code=400, code="invalid-event-type")

# -- Engine ----------------------------------------------------------------

ErrEngineNotReady = RelayError("engine is not initialized", status_code=503, code="engine-not-ready")
