"""Tests for the error hierarchy and predefined errors."""

from __future__ import annotations

import pytest

from hookrelay.errors import ConflictError, PayloadError, RelayError
from hookrelay.errors.definitions import (
    ErrEngineNotReady,
    ErrEventNotFound,
    ErrInvalidEventType,
    ErrInvalidWebhookUrl,
    ErrNotificationNotFound,
    ErrSubscriptionNotFound,
)


class TestRelayError:
    """Tests for the base error."""

    def test_defaults(self) -> None:
        err = RelayError("boom")
        assert str(err) == "boom"
        assert err.message == "boom"
        assert err.status_code == 500
        assert err.code == "relay-error"

    def test_custom_fields(self) -> None:
        err = RelayError("nope", status_code=418, code="teapot")
        assert err.status_code == 418
        assert err.code == "teapot"

    def test_raisable(self) -> None:
        with pytest.raises(RelayError, match="nope"):
            raise RelayError("nope")


class TestStoreErrors:
    """Tests for ConflictError and PayloadError."""

    def test_conflict(self) -> None:
        err = ConflictError("notification", "3:7")
        assert isinstance(err, RelayError)
        assert err.status_code == 409
        assert err.code == "conflict"
        assert err.resource == "notification"
        assert err.identifier == "3:7"
        assert '"3:7"' in err.message

    def test_payload(self) -> None:
        err = PayloadError("bad payload")
        assert isinstance(err, RelayError)
        assert err.status_code == 400
        assert err.code == "invalid-payload"


class TestDefinitions:
    """Predefined errors carry the HTTP status the REST layer returns."""

    @pytest.mark.parametrize(
        ("err", "status", "code"),
        [
            (ErrSubscriptionNotFound, 404, "subscription-not-found"),
            (ErrNotificationNotFound, 404, "notification-not-found"),
            (ErrEventNotFound, 404, "event-not-found"),
            (ErrInvalidWebhookUrl, 400, "invalid-webhook-url"),
            (ErrInvalidEventType, 400, "invalid-event-type"),
            (ErrEngineNotReady, 503, "engine-not-ready"),
        ],
    )
    def test_status_and_code(self, err: RelayError, status: int, code: str) -> None:
        assert err.status_code == status
        assert err.code == code
