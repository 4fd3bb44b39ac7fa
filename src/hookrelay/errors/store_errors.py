"""Store and payload errors."""

from __future__ import annotations

from hookrelay.errors.relay_errors import RelayError


class ConflictError(RelayError):
    """A record with the same unique key already exists."""

    def __init__(self, resource: str, identifier: str, *, status_code: int = 409) -> None:
        super().__init__(
            f'{resource} already exists with unique identifier: "{identifier}"',
            status_code=status_code,
            code="conflict",
        )
        self.resource = resource
        self.identifier = identifier


class PayloadError(RelayError):
    """A payload could not be canonicalized (not JSON-representable)."""

    def __init__(self, message: str, *, status_code: int = 400) -> None:
        super().__init__(message, status_code=status_code, code="invalid-payload")
