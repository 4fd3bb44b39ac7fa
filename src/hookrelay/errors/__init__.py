"""Error types shared across the relay."""

from hookrelay.errors.relay_errors import RelayError
from hookrelay.errors.store_errors import ConflictError, PayloadError

__all__ = ["ConflictError", "PayloadError", "RelayError"]
