"""Cryptographic helpers — canonical JSON, HMAC legitimacy signatures, secrets."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import secrets
from typing import Any

from hookrelay.errors.store_errors import PayloadError


def canonical_json(payload: Any) -> bytes:
    """Serialize *payload* deterministically (sorted keys, no whitespace).

    Raises:
        PayloadError: If the payload is not JSON-representable (sets, NaN, objects).
    """
    try:
        text = json.dumps(
            payload,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
    except (TypeError, ValueError) as exc:
        msg = f"payload is not canonically serializable: {exc}"
        raise PayloadError(msg) from exc
    return text.encode("utf-8")


def sign_payload(payload: Any, secret: str) -> str:
    """Return ``base64(HMAC-SHA256(secret, canonical_json(payload)))``."""
    digest = hmac.new(
        key=secret.encode("utf-8"),
        msg=canonical_json(payload),
        digestmod=hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(payload: Any, secret: str, signature: str) -> bool:
    """Check a legitimacy signature in constant time."""
    expected = sign_payload(payload, secret)
    return hmac.compare_digest(expected, signature)


def generate_base64_secret(byte_length: int = 32) -> str:
    """Base64 encoding of *byte_length* cryptographically random bytes."""
    return base64.b64encode(secrets.token_bytes(byte_length)).decode("ascii")
