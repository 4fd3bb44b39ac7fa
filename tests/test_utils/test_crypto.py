"""Tests for canonical JSON and legitimacy signatures."""

from __future__ import annotations

import base64
import hashlib
import hmac
import math

import pytest

from hookrelay.errors.store_errors import PayloadError
from hookrelay.utils.crypto import (
    canonical_json,
    generate_base64_secret,
    sign_payload,
    verify_signature,
)


class TestCanonicalJson:
    """Tests for deterministic serialization."""

    def test_sorted_keys_no_whitespace(self) -> None:
        assert canonical_json({"b": 1, "a": [1, 2]}) == b'{"a":[1,2],"b":1}'

    def test_nested_keys_sorted(self) -> None:
        assert canonical_json({"z": {"y": 1, "x": 2}}) == b'{"z":{"x":2,"y":1}}'

    def test_key_order_irrelevant(self) -> None:
        assert canonical_json({"a": 1, "b": 2}) == canonical_json({"b": 2, "a": 1})

    def test_unicode_kept_as_utf8(self) -> None:
        assert canonical_json({"name": "zoë"}) == '{"name":"zoë"}'.encode()

    def test_nan_rejected(self) -> None:
        with pytest.raises(PayloadError):
            canonical_json({"value": math.nan})

    def test_unserializable_rejected(self) -> None:
        with pytest.raises(PayloadError) as exc_info:
            canonical_json({"value": {1, 2}})
        assert exc_info.value.code == "invalid-payload"
        assert exc_info.value.status_code == 400


class TestSignatures:
    """Tests for HMAC-SHA256 signing and verification."""

    def test_matches_manual_hmac(self) -> None:
        payload = {"subscriptionId": 1, "nonce": 0}
        expected = base64.b64encode(
            hmac.new(b"secret", b'{"nonce":0,"subscriptionId":1}', hashlib.sha256).digest()
        ).decode()
        assert sign_payload(payload, "secret") == expected

    def test_signature_independent_of_key_order(self) -> None:
        a = sign_payload({"x": 1, "y": 2}, "s")
        b = sign_payload({"y": 2, "x": 1}, "s")
        assert a == b

    def test_different_secret_different_signature(self) -> None:
        assert sign_payload({"x": 1}, "one") != sign_payload({"x": 1}, "two")

    def test_verify_accepts_valid(self) -> None:
        signature = sign_payload({"x": 1}, "s")
        assert verify_signature({"x": 1}, "s", signature)

    def test_verify_rejects_tampered_payload(self) -> None:
        signature = sign_payload({"x": 1}, "s")
        assert not verify_signature({"x": 2}, "s", signature)

    def test_verify_rejects_wrong_secret(self) -> None:
        signature = sign_payload({"x": 1}, "s")
        assert not verify_signature({"x": 1}, "other", signature)


class TestSecrets:
    """Tests for secret generation."""

    def test_default_length(self) -> None:
        secret = generate_base64_secret()
        assert len(base64.b64decode(secret)) == 32

    def test_custom_length(self) -> None:
        assert len(base64.b64decode(generate_base64_secret(16))) == 16

    def test_unique(self) -> None:
        assert generate_base64_secret() != generate_base64_secret()
