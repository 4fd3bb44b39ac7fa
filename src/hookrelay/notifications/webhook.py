"""Outbound webhook HTTP client shared by handshakes and notification deliveries.

Bodies go out as canonical JSON bytes so a consumer can verify the HMAC over the
raw request body. Every call carries an explicit timeout; concurrency is bounded by
a semaphore.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import httpx

from hookrelay.utils.crypto import canonical_json

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-hook-signature"
HANDSHAKE_HEADER = "x-hook-secret"


class WebhookClient:
    """Thin wrapper over ``httpx.AsyncClient``.

    Args:
        max_concurrent: Upper bound on simultaneous outbound POSTs.
        transport: Optional httpx transport (``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        *,
        max_concurrent: int = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._max_concurrent = max_concurrent
        self._transport = transport
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._client: httpx.AsyncClient | None = None

    @property
    def is_running(self) -> bool:
        return self._client is not None

    async def start(self) -> None:
        """Open the underlying connection pool."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            transport=self._transport,
            follow_redirects=False,
            limits=httpx.Limits(max_connections=self._max_concurrent),
        )

    async def stop(self) -> None:
        """Close the underlying connection pool (idempotent)."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def post(
        self,
        url: str,
        body: dict[str, Any],
        *,
        timeout_ms: float,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        """POST *body* as canonical JSON.

        Raises:
            RuntimeError: If the client has not been started.
            httpx.HTTPError: On transport failures and timeouts.
            PayloadError: If *body* is not JSON-serializable.
        """
        if self._client is None:
            msg = "WebhookClient not started. Call start() first."
            raise RuntimeError(msg)
        content = canonical_json(body)
        request_headers = {"content-type": "application/json", **(headers or {})}
        async with self._semaphore:
            logger.debug("POST %s (%d bytes)", url, len(content))
            return await self._client.post(
                url,
                content=content,
                headers=request_headers,
                timeout=timeout_ms / 1000,
            )
