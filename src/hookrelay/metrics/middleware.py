"""Prometheus HTTP request metrics middleware for FastAPI.

Tracks ``http_request_total`` (by method, path, status) and
``http_request_duration_seconds`` (by method, path).
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware

if TYPE_CHECKING:
    from collections.abc import Callable

    from prometheus_client import CollectorRegistry
    from starlette.requests import Request
    from starlette.responses import Response

_APP_LABEL = "hookrelay"


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Starlette middleware that records request count and duration."""

    def __init__(self, app: object, *, registry: CollectorRegistry) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._request_count = Counter(
            "http_request_total",
            "Total HTTP requests",
            ("method", "path", "status_code", "app"),
            registry=registry,
        )
        self._request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ("method", "path", "app"),
            registry=registry,
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:  # type: ignore[type-arg]
        start = time.monotonic()
        response: Response = await call_next(request)
        elapsed = time.monotonic() - start

        route = request.scope.get("route")
        # Templated path keeps label cardinality bounded (/subscriptions/{subscription_id}).
        path = getattr(route, "path", request.url.path)
        self._request_count.labels(
            method=request.method, path=path, status_code=str(response.status_code), app=_APP_LABEL
        ).inc()
        self._request_duration.labels(method=request.method, path=path, app=_APP_LABEL).observe(elapsed)
        return response
