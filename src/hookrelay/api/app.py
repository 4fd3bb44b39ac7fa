"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest
from starlette.responses import Response

from hookrelay import __version__
from hookrelay.api.middleware.cors import setup_cors
from hookrelay.api.v1 import v1_router
from hookrelay.config.settings import AppConfig
from hookrelay.engine.client import RelayEngine
from hookrelay.errors.relay_errors import RelayError
from hookrelay.metrics.collector import RelayMetrics
from hookrelay.metrics.middleware import PrometheusMiddleware

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable
    from datetime import datetime

    import httpx

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Initialise the relay engine on startup and shut it down on exit."""
    engine = RelayEngine(
        app.state.config,
        transport=app.state.transport,
        clock=app.state.clock,
        metrics=app.state.metrics,
    )
    try:
        await engine.initialize()
        app.state.engine = engine
        logger.info("Relay engine initialized")
        yield
    finally:
        app.state.engine = None
        await engine.close()
        logger.info("Relay engine shut down")


def create_app(
    *,
    config: AppConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    clock: Callable[[], datetime] | None = None,
) -> FastAPI:
    """Build and return the FastAPI application.

    Args:
        config: Optional AppConfig. If *None*, one is created from the environment.
        transport: Optional httpx transport for outbound webhooks (tests).
        clock: Optional time source handed to the engine (tests).
    """
    if config is None:
        config = AppConfig()

    app = FastAPI(
        title="py-hookrelay",
        version=__version__,
        description="Signed webhook subscriptions and notification delivery",
        lifespan=_lifespan,
    )
    app.state.config = config
    app.state.transport = transport
    app.state.clock = clock
    app.state.metrics = RelayMetrics()
    app.state.engine = None

    # -- Middleware --
    setup_cors(app)
    if config.metrics.enabled:
        app.add_middleware(PrometheusMiddleware, registry=app.state.metrics.registry)

    # -- Error handler --
    @app.exception_handler(RelayError)
    async def _relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"code": exc.code, "message": exc.message},
        )

    # -- Base routes --
    @app.get("/health", tags=["base"])
    async def health() -> dict:
        engine: RelayEngine | None = app.state.engine
        if engine is None:
            return {"status": "starting", "components": {"engine": "not_initialized"}}
        components = await engine.health_check()
        status = "ok" if components["engine"] == "ok" else "starting"
        return {"status": status, "components": components}

    @app.get("/metrics", tags=["base"], include_in_schema=False)
    async def metrics_endpoint() -> Response:
        """Prometheus metrics endpoint."""
        return Response(
            content=generate_latest(app.state.metrics.registry),
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    # -- Mount v1 API --
    app.include_router(v1_router)

    return app
