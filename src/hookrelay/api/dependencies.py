"""FastAPI dependency injection helpers.

Usage in a route::

    @router.get("/subscriptions/{subscription_id}")
    async def get_subscription(
        subscription_id: int,
        engine: Annotated[RelayEngine, Depends(get_engine)],
    ) -> dict:
        ...
"""

from __future__ import annotations

from fastapi import Request

from hookrelay.engine.client import RelayEngine  # noqa: TC001
from hookrelay.errors.definitions import ErrEngineNotReady


def get_engine(request: Request) -> RelayEngine:
    """Retrieve the engine stored on ``app.state.engine`` during lifespan startup.

    Raises:
        RelayError: ``ErrEngineNotReady`` (503) outside the app lifespan.
    """
    engine: RelayEngine | None = getattr(request.app.state, "engine", None)
    if engine is None or not engine.is_initialized:
        raise ErrEngineNotReady
    return engine
