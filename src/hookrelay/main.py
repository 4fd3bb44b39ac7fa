"""Application entry point for the hookrelay server."""

from __future__ import annotations

import logging
import os

import uvicorn

from hookrelay.config.settings import AppConfig

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def main() -> None:
    """Configure logging and start the hookrelay server."""
    config = AppConfig()
    logging.basicConfig(level=config.server.log_level.upper(), format=_LOG_FORMAT)
    reload = os.getenv("HOOKRELAY_RELOAD", "false").lower() in ("1", "true", "yes")
    uvicorn.run(
        "hookrelay.api.app:create_app",
        factory=True,
        host=config.server.host,
        port=config.server.port,
        reload=reload,
        log_level=config.server.log_level,
    )


if __name__ == "__main__":
    main()
