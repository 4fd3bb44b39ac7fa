"""Async engine construction for the relational repository backends."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from hookrelay.config.settings import DatabaseEngine

if TYPE_CHECKING:
    from hookrelay.config.settings import DatabaseConfig

# Seconds a SQLite connection waits on a locked database file. Fan-out and
# deliveries write concurrently from separate tasks.
SQLITE_BUSY_TIMEOUT = 30


def create_engine(config: DatabaseConfig) -> AsyncEngine:
    """Build the ``AsyncEngine`` for ``config.engine``.

    SQLite gets a busy timeout instead of pool sizing; PostgreSQL gets a
    pre-pinged pool bounded by the idle/open connection limits.

    Raises:
        ValueError: For the in-memory backend, which has no database.
    """
    kwargs: dict[str, Any] = {"echo": config.debug_sql}

    if config.engine == DatabaseEngine.MEMORY:
        msg = "the memory backend does not use a database engine"
        raise ValueError(msg)
    if config.engine == DatabaseEngine.SQLITE:
        kwargs["connect_args"] = {"timeout": SQLITE_BUSY_TIMEOUT}
    else:
        kwargs["pool_size"] = config.max_idle_connections
        kwargs["max_overflow"] = max(config.max_open_connections - config.max_idle_connections, 0)
        kwargs["pool_pre_ping"] = True

    return create_async_engine(config.dsn, **kwargs)
