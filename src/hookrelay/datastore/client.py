"""Async SQLAlchemy engine and session handling for the relational store.

The SQL repositories in :mod:`hookrelay.store.sql` never touch the engine
directly: reads go through :meth:`Datastore.session`, writes through
:meth:`Datastore.transaction`.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from hookrelay.datastore.engines import create_engine

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.orm import DeclarativeBase

    from hookrelay.config.settings import DatabaseConfig


class Datastore:
    """Owns the async engine and session factory for one database.

    Usage::

        ds = Datastore(db_config)
        await ds.open(base=Base)
        async with ds.transaction() as session:
            session.add(record)
        await ds.close()
    """

    def __init__(self, config: DatabaseConfig) -> None:
        self._config = config
        self._engine: AsyncEngine | None = None
        self._sessions: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            msg = "Datastore is not open. Call open() first."
            raise RuntimeError(msg)
        return self._engine

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    async def open(self, *, base: type[DeclarativeBase] | None = None) -> None:
        """Create the engine; with *base*, also create its tables."""
        self._engine = create_engine(self._config)
        self._sessions = async_sessionmaker(self._engine, class_=AsyncSession, expire_on_commit=False)
        if base is not None:
            async with self._engine.begin() as conn:
                await conn.run_sync(base.metadata.create_all)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._sessions = None

    def session(self) -> AsyncSession:
        """Return a new session; the caller commits (or not)."""
        if self._sessions is None:
            msg = "Datastore is not open. Call open() first."
            raise RuntimeError(msg)
        return self._sessions()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Session committed when the block exits cleanly, rolled back otherwise."""
        async with self.session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
