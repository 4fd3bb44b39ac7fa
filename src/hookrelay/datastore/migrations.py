"""Auto-migration support.

Programmatic table creation for development and tests. Production deployments
run the Alembic scripts instead.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from hookrelay.datastore.models import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


async def run_auto_migrate(engine: AsyncEngine) -> None:
    """Create all relay tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_all_tables(engine: AsyncEngine) -> None:
    """Drop all relay tables (test/dev utility only)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
