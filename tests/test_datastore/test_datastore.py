"""Tests for the async datastore, engine factory and auto-migration."""

from __future__ import annotations

import pytest
from sqlalchemy import inspect, text

from hookrelay.config.settings import DatabaseConfig, DatabaseEngine
from hookrelay.datastore.client import Datastore
from hookrelay.datastore.engines import create_engine
from hookrelay.datastore.migrations import drop_all_tables, run_auto_migrate
from hookrelay.datastore.models import ALL_MODELS, Base, NotificationRecord

TABLES = {"subscriptions", "notifications", "events"}


async def _table_names(datastore: Datastore) -> set[str]:
    async with datastore.engine.connect() as conn:
        return set(await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names()))


class TestEngines:
    """Tests for create_engine."""

    @pytest.mark.asyncio
    async def test_sqlite_engine(self, sqlite_config: DatabaseConfig) -> None:
        engine = create_engine(sqlite_config)
        assert engine.dialect.name == "sqlite"
        async with engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            assert result.scalar() == 1
        await engine.dispose()

    def test_debug_sql_echo(self) -> None:
        cfg = DatabaseConfig(dsn="sqlite+aiosqlite:///:memory:", debug_sql=True)
        engine = create_engine(cfg)
        assert engine.sync_engine.echo is True

    def test_memory_backend_has_no_engine(self) -> None:
        with pytest.raises(ValueError, match="memory backend"):
            create_engine(DatabaseConfig(engine=DatabaseEngine.MEMORY))


class TestDatastore:
    """Tests for the Datastore lifecycle."""

    @pytest.mark.asyncio
    async def test_open_close(self, sqlite_config: DatabaseConfig) -> None:
        ds = Datastore(sqlite_config)
        assert not ds.is_open
        await ds.open()
        assert ds.is_open
        await ds.close()
        assert not ds.is_open

    def test_engine_before_open(self, sqlite_config: DatabaseConfig) -> None:
        ds = Datastore(sqlite_config)
        with pytest.raises(RuntimeError, match="not open"):
            _ = ds.engine
        with pytest.raises(RuntimeError, match="not open"):
            ds.session()

    @pytest.mark.asyncio
    async def test_open_with_base_creates_tables(self, sqlite_config: DatabaseConfig) -> None:
        ds = Datastore(sqlite_config)
        await ds.open(base=Base)
        assert TABLES <= await _table_names(ds)
        await ds.close()

    @pytest.mark.asyncio
    async def test_transaction_rolls_back(self, sqlite_config: DatabaseConfig) -> None:
        ds = Datastore(sqlite_config)
        await ds.open(base=Base)
        with pytest.raises(ValueError, match="boom"):
            async with ds.transaction() as session:
                session.add(
                    NotificationRecord(subscription_id=1, event_id=1, nonce=0, status="active", tries_left=1)
                )
                await session.flush()
                raise ValueError("boom")

        async with ds.session() as check:
            count = await check.execute(text("SELECT COUNT(*) FROM notifications"))
            assert count.scalar() == 0
        await ds.close()


class TestMigrations:
    """Tests for run_auto_migrate and drop_all_tables."""

    @pytest.mark.asyncio
    async def test_migrate_and_drop(self, sqlite_config: DatabaseConfig) -> None:
        ds = Datastore(sqlite_config)
        await ds.open()
        await run_auto_migrate(ds.engine)
        assert TABLES <= await _table_names(ds)
        await run_auto_migrate(ds.engine)

        await drop_all_tables(ds.engine)
        assert not (TABLES & await _table_names(ds))
        await ds.close()

    def test_all_models_registered(self) -> None:
        assert {m.__tablename__ for m in ALL_MODELS} == TABLES
