"""Unit tests for database pool and migration helpers."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from nudge_engine import database


class MockPoolAcquire:
    """Mock async context manager for pool.acquire()."""

    def __init__(self, conn):
        self.conn = conn

    async def __aenter__(self):
        return self.conn

    async def __aexit__(self, *args):
        pass


@pytest.fixture
def mock_pool():
    conn = AsyncMock()
    pool = MagicMock()
    pool.acquire.return_value = MockPoolAcquire(conn)
    pool.close = AsyncMock()
    return pool, conn


@pytest.fixture(autouse=True)
def reset_pool():
    database._pool = None
    yield
    database._pool = None


class TestPoolLifecycle:
    @pytest.mark.asyncio
    async def test_get_pool_before_init_raises(self):
        with pytest.raises(RuntimeError):
            await database.get_pool()

    @pytest.mark.asyncio
    async def test_init_creates_pool_once(self, mock_pool):
        pool, _ = mock_pool

        with patch("nudge_engine.database.asyncpg.create_pool", new=AsyncMock(return_value=pool)) as create:
            first = await database.init_database()
            second = await database.init_database()

        assert first is pool
        assert second is pool
        create.assert_awaited_once()
        assert await database.get_pool() is pool

    @pytest.mark.asyncio
    async def test_init_failure_propagates(self):
        with patch(
            "nudge_engine.database.asyncpg.create_pool",
            new=AsyncMock(side_effect=OSError("connection refused")),
        ):
            with pytest.raises(OSError):
                await database.init_database()

    @pytest.mark.asyncio
    async def test_close_database(self, mock_pool):
        pool, _ = mock_pool
        database._pool = pool

        await database.close_database()

        pool.close.assert_awaited_once()
        with pytest.raises(RuntimeError):
            await database.get_pool()


class TestMigrations:
    @pytest.mark.asyncio
    async def test_applies_bundled_migrations(self, mock_pool):
        pool, conn = mock_pool
        database._pool = pool

        await database.run_migrations()

        executed = [call[0][0] for call in conn.execute.call_args_list]
        assert any("CREATE TABLE IF NOT EXISTS documents" in sql for sql in executed)

    @pytest.mark.asyncio
    async def test_migration_failure_propagates(self, mock_pool):
        pool, conn = mock_pool
        conn.execute.side_effect = RuntimeError("syntax error")
        database._pool = pool

        with pytest.raises(RuntimeError):
            await database.run_migrations()


class TestEnsureDatabase:
    @pytest.mark.asyncio
    async def test_first_use_creates_pool_and_schema(self, mock_pool):
        pool, conn = mock_pool

        with patch("nudge_engine.database.asyncpg.create_pool", new=AsyncMock(return_value=pool)) as create:
            first = await database.ensure_database()
            second = await database.ensure_database()

        assert first is pool
        assert second is pool
        create.assert_awaited_once()
        executed = [call[0][0] for call in conn.execute.call_args_list]
        assert any("CREATE TABLE IF NOT EXISTS documents" in sql for sql in executed)

    @pytest.mark.asyncio
    async def test_existing_pool_skips_setup(self, mock_pool):
        pool, conn = mock_pool
        database._pool = pool

        assert await database.ensure_database() is pool
        conn.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_schema_setup_closes_pool_for_retry(self, mock_pool):
        pool, conn = mock_pool
        conn.execute.side_effect = RuntimeError("permission denied")

        with patch("nudge_engine.database.asyncpg.create_pool", new=AsyncMock(return_value=pool)):
            with pytest.raises(RuntimeError):
                await database.ensure_database()

        pool.close.assert_awaited_once()
        assert database._pool is None

    @pytest.mark.asyncio
    async def test_connection_failure_propagates(self):
        with patch(
            "nudge_engine.database.asyncpg.create_pool",
            new=AsyncMock(side_effect=OSError("connection refused")),
        ):
            with pytest.raises(OSError):
                await database.ensure_database()

        assert database._pool is None
