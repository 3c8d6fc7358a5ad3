"""Tests for the tracker database pool owner."""

import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.clients.supabase import SupabaseDB


class TestFromConfig:
    def test_reads_environment(self):
        env = {
            "SUPABASE_DB_URL": "postgresql://postgres@db.example.supabase.co:5432/postgres",
            "SUPABASE_DB_PASSWORD": "s3cret",
            "STORE_POOL_MAX_SIZE": "8",
        }
        with patch.dict(os.environ, env, clear=True):
            db = SupabaseDB.from_config()

        assert db._db_url == env["SUPABASE_DB_URL"]
        assert db._password == "s3cret"
        assert db._min_size == 1
        assert db._max_size == 8
        assert db._command_timeout == 10.0

    def test_missing_password_raises(self):
        with patch.dict(os.environ, {"SUPABASE_DB_URL": "postgresql://localhost/db"}, clear=True):
            with pytest.raises(ValueError, match="SUPABASE_DB_PASSWORD"):
                SupabaseDB.from_config()


class TestPool:
    @pytest.mark.asyncio
    async def test_pool_is_created_once_on_first_use(self):
        mock_pool = MagicMock()
        mock_pool.close = AsyncMock()
        db = SupabaseDB("postgresql://localhost/db", "s3cret", max_size=3, command_timeout=2.5)

        with patch(
            "src.clients.supabase.asyncpg.create_pool", AsyncMock(return_value=mock_pool)
        ) as mock_create_pool:
            first = await db.get_pool()
            second = await db.get_pool()

        assert first is second is mock_pool
        mock_create_pool.assert_awaited_once()
        kwargs = mock_create_pool.call_args.kwargs
        assert mock_create_pool.call_args.args == ("postgresql://localhost/db",)
        assert kwargs["password"] == "s3cret"
        assert kwargs["max_size"] == 3
        assert kwargs["command_timeout"] == 2.5

    @pytest.mark.asyncio
    async def test_failed_creation_is_retried_on_next_use(self):
        mock_pool = MagicMock()
        db = SupabaseDB("postgresql://localhost/db", "s3cret")

        with patch(
            "src.clients.supabase.asyncpg.create_pool",
            AsyncMock(side_effect=[OSError("refused"), mock_pool]),
        ):
            with pytest.raises(OSError):
                await db.get_pool()
            assert await db.get_pool() is mock_pool

    @pytest.mark.asyncio
    async def test_close(self):
        mock_pool = MagicMock()
        mock_pool.close = AsyncMock()
        db = SupabaseDB("postgresql://localhost/db", "s3cret")

        with patch("src.clients.supabase.asyncpg.create_pool", AsyncMock(return_value=mock_pool)):
            await db.get_pool()
        await db.close()
        await db.close()

        mock_pool.close.assert_awaited_once()
