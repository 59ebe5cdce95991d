"""
Nova Test Suite - Pytest Fixtures and Configuration.

This module provides pytest fixtures shared across the suite, including:
- SQLite adapters opened on temporary database files
- A FastAPI TestClient wired to a temporary database
- A mock Redis client for the cache and lock tests
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any, AsyncGenerator, Generator
from unittest.mock import AsyncMock

import pytest

# Ensure test environment variables are loaded first
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("CACHE_TYPE", "memory")
os.environ.setdefault("DATABASE_PATH", os.path.join(tempfile.gettempdir(), "nova-test.db"))
os.environ.setdefault("LOG_CONSOLE", "false")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from fastapi.testclient import TestClient  # noqa: E402

from nova.config import Settings  # noqa: E402
from nova.db import DBConfig, SQLiteAdapter  # noqa: E402


# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: exercises a real SQLite file or the full application"
    )


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """Path of a fresh SQLite database file."""
    return str(tmp_path / "nova.db")


@pytest.fixture
def debug_config() -> DBConfig:
    """Adapter configuration with metrics and a fast sampler."""
    return DBConfig(debug=True, sample_interval=0.05)


@pytest.fixture
async def adapter(db_path: str, debug_config: DBConfig) -> AsyncGenerator[SQLiteAdapter, None]:
    """Open adapter with metrics enabled, closed after the test."""
    db = await SQLiteAdapter.open(db_path, debug_config)
    yield db
    await db.close()


@pytest.fixture
async def quiet_adapter(db_path: str) -> AsyncGenerator[SQLiteAdapter, None]:
    """Open adapter with metrics disabled."""
    db = await SQLiteAdapter.open(db_path, DBConfig())
    yield db
    await db.close()


# =============================================================================
# Application Fixtures
# =============================================================================


@pytest.fixture
def app_settings(db_path: str) -> Settings:
    """Settings pointing the application at a temporary database."""
    return Settings(
        APP_ENV="test",
        DATABASE_PATH=db_path,
        CACHE_TYPE="memory",
        DEBUG=False,
        LOG_CONSOLE=False,
    )


@pytest.fixture
def client(app_settings: Settings) -> Generator[TestClient, None, None]:
    """TestClient running the full application lifespan."""
    from nova.api.main import create_app

    with TestClient(create_app(app_settings), raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture
def sample_user() -> dict[str, Any]:
    return {
        "username": "Alice",
        "password": "p4ssw0rd",
        "phone_number": "12345678901",
        "email": "alice@gmail.com",
        "address": "No.5, Wall Street, New York, USA",
        "company": "Apple Inc.",
    }


# =============================================================================
# Mock Classes
# =============================================================================


class MockRedisClient:
    """In-memory stand-in for ``RedisClient`` used by the cache tests."""

    def __init__(self) -> None:
        self._hashes: dict[str, dict[str, str]] = {}
        self.close = AsyncMock()

    async def hset(self, key: str, field: str, value: str) -> int:
        self._hashes.setdefault(key, {})[field] = value
        return 1

    async def hget(self, key: str, field: str) -> str | None:
        return self._hashes.get(key, {}).get(field)

    async def hgetall(self, key: str) -> dict[str, str]:
        return dict(self._hashes.get(key, {}))

    async def hdel(self, key: str, *fields: str) -> int:
        bucket = self._hashes.get(key, {})
        return sum(1 for f in fields if bucket.pop(f, None) is not None)

    async def delete(self, *keys: str) -> int:
        return sum(1 for k in keys if self._hashes.pop(k, None) is not None)

    async def health_check(self) -> dict[str, Any]:
        return {"status": "healthy", "latency_ms": 0.1}


@pytest.fixture
def mock_redis() -> MockRedisClient:
    return MockRedisClient()
