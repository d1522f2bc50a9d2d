"""Pytest configuration and fixtures."""

from collections.abc import AsyncIterator

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from launchpad_engine.config import clear_settings_cache
from launchpad_engine.storage.database import DatabaseManager
from launchpad_engine.storage.models import Base

MEMORY_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def sample_mint() -> str:
    """Sample subject mint for testing."""
    return "Mint11111111111111111111111111111111111111"


@pytest.fixture
def sample_wallet() -> str:
    """Sample wallet address for testing."""
    return "Wallet1111111111111111111111111111111111111"


@pytest.fixture
async def db() -> AsyncIterator[DatabaseManager]:
    """Database manager over a shared in-memory SQLite engine."""
    engine = create_async_engine(MEMORY_URL, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    manager = DatabaseManager(MEMORY_URL, engine=engine)
    yield manager
    await manager.dispose_async()


@pytest.fixture(autouse=True)
def _fresh_settings():
    clear_settings_cache()
    yield
    clear_settings_cache()
