"""Tests for application context wiring."""

from decimal import Decimal

import pytest

from launchpad_engine.config import Settings
from launchpad_engine.context import create_context, reward_pool_config
from launchpad_engine.storage.database import DatabaseManager


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    for name in ("DATABASE_URL", "REDIS_URL", "ANTHROPIC_API_KEY", "QUESTS_CATALOG_PATH"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir("/")
    return Settings()


class TestCreateContext:
    """Tests for create_context."""

    @pytest.mark.asyncio
    async def test_wires_components(self, settings: Settings, db: DatabaseManager) -> None:
        ctx = create_context(settings, db=db)
        try:
            assert ctx.redis is None
            assert ctx.db is db
            assert ctx.trade_feed is not ctx.terminal_feed
            assert ctx.terminals.running() == []
            assert ctx.engine.get("FIRST_STEPS") is not None
        finally:
            await ctx.close()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, settings: Settings, db: DatabaseManager) -> None:
        ctx = create_context(settings, db=db)
        await ctx.close()
        await ctx.close()

    @pytest.mark.asyncio
    async def test_redis_enabled(self, monkeypatch: pytest.MonkeyPatch, db: DatabaseManager) -> None:
        monkeypatch.chdir("/")
        monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")
        ctx = create_context(Settings(), db=db)
        try:
            assert ctx.redis is not None
        finally:
            await ctx.close()


def test_reward_pool_config_from_settings(settings: Settings) -> None:
    config = reward_pool_config(settings)

    assert config.community_fraction == Decimal("0.70")
    assert config.trader_slots == settings.rewards.trader_slots
    assert config.holder_penalty == settings.rewards.holder_penalty
