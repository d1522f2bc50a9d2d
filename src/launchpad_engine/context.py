"""Process-wide application context.

``AppContext`` owns every piece of live in-process state (database manager,
HTTP clients, caches, subscription registries, terminals) and is passed to
the components that need it. ``create_context`` builds it at process start and
``AppContext.close`` tears it down at shutdown.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta

from redis.asyncio import Redis

from launchpad_engine.cache import CacheStore, RedisCacheStore
from launchpad_engine.config import Settings, get_settings
from launchpad_engine.ingestor.aggregator import IngestionAggregator
from launchpad_engine.ingestor.jupiter_client import JupiterClient
from launchpad_engine.ingestor.market_data import MarketDataService
from launchpad_engine.ingestor.migration import MigrationWatcher
from launchpad_engine.quests.catalog import load_achievements
from launchpad_engine.quests.engine import AchievementEngine
from launchpad_engine.quests.evidence import EvidenceRules
from launchpad_engine.realtime.registry import SubscriptionRegistry
from launchpad_engine.rewards.allocator import RewardPoolConfig
from launchpad_engine.rewards.service import RewardService
from launchpad_engine.storage.database import DatabaseManager
from launchpad_engine.terminal.broadcaster import BroadcasterManager
from launchpad_engine.terminal.generator import AnthropicContentGenerator
from launchpad_engine.terminal.models import SubjectDescriptor

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Owned runtime state of one engine process."""

    settings: Settings
    db: DatabaseManager
    jupiter: JupiterClient
    generator: AnthropicContentGenerator
    market_data: MarketDataService
    engine: AchievementEngine
    aggregator: IngestionAggregator
    migration: MigrationWatcher
    rewards: RewardService
    terminals: BroadcasterManager
    trade_feed: SubscriptionRegistry
    terminal_feed: SubscriptionRegistry
    chat: SubscriptionRegistry
    redis: Redis | None = None
    _closed: bool = field(default=False, repr=False)

    async def close(self) -> None:
        """Stop terminals and release connections; safe to call twice."""
        if self._closed:
            return
        self._closed = True

        await self.terminals.stop_all()
        await self.generator.aclose()
        await self.jupiter.aclose()
        if self.redis is not None:
            await self.redis.aclose()
        await self.db.dispose_async()
        logger.info("Application context closed")


def reward_pool_config(settings: Settings) -> RewardPoolConfig:
    rewards = settings.rewards
    return RewardPoolConfig(
        community_fraction=rewards.community_fraction,
        trader_fraction=rewards.trader_fraction,
        holder_fraction=rewards.holder_fraction,
        trader_slots=rewards.trader_slots,
        holder_slots=rewards.holder_slots,
        holder_penalty=rewards.holder_penalty,
        conversion_penalty=rewards.conversion_penalty,
    )


def create_context(settings: Settings | None = None, *, db: DatabaseManager | None = None) -> AppContext:
    """Build the application context from settings.

    Args:
        settings: Application settings; defaults to ``get_settings()``.
        db: Pre-built database manager, mainly for tests.

    Raises:
        ValueError: If the achievement catalog is invalid.
    """
    settings = settings or get_settings()

    db = db or DatabaseManager(settings.database.url, echo=settings.database.echo)

    redis: Redis | None = None
    snapshot_store: CacheStore | None = None
    price_store: CacheStore | None = None
    if settings.redis.enabled:
        redis = Redis.from_url(settings.redis.url)  # type: ignore[arg-type]
        snapshot_store = RedisCacheStore(redis, key_prefix="launchpad:cache:market:")
        price_store = RedisCacheStore(redis, key_prefix="launchpad:cache:price:")

    jupiter = JupiterClient(
        base_url=settings.jupiter.data_api_url,
        requests_per_second=settings.jupiter.requests_per_second,
        timeout_seconds=settings.jupiter.timeout_seconds,
    )
    market_data = MarketDataService(
        jupiter,
        snapshot_ttl_seconds=settings.engine.market_data_ttl_seconds,
        price_ttl_seconds=settings.engine.price_ttl_seconds,
        store=snapshot_store,
        price_store=price_store,
    )

    engine = AchievementEngine(load_achievements(settings.quests.catalog_path))

    trade_feed = SubscriptionRegistry("trades")
    terminal_feed = SubscriptionRegistry("terminal")
    chat = SubscriptionRegistry("chat")

    aggregator = IngestionAggregator(
        db,
        jupiter,
        engine,
        trade_feed,
        market_data=market_data,
        page_size=settings.jupiter.page_size,
        rules=EvidenceRules(
            snipe_window=timedelta(seconds=settings.quests.snipe_window_seconds),
            pioneer_buyer_count=settings.quests.pioneer_buyer_count,
        ),
        early_buyer_count=settings.quests.early_buyer_count,
        leaderboard_size=settings.quests.leaderboard_size,
        redis=redis,
        lock_ttl_seconds=settings.engine.ingestion_lock_ttl_seconds,
    )

    api_key = settings.anthropic.api_key.get_secret_value() if settings.anthropic.api_key else None
    if api_key is None:
        logger.warning("ANTHROPIC_API_KEY not set; terminals will publish fallback content")
    generator = AnthropicContentGenerator(
        api_key,
        api_url=settings.anthropic.api_url,
        model=settings.anthropic.model,
        max_tokens=settings.anthropic.max_tokens,
        web_search=settings.anthropic.web_search,
        timeout_seconds=settings.anthropic.timeout_seconds,
    )

    async def describe(subject: SubjectDescriptor) -> SubjectDescriptor:
        return subject.with_market(await market_data.lookup(subject.mint))

    terminals = BroadcasterManager(
        generator,
        terminal_feed,
        interval_seconds=settings.terminal.interval_seconds,
        history_size=settings.terminal.history_size,
        archive_size=settings.terminal.archive_size,
        describe=describe,
        db=db,
    )

    rewards = RewardService(
        db,
        market_data,
        jupiter,
        config=reward_pool_config(settings),
        earnings_rate=settings.rewards.earnings_rate,
        payout_mint=settings.rewards.payout_mint,
        fallback_conversion_rate=settings.rewards.fallback_conversion_rate,
    )

    return AppContext(
        settings=settings,
        db=db,
        jupiter=jupiter,
        generator=generator,
        market_data=market_data,
        engine=engine,
        aggregator=aggregator,
        migration=MigrationWatcher(db, jupiter),
        rewards=rewards,
        terminals=terminals,
        trade_feed=trade_feed,
        terminal_feed=terminal_feed,
        chat=chat,
        redis=redis,
    )
