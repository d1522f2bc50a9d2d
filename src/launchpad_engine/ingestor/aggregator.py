"""Periodic trade ingestion and quest aggregation.

One ingestion cycle for a subject fetches the latest page of trades, keeps the
signatures not yet persisted, stores them, folds them into each trader's
cumulative statistics, evaluates achievements and finally pushes the new
trades to the global trade feed.

A wallet's new trades, its counter updates and its unlocks are written in one
transaction. A failed write stores none of them, so the trades stay unseen and
are folded on the next cycle; quest progress is never granted for trades that
were not stored, nor lost for trades that were. Two overlapping
cycles for the same subject are prevented with a per-subject in-flight guard
(plus a Redis lock when several processes share the database); the database
insert itself ignores conflicting signatures and reports which rows it wrote.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
import weakref
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from launchpad_engine.ingestor.models import TradeRecord, trade_broadcast_message
from launchpad_engine.quests.evidence import EvidenceRules, apply_trades
from launchpad_engine.quests.models import Evidence, Metric, WalletProfile
from launchpad_engine.realtime.registry import GLOBAL_TOPIC
from launchpad_engine.storage.repos import (
    SubjectDTO,
    SubjectRepository,
    TradeDTO,
    TradeRepository,
    WalletRepository,
)

if TYPE_CHECKING:
    from redis.asyncio import Redis

    from launchpad_engine.ingestor.market_data import MarketDataService
    from launchpad_engine.quests.engine import AchievementEngine
    from launchpad_engine.realtime.registry import SubscriptionRegistry
    from launchpad_engine.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

INGEST_LOCK_KEY_PREFIX = "launchpad:ingest:lock:"
DEFAULT_PAGE_SIZE = 100
DEFAULT_EARLY_BUYER_COUNT = 50
DEFAULT_LEADERBOARD_SIZE = 10
DEFAULT_LOCK_TTL_SECONDS = 120

# Compare-and-delete, atomic on the Redis server.
RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""

LaunchListener = Callable[[SubjectDTO], Awaitable[None]]


class PersistenceError(Exception):
    """Raised when new trades could not be stored."""


class IngestionError(Exception):
    """Raised when an ingestion cycle cannot fetch its input."""


class TradeFeed(Protocol):
    """Source of recent trades for a subject."""

    async def fetch_trades(self, mint: str, *, limit: int = DEFAULT_PAGE_SIZE) -> list[TradeRecord]: ...


def _short(address: str) -> str:
    return address[:8] + "..." if len(address) > 8 else address


def _by_first_buy(by_wallet: dict[str, list[TradeDTO]]) -> list[str]:
    """Wallets ordered by their earliest buy in the batch; sell-only wallets last.

    Each wallet is stored before the next is folded, so this order lets
    first-buyer ranks see every earlier buyer of the batch.
    """

    def key(address: str) -> tuple[int, datetime | None, str]:
        buys = [t.ts for t in by_wallet[address] if t.is_buy]
        return (0, min(buys), address) if buys else (1, None, address)

    return sorted(by_wallet, key=key)


@dataclass
class IngestResult:
    """Outcome of one ingestion cycle for one subject."""

    subject_id: str
    fetched: int = 0
    new_trades: int = 0
    wallets: int = 0
    unlocked: dict[str, list[str]] = field(default_factory=dict)
    skipped: bool = False
    error: str | None = None

    @property
    def unlock_count(self) -> int:
        return sum(len(ids) for ids in self.unlocked.values())


@dataclass
class AggregatorStats:
    """Counters across all cycles."""

    cycles: int = 0
    skipped_cycles: int = 0
    trades_ingested: int = 0
    achievements_unlocked: int = 0
    fetch_errors: int = 0
    persistence_errors: int = 0
    last_cycle_at: datetime | None = None
    last_error: str | None = None


class IngestionAggregator:
    """Ingest trades per subject and maintain wallet quest state.

    Example:
        ```python
        aggregator = IngestionAggregator(db, jupiter, engine, trade_feed)
        result = await aggregator.ingest_cycle(mint)
        print(result.new_trades, result.unlocked)
        ```
    """

    def __init__(
        self,
        db: DatabaseManager,
        feed: TradeFeed,
        engine: AchievementEngine,
        trade_feed: SubscriptionRegistry,
        *,
        market_data: MarketDataService | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        rules: EvidenceRules | None = None,
        early_buyer_count: int = DEFAULT_EARLY_BUYER_COUNT,
        leaderboard_size: int = DEFAULT_LEADERBOARD_SIZE,
        redis: Redis | None = None,
        lock_ttl_seconds: int = DEFAULT_LOCK_TTL_SECONDS,
    ) -> None:
        """Initialize the aggregator.

        Args:
            db: Database manager; the single source of truth for dedup.
            feed: Trade source.
            engine: Achievement evaluation.
            trade_feed: Global trade-feed registry.
            market_data: Cached market data for market-cap milestones.
            page_size: Trades fetched per subject per cycle.
            rules: Snipe and pioneer windows.
            early_buyer_count: Buyers credited with early-buy milestones.
            leaderboard_size: Wallets ranked by the leaderboard job.
            redis: Optional Redis for the cross-process ingestion lock.
            lock_ttl_seconds: Expiry of the Redis lock.
        """
        self._db = db
        self._feed = feed
        self._engine = engine
        self._trade_feed = trade_feed
        self._market_data = market_data
        self._page_size = page_size
        self._rules = rules or EvidenceRules()
        self._early_buyer_count = early_buyer_count
        self._leaderboard_size = leaderboard_size
        self._redis = redis
        self._lock_ttl = lock_ttl_seconds

        self._stats = AggregatorStats()
        self._inflight: set[str] = set()
        self._wallet_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()
        self._launch_listeners: list[LaunchListener] = []

    @property
    def stats(self) -> AggregatorStats:
        return self._stats

    @property
    def engine(self) -> AchievementEngine:
        return self._engine

    # ------------------------------------------------------------------
    # Trade ingestion
    # ------------------------------------------------------------------

    async def ingest_all(self, subject_ids: Iterable[str] | None = None) -> list[IngestResult]:
        """Run one cycle for every tracked subject.

        A failure in one subject is logged and does not affect the others.
        """
        if subject_ids is None:
            async with self._db.get_async_session() as session:
                subject_ids = [s.mint for s in await SubjectRepository(session).list_all()]

        results: list[IngestResult] = []
        for subject_id in subject_ids:
            try:
                results.append(await self.ingest_cycle(subject_id))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Ingestion cycle for %s failed: %s", subject_id, e)
                self._stats.last_error = str(e)
                results.append(IngestResult(subject_id=subject_id, error=str(e)))
        return results

    async def ingest_cycle(self, subject_id: str) -> IngestResult:
        """Ingest new trades for one subject.

        Returns:
            What the cycle did. Fetch and persistence failures are reported
            in ``error`` rather than raised.
        """
        result = IngestResult(subject_id=subject_id)
        if subject_id in self._inflight:
            logger.debug("Ingestion for %s already in flight, skipping", subject_id)
            self._stats.skipped_cycles += 1
            result.skipped = True
            return result

        self._inflight.add(subject_id)
        lock_token: str | None = None
        try:
            lock_token = await self._acquire_subject_lock(subject_id)
            if lock_token == "":
                self._stats.skipped_cycles += 1
                result.skipped = True
                return result

            self._stats.cycles += 1
            self._stats.last_cycle_at = datetime.now(UTC)
            try:
                await self._run_cycle(subject_id, result)
            except IngestionError as e:
                self._stats.fetch_errors += 1
                self._stats.last_error = str(e)
                result.error = str(e)
                logger.warning("%s", e)
            except PersistenceError as e:
                self._record_persistence_error(result, e)
            return result
        finally:
            self._inflight.discard(subject_id)
            if lock_token:
                await self._release_subject_lock(subject_id, lock_token)

    def _record_persistence_error(self, result: IngestResult, error: PersistenceError) -> None:
        self._stats.persistence_errors += 1
        self._stats.last_error = str(error)
        result.error = str(error)
        logger.error("%s; no quest credit granted for the unsaved trades", error)

    async def _run_cycle(self, subject_id: str, result: IngestResult) -> None:
        try:
            records = await self._feed.fetch_trades(subject_id, limit=self._page_size)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise IngestionError(f"Trade fetch for {subject_id} failed: {e}") from e
        result.fetched = len(records)

        # First occurrence wins when a page repeats a signature.
        candidates: dict[str, TradeDTO] = {}
        for record in records:
            candidates.setdefault(record.signature, record.to_dto())
        if not candidates:
            return

        subject, fresh = await self._unseen(subject_id, list(candidates.values()))
        if not fresh:
            logger.debug("No new trades for %s", subject_id)
            return

        by_wallet: dict[str, list[TradeDTO]] = defaultdict(list)
        for trade in fresh:
            by_wallet[trade.wallet_address].append(trade)

        subjects = {subject.mint: subject} if subject else {}
        committed: list[TradeDTO] = []
        for address in _by_first_buy(by_wallet):
            try:
                inserted, unlocked = await self._ingest_wallet(address, by_wallet[address], subjects)
            except SQLAlchemyError as e:
                # Later wallets are left for the next cycle along with this one.
                self._record_persistence_error(
                    result, PersistenceError(f"Persisting trades of {_short(address)} for {subject_id} failed: {e}")
                )
                break
            if inserted:
                committed.extend(inserted)
                result.wallets += 1
            if unlocked:
                result.unlocked[address] = unlocked
                self._stats.achievements_unlocked += len(unlocked)

        committed.sort(key=lambda t: (t.ts, t.signature))
        result.new_trades = len(committed)
        self._stats.trades_ingested += len(committed)
        if committed:
            logger.info("Ingested %d new trades for %s", len(committed), subject_id)
        for trade in committed:
            await self._trade_feed.broadcast(GLOBAL_TOPIC, trade_broadcast_message(trade, subject))

    async def _unseen(self, subject_id: str, candidates: list[TradeDTO]) -> tuple[SubjectDTO | None, list[TradeDTO]]:
        try:
            async with self._db.get_async_session() as session:
                subject = await SubjectRepository(session).get(subject_id)
                existing = await TradeRepository(session).existing_signatures([t.signature for t in candidates])
        except SQLAlchemyError as e:
            raise PersistenceError(f"Reading trades for {subject_id} failed: {e}") from e
        return subject, [t for t in candidates if t.signature not in existing]

    async def _ingest_wallet(
        self,
        address: str,
        trades: list[TradeDTO],
        subjects: dict[str, SubjectDTO],
    ) -> tuple[list[TradeDTO], list[str]]:
        """Store one wallet's trades and fold them in a single transaction.

        Returns:
            The trades this call inserted and the achievements they unlocked.
            On failure nothing is written, so the trades are seen as new again
            on the next cycle.
        """
        async with self._wallet_lock(address), self._db.get_async_session() as session:
            trade_repo = TradeRepository(session)
            inserted = await trade_repo.insert_many(trades)
            new_trades = sorted((t for t in trades if t.signature in inserted), key=lambda t: (t.ts, t.signature))
            if not new_trades:
                return [], []

            wallets = WalletRepository(session)
            profile = await self._load_profile(wallets, address)
            history = await trade_repo.list_for_wallet(address)

            first_buyers: dict[str, list[str]] = {}
            for subject_id in {t.subject_id for t in new_trades}:
                first_buyers[subject_id] = await trade_repo.first_buyers(
                    subject_id, limit=self._rules.pioneer_buyer_count
                )

            fold = apply_trades(
                profile,
                new_trades,
                history=history,
                subject_created_at={mint: s.created_at for mint, s in subjects.items()},
                first_buyers=first_buyers,
                rules=self._rules,
            )
            await wallets.apply_deltas(
                address,
                total_volume=fold.volume_delta,
                profitable_flips=fold.flip_delta,
                snipe_count=fold.snipe_delta,
                flip_streak=profile.flip_streak if fold.streaks else None,
            )
            return new_trades, await self._unlock(wallets, profile, fold.evidence)

    # ------------------------------------------------------------------
    # Achievement boundary operations
    # ------------------------------------------------------------------

    async def evaluate_achievements(self, address: str, evidence: Evidence | None = None) -> list[str]:
        """Evaluate a wallet against ``evidence`` and persist new unlocks."""
        async with self._wallet_lock(address), self._db.get_async_session() as session:
            wallets = WalletRepository(session)
            profile = await self._load_profile(wallets, address)
            return await self._unlock(wallets, profile, evidence or Evidence())

    def add_launch_listener(self, listener: LaunchListener) -> None:
        """Call ``listener`` after each newly recorded launch."""
        if listener not in self._launch_listeners:
            self._launch_listeners.append(listener)

    def remove_launch_listener(self, listener: LaunchListener) -> None:
        with contextlib.suppress(ValueError):
            self._launch_listeners.remove(listener)

    async def record_launch(self, subject: SubjectDTO) -> list[str]:
        """Persist a confirmed launch and credit its deployer.

        The subject row and the deployer credit are written in one
        transaction: if either fails neither is stored and the error
        propagates, so the launch can be recorded again. Re-recording a
        known subject changes nothing.
        """
        deployer_lock = self._wallet_lock(subject.deployer) if subject.deployer else contextlib.nullcontext()
        async with deployer_lock, self._db.get_async_session() as session:
            if not await SubjectRepository(session).insert(subject):
                logger.debug("Subject %s already recorded", subject.mint)
                return []

            unlocked: list[str] = []
            if subject.deployer:
                wallets = WalletRepository(session)
                profile = await self._load_profile(wallets, subject.deployer)
                profile.deployed_count += 1
                await wallets.apply_deltas(subject.deployer, deployed_count=1)
                unlocked = await self._unlock(wallets, profile, Evidence())

        logger.info("Recorded launch of %s (%s)", subject.symbol, subject.mint)
        for listener in list(self._launch_listeners):
            try:
                await listener(subject)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Launch listener failed for %s: %s", subject.mint, e)
        return unlocked

    async def record_comment(self, address: str) -> list[str]:
        """Count a comment by ``address`` and evaluate social achievements."""
        async with self._wallet_lock(address), self._db.get_async_session() as session:
            wallets = WalletRepository(session)
            profile = await self._load_profile(wallets, address)
            profile.comment_count += 1
            await wallets.apply_deltas(address, comment_count=1)
            return await self._unlock(wallets, profile, Evidence())

    async def check_market_cap_achievements(self) -> int:
        """Evaluate market-cap milestones for every subject.

        The deployer is evaluated against the subject's current market cap;
        the earliest unique buyers are evaluated for early-buy milestones
        until the subject's highest early-buy tier has been paid out.

        Returns:
            Number of achievements unlocked.
        """
        if self._market_data is None:
            return 0

        async with self._db.get_async_session() as session:
            subjects = await SubjectRepository(session).list_all()

        unlocked = 0
        for subject in subjects:
            try:
                unlocked += await self._check_subject_market_cap(self._market_data, subject)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._stats.last_error = str(e)
                logger.warning("Market-cap check for %s failed: %s", subject.mint, e)
        self._stats.achievements_unlocked += unlocked
        return unlocked

    async def _check_subject_market_cap(self, market_data: MarketDataService, subject: SubjectDTO) -> int:
        snapshot = await market_data.lookup(subject.mint)
        market_cap = snapshot.market_cap
        if market_cap <= 0:
            return 0

        unlocked = 0
        if subject.deployer:
            unlocked += len(await self.evaluate_achievements(subject.deployer, Evidence(launch_market_cap=market_cap)))

        early_min = self._engine.min_threshold(Metric.EARLY_BUY_MARKET_CAP)
        early_max = self._engine.max_threshold(Metric.EARLY_BUY_MARKET_CAP)
        if subject.unicorn_hunter_awarded or early_min is None or market_cap < early_min:
            return unlocked

        async with self._db.get_async_session() as session:
            buyers = await TradeRepository(session).first_buyers(subject.mint, limit=self._early_buyer_count)
        evidence = Evidence(early_buy_market_cap=market_cap)
        for buyer in buyers:
            unlocked += len(await self.evaluate_achievements(buyer, evidence))

        if early_max is not None and market_cap >= early_max:
            async with self._db.get_async_session() as session:
                await SubjectRepository(session).mark_unicorn_hunter_awarded(subject.mint)
            logger.info("Early-buy milestones settled for %s at market cap %s", subject.mint, market_cap)
        return unlocked

    async def check_leaderboard_achievements(self) -> int:
        """Evaluate rank achievements for the top wallets by points.

        Returns:
            Number of achievements unlocked.
        """
        async with self._db.get_async_session() as session:
            top = await WalletRepository(session).top_by_points(limit=self._leaderboard_size)

        unlocked = 0
        for rank, wallet in enumerate(top, start=1):
            unlocked += len(await self.evaluate_achievements(wallet.address, Evidence(leaderboard_rank=rank)))
        self._stats.achievements_unlocked += unlocked
        return unlocked

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _wallet_lock(self, address: str) -> asyncio.Lock:
        lock = self._wallet_locks.get(address)
        if lock is None:
            lock = asyncio.Lock()
            self._wallet_locks[address] = lock
        return lock

    @staticmethod
    async def _load_profile(wallets: WalletRepository, address: str) -> WalletProfile:
        record = await wallets.get_or_create(address)
        return WalletProfile.from_record(record, await wallets.list_achievements(address))

    async def _unlock(self, wallets: WalletRepository, profile: WalletProfile, evidence: Evidence) -> list[str]:
        confirmed: list[str] = []
        for achievement_id in self._engine.evaluate(profile, evidence):
            if await wallets.unlock(profile.address, achievement_id, self._engine.points_for(achievement_id)):
                confirmed.append(achievement_id)
        if confirmed:
            logger.info("Wallet %s unlocked %s", _short(profile.address), ", ".join(confirmed))
        return confirmed

    async def _acquire_subject_lock(self, subject_id: str) -> str | None:
        """Take the cross-process lock.

        Returns:
            The lock token, ``""`` when another process holds the lock, or
            None when no Redis is configured (or it is unreachable).
        """
        if self._redis is None:
            return None
        token = uuid.uuid4().hex
        try:
            acquired = await self._redis.set(
                f"{INGEST_LOCK_KEY_PREFIX}{subject_id}", token, nx=True, ex=self._lock_ttl
            )
        except RedisError as e:
            logger.warning("Ingestion lock unavailable for %s, continuing unlocked: %s", subject_id, e)
            return None
        if not acquired:
            logger.debug("Ingestion for %s locked by another process", subject_id)
            return ""
        return token

    async def _release_subject_lock(self, subject_id: str, token: str) -> None:
        """Delete the lock only while it still holds ``token``."""
        if self._redis is None:
            return
        try:
            await self._redis.eval(RELEASE_LOCK_SCRIPT, 1, f"{INGEST_LOCK_KEY_PREFIX}{subject_id}", token)
        except RedisError as e:
            logger.warning("Failed to release ingestion lock for %s: %s", subject_id, e)
