"""Reward estimates backed by persisted trades and live price data."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError

from launchpad_engine.ingestor.jupiter_client import JupiterClientError
from launchpad_engine.ingestor.models import Holder
from launchpad_engine.rewards.allocator import RewardPoolConfig, RewardPools, compute_reward_pools
from launchpad_engine.storage.repos import TradeRepository

if TYPE_CHECKING:
    from launchpad_engine.ingestor.jupiter_client import JupiterClient
    from launchpad_engine.ingestor.market_data import MarketDataService
    from launchpad_engine.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

DEFAULT_EARNINGS_RATE = Decimal("0.013")
DEFAULT_FALLBACK_CONVERSION_RATE = Decimal(577)


@dataclass(frozen=True)
class HolderEarnings:
    """A holder row with its estimated reward share."""

    address: str
    amount: Decimal
    amount_display: str
    estimated_earnings: Decimal
    estimated_earnings_converted: Decimal
    is_pool: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "amount": str(self.amount),
            "amountDisplay": self.amount_display,
            "estimatedEarningsUsd": str(self.estimated_earnings),
            "estimatedEarningsConverted": str(self.estimated_earnings_converted),
            "usdDisplay": f"${self.estimated_earnings:.2f}",
            "convertedDisplay": f"{self.estimated_earnings_converted:.4f}",
            "isPool": self.is_pool,
        }


@dataclass(frozen=True)
class HolderLeaderboard:
    """Top holders of a subject with the reward pools they were priced from."""

    subject_id: str
    pools: RewardPools
    holders: list[HolderEarnings] = field(default_factory=list)
    degraded: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "subjectId": self.subject_id,
            "holders": [h.to_dict() for h in self.holders],
            "degraded": self.degraded,
            **self.pools.to_dict(),
        }


class RewardService:
    """Feeds ``compute_reward_pools`` with earnings and a conversion rate.

    Neither input may abort a computation: persistence errors degrade to zero
    earnings, price-feed errors to the last cached price or the fallback rate.
    """

    def __init__(
        self,
        db: DatabaseManager,
        market_data: MarketDataService,
        client: JupiterClient,
        *,
        config: RewardPoolConfig | None = None,
        earnings_rate: Decimal = DEFAULT_EARNINGS_RATE,
        payout_mint: str,
        fallback_conversion_rate: Decimal = DEFAULT_FALLBACK_CONVERSION_RATE,
    ) -> None:
        self._db = db
        self._market_data = market_data
        self._client = client
        self._config = config or RewardPoolConfig()
        self._earnings_rate = earnings_rate
        self._payout_mint = payout_mint
        self._fallback_rate = fallback_conversion_rate

    @property
    def config(self) -> RewardPoolConfig:
        return self._config

    async def platform_earnings(self) -> Decimal:
        """All-time persisted USD trade volume times the platform fee rate."""
        try:
            async with self._db.get_async_session() as session:
                volume = await TradeRepository(session).total_usd_volume()
        except SQLAlchemyError as e:
            logger.error("Failed to load platform volume, assuming zero earnings: %s", e)
            return Decimal(0)
        return volume * self._earnings_rate

    async def conversion_rate(self) -> Decimal:
        """USD price of the payout asset."""
        return await self._market_data.usd_price(self._payout_mint, fallback=self._fallback_rate)

    async def compute_reward_pools(self, platform_earnings: Decimal | None = None) -> RewardPools:
        earnings = platform_earnings if platform_earnings is not None else await self.platform_earnings()
        rate = await self.conversion_rate()
        pools = compute_reward_pools(earnings, self._config, rate)
        logger.info(
            "Reward pools: earnings=%s community=%s per_trader=%s per_holder=%s rate=%s",
            pools.platform_earnings,
            pools.community_pool,
            pools.per_trader,
            pools.per_holder,
            pools.conversion_rate,
        )
        return pools

    async def holders_with_earnings(self, subject_id: str) -> HolderLeaderboard:
        """Top holders of a subject annotated with their estimated share.

        On any upstream failure the result is a zeroed pool with placeholder
        holder rows, flagged as degraded.
        """
        try:
            pools = await self.compute_reward_pools()
            holders = await self._client.get_holders(subject_id, limit=self._config.holder_slots)
        except (JupiterClientError, ArithmeticError) as e:
            logger.warning("Holder leaderboard for %s degraded: %s", subject_id, e)
            return self._fallback_leaderboard(subject_id)

        return HolderLeaderboard(
            subject_id=subject_id,
            pools=pools,
            holders=[self._annotate(h, pools) for h in holders],
        )

    @staticmethod
    def _annotate(holder: Holder, pools: RewardPools) -> HolderEarnings:
        return HolderEarnings(
            address=holder.address,
            amount=holder.amount,
            amount_display=holder.amount_display,
            estimated_earnings=pools.per_holder,
            estimated_earnings_converted=pools.per_holder_converted,
            is_pool=holder.is_pool,
        )

    def _fallback_leaderboard(self, subject_id: str) -> HolderLeaderboard:
        placeholders = [
            HolderEarnings(
                address=f"FallbackHolder{i + 1}",
                amount=Decimal(0),
                amount_display="0",
                estimated_earnings=Decimal(0),
                estimated_earnings_converted=Decimal(0),
            )
            for i in range(self._config.holder_slots)
        ]
        return HolderLeaderboard(
            subject_id=subject_id,
            pools=RewardPools.zero(self._fallback_rate),
            holders=placeholders,
            degraded=True,
        )
