"""Tiered reward-pool allocation.

Platform earnings are split into a community pool, which funds a trader pool
(divided over a fixed number of trader slots) and a holder pool (divided over
holder slots, minus a flat per-holder penalty). Per-slot amounts are then
converted into the payout asset.

All functions here are pure. Every monetary result is floored at zero.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

logger = logging.getLogger(__name__)

ZERO = Decimal(0)


@dataclass(frozen=True)
class RewardPoolConfig:
    """Split ratios, slot counts and penalties for the reward pools."""

    community_fraction: Decimal = Decimal("0.70")
    trader_fraction: Decimal = Decimal("0.25")
    holder_fraction: Decimal = Decimal("0.40")
    trader_slots: int = 50
    holder_slots: int = 100
    holder_penalty: Decimal = Decimal(3)
    conversion_penalty: Decimal = Decimal(3)

    def __post_init__(self) -> None:
        for name in ("community_fraction", "trader_fraction", "holder_fraction"):
            value = getattr(self, name)
            if not ZERO <= value <= 1:
                raise ValueError(f"{name} must be within [0, 1], got {value}")
        if self.trader_slots <= 0 or self.holder_slots <= 0:
            raise ValueError("slot counts must be positive")
        if self.holder_penalty < 0 or self.conversion_penalty < 0:
            raise ValueError("penalties must not be negative")


@dataclass(frozen=True)
class RewardPools:
    """Result of a reward-pool computation (A = earnings unit, B = payout unit)."""

    platform_earnings: Decimal
    conversion_rate: Decimal
    community_pool: Decimal
    trader_pool: Decimal
    holder_pool: Decimal
    per_trader: Decimal
    per_trader_converted: Decimal
    per_holder: Decimal
    per_holder_converted: Decimal
    total_holder_pool: Decimal
    total_holder_pool_converted: Decimal

    @classmethod
    def zero(cls, conversion_rate: Decimal = ZERO) -> RewardPools:
        return cls(
            platform_earnings=ZERO,
            conversion_rate=conversion_rate,
            community_pool=ZERO,
            trader_pool=ZERO,
            holder_pool=ZERO,
            per_trader=ZERO,
            per_trader_converted=ZERO,
            per_holder=ZERO,
            per_holder_converted=ZERO,
            total_holder_pool=ZERO,
            total_holder_pool_converted=ZERO,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "platformEarnings": str(self.platform_earnings),
            "conversionRate": str(self.conversion_rate),
            "communityPool": str(self.community_pool),
            "traderPool": str(self.trader_pool),
            "holderPool": str(self.holder_pool),
            "perTrader": str(self.per_trader),
            "perTraderConverted": str(self.per_trader_converted),
            "perHolder": str(self.per_holder),
            "perHolderConverted": str(self.per_holder_converted),
            "totalHolderPool": str(self.total_holder_pool),
            "totalHolderPoolConverted": str(self.total_holder_pool_converted),
        }


def _non_negative(value: Decimal, label: str) -> Decimal:
    if value < 0:
        logger.warning("Clamping negative %s %s to zero", label, value)
        return ZERO
    return value


def convert_amount(amount: Decimal, conversion_rate: Decimal, penalty: Decimal = ZERO) -> Decimal:
    """Convert an amount into the payout unit after subtracting ``penalty``.

    A zero or negative rate converts to zero.
    """
    if conversion_rate <= 0:
        return ZERO
    adjusted = max(ZERO, amount - penalty)
    return adjusted / conversion_rate


def compute_reward_pools(
    platform_earnings: Decimal,
    config: RewardPoolConfig | None = None,
    conversion_rate: Decimal | None = None,
) -> RewardPools:
    """Compute the community, trader and holder pools and per-slot shares.

    Args:
        platform_earnings: Total platform earnings in unit A.
        config: Pool parameters; defaults match the production split.
        conversion_rate: Price of one unit B in unit A. ``None`` or a
            non-positive rate yields zero converted amounts.

    Returns:
        The computed pools. Never raises for bad inputs; negatives are
        clamped to zero and logged.
    """
    config = config or RewardPoolConfig()
    earnings = _non_negative(Decimal(platform_earnings), "platform earnings")
    rate = _non_negative(Decimal(conversion_rate), "conversion rate") if conversion_rate is not None else ZERO

    community_pool = earnings * config.community_fraction

    trader_pool = community_pool * config.trader_fraction
    per_trader = max(ZERO, trader_pool / config.trader_slots)

    holder_pool = community_pool * config.holder_fraction
    per_holder = max(ZERO, holder_pool / config.holder_slots - config.holder_penalty)

    per_trader_converted = convert_amount(per_trader, rate, config.conversion_penalty)
    per_holder_converted = convert_amount(per_holder, rate, config.conversion_penalty)

    return RewardPools(
        platform_earnings=earnings,
        conversion_rate=rate,
        community_pool=community_pool,
        trader_pool=trader_pool,
        holder_pool=holder_pool,
        per_trader=per_trader,
        per_trader_converted=per_trader_converted,
        per_holder=per_holder,
        per_holder_converted=per_holder_converted,
        total_holder_pool=per_holder * config.holder_slots,
        total_holder_pool_converted=per_holder_converted * config.holder_slots,
    )
