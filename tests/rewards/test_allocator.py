"""Tests for reward-pool allocation."""

from decimal import Decimal

import pytest

from launchpad_engine.rewards.allocator import (
    RewardPoolConfig,
    RewardPools,
    compute_reward_pools,
    convert_amount,
)


class TestComputeRewardPools:
    """Tests for compute_reward_pools."""

    def test_default_split(self) -> None:
        pools = compute_reward_pools(Decimal("1000"))

        assert pools.community_pool == Decimal("700")
        assert pools.trader_pool == Decimal("175")
        assert pools.per_trader == Decimal("3.5")
        assert pools.holder_pool == Decimal("280")
        # 280 / 100 - 3 is negative and clamps to zero
        assert pools.per_holder == Decimal("0")
        assert pools.total_holder_pool == Decimal("0")

    def test_holder_share_after_penalty(self) -> None:
        pools = compute_reward_pools(Decimal("10000"))

        assert pools.per_holder == Decimal("25")
        assert pools.total_holder_pool == Decimal("2500")

    def test_conversion(self) -> None:
        pools = compute_reward_pools(Decimal("10000"), conversion_rate=Decimal("2"))

        assert pools.per_trader == Decimal("35")
        assert pools.per_trader_converted == Decimal("16")
        assert pools.per_holder_converted == Decimal("11")
        assert pools.total_holder_pool_converted == Decimal("1100")

    @pytest.mark.parametrize("rate", [None, Decimal(0), Decimal("-5")])
    def test_missing_rate_converts_to_zero(self, rate: Decimal | None) -> None:
        pools = compute_reward_pools(Decimal("10000"), conversion_rate=rate)

        assert pools.per_trader_converted == Decimal(0)
        assert pools.per_holder_converted == Decimal(0)

    def test_negative_earnings_clamped(self) -> None:
        pools = compute_reward_pools(Decimal("-50"), conversion_rate=Decimal("1"))

        assert pools.platform_earnings == Decimal(0)
        assert pools.per_trader == Decimal(0)
        assert pools.per_holder == Decimal(0)

    @pytest.mark.parametrize("earnings", ["0", "1", "999.99", "1000"])
    def test_large_penalty_never_negative(self, earnings: str) -> None:
        config = RewardPoolConfig(holder_penalty=Decimal("1000000"), conversion_penalty=Decimal("1000000"))
        pools = compute_reward_pools(Decimal(earnings), config, Decimal("1"))

        assert pools.per_holder == Decimal(0)
        assert pools.per_trader_converted == Decimal(0)
        assert pools.per_holder_converted == Decimal(0)

    def test_to_dict_uses_string_amounts(self) -> None:
        data = compute_reward_pools(Decimal("1000")).to_dict()

        assert Decimal(data["perTrader"]) == Decimal("3.5")
        assert Decimal(data["communityPool"]) == Decimal("700")
        assert isinstance(data["perHolder"], str)
        assert set(data) >= {"perHolder", "perHolderConverted", "totalHolderPool", "conversionRate"}

    def test_zero_pools(self) -> None:
        pools = RewardPools.zero(Decimal("577"))
        assert pools.conversion_rate == Decimal("577")
        assert pools.per_holder == Decimal(0)


class TestConvertAmount:
    """Tests for convert_amount."""

    def test_penalty_subtracted_before_division(self) -> None:
        assert convert_amount(Decimal("13"), Decimal("5"), Decimal("3")) == Decimal("2")

    def test_amount_below_penalty(self) -> None:
        assert convert_amount(Decimal("2"), Decimal("5"), Decimal("3")) == Decimal(0)

    def test_zero_rate(self) -> None:
        assert convert_amount(Decimal("100"), Decimal(0)) == Decimal(0)


class TestRewardPoolConfig:
    """Tests for RewardPoolConfig validation."""

    def test_fraction_out_of_range(self) -> None:
        with pytest.raises(ValueError):
            RewardPoolConfig(community_fraction=Decimal("1.5"))

    def test_zero_slots(self) -> None:
        with pytest.raises(ValueError):
            RewardPoolConfig(trader_slots=0)

    def test_negative_penalty(self) -> None:
        with pytest.raises(ValueError):
            RewardPoolConfig(holder_penalty=Decimal("-1"))
