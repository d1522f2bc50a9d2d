"""Reward layer - Pool allocation and holder estimates."""

from launchpad_engine.rewards.allocator import (
    RewardPoolConfig,
    RewardPools,
    compute_reward_pools,
    convert_amount,
)
from launchpad_engine.rewards.service import HolderEarnings, HolderLeaderboard, RewardService

__all__ = [
    "HolderEarnings",
    "HolderLeaderboard",
    "RewardPoolConfig",
    "RewardPools",
    "RewardService",
    "compute_reward_pools",
    "convert_amount",
]
