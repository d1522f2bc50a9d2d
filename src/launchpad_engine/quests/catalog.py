"""Achievement catalog: built-in defaults and JSON loading."""

from __future__ import annotations

import json
import logging
from decimal import Decimal
from pathlib import Path

from launchpad_engine.quests.models import Achievement, Comparison, Metric

logger = logging.getLogger(__name__)


def _a(
    achievement_id: str,
    title: str,
    points: int,
    metric: Metric,
    threshold: int | str,
    comparison: Comparison = Comparison.GTE,
    description: str = "",
) -> Achievement:
    return Achievement(
        id=achievement_id,
        title=title,
        points=points,
        metric=metric,
        threshold=Decimal(str(threshold)),
        comparison=comparison,
        description=description,
    )


DEFAULT_ACHIEVEMENTS: tuple[Achievement, ...] = (
    _a("FIRST_STEPS", "First Steps", 10, Metric.TRADE_COUNT, 1, description="Make your first trade."),
    # Cumulative native volume tiers
    _a("APPRENTICE_TRADER", "Apprentice Trader", 25, Metric.TOTAL_VOLUME, 10),
    _a("JOURNEYMAN_TRADER", "Journeyman Trader", 50, Metric.TOTAL_VOLUME, 100),
    _a("MARKET_MAKER", "Market Maker", 150, Metric.TOTAL_VOLUME, 1000),
    _a("KINGPIN_TRADER", "Kingpin Trader", 300, Metric.TOTAL_VOLUME, 5000),
    _a("TYCOON", "Tycoon", 500, Metric.TOTAL_VOLUME, 15000),
    # Diversity
    _a("THE_REGULAR", "The Regular", 25, Metric.DISTINCT_SUBJECTS, 5),
    _a("DIVERSIFIER", "Diversifier", 100, Metric.DISTINCT_SUBJECTS, 25),
    # Per-trade feats
    _a("WHALE_TRADE", "Whale Trade", 50, Metric.LARGEST_TRADE, 25),
    _a("PIONEER_TRADER", "Pioneer Trader", 50, Metric.PIONEER_BUYS, 1),
    _a("SNIPER", "Sniper", 50, Metric.SNIPE_COUNT, 1),
    _a("ALPHA_SNIPER", "Alpha Sniper", 150, Metric.SNIPE_COUNT, 5),
    # Profitability
    _a("PROFITABLE_START", "Profitable Start", 15, Metric.PROFITABLE_FLIPS, 1),
    _a("FLIPPER", "Flipper", 50, Metric.PROFITABLE_FLIPS, 10),
    _a("MASTER_FLIPPER", "Master Flipper", 150, Metric.PROFITABLE_FLIPS, 50),
    _a("GRANDMASTER_FLIPPER", "Grandmaster Flipper", 400, Metric.PROFITABLE_FLIPS, 200),
    _a("STREAK_KING", "Streak King", 100, Metric.FLIP_STREAK, 5),
    _a("HODLER", "HODLer", 75, Metric.LONGEST_HOLD_SECONDS, 24 * 3600, Comparison.GT),
    _a("GIGA_FLIP", "Giga Flip", 100, Metric.LARGEST_FLIP_PROFIT, 10, Comparison.GT),
    # Launches and community
    _a("FIRST_LAUNCH", "First Launch", 25, Metric.DEPLOYED_COUNT, 1),
    _a("SERIAL_LAUNCHER", "Serial Launcher", 100, Metric.DEPLOYED_COUNT, 5),
    _a("SOCIALITE", "Socialite", 10, Metric.COMMENT_COUNT, 1),
    _a("COMMUNITY_PILLAR", "Community Pillar", 75, Metric.COMMENT_COUNT, 25),
    # Market-cap milestones (slow job)
    _a("SUCCESSFUL_LAUNCH", "Successful Launch", 100, Metric.LAUNCH_MARKET_CAP, 10_000),
    _a("LAUNCHPAD_LEGEND", "Launchpad Legend", 250, Metric.LAUNCH_MARKET_CAP, 100_000),
    _a("LEGENDARY_LAUNCH", "Legendary Launch", 1000, Metric.LAUNCH_MARKET_CAP, 1_000_000),
    _a("UNICORN_HUNTER", "Unicorn Hunter", 200, Metric.EARLY_BUY_MARKET_CAP, 100_000),
    # Leaderboard (hourly job)
    _a("TOP_TEN_TRADER", "Top Ten Trader", 250, Metric.LEADERBOARD_RANK, 10, Comparison.LTE),
)


def load_achievements(path: Path | None = None) -> tuple[Achievement, ...]:
    """Load the achievement catalog.

    Args:
        path: JSON file holding a list of achievement objects. The built-in
            catalog is returned when omitted.

    Raises:
        ValueError: If the file is malformed or repeats an id.
    """
    if path is None:
        return DEFAULT_ACHIEVEMENTS

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"Achievement catalog {path} is not valid JSON: {e}") from e
    if not isinstance(raw, list):
        raise ValueError(f"Achievement catalog {path} must contain a JSON list")

    achievements = tuple(Achievement.from_dict(item) for item in raw)
    seen: set[str] = set()
    for achievement in achievements:
        if achievement.id in seen:
            raise ValueError(f"Duplicate achievement id {achievement.id} in {path}")
        seen.add(achievement.id)

    logger.info("Loaded %d achievements from %s", len(achievements), path)
    return achievements
