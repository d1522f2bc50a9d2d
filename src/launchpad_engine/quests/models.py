"""Data models for achievements (quests) and wallet profiles."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from launchpad_engine.storage.repos import WalletDTO


class Metric(str, Enum):
    """Aggregates an achievement predicate can compare against."""

    # Cumulative wallet counters
    TOTAL_VOLUME = "total_volume"
    SNIPE_COUNT = "snipe_count"
    PROFITABLE_FLIPS = "profitable_flips"
    FLIP_STREAK = "flip_streak"
    DEPLOYED_COUNT = "deployed_count"
    COMMENT_COUNT = "comment_count"
    # Facts observed while processing a batch or a scheduled job
    TRADE_COUNT = "trade_count"
    DISTINCT_SUBJECTS = "distinct_subjects"
    LARGEST_TRADE = "largest_trade"
    PIONEER_BUYS = "pioneer_buys"
    LONGEST_HOLD_SECONDS = "longest_hold_seconds"
    LARGEST_FLIP_PROFIT = "largest_flip_profit"
    LAUNCH_MARKET_CAP = "launch_market_cap"
    EARLY_BUY_MARKET_CAP = "early_buy_market_cap"
    LEADERBOARD_RANK = "leaderboard_rank"


class Comparison(str, Enum):
    GTE = "gte"
    GT = "gt"
    LTE = "lte"


@dataclass(frozen=True)
class Achievement:
    """A one-time unlockable milestone."""

    id: str
    title: str
    points: int
    metric: Metric
    threshold: Decimal
    comparison: Comparison = Comparison.GTE
    description: str = ""

    def matches(self, value: Decimal) -> bool:
        if self.comparison is Comparison.GT:
            return value > self.threshold
        if self.comparison is Comparison.LTE:
            return value <= self.threshold
        return value >= self.threshold

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Achievement:
        """Create an Achievement from a catalog entry.

        Raises:
            ValueError: If a field is missing or invalid.
        """
        try:
            points = int(data["points"])
            achievement = cls(
                id=str(data["id"]),
                title=str(data.get("title", data["id"])),
                points=points,
                metric=Metric(data["metric"]),
                threshold=Decimal(str(data["threshold"])),
                comparison=Comparison(data.get("comparison", Comparison.GTE.value)),
                description=str(data.get("description", "")),
            )
        except (KeyError, TypeError, ArithmeticError) as e:
            raise ValueError(f"Invalid achievement entry {data!r}: {e}") from e
        if points < 0:
            raise ValueError(f"Achievement {achievement.id} has negative points")
        return achievement

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "points": self.points,
            "metric": self.metric.value,
            "threshold": str(self.threshold),
            "comparison": self.comparison.value,
            "description": self.description,
        }


@dataclass
class WalletProfile:
    """A wallet's cumulative quest state.

    ``unlocked`` has set semantics: ``unlock`` is the only mutator and it
    appends an id together with its points, or does nothing.
    """

    address: str
    points: int = 0
    total_volume: Decimal = Decimal(0)
    unlocked: list[str] = field(default_factory=list)
    profitable_flips: int = 0
    flip_streak: int = 0
    deployed_count: int = 0
    snipe_count: int = 0
    comment_count: int = 0

    @classmethod
    def from_record(cls, record: WalletDTO, unlocked: list[str]) -> WalletProfile:
        return cls(
            address=record.address,
            points=record.points,
            total_volume=record.total_volume,
            unlocked=list(dict.fromkeys(unlocked)),
            profitable_flips=record.profitable_flips,
            flip_streak=record.flip_streak,
            deployed_count=record.deployed_count,
            snipe_count=record.snipe_count,
            comment_count=record.comment_count,
        )

    def has_unlocked(self, achievement_id: str) -> bool:
        return achievement_id in self.unlocked

    def unlock(self, achievement_id: str, points: int) -> bool:
        if achievement_id in self.unlocked:
            return False
        self.unlocked.append(achievement_id)
        self.points += points
        return True

    def counter(self, metric: Metric) -> Decimal | None:
        if metric is Metric.TOTAL_VOLUME:
            return self.total_volume
        if metric is Metric.SNIPE_COUNT:
            return Decimal(self.snipe_count)
        if metric is Metric.PROFITABLE_FLIPS:
            return Decimal(self.profitable_flips)
        if metric is Metric.FLIP_STREAK:
            return Decimal(self.flip_streak)
        if metric is Metric.DEPLOYED_COUNT:
            return Decimal(self.deployed_count)
        if metric is Metric.COMMENT_COUNT:
            return Decimal(self.comment_count)
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "points": self.points,
            "totalVolume": str(self.total_volume),
            "unlocked": list(self.unlocked),
            "profitableFlips": self.profitable_flips,
            "flipStreak": self.flip_streak,
            "deployedCount": self.deployed_count,
            "snipeCount": self.snipe_count,
            "commentCount": self.comment_count,
        }


@dataclass(frozen=True)
class Evidence:
    """Facts supporting an evaluation; ``None`` means not observed."""

    trade_count: int | None = None
    distinct_subjects: int | None = None
    largest_trade: Decimal | None = None
    pioneer_buys: int | None = None
    peak_streak: int | None = None
    longest_hold_seconds: Decimal | None = None
    largest_flip_profit: Decimal | None = None
    launch_market_cap: Decimal | None = None
    early_buy_market_cap: Decimal | None = None
    leaderboard_rank: int | None = None

    def value(self, metric: Metric) -> Decimal | None:
        raw: int | Decimal | None
        if metric is Metric.TRADE_COUNT:
            raw = self.trade_count
        elif metric is Metric.DISTINCT_SUBJECTS:
            raw = self.distinct_subjects
        elif metric is Metric.LARGEST_TRADE:
            raw = self.largest_trade
        elif metric is Metric.PIONEER_BUYS:
            raw = self.pioneer_buys
        elif metric is Metric.FLIP_STREAK:
            raw = self.peak_streak
        elif metric is Metric.LONGEST_HOLD_SECONDS:
            raw = self.longest_hold_seconds
        elif metric is Metric.LARGEST_FLIP_PROFIT:
            raw = self.largest_flip_profit
        elif metric is Metric.LAUNCH_MARKET_CAP:
            raw = self.launch_market_cap
        elif metric is Metric.EARLY_BUY_MARKET_CAP:
            raw = self.early_buy_market_cap
        elif metric is Metric.LEADERBOARD_RANK:
            raw = self.leaderboard_rank
        else:
            raw = None
        return Decimal(raw) if raw is not None else None
