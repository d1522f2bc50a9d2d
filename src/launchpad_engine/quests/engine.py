"""Achievement evaluation over wallet profiles and batch evidence."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from decimal import Decimal

from launchpad_engine.quests.catalog import DEFAULT_ACHIEVEMENTS
from launchpad_engine.quests.models import Achievement, Evidence, Metric, WalletProfile

logger = logging.getLogger(__name__)


class AchievementEngine:
    """Evaluate the achievement catalog against a wallet.

    A predicate whose metric is neither a profile counter nor present in the
    supplied evidence evaluates to false. Each id unlocks at most once per
    wallet; points are awarded in the same step as the unlock.
    """

    def __init__(self, achievements: Iterable[Achievement] | None = None) -> None:
        self._achievements: dict[str, Achievement] = {}
        for achievement in achievements if achievements is not None else DEFAULT_ACHIEVEMENTS:
            if achievement.id in self._achievements:
                raise ValueError(f"Duplicate achievement id: {achievement.id}")
            self._achievements[achievement.id] = achievement

    @property
    def achievements(self) -> tuple[Achievement, ...]:
        return tuple(self._achievements.values())

    def get(self, achievement_id: str) -> Achievement | None:
        return self._achievements.get(achievement_id)

    def points_for(self, achievement_id: str) -> int:
        achievement = self._achievements.get(achievement_id)
        return achievement.points if achievement else 0

    def for_metric(self, metric: Metric) -> list[Achievement]:
        return [a for a in self._achievements.values() if a.metric is metric]

    def min_threshold(self, metric: Metric) -> Decimal | None:
        thresholds = [a.threshold for a in self.for_metric(metric)]
        return min(thresholds) if thresholds else None

    def max_threshold(self, metric: Metric) -> Decimal | None:
        thresholds = [a.threshold for a in self.for_metric(metric)]
        return max(thresholds) if thresholds else None

    def _value(self, metric: Metric, profile: WalletProfile, evidence: Evidence) -> Decimal | None:
        counter = profile.counter(metric)
        observed = evidence.value(metric)
        if metric is Metric.FLIP_STREAK and counter is not None and observed is not None:
            return max(counter, observed)
        return counter if counter is not None else observed

    def pending(self, profile: WalletProfile, evidence: Evidence | None = None) -> list[Achievement]:
        """Achievements the wallet qualifies for but has not unlocked yet."""
        evidence = evidence or Evidence()
        qualified: list[Achievement] = []
        for achievement in self._achievements.values():
            if profile.has_unlocked(achievement.id):
                continue
            value = self._value(achievement.metric, profile, evidence)
            if value is not None and achievement.matches(value):
                qualified.append(achievement)
        return qualified

    def evaluate(self, profile: WalletProfile, evidence: Evidence | None = None) -> list[str]:
        """Unlock every newly satisfied achievement on ``profile``.

        Returns:
            Ids unlocked by this call, in catalog order.
        """
        unlocked: list[str] = []
        for achievement in self.pending(profile, evidence):
            if profile.unlock(achievement.id, achievement.points):
                unlocked.append(achievement.id)

        if unlocked:
            logger.debug("Wallet %s unlocked %s", profile.address, ", ".join(unlocked))
        return unlocked
