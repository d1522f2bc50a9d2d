"""Quest layer - Achievement catalog, evidence and evaluation."""

from launchpad_engine.quests.catalog import DEFAULT_ACHIEVEMENTS, load_achievements
from launchpad_engine.quests.engine import AchievementEngine
from launchpad_engine.quests.evidence import EvidenceRules, TradeFold, apply_trades
from launchpad_engine.quests.models import (
    Achievement,
    Comparison,
    Evidence,
    Metric,
    WalletProfile,
)

__all__ = [
    "DEFAULT_ACHIEVEMENTS",
    "Achievement",
    "AchievementEngine",
    "Comparison",
    "Evidence",
    "EvidenceRules",
    "Metric",
    "TradeFold",
    "WalletProfile",
    "apply_trades",
    "load_achievements",
]
