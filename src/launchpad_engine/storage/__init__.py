"""Storage layer - Database schemas and repositories."""

from launchpad_engine.storage.database import DatabaseManager, to_async_url
from launchpad_engine.storage.models import (
    Base,
    SubjectModel,
    TradeModel,
    WalletAchievementModel,
    WalletModel,
)
from launchpad_engine.storage.repos import (
    SubjectDTO,
    SubjectRepository,
    TradeDTO,
    TradeRepository,
    WalletDTO,
    WalletRepository,
)

__all__ = [
    "Base",
    "DatabaseManager",
    "SubjectDTO",
    "SubjectModel",
    "SubjectRepository",
    "TradeDTO",
    "TradeModel",
    "TradeRepository",
    "WalletAchievementModel",
    "WalletDTO",
    "WalletModel",
    "WalletRepository",
    "to_async_url",
]
