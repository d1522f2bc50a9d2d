"""Data models for the agentic terminal feed."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from launchpad_engine.ingestor.models import MarketSnapshot
    from launchpad_engine.storage.repos import SubjectDTO

SYSTEM_CONTENT_TYPE = "system"

# Round-robin rotation; a terminal cycles through these in order.
CONTENT_TYPES: tuple[str, ...] = (
    "gm_message",
    "lore",
    "ascii_art",
    "breaking_news",
    "holder_analysis",
    "market_prediction",
    "chart_analysis",
    "prophecy",
    "technical_analysis",
    "whale_alert",
    "solana_ecosystem",
    "crypto_research",
    "world_news",
    "tech_innovation",
    "defi_alpha",
    "sentiment_scan",
    "onchain_intel",
    "meme_culture",
    "ai_thoughts",
    "market_psychology",
    "sports_alpha",
    "token_ecosystem",
    "alpha_leak",
    "night_thoughts",
)


def _epoch_millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


@dataclass(frozen=True)
class SubjectDescriptor:
    """Descriptive attributes of a subject handed to content generators."""

    mint: str
    name: str
    symbol: str
    usd_price: Decimal | None = None
    market_cap: Decimal | None = None
    holder_count: int | None = None
    price_change_24h: Decimal | None = None

    @classmethod
    def from_subject(cls, subject: SubjectDTO) -> SubjectDescriptor:
        return cls(mint=subject.mint, name=subject.name, symbol=subject.symbol)

    def with_market(self, snapshot: MarketSnapshot) -> SubjectDescriptor:
        """Copy of this descriptor carrying the latest market figures."""
        raw_change = snapshot.stats_24h.get("priceChange") if snapshot.stats_24h else None
        try:
            change = Decimal(str(raw_change)) if raw_change is not None else None
        except ArithmeticError:
            change = None
        return replace(
            self,
            usd_price=snapshot.usd_price,
            market_cap=snapshot.market_cap,
            holder_count=snapshot.holder_count,
            price_change_24h=change,
        )

    @property
    def agent_name(self) -> str:
        return f"{self.symbol} AGENTIC"


@dataclass(frozen=True)
class ContentEntry:
    """One generated (or synthetic) terminal message."""

    subject_id: str
    content_type: str
    content: str
    created_at: datetime
    symbol: str = ""
    fallback: bool = False

    @classmethod
    def boot(cls, subject: SubjectDescriptor, now: datetime | None = None) -> ContentEntry:
        return cls(
            subject_id=subject.mint,
            content_type=SYSTEM_CONTENT_TYPE,
            content=f"> INITIALIZING {subject.symbol} AGENTIC TERMINAL v1.0...",
            created_at=now or datetime.now(UTC),
            symbol=subject.symbol,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.content_type,
            "content": self.content,
            "timestamp": _epoch_millis(self.created_at),
            "token": self.symbol,
        }


@dataclass(frozen=True)
class ArchivedEntry:
    """An archived entry stamped with the subject's identity."""

    entry: ContentEntry
    token_name: str
    token_symbol: str
    archived_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.entry.to_dict(),
            "tokenName": self.token_name,
            "tokenSymbol": self.token_symbol,
            "archivedAt": self.archived_at.isoformat(),
        }
