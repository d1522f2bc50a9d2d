"""Data models for the ingestor module."""

from __future__ import annotations

import contextlib
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from launchpad_engine.storage.repos import SubjectDTO, TradeDTO

DEFAULT_IMAGE_URL = "https://arweave.net/WCM5h_34E8m3y_k-h1i59Q_P5I54k-H2d_s4b-C3xZM"


def _decimal(value: Any, default: Decimal = Decimal(0)) -> Decimal:
    if value is None or value == "":
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


def parse_timestamp(value: Any) -> datetime | None:
    """Parse ISO-8601 strings or epoch seconds/milliseconds into UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, int | float):
        seconds = value / 1000 if value > 1e12 else value
        return datetime.fromtimestamp(seconds, tz=UTC)
    with contextlib.suppress(ValueError, AttributeError):
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


class TradeSide(str, Enum):
    """Trade direction."""

    BUY = "buy"
    SELL = "sell"


@dataclass(frozen=True)
class TradeRecord:
    """A trade as reported by the external feed."""

    signature: str
    subject_id: str
    wallet_address: str
    side: TradeSide
    native_volume: Decimal
    usd_volume: Decimal
    timestamp: datetime

    @classmethod
    def from_jupiter(cls, data: dict[str, Any], *, subject_id: str) -> TradeRecord:
        """Create a TradeRecord from a Jupiter ``/v1/txs`` row.

        Raises:
            ValueError: If the row lacks a signature, trader or timestamp, or
                its type is neither buy nor sell.
        """
        signature = data.get("txHash")
        trader = data.get("traderAddress")
        ts = parse_timestamp(data.get("timestamp"))
        if not signature or not trader or ts is None:
            raise ValueError(f"Incomplete trade row: {data!r}")
        side = TradeSide(str(data.get("type", "")).lower())
        return cls(
            signature=str(signature),
            subject_id=str(data.get("asset") or subject_id),
            wallet_address=str(trader),
            side=side,
            native_volume=abs(_decimal(data.get("nativeVolume"))),
            usd_volume=abs(_decimal(data.get("usdVolume"))),
            timestamp=ts,
        )

    def to_dto(self) -> TradeDTO:
        return TradeDTO(
            signature=self.signature,
            subject_id=self.subject_id,
            wallet_address=self.wallet_address,
            side=self.side.value,
            native_volume=self.native_volume,
            usd_volume=self.usd_volume,
            ts=self.timestamp,
        )


def trade_broadcast_message(trade: TradeDTO, subject: SubjectDTO | None) -> dict[str, Any]:
    """Global trade-feed payload for one newly persisted trade."""
    return {
        "type": "newTrade",
        "trade": {
            "signature": trade.signature,
            "tradeType": trade.side,
            "tokenMint": trade.subject_id,
            "tokenName": subject.name if subject else None,
            "tokenSymbol": subject.symbol if subject else None,
            "solAmount": float(trade.native_volume),
            "wallet": trade.wallet_address,
            "timestamp": trade.ts.isoformat(),
        },
    }


@dataclass(frozen=True)
class MarketSnapshot:
    """Market-data enrichment for a subject."""

    mint: str
    name: str | None = None
    symbol: str | None = None
    image_url: str = DEFAULT_IMAGE_URL
    usd_price: Decimal | None = None
    market_cap: Decimal = Decimal(0)
    liquidity: Decimal = Decimal(0)
    holder_count: int = 0
    bonding_curve: Decimal | None = None
    graduated: bool = False
    created_at: datetime | None = None
    stats_24h: dict[str, Any] | None = None

    @classmethod
    def empty(cls, mint: str) -> MarketSnapshot:
        """Documented default when nothing is known about a subject."""
        return cls(mint=mint)

    @classmethod
    def from_jupiter(cls, data: dict[str, Any]) -> MarketSnapshot:
        """Create a snapshot from a Jupiter asset search result."""
        price = data.get("usdPrice")
        curve = data.get("bondingCurve")
        return cls(
            mint=str(data.get("id", "")),
            name=data.get("name"),
            symbol=data.get("symbol"),
            image_url=data.get("icon") or DEFAULT_IMAGE_URL,
            usd_price=_decimal(price) if price is not None else None,
            market_cap=_decimal(data.get("mcap")),
            liquidity=_decimal(data.get("liquidity")),
            holder_count=int(data.get("holderCount") or 0),
            bonding_curve=_decimal(curve) if curve is not None else None,
            graduated=bool(data.get("graduatedPool")),
            created_at=parse_timestamp(data.get("createdAt")),
            stats_24h=data.get("stats24h") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "mint": self.mint,
            "name": self.name,
            "symbol": self.symbol,
            "imageUrl": self.image_url,
            "usdPrice": str(self.usd_price) if self.usd_price is not None else None,
            "mcap": str(self.market_cap),
            "liquidity": str(self.liquidity),
            "holderCount": self.holder_count,
            "bondingCurve": str(self.bonding_curve) if self.bonding_curve is not None else None,
            "graduated": self.graduated,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "stats24h": self.stats_24h,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MarketSnapshot:
        price = data.get("usdPrice")
        curve = data.get("bondingCurve")
        return cls(
            mint=str(data.get("mint", "")),
            name=data.get("name"),
            symbol=data.get("symbol"),
            image_url=data.get("imageUrl") or DEFAULT_IMAGE_URL,
            usd_price=_decimal(price) if price is not None else None,
            market_cap=_decimal(data.get("mcap")),
            liquidity=_decimal(data.get("liquidity")),
            holder_count=int(data.get("holderCount") or 0),
            bonding_curve=_decimal(curve) if curve is not None else None,
            graduated=bool(data.get("graduated", False)),
            created_at=parse_timestamp(data.get("createdAt")),
            stats_24h=data.get("stats24h"),
        )


@dataclass(frozen=True)
class Holder:
    """One entry of a subject's holder list."""

    address: str
    amount: Decimal = Decimal(0)
    amount_display: str = "0"
    is_pool: bool = False

    @classmethod
    def from_jupiter(cls, data: dict[str, Any], *, index: int) -> Holder:
        name = str(data.get("name") or "")
        return cls(
            address=str(data.get("address") or f"UnknownHolder{index + 1}"),
            amount=_decimal(data.get("amount")),
            amount_display=str(data.get("amountDisplay") or "0"),
            is_pool="pool" in name.lower(),
        )
