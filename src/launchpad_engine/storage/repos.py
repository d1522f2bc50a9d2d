"""Repository pattern implementations for data access.

This module provides data access abstractions for subjects (launched
tokens), trades, wallet profiles and achievement unlocks. Solana addresses
are base58 and case-sensitive, so they are stored exactly as received.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from launchpad_engine.storage.models import (
    SubjectModel,
    TradeModel,
    WalletAchievementModel,
    WalletModel,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _insert(session: AsyncSession, model: Any) -> Any:
    """Dialect-specific INSERT supporting ON CONFLICT."""
    if session.get_bind().dialect.name == "postgresql":
        return pg_insert(model)
    return sqlite_insert(model)


@dataclass
class SubjectDTO:
    """Data transfer object for launched subjects."""

    mint: str
    name: str
    symbol: str
    created_at: datetime
    deployer: str | None = None
    quote_mint: str | None = None
    pool: str | None = None
    image_url: str | None = None
    migrated: bool = False
    migrated_at: datetime | None = None
    unicorn_hunter_awarded: bool = False

    @classmethod
    def from_model(cls, model: SubjectModel) -> SubjectDTO:
        return cls(
            mint=model.mint,
            name=model.name,
            symbol=model.symbol,
            created_at=ensure_utc(model.created_at),  # type: ignore[arg-type]
            deployer=model.deployer,
            quote_mint=model.quote_mint,
            pool=model.pool,
            image_url=model.image_url,
            migrated=model.migrated,
            migrated_at=ensure_utc(model.migrated_at),
            unicorn_hunter_awarded=model.unicorn_hunter_awarded,
        )

    def descriptor(self) -> dict[str, Any]:
        """Attributes handed to content generators and trade broadcasts."""
        return {
            "mint": self.mint,
            "name": self.name,
            "symbol": self.symbol,
            "createdAt": self.created_at.isoformat(),
            "migrated": self.migrated,
        }


class SubjectRepository:
    """Repository for launched subjects."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, mint: str) -> SubjectDTO | None:
        result = await self.session.execute(select(SubjectModel).where(SubjectModel.mint == mint))
        model = result.scalar_one_or_none()
        return SubjectDTO.from_model(model) if model else None

    async def insert(self, dto: SubjectDTO) -> bool:
        """Insert a subject once; returns False when the mint already exists."""
        stmt = _insert(self.session, SubjectModel).values(
            mint=dto.mint,
            name=dto.name,
            symbol=dto.symbol,
            deployer=dto.deployer,
            quote_mint=dto.quote_mint,
            pool=dto.pool,
            image_url=dto.image_url,
            created_at=dto.created_at,
            migrated=dto.migrated,
            migrated_at=dto.migrated_at,
            unicorn_hunter_awarded=dto.unicorn_hunter_awarded,
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["mint"]).returning(SubjectModel.mint)
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def list_all(self) -> list[SubjectDTO]:
        result = await self.session.execute(select(SubjectModel).order_by(SubjectModel.created_at.asc()))
        return [SubjectDTO.from_model(m) for m in result.scalars().all()]

    async def list_pending_migration(self) -> list[SubjectDTO]:
        """Subjects with a pool whose migration flag has not flipped yet."""
        result = await self.session.execute(
            select(SubjectModel)
            .where(SubjectModel.migrated.is_(sa.false()))
            .where(SubjectModel.pool.is_not(None))
            .order_by(SubjectModel.created_at.asc())
        )
        return [SubjectDTO.from_model(m) for m in result.scalars().all()]

    async def mark_migrated(self, mint: str, *, migrated_at: datetime) -> bool:
        """Flip the migration flag; only the first caller wins."""
        result = await self.session.execute(
            update(SubjectModel)
            .where(SubjectModel.mint == mint)
            .where(SubjectModel.migrated.is_(sa.false()))
            .values(migrated=True, migrated_at=migrated_at)
        )
        return (result.rowcount or 0) == 1

    async def mark_unicorn_hunter_awarded(self, mint: str) -> bool:
        result = await self.session.execute(
            update(SubjectModel)
            .where(SubjectModel.mint == mint)
            .where(SubjectModel.unicorn_hunter_awarded.is_(sa.false()))
            .values(unicorn_hunter_awarded=True)
        )
        return (result.rowcount or 0) == 1


@dataclass
class TradeDTO:
    """Data transfer object for trades."""

    signature: str
    subject_id: str
    wallet_address: str
    side: str
    native_volume: Decimal
    usd_volume: Decimal
    ts: datetime
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: TradeModel) -> TradeDTO:
        return cls(
            signature=model.signature,
            subject_id=model.subject_id,
            wallet_address=model.wallet_address,
            side=model.side,
            native_volume=model.native_volume,
            usd_volume=model.usd_volume,
            ts=ensure_utc(model.ts),  # type: ignore[arg-type]
            created_at=ensure_utc(model.created_at),
        )

    @property
    def is_buy(self) -> bool:
        return self.side == "buy"

    @property
    def is_sell(self) -> bool:
        return self.side == "sell"


class TradeRepository:
    """Repository for persisted trades."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def existing_signatures(self, signatures: list[str]) -> set[str]:
        """Return the subset of signatures already persisted."""
        if not signatures:
            return set()
        result = await self.session.execute(
            select(TradeModel.signature).where(TradeModel.signature.in_(signatures))
        )
        return set(result.scalars().all())

    async def insert_many(self, dtos: list[TradeDTO]) -> set[str]:
        """Insert trades, ignoring signatures that already exist.

        Returns:
            Signatures of rows actually inserted by this call.
        """
        if not dtos:
            return set()

        now = datetime.now(UTC)
        rows = [
            {
                "signature": dto.signature,
                "subject_id": dto.subject_id,
                "wallet_address": dto.wallet_address,
                "side": dto.side,
                "native_volume": dto.native_volume,
                "usd_volume": dto.usd_volume,
                "ts": dto.ts,
                "created_at": now,
            }
            for dto in dtos
        ]
        stmt = _insert(self.session, TradeModel).values(rows)
        stmt = stmt.on_conflict_do_nothing(index_elements=["signature"]).returning(TradeModel.signature)
        result = await self.session.execute(stmt)
        await self.session.flush()
        return set(result.scalars().all())

    async def list_for_wallet(self, wallet_address: str) -> list[TradeDTO]:
        result = await self.session.execute(
            select(TradeModel)
            .where(TradeModel.wallet_address == wallet_address)
            .order_by(TradeModel.ts.asc(), TradeModel.signature.asc())
        )
        return [TradeDTO.from_model(m) for m in result.scalars().all()]

    async def first_buyers(self, subject_id: str, *, limit: int) -> list[str]:
        """Unique buyers of a subject ordered by their first buy."""
        first_buy = func.min(TradeModel.ts)
        result = await self.session.execute(
            select(TradeModel.wallet_address, first_buy.label("first_buy"))
            .where(TradeModel.subject_id == subject_id)
            .where(TradeModel.side == "buy")
            .group_by(TradeModel.wallet_address)
            .order_by(first_buy.asc(), TradeModel.wallet_address.asc())
            .limit(limit)
        )
        return [row[0] for row in result.all()]

    async def total_usd_volume(self) -> Decimal:
        result = await self.session.execute(select(func.coalesce(func.sum(TradeModel.usd_volume), 0)))
        value = result.scalar_one()
        return Decimal(str(value))


@dataclass
class WalletDTO:
    """Data transfer object for wallet quest statistics."""

    address: str
    points: int = 0
    total_volume: Decimal = Decimal(0)
    profitable_flips: int = 0
    flip_streak: int = 0
    deployed_count: int = 0
    snipe_count: int = 0
    comment_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, model: WalletModel) -> WalletDTO:
        return cls(
            address=model.address,
            points=model.points,
            total_volume=Decimal(str(model.total_volume)),
            profitable_flips=model.profitable_flips,
            flip_streak=model.flip_streak,
            deployed_count=model.deployed_count,
            snipe_count=model.snipe_count,
            comment_count=model.comment_count,
            created_at=ensure_utc(model.created_at),
            updated_at=ensure_utc(model.updated_at),
        )


class WalletRepository:
    """Repository for wallet profiles and achievement unlocks.

    Counter updates are expressed as in-database increments so concurrent
    writers never overwrite each other's deltas.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, address: str) -> WalletDTO | None:
        result = await self.session.execute(select(WalletModel).where(WalletModel.address == address))
        model = result.scalar_one_or_none()
        return WalletDTO.from_model(model) if model else None

    async def get_or_create(self, address: str) -> WalletDTO:
        """Return the wallet, creating it with zeroed counters if absent."""
        now = datetime.now(UTC)
        stmt = _insert(self.session, WalletModel).values(
            address=address,
            points=0,
            total_volume=Decimal(0),
            profitable_flips=0,
            flip_streak=0,
            deployed_count=0,
            snipe_count=0,
            comment_count=0,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["address"])
        await self.session.execute(stmt)
        dto = await self.get(address)
        if dto is None:
            raise RuntimeError(f"wallet {address} missing after insert")
        return dto

    async def list_achievements(self, address: str) -> list[str]:
        result = await self.session.execute(
            select(WalletAchievementModel.achievement_id)
            .where(WalletAchievementModel.address == address)
            .order_by(WalletAchievementModel.id.asc())
        )
        return list(result.scalars().all())

    async def apply_deltas(
        self,
        address: str,
        *,
        total_volume: Decimal = Decimal(0),
        profitable_flips: int = 0,
        snipe_count: int = 0,
        deployed_count: int = 0,
        comment_count: int = 0,
        flip_streak: int | None = None,
    ) -> None:
        """Increment counters; the streak is written as an absolute value."""
        values: dict[str, Any] = {
            "total_volume": WalletModel.total_volume + total_volume,
            "profitable_flips": WalletModel.profitable_flips + profitable_flips,
            "snipe_count": WalletModel.snipe_count + snipe_count,
            "deployed_count": WalletModel.deployed_count + deployed_count,
            "comment_count": WalletModel.comment_count + comment_count,
            "updated_at": datetime.now(UTC),
        }
        if flip_streak is not None:
            values["flip_streak"] = max(0, flip_streak)
        await self.session.execute(
            update(WalletModel).where(WalletModel.address == address).values(**values)
        )

    async def unlock(self, address: str, achievement_id: str, points: int) -> bool:
        """Record an unlock and credit its points in the same transaction.

        Returns False (and credits nothing) when the wallet already holds it.
        """
        stmt = _insert(self.session, WalletAchievementModel).values(
            address=address,
            achievement_id=achievement_id,
            points=points,
            unlocked_at=datetime.now(UTC),
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["address", "achievement_id"]).returning(
            WalletAchievementModel.id
        )
        result = await self.session.execute(stmt)
        if result.first() is None:
            return False
        await self.session.execute(
            update(WalletModel)
            .where(WalletModel.address == address)
            .values(points=WalletModel.points + points, updated_at=datetime.now(UTC))
        )
        return True

    async def top_by_points(self, *, limit: int) -> list[WalletDTO]:
        """Wallets with points > 0, highest first."""
        result = await self.session.execute(
            select(WalletModel)
            .where(WalletModel.points > 0)
            .order_by(WalletModel.points.desc(), WalletModel.address.asc())
            .limit(limit)
        )
        return [WalletDTO.from_model(m) for m in result.scalars().all()]
