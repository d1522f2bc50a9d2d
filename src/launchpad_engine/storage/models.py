"""SQLAlchemy models for persistent storage.

This module defines the database schema for launched subjects (tokens),
ingested trades, wallet profiles and unlocked achievements.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class SubjectModel(Base):
    """A launched token tracked by the engine."""

    __tablename__ = "subjects"

    mint: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    symbol: Mapped[str] = mapped_column(String(32), nullable=False)
    deployer: Mapped[str | None] = mapped_column(String(64), nullable=True)
    quote_mint: Mapped[str | None] = mapped_column(String(64), nullable=True)
    pool: Mapped[str | None] = mapped_column(String(64), nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    migrated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    migrated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # Early-buyer market-cap milestone already paid out for this subject.
    unicorn_hunter_awarded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_subjects_deployer", "deployer"),
        Index("idx_subjects_migrated", "migrated"),
    )


class TradeModel(Base):
    """Ingested trades (append-only, keyed by transaction signature)."""

    __tablename__ = "trades"

    signature: Mapped[str] = mapped_column(String(128), primary_key=True)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)
    wallet_address: Mapped[str] = mapped_column(String(64), nullable=False)
    side: Mapped[str] = mapped_column(String(4), nullable=False)  # buy|sell
    native_volume: Mapped[Decimal] = mapped_column(Numeric(30, 9), nullable=False)
    usd_volume: Mapped[Decimal] = mapped_column(Numeric(30, 6), nullable=False)
    ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("idx_trades_wallet_ts", "wallet_address", "ts"),
        Index("idx_trades_subject_side_ts", "subject_id", "side", "ts"),
    )


class WalletModel(Base):
    """Cumulative per-wallet quest statistics."""

    __tablename__ = "wallets"

    address: Mapped[str] = mapped_column(String(64), primary_key=True)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_volume: Mapped[Decimal] = mapped_column(Numeric(30, 9), nullable=False, default=Decimal(0))
    profitable_flips: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    flip_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deployed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    snipe_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    comment_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (Index("idx_wallets_points", "points"),)


class WalletAchievementModel(Base):
    """One row per (wallet, achievement) unlock."""

    __tablename__ = "wallet_achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    address: Mapped[str] = mapped_column(String(64), nullable=False)
    achievement_id: Mapped[str] = mapped_column(String(64), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    unlocked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        UniqueConstraint("address", "achievement_id", name="uq_wallet_achievements_unlock"),
        Index("idx_wallet_achievements_address", "address"),
    )
