"""Tests for the repository layer."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from launchpad_engine.storage.database import DatabaseManager
from launchpad_engine.storage.repos import (
    SubjectDTO,
    SubjectRepository,
    TradeDTO,
    TradeRepository,
    WalletRepository,
    ensure_utc,
)

T0 = datetime(2026, 10, 17, 12, 0, tzinfo=UTC)


def make_trade(signature: str, wallet: str, *, side: str = "buy", minutes: int = 0, usd: str = "10") -> TradeDTO:
    return TradeDTO(
        signature=signature,
        subject_id="MintA",
        wallet_address=wallet,
        side=side,
        native_volume=Decimal("0.1"),
        usd_volume=Decimal(usd),
        ts=T0 + timedelta(minutes=minutes),
    )


class TestEnsureUtc:
    """Tests for ensure_utc."""

    def test_naive_gets_utc(self) -> None:
        assert ensure_utc(datetime(2026, 1, 1)) == datetime(2026, 1, 1, tzinfo=UTC)

    def test_none(self) -> None:
        assert ensure_utc(None) is None


class TestSubjectRepository:
    """Tests for SubjectRepository."""

    @pytest.mark.asyncio
    async def test_insert_once(self, db: DatabaseManager) -> None:
        dto = SubjectDTO(mint="MintA", name="Alpha", symbol="ALP", created_at=T0)
        async with db.get_async_session() as session:
            repo = SubjectRepository(session)
            assert await repo.insert(dto) is True
            assert await repo.insert(dto) is False
            stored = await repo.get("MintA")

        assert stored is not None
        assert stored.symbol == "ALP"
        assert stored.created_at == T0
        assert stored.descriptor()["createdAt"] == T0.isoformat()

    @pytest.mark.asyncio
    async def test_flags_flip_once(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            repo = SubjectRepository(session)
            await repo.insert(SubjectDTO(mint="MintA", name="Alpha", symbol="ALP", created_at=T0, pool="P"))
            assert await repo.mark_migrated("MintA", migrated_at=T0) is True
            assert await repo.mark_migrated("MintA", migrated_at=T0) is False
            assert await repo.mark_unicorn_hunter_awarded("MintA") is True
            assert await repo.mark_unicorn_hunter_awarded("MintA") is False
            assert await repo.list_pending_migration() == []

    @pytest.mark.asyncio
    async def test_list_all_ordered_by_creation(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            repo = SubjectRepository(session)
            await repo.insert(SubjectDTO(mint="Late", name="L", symbol="L", created_at=T0 + timedelta(hours=1)))
            await repo.insert(SubjectDTO(mint="Early", name="E", symbol="E", created_at=T0))
            subjects = await repo.list_all()

        assert [s.mint for s in subjects] == ["Early", "Late"]


class TestTradeRepository:
    """Tests for TradeRepository."""

    @pytest.mark.asyncio
    async def test_insert_many_returns_new_signatures(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            repo = TradeRepository(session)
            assert await repo.insert_many([make_trade("s1", "W1")]) == {"s1"}
            inserted = await repo.insert_many([make_trade("s1", "W1"), make_trade("s2", "W2")])
            existing = await repo.existing_signatures(["s1", "s2", "s3"])

        assert inserted == {"s2"}
        assert existing == {"s1", "s2"}

    @pytest.mark.asyncio
    async def test_insert_many_empty(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            assert await TradeRepository(session).insert_many([]) == set()

    @pytest.mark.asyncio
    async def test_first_buyers_ordered_by_first_buy(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            repo = TradeRepository(session)
            await repo.insert_many(
                [
                    make_trade("s1", "W2", minutes=5),
                    make_trade("s2", "W1", minutes=1),
                    make_trade("s3", "W2", minutes=0),
                    make_trade("s4", "W3", side="sell", minutes=0),
                    make_trade("s5", "W4", minutes=9),
                ]
            )
            buyers = await repo.first_buyers("MintA", limit=2)

        assert buyers == ["W2", "W1"]

    @pytest.mark.asyncio
    async def test_wallet_history_and_volume(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            repo = TradeRepository(session)
            await repo.insert_many(
                [
                    make_trade("s2", "W1", side="sell", minutes=3, usd="20"),
                    make_trade("s1", "W1", minutes=1, usd="5"),
                    make_trade("s3", "W2", minutes=2, usd="1.5"),
                ]
            )
            history = await repo.list_for_wallet("W1")
            total = await repo.total_usd_volume()

        assert [t.signature for t in history] == ["s1", "s2"]
        assert history[0].is_buy and history[1].is_sell
        assert total == Decimal("26.5")


class TestWalletRepository:
    """Tests for WalletRepository."""

    @pytest.mark.asyncio
    async def test_get_or_create_zeroed(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            repo = WalletRepository(session)
            wallet = await repo.get_or_create("W1")
            again = await repo.get_or_create("W1")

        assert wallet.points == 0
        assert wallet.total_volume == Decimal(0)
        assert again.address == "W1"

    @pytest.mark.asyncio
    async def test_apply_deltas_increments(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            repo = WalletRepository(session)
            await repo.get_or_create("W1")
            await repo.apply_deltas("W1", total_volume=Decimal("12.5"), profitable_flips=1, flip_streak=1)
            await repo.apply_deltas("W1", total_volume=Decimal("2.5"), snipe_count=1, flip_streak=-3)
            wallet = await repo.get("W1")

        assert wallet is not None
        assert wallet.total_volume == Decimal("15")
        assert wallet.profitable_flips == 1
        assert wallet.snipe_count == 1
        assert wallet.flip_streak == 0

    @pytest.mark.asyncio
    async def test_unlock_credits_points_once(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            repo = WalletRepository(session)
            await repo.get_or_create("W1")
            assert await repo.unlock("W1", "FIRST_STEPS", 10) is True
            assert await repo.unlock("W1", "FIRST_STEPS", 10) is False
            assert await repo.unlock("W1", "APPRENTICE_TRADER", 25) is True
            wallet = await repo.get("W1")
            achievements = await repo.list_achievements("W1")

        assert wallet is not None
        assert wallet.points == 35
        assert achievements == ["FIRST_STEPS", "APPRENTICE_TRADER"]

    @pytest.mark.asyncio
    async def test_top_by_points(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            repo = WalletRepository(session)
            for address, points in (("W1", 10), ("W2", 50), ("W3", 0), ("W4", 50)):
                await repo.get_or_create(address)
                if points:
                    await repo.unlock(address, "FIRST_STEPS", points)
            top = await repo.top_by_points(limit=2)
            everyone = await repo.top_by_points(limit=10)

        assert [w.address for w in top] == ["W2", "W4"]
        assert [w.address for w in everyone] == ["W2", "W4", "W1"]
