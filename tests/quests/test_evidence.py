"""Tests for folding trades into wallet profiles."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from launchpad_engine.quests.evidence import EvidenceRules, apply_trades
from launchpad_engine.quests.models import WalletProfile
from launchpad_engine.storage.repos import TradeDTO

WALLET = "Wallet1111111111111111111111111111111111111"
MINT = "Mint11111111111111111111111111111111111111"
T0 = datetime(2026, 1, 1, tzinfo=UTC)


def make_trade(sig: str, side: str, volume: str, seconds: int, *, mint: str = MINT) -> TradeDTO:
    return TradeDTO(
        signature=sig,
        subject_id=mint,
        wallet_address=WALLET,
        side=side,
        native_volume=Decimal(volume),
        usd_volume=Decimal(volume) * 100,
        ts=T0 + timedelta(seconds=seconds),
    )


@pytest.fixture
def profile() -> WalletProfile:
    return WalletProfile(address=WALLET)


class TestApplyTrades:
    """Tests for apply_trades."""

    def test_first_buy_updates_volume(self, profile: WalletProfile) -> None:
        fold = apply_trades(profile, [make_trade("s1", "buy", "5", 600)])

        assert profile.total_volume == Decimal("5")
        assert fold.volume_delta == Decimal("5")
        assert fold.evidence.trade_count == 1
        assert fold.evidence.largest_trade == Decimal("5")
        assert fold.evidence.peak_streak is None

    def test_streak_sequence(self, profile: WalletProfile) -> None:
        trades = [
            make_trade("b1", "buy", "10", 0),
            make_trade("s1", "sell", "20", 10),
            make_trade("s2", "sell", "15", 20),
            make_trade("s3", "sell", "5", 30),
            make_trade("s4", "sell", "11", 40),
        ]
        fold = apply_trades(profile, trades)

        assert fold.streaks == [1, 2, 0, 1]
        assert profile.flip_streak == 1
        assert profile.profitable_flips == 3
        assert fold.flip_delta == 3
        assert fold.evidence.peak_streak == 2

    def test_sell_without_prior_buy_is_ignored(self, profile: WalletProfile) -> None:
        profile.flip_streak = 3
        fold = apply_trades(profile, [make_trade("s1", "sell", "20", 10)])

        assert fold.streaks == []
        assert profile.flip_streak == 3
        assert profile.profitable_flips == 0

    def test_buys_from_history_count_toward_average(self, profile: WalletProfile) -> None:
        history = [make_trade("b1", "buy", "10", 0), make_trade("b2", "buy", "30", 5)]
        sell = make_trade("s1", "sell", "25", 3600)

        fold = apply_trades(profile, [sell], history=history + [sell])

        # average buy is 20, so 25 is a profitable flip worth 5
        assert profile.profitable_flips == 1
        assert fold.evidence.largest_flip_profit == Decimal("5")
        assert fold.evidence.longest_hold_seconds == Decimal("3600")
        assert fold.evidence.trade_count == 3
        # history is not re-added to volume
        assert profile.total_volume == Decimal("25")

    def test_buy_after_sell_not_in_average(self, profile: WalletProfile) -> None:
        history = [make_trade("b1", "buy", "10", 0), make_trade("b2", "buy", "1000", 100)]
        sell = make_trade("s1", "sell", "20", 50)

        apply_trades(profile, [sell], history=history)

        assert profile.profitable_flips == 1

    def test_other_subject_buys_ignored(self, profile: WalletProfile) -> None:
        history = [make_trade("b1", "buy", "1", 0, mint="OtherMint")]
        fold = apply_trades(profile, [make_trade("s1", "sell", "20", 10)], history=history)

        assert fold.streaks == []
        assert fold.evidence.distinct_subjects == 2

    def test_snipe_within_window(self, profile: WalletProfile) -> None:
        trades = [make_trade("b1", "buy", "1", 30), make_trade("b2", "buy", "1", 31)]
        fold = apply_trades(profile, trades, subject_created_at={MINT: T0})

        assert fold.snipe_delta == 1
        assert profile.snipe_count == 1

    def test_custom_snipe_window(self, profile: WalletProfile) -> None:
        rules = EvidenceRules(snipe_window=timedelta(seconds=60))
        fold = apply_trades(
            profile,
            [make_trade("b1", "buy", "1", 45)],
            subject_created_at={MINT: T0},
            rules=rules,
        )
        assert fold.snipe_delta == 1

    def test_pioneer_buy(self, profile: WalletProfile) -> None:
        others = [f"Other{i}" for i in range(3)]
        fold = apply_trades(
            profile,
            [make_trade("b1", "buy", "1", 5)],
            first_buyers={MINT: others + [WALLET]},
        )
        assert fold.evidence.pioneer_buys == 1

    def test_late_buyer_is_not_pioneer(self, profile: WalletProfile) -> None:
        others = [f"Other{i}" for i in range(10)]
        fold = apply_trades(
            profile,
            [make_trade("b1", "buy", "1", 5)],
            first_buyers={MINT: others + [WALLET]},
        )
        assert fold.evidence.pioneer_buys == 0
