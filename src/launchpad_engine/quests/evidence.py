"""Fold newly ingested trades into a wallet profile and derive evidence.

Profitability uses a simple average: a sell is profitable when
its native volume exceeds the mean volume of the wallet's buys of the same
subject at or before the sell. No lot matching is performed.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from launchpad_engine.quests.models import Evidence, WalletProfile

if TYPE_CHECKING:
    from launchpad_engine.storage.repos import TradeDTO

DEFAULT_SNIPE_WINDOW = timedelta(seconds=30)
DEFAULT_PIONEER_BUYER_COUNT = 10


@dataclass(frozen=True)
class EvidenceRules:
    """Windows used while deriving early-participation facts."""

    snipe_window: timedelta = DEFAULT_SNIPE_WINDOW
    pioneer_buyer_count: int = DEFAULT_PIONEER_BUYER_COUNT


@dataclass
class TradeFold:
    """Outcome of folding a batch of trades into a profile."""

    evidence: Evidence
    volume_delta: Decimal = Decimal(0)
    snipe_delta: int = 0
    flip_delta: int = 0
    # Streak value after each sell that had prior buys, in order.
    streaks: list[int] = field(default_factory=list)


def _ordered(trades: Iterable[TradeDTO]) -> list[TradeDTO]:
    return sorted(trades, key=lambda t: (t.ts, t.signature))


def apply_trades(
    profile: WalletProfile,
    trades: Sequence[TradeDTO],
    *,
    history: Sequence[TradeDTO] = (),
    subject_created_at: Mapping[str, datetime] | None = None,
    first_buyers: Mapping[str, Sequence[str]] | None = None,
    rules: EvidenceRules | None = None,
) -> TradeFold:
    """Update cumulative counters for ``trades`` and return batch evidence.

    Each trade must be folded exactly once; callers pass only trades that
    were newly persisted in this cycle.

    Args:
        profile: Wallet profile, mutated in place.
        trades: The wallet's new trades.
        history: The wallet's persisted trades (may include ``trades``).
        subject_created_at: Creation time per subject, for snipe detection.
        first_buyers: Earliest unique buyers per subject, in order.
        rules: Early-participation windows.
    """
    rules = rules or EvidenceRules()
    subject_created_at = subject_created_at or {}
    first_buyers = first_buyers or {}

    new_trades = _ordered(trades)
    all_trades = {t.signature: t for t in history}
    all_trades.update({t.signature: t for t in new_trades})
    known = _ordered(all_trades.values())

    fold = TradeFold(evidence=Evidence())

    fold.volume_delta = sum((t.native_volume for t in new_trades), Decimal(0))
    profile.total_volume += fold.volume_delta

    pioneer = False
    for trade in new_trades:
        if not trade.is_buy:
            continue
        created_at = subject_created_at.get(trade.subject_id)
        if created_at is not None and trade.ts - created_at <= rules.snipe_window:
            profile.snipe_count += 1
            fold.snipe_delta += 1
        pioneers = list(first_buyers.get(trade.subject_id, ()))[: rules.pioneer_buyer_count]
        if profile.address in pioneers:
            pioneer = True

    longest_hold: Decimal | None = None
    largest_profit: Decimal | None = None
    for sell in (t for t in new_trades if t.is_sell):
        buys = [
            t
            for t in known
            if t.subject_id == sell.subject_id and t.is_buy and t.ts <= sell.ts
        ]
        if not buys:
            continue

        average_buy = sum((b.native_volume for b in buys), Decimal(0)) / len(buys)
        if sell.native_volume > average_buy:
            profile.profitable_flips += 1
            profile.flip_streak += 1
            fold.flip_delta += 1

            hold = Decimal(str((sell.ts - buys[0].ts).total_seconds()))
            longest_hold = hold if longest_hold is None else max(longest_hold, hold)
            profit = sell.native_volume - average_buy
            largest_profit = profit if largest_profit is None else max(largest_profit, profit)
        else:
            profile.flip_streak = 0
        fold.streaks.append(profile.flip_streak)

    fold.evidence = Evidence(
        trade_count=len(known),
        distinct_subjects=len({t.subject_id for t in known}),
        largest_trade=max((t.native_volume for t in new_trades), default=None),
        pioneer_buys=1 if pioneer else 0,
        peak_streak=max(fold.streaks) if fold.streaks else None,
        longest_hold_seconds=longest_hold,
        largest_flip_profit=largest_profit,
    )
    return fold
