"""Tests for scheduled terminal broadcasters."""

import asyncio
import json
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from launchpad_engine.ingestor.models import MarketSnapshot
from launchpad_engine.realtime.registry import SubscriptionRegistry
from launchpad_engine.storage.repos import SubjectDTO, SubjectRepository
from launchpad_engine.terminal.broadcaster import (
    BroadcasterManager,
    BroadcasterState,
    ScheduledBroadcaster,
)
from launchpad_engine.terminal.models import CONTENT_TYPES, SYSTEM_CONTENT_TYPE, SubjectDescriptor

MINT = "Mint11111111111111111111111111111111111111"


class FakeGenerator:
    def __init__(self) -> None:
        self.calls: list[str] = []

    async def generate(self, subject: SubjectDescriptor, content_type: str) -> str:
        self.calls.append(content_type)
        return f"{content_type} #{len(self.calls)}"


class FailingGenerator:
    async def generate(self, subject: SubjectDescriptor, content_type: str) -> str:
        raise RuntimeError("overloaded")


class FakeConnection:
    def __init__(self) -> None:
        self.is_open = True
        self.sent: list[dict] = []

    async def send(self, data: str) -> None:
        self.sent.append(json.loads(data))


class SteppingClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def subject() -> SubjectDescriptor:
    return SubjectDescriptor(mint=MINT, name="Test Token", symbol="TEST")


@pytest.fixture
def registry() -> SubscriptionRegistry:
    return SubscriptionRegistry("terminal")


def make_terminal(subject, generator, registry, **kwargs) -> ScheduledBroadcaster:
    kwargs.setdefault("interval_seconds", 3600)
    return ScheduledBroadcaster(subject, generator, registry, clock=SteppingClock(), **kwargs)


class TestScheduledBroadcaster:
    """Tests for ScheduledBroadcaster."""

    @pytest.mark.asyncio
    async def test_start_records_boot_and_first_entry(self, subject, registry) -> None:
        terminal = make_terminal(subject, FakeGenerator(), registry)
        await terminal.start()
        try:
            history = terminal.history()
            assert terminal.state == BroadcasterState.RUNNING
            assert history[0].content_type == SYSTEM_CONTENT_TYPE
            assert history[0].content == "> INITIALIZING TEST AGENTIC TERMINAL v1.0..."
            assert history[1].content_type == CONTENT_TYPES[0]
            assert len(terminal.archive()) == 1
        finally:
            await terminal.stop()

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, subject, registry) -> None:
        generator = FakeGenerator()
        terminal = make_terminal(subject, generator, registry)
        await terminal.start()
        await terminal.start()
        try:
            assert len(generator.calls) == 1
        finally:
            await terminal.stop()

    @pytest.mark.asyncio
    async def test_round_robin_rotation(self, subject, registry) -> None:
        generator = FakeGenerator()
        terminal = make_terminal(subject, generator, registry)
        await terminal.start()
        try:
            for _ in range(len(CONTENT_TYPES)):
                await terminal.tick()
        finally:
            await terminal.stop()

        assert generator.calls[: len(CONTENT_TYPES)] == list(CONTENT_TYPES)
        assert generator.calls[len(CONTENT_TYPES)] == CONTENT_TYPES[0]

    @pytest.mark.asyncio
    async def test_bounded_history_and_archive(self, subject, registry) -> None:
        terminal = make_terminal(subject, FakeGenerator(), registry, history_size=50, archive_size=1000)
        await terminal.start()
        try:
            for _ in range(1049):
                await terminal.tick()
        finally:
            await terminal.stop()

        history = terminal.history()
        archive = terminal.archive()
        assert terminal.stats.ticks == 1050
        assert len(history) == 50
        assert len(archive) == 1000
        assert history[-1].content.endswith("#1050")
        assert history[0].content.endswith("#1001")
        assert archive[0].entry.content.endswith("#51")
        assert all(e.content_type != SYSTEM_CONTENT_TYPE for e in history)

    @pytest.mark.asyncio
    async def test_archive_limit(self, subject, registry) -> None:
        terminal = make_terminal(subject, FakeGenerator(), registry)
        await terminal.start()
        try:
            await terminal.tick()
            await terminal.tick()
        finally:
            await terminal.stop()

        assert [a.entry.content for a in terminal.archive(limit=2)] == [
            f"{CONTENT_TYPES[1]} #2",
            f"{CONTENT_TYPES[2]} #3",
        ]
        assert terminal.archive(limit=0) == []
        assert terminal.archive(limit=1)[0].to_dict()["tokenSymbol"] == "TEST"

    @pytest.mark.asyncio
    async def test_generation_failure_uses_fallback(self, subject, registry) -> None:
        terminal = make_terminal(subject, FailingGenerator(), registry)
        await terminal.start()
        try:
            entry = terminal.history()[-1]
        finally:
            await terminal.stop()

        assert entry.fallback
        assert "TEST AGENTIC" in entry.content
        assert "[SIGNAL: 0x" in entry.content
        assert terminal.stats.fallbacks == 1
        assert terminal.stats.last_error == "overloaded"

    @pytest.mark.asyncio
    async def test_entries_broadcast_to_subscribers(self, subject, registry) -> None:
        conn = FakeConnection()
        registry.subscribe(MINT, conn)
        terminal = make_terminal(subject, FakeGenerator(), registry)
        await terminal.start()
        await terminal.stop()

        assert len(conn.sent) == 1
        message = conn.sent[0]
        assert message["type"] == "agentic_update"
        assert message["tokenMint"] == MINT
        assert message["data"]["type"] == CONTENT_TYPES[0]
        assert message["data"]["token"] == "TEST"
        assert isinstance(message["data"]["timestamp"], int)

    @pytest.mark.asyncio
    async def test_history_message(self, subject, registry) -> None:
        terminal = make_terminal(subject, FakeGenerator(), registry)
        await terminal.start()
        await terminal.stop()

        message = terminal.history_message()
        assert message["type"] == "agentic_history"
        assert [h["type"] for h in message["history"]] == [SYSTEM_CONTENT_TYPE, CONTENT_TYPES[0]]

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, subject, registry) -> None:
        terminal = make_terminal(subject, FakeGenerator(), registry)
        await terminal.start()
        await terminal.stop()
        await terminal.stop()
        assert terminal.state == BroadcasterState.STOPPED

    @pytest.mark.asyncio
    async def test_tick_when_stopped_does_nothing(self, subject, registry) -> None:
        generator = FakeGenerator()
        terminal = make_terminal(subject, generator, registry)
        assert await terminal.tick() is None
        assert generator.calls == []

    @pytest.mark.asyncio
    async def test_result_after_stop_is_discarded(self, subject, registry) -> None:
        started = asyncio.Event()
        release = asyncio.Event()

        class SlowGenerator:
            async def generate(self, subject, content_type):
                started.set()
                await release.wait()
                return "late"

        terminal = make_terminal(subject, SlowGenerator(), registry)
        start_task = asyncio.create_task(terminal.start())
        await started.wait()
        await terminal.stop()
        release.set()
        await start_task

        assert [e.content_type for e in terminal.history()] == [SYSTEM_CONTENT_TYPE]
        assert terminal.archive() == []
        assert terminal.stats.discarded == 1

    @pytest.mark.asyncio
    async def test_timer_ticks(self, subject, registry) -> None:
        generator = FakeGenerator()
        terminal = make_terminal(subject, generator, registry, interval_seconds=0.01)
        await terminal.start()
        await asyncio.sleep(0.1)
        await terminal.stop()
        assert len(generator.calls) > 1

    @pytest.mark.asyncio
    async def test_describe_refreshes_market_fields(self, subject, registry) -> None:
        snapshot = MarketSnapshot(
            mint=MINT,
            usd_price=Decimal("0.002"),
            market_cap=Decimal("42000"),
            holder_count=12,
            stats_24h={"priceChange": 4.5},
        )
        describe = AsyncMock(side_effect=lambda s: s.with_market(snapshot))
        terminal = make_terminal(subject, FakeGenerator(), registry, describe=describe)
        await terminal.start()
        await terminal.stop()

        assert terminal.subject.market_cap == Decimal("42000")
        assert terminal.subject.price_change_24h == Decimal("4.5")

    def test_invalid_sizes(self, subject, registry) -> None:
        with pytest.raises(ValueError):
            make_terminal(subject, FakeGenerator(), registry, history_size=0)


class TestBroadcasterManager:
    """Tests for BroadcasterManager."""

    @pytest.mark.asyncio
    async def test_one_terminal_per_subject(self, subject, registry) -> None:
        manager = BroadcasterManager(FakeGenerator(), registry, interval_seconds=3600)
        first = await manager.start(subject)
        second = await manager.start(subject)
        try:
            assert first is second
            assert len(manager) == 1
            assert manager.running() == [MINT]
        finally:
            await manager.stop_all()

        assert manager.running() == []

    @pytest.mark.asyncio
    async def test_history_and_archive_by_subject(self, subject, registry) -> None:
        manager = BroadcasterManager(FakeGenerator(), registry, interval_seconds=3600)
        await manager.start(subject)
        await manager.stop_all()

        assert len(manager.history(MINT)) == 2
        assert manager.archive(MINT)[0]["tokenName"] == "Test Token"
        assert manager.history("unknown") == []

    @pytest.mark.asyncio
    async def test_stop_unknown(self, registry) -> None:
        manager = BroadcasterManager(FakeGenerator(), registry)
        assert await manager.stop("unknown") is False

    @pytest.mark.asyncio
    async def test_start_subject_loads_stored_subject(self, db, registry) -> None:
        async with db.get_async_session() as session:
            await SubjectRepository(session).insert(
                SubjectDTO(mint=MINT, name="Test Token", symbol="TEST", created_at=datetime(2026, 1, 1, tzinfo=UTC))
            )
        manager = BroadcasterManager(FakeGenerator(), registry, interval_seconds=3600, db=db)
        try:
            terminal = await manager.start_subject(MINT)
            again = await manager.start_subject(MINT)

            assert terminal is not None
            assert again is terminal
            assert terminal.subject.symbol == "TEST"
            assert manager.running() == [MINT]
        finally:
            await manager.stop_all()

    @pytest.mark.asyncio
    async def test_start_subject_unknown_mint(self, db, registry) -> None:
        manager = BroadcasterManager(FakeGenerator(), registry, interval_seconds=3600, db=db)

        assert await manager.start_subject("unknown") is None
        assert manager.running() == []

    @pytest.mark.asyncio
    async def test_start_subject_without_database(self, registry) -> None:
        manager = BroadcasterManager(FakeGenerator(), registry)
        with pytest.raises(RuntimeError):
            await manager.start_subject(MINT)
