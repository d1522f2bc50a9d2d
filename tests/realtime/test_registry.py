"""Tests for subscription registries."""

import json

import pytest

from launchpad_engine.realtime.registry import Connection, SubscriptionRegistry


class FakeConnection:
    def __init__(self, *, fail: bool = False) -> None:
        self.is_open = True
        self.fail = fail
        self.sent: list[dict] = []

    async def send(self, data: str) -> None:
        if self.fail:
            raise ConnectionResetError("peer gone")
        self.sent.append(json.loads(data))


@pytest.fixture
def registry() -> SubscriptionRegistry:
    return SubscriptionRegistry("test")


class TestSubscriptionRegistry:
    """Tests for SubscriptionRegistry."""

    def test_fake_connection_satisfies_protocol(self) -> None:
        assert isinstance(FakeConnection(), Connection)

    def test_subscribe_has_set_semantics(self, registry: SubscriptionRegistry) -> None:
        conn = FakeConnection()
        assert registry.subscribe("A", conn) is True
        assert registry.subscribe("A", conn) is False
        assert registry.count("A") == 1

    def test_unsubscribe(self, registry: SubscriptionRegistry) -> None:
        conn = FakeConnection()
        registry.subscribe("A", conn)

        assert registry.unsubscribe("A", conn) is True
        assert registry.unsubscribe("A", conn) is False
        assert registry.topics == []
        assert registry.subjects_for(conn) == set()

    def test_remove_connection_from_all_topics(self, registry: SubscriptionRegistry) -> None:
        conn, other = FakeConnection(), FakeConnection()
        registry.subscribe("A", conn)
        registry.subscribe("B", conn)
        registry.subscribe("B", other)

        removed = registry.remove_connection(conn)

        assert sorted(removed) == ["A", "B"]
        assert registry.subscribers("A") == []
        assert registry.subscribers("B") == [other]
        assert registry.subjects_for(conn) == set()
        assert registry.topics == ["B"]

    @pytest.mark.asyncio
    async def test_broadcast_only_reaches_topic(self, registry: SubscriptionRegistry) -> None:
        a, b = FakeConnection(), FakeConnection()
        registry.subscribe("A", a)
        registry.subscribe("B", b)

        delivered = await registry.broadcast("A", {"type": "x"})

        assert delivered == 1
        assert a.sent == [{"type": "x"}]
        assert b.sent == []

    @pytest.mark.asyncio
    async def test_broadcast_skips_closed_and_failing(self, registry: SubscriptionRegistry) -> None:
        ok, closed, broken = FakeConnection(), FakeConnection(), FakeConnection(fail=True)
        closed.is_open = False
        for conn in (ok, closed, broken):
            registry.subscribe("A", conn)

        delivered = await registry.broadcast("A", {"type": "x"})

        assert delivered == 1
        assert closed.sent == []
        assert registry.count("A") == 3

    @pytest.mark.asyncio
    async def test_broadcast_to_empty_topic(self, registry: SubscriptionRegistry) -> None:
        assert await registry.broadcast("nobody", {"type": "x"}) == 0

    @pytest.mark.asyncio
    async def test_broadcast_all_sends_once_per_connection(self, registry: SubscriptionRegistry) -> None:
        conn, other = FakeConnection(), FakeConnection()
        registry.subscribe("A", conn)
        registry.subscribe("B", conn)
        registry.subscribe("B", other)

        delivered = await registry.broadcast_all({"type": "ping"})

        assert delivered == 2
        assert len(conn.sent) == 1
