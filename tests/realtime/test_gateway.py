"""Tests for the WebSocket subscription gateway."""

import json

import pytest

from launchpad_engine.realtime.gateway import SubscriptionGateway
from launchpad_engine.realtime.registry import GLOBAL_TOPIC, SubscriptionRegistry
from launchpad_engine.terminal.broadcaster import BroadcasterManager
from launchpad_engine.terminal.models import SubjectDescriptor


class FakeConnection:
    def __init__(self) -> None:
        self.is_open = True
        self.sent: list[dict] = []

    async def send(self, data: str) -> None:
        self.sent.append(json.loads(data))


class FakeGenerator:
    async def generate(self, subject, content_type):
        return f"{content_type} text"


async def message_stream(*messages: dict | str):
    for message in messages:
        yield message if isinstance(message, str) else json.dumps(message)


@pytest.fixture
def trades() -> SubscriptionRegistry:
    return SubscriptionRegistry("trades")


@pytest.fixture
def chat() -> SubscriptionRegistry:
    return SubscriptionRegistry("chat")


@pytest.fixture
def terminals() -> BroadcasterManager:
    return BroadcasterManager(FakeGenerator(), SubscriptionRegistry("terminal"), interval_seconds=3600)


@pytest.fixture
def gateway(trades, chat, terminals) -> SubscriptionGateway:
    return SubscriptionGateway(trades=trades, terminals=terminals, chat=chat)


class TestSubscriptionGateway:
    """Tests for SubscriptionGateway message handling."""

    @pytest.mark.asyncio
    async def test_subscribe_agentic_sends_history(self, gateway, terminals) -> None:
        await terminals.start(SubjectDescriptor(mint="A", name="Alpha", symbol="ALP"))
        conn = FakeConnection()
        try:
            await gateway.handle_message(conn, json.dumps({"type": "subscribe_agentic", "tokenMint": "A"}))
        finally:
            await terminals.stop_all()

        assert terminals.registry.count("A") == 1
        assert conn.sent[0]["type"] == "agentic_history"
        assert conn.sent[0]["tokenMint"] == "A"
        assert len(conn.sent[0]["history"]) == 2

    @pytest.mark.asyncio
    async def test_subscribe_agentic_without_terminal(self, gateway, terminals) -> None:
        conn = FakeConnection()
        await gateway.handle_message(conn, json.dumps({"type": "subscribe_agentic", "tokenMint": "A"}))

        assert terminals.registry.count("A") == 1
        assert conn.sent == []

    @pytest.mark.asyncio
    async def test_chat_presence_counts(self, gateway, chat) -> None:
        first, second = FakeConnection(), FakeConnection()
        await gateway.handle_message(first, json.dumps({"type": "subscribe_token_chat", "tokenMint": "A"}))
        await gateway.handle_message(second, json.dumps({"type": "subscribe_token_chat", "tokenMint": "A"}))

        assert first.sent[-1] == {"type": "online_count", "tokenMint": "A", "count": 2}

        await gateway.handle_message(second, json.dumps({"type": "unsubscribe_token_chat", "tokenMint": "A"}))
        assert first.sent[-1]["count"] == 1
        assert chat.count("A") == 1

    @pytest.mark.asyncio
    async def test_malformed_messages_ignored(self, gateway, terminals, chat) -> None:
        conn = FakeConnection()
        await gateway.handle_message(conn, "not json")
        await gateway.handle_message(conn, json.dumps(["list"]))
        await gateway.handle_message(conn, json.dumps({"type": "subscribe_agentic"}))
        await gateway.handle_message(conn, json.dumps({"type": "dance", "tokenMint": "A"}))

        assert terminals.registry.topics == []
        assert chat.topics == []
        assert conn.sent == []

    @pytest.mark.asyncio
    async def test_disconnect_cleans_every_registry(self, gateway, trades, terminals, chat) -> None:
        conn, watcher = FakeConnection(), FakeConnection()
        chat.subscribe("A", watcher)

        await gateway.serve_connection(
            conn,
            message_stream(
                {"type": "subscribe_agentic", "tokenMint": "A"},
                {"type": "subscribe_agentic", "tokenMint": "B"},
                {"type": "subscribe_token_chat", "tokenMint": "A"},
            ),
        )

        assert trades.count(GLOBAL_TOPIC) == 0
        assert terminals.registry.subscribers("A") == []
        assert terminals.registry.subscribers("B") == []
        assert chat.subscribers("A") == [watcher]
        assert watcher.sent[-1] == {"type": "online_count", "tokenMint": "A", "count": 1}

    @pytest.mark.asyncio
    async def test_connection_joins_global_feed(self, gateway, trades) -> None:
        conn = FakeConnection()
        seen: list[int] = []

        async def stream():
            seen.append(trades.count(GLOBAL_TOPIC))
            yield json.dumps({"type": "noop", "tokenMint": "A"})

        await gateway.serve_connection(conn, stream())

        assert seen == [1]
        assert trades.count(GLOBAL_TOPIC) == 0
