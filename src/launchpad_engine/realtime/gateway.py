"""WebSocket gateway mapping client messages onto subscription registries.

Every connection joins the global trade feed. Clients then opt into a
subject's terminal feed (``subscribe_agentic``) or chat presence
(``subscribe_token_chat``). On close the connection is removed from all
registries.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterable
from typing import TYPE_CHECKING, Any

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from launchpad_engine.realtime.registry import GLOBAL_TOPIC, Connection, SubscriptionRegistry

if TYPE_CHECKING:
    from launchpad_engine.terminal.broadcaster import BroadcasterManager

logger = logging.getLogger(__name__)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8765


class WebSocketConnection:
    """``Connection`` adapter over a websockets server connection."""

    def __init__(self, ws: ServerConnection) -> None:
        self._ws = ws

    @property
    def is_open(self) -> bool:
        return self._ws.state is State.OPEN

    async def send(self, data: str) -> None:
        await self._ws.send(data)


class SubscriptionGateway:
    """Serve the subscription protocol over WebSockets.

    Example:
        ```python
        gateway = SubscriptionGateway(trades=trade_feed, terminals=manager, chat=chat)
        await gateway.start()
        ...
        await gateway.stop()
        ```
    """

    def __init__(
        self,
        *,
        trades: SubscriptionRegistry,
        terminals: BroadcasterManager,
        chat: SubscriptionRegistry,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
    ) -> None:
        self._trades = trades
        self._terminals = terminals
        self._chat = chat
        self._host = host
        self._port = port
        self._server: Server | None = None

    @property
    def is_serving(self) -> bool:
        return self._server is not None

    async def start(self) -> None:
        if self._server is not None:
            return
        self._server = await serve(self._handler, self._host, self._port)
        logger.info("Subscription gateway listening on %s:%d", self._host, self._port)

    async def stop(self) -> None:
        if self._server is None:
            return
        server, self._server = self._server, None
        server.close()
        await server.wait_closed()
        logger.info("Subscription gateway stopped")

    async def _handler(self, ws: ServerConnection) -> None:
        await self.serve_connection(WebSocketConnection(ws), ws)

    async def serve_connection(self, connection: Connection, messages: AsyncIterable[str | bytes]) -> None:
        """Run one client session until its message stream ends."""
        self._trades.subscribe(GLOBAL_TOPIC, connection)
        try:
            async for raw in messages:
                await self.handle_message(connection, raw)
        except ConnectionClosed:
            logger.debug("Connection closed by peer")
        finally:
            await self.disconnect(connection)

    async def handle_message(self, connection: Connection, raw: str | bytes) -> None:
        """Dispatch one client message; malformed messages are logged and ignored."""
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.debug("Ignoring malformed message: %s", e)
            return
        if not isinstance(data, dict):
            return

        message_type = data.get("type")
        token_mint = data.get("tokenMint")
        if not isinstance(token_mint, str) or not token_mint:
            logger.debug("Ignoring %s without tokenMint", message_type)
            return

        if message_type == "subscribe_agentic":
            self._terminals.registry.subscribe(token_mint, connection)
            terminal = self._terminals.get(token_mint)
            if terminal is not None:
                await self._send(connection, terminal.history_message())
        elif message_type == "unsubscribe_agentic":
            self._terminals.registry.unsubscribe(token_mint, connection)
        elif message_type == "subscribe_token_chat":
            self._chat.subscribe(token_mint, connection)
            await self._broadcast_online_count(token_mint)
        elif message_type == "unsubscribe_token_chat":
            if self._chat.unsubscribe(token_mint, connection):
                await self._broadcast_online_count(token_mint)
        else:
            logger.debug("Ignoring unknown message type %r", message_type)

    async def disconnect(self, connection: Connection) -> None:
        """Remove a closed connection from every registry."""
        self._trades.remove_connection(connection)
        self._terminals.registry.remove_connection(connection)
        for token_mint in self._chat.remove_connection(connection):
            await self._broadcast_online_count(str(token_mint))

    async def _broadcast_online_count(self, token_mint: str) -> None:
        await self._chat.broadcast(
            token_mint,
            {"type": "online_count", "tokenMint": token_mint, "count": self._chat.count(token_mint)},
        )

    @staticmethod
    async def _send(connection: Connection, message: dict[str, Any]) -> None:
        if not connection.is_open:
            return
        try:
            await connection.send(json.dumps(message, default=str))
        except Exception as e:
            logger.warning("Direct send failed: %s", e)
