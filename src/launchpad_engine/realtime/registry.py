"""Topic-partitioned subscriber sets for live connections.

Each registry is one broadcast domain (global trade feed, per-subject terminal
feed, per-subject chat). Membership has set semantics; a connection that
closes must be removed with ``remove_connection`` so no topic keeps a
reference to it.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Hashable
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

GLOBAL_TOPIC = "*"


@runtime_checkable
class Connection(Protocol):
    """A publish-capable transport with an open-state check."""

    @property
    def is_open(self) -> bool: ...

    async def send(self, data: str) -> None: ...


class SubscriptionRegistry:
    """Tracks which connections are subscribed to which topics.

    Example:
        ```python
        terminal_feed = SubscriptionRegistry("terminal")
        terminal_feed.subscribe(mint, connection)
        await terminal_feed.broadcast(mint, {"type": "agentic_update", "data": entry})
        terminal_feed.remove_connection(connection)
        ```
    """

    def __init__(self, name: str = "registry") -> None:
        self.name = name
        self._subscribers: dict[Hashable, dict[int, Connection]] = {}
        self._topics: dict[int, set[Hashable]] = {}

    def subscribe(self, topic: Hashable, connection: Connection) -> bool:
        """Add ``connection`` to ``topic``; returns False if already present."""
        members = self._subscribers.setdefault(topic, {})
        key = id(connection)
        if key in members:
            return False
        members[key] = connection
        self._topics.setdefault(key, set()).add(topic)
        return True

    def unsubscribe(self, topic: Hashable, connection: Connection) -> bool:
        key = id(connection)
        members = self._subscribers.get(topic)
        if members is None or members.pop(key, None) is None:
            return False
        if not members:
            del self._subscribers[topic]
        topics = self._topics.get(key)
        if topics is not None:
            topics.discard(topic)
            if not topics:
                del self._topics[key]
        return True

    def remove_connection(self, connection: Connection) -> list[Hashable]:
        """Drop a connection from every topic it joined.

        Returns:
            The topics it was removed from.
        """
        topics = list(self._topics.get(id(connection), ()))
        for topic in topics:
            self.unsubscribe(topic, connection)
        return topics

    def subscribers(self, topic: Hashable) -> list[Connection]:
        return list(self._subscribers.get(topic, {}).values())

    def subjects_for(self, connection: Connection) -> set[Hashable]:
        return set(self._topics.get(id(connection), ()))

    def count(self, topic: Hashable) -> int:
        return len(self._subscribers.get(topic, {}))

    @property
    def topics(self) -> list[Hashable]:
        return list(self._subscribers)

    async def broadcast(self, topic: Hashable, message: dict[str, Any] | str) -> int:
        """Send ``message`` to every open subscriber of ``topic``.

        Closed connections are skipped and send failures are logged, never
        raised.

        Returns:
            Number of connections the message was delivered to.
        """
        payload = message if isinstance(message, str) else json.dumps(message, default=str)
        delivered = 0
        # Snapshot: subscribers may join or leave while sends are awaited.
        for connection in self.subscribers(topic):
            if not connection.is_open:
                continue
            try:
                await connection.send(payload)
            except Exception as e:
                logger.warning("%s send to subscriber of %s failed: %s", self.name, topic, e)
                continue
            delivered += 1
        return delivered

    async def broadcast_all(self, message: dict[str, Any] | str) -> int:
        """Send ``message`` to every open connection in any topic, once each."""
        payload = message if isinstance(message, str) else json.dumps(message, default=str)
        seen: set[int] = set()
        delivered = 0
        for members in list(self._subscribers.values()):
            for key, connection in list(members.items()):
                if key in seen or not connection.is_open:
                    continue
                seen.add(key)
                try:
                    await connection.send(payload)
                except Exception as e:
                    logger.warning("%s send failed: %s", self.name, e)
                    continue
                delivered += 1
        return delivered
