"""Realtime layer - Subscription registries and the WebSocket gateway."""

from launchpad_engine.realtime.gateway import SubscriptionGateway, WebSocketConnection
from launchpad_engine.realtime.registry import GLOBAL_TOPIC, Connection, SubscriptionRegistry

__all__ = [
    "GLOBAL_TOPIC",
    "Connection",
    "SubscriptionGateway",
    "SubscriptionRegistry",
    "WebSocketConnection",
]
