"""
Live query subscription module.

Streams query results from a TimeBase WebSocket endpoint.

Components:
- QuerySubscriptionClient: WebSocket lifecycle, subscribe framing, heartbeat
- ClientCallbacks: on_open/on_message/on_error/on_close slots with logging defaults
- MessageRouter: Frame decoding and routing (trades vs status frames)

Usage:
    from tradefeed.live import ClientCallbacks, ClientConfig, QuerySubscriptionClient

    async def on_open(client: QuerySubscriptionClient) -> None:
        await client.start_subscription('select * from "warehouse-TRADES"')

    client = QuerySubscriptionClient(
        ClientConfig(url="ws://localhost:8099/ws/v0/query", heartbeat_interval_s=30),
        ClientCallbacks(on_open=on_open),
    )
    await client.connect(token)
"""

from tradefeed.live.client import ClientCallbacks, QuerySubscriptionClient
from tradefeed.live.config import ClientConfig
from tradefeed.live.router import MessageRouter
from tradefeed.live.types import (
    ClientState,
    CloseEvent,
    MessageType,
    RoutedMessage,
    SubscriptionRequest,
)

__all__ = [
    # Main entry point
    "QuerySubscriptionClient",
    "ClientCallbacks",
    "ClientConfig",
    "MessageRouter",
    # Types
    "ClientState",
    "CloseEvent",
    "MessageType",
    "RoutedMessage",
    "SubscriptionRequest",
]
