"""
Message Router for the query subscription.

Decodes inbound frames and routes them to handlers by message type.
Data frames are non-empty JSON arrays of fill records; anything carrying
a ``status`` field is a control/status frame.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

import orjson

from tradefeed.errors import MessageParseError
from tradefeed.live.types import MessageType, RoutedMessage

logger = logging.getLogger(__name__)

Handler = Callable[[RoutedMessage], Awaitable[None]]


@dataclass
class RouterStats:
    """Statistics for message routing."""

    total_messages: int = 0
    routed_messages: int = 0
    dropped_messages: int = 0
    parse_errors: int = 0
    by_type: dict[str, int] = field(default_factory=dict)


class MessageRouter:
    """
    Routes decoded frames to registered handlers.

    Decode failures are logged and counted, never raised: a bad frame must
    not take the connection down.
    """

    def __init__(self) -> None:
        self._handlers: dict[MessageType, list[Handler]] = {}
        self._stats = RouterStats()

    @property
    def stats(self) -> RouterStats:
        """Get routing statistics."""
        return self._stats

    def register_handler(self, message_type: MessageType, handler: Handler) -> None:
        """
        Register a handler for a specific message type.

        Multiple handlers can be registered for the same type.
        They will be called in registration order.
        """
        self._handlers.setdefault(message_type, []).append(handler)
        logger.debug(f"Registered handler for {message_type.value}")

    async def route(self, raw: Union[str, bytes], recv_ts: Optional[int] = None) -> None:
        """
        Decode and route a single inbound frame.

        Args:
            raw: Frame payload as received from the socket
            recv_ts: Receive timestamp in milliseconds (defaults to now)
        """
        self._stats.total_messages += 1
        if recv_ts is None:
            recv_ts = int(time.time() * 1000)

        try:
            routed_msg = self._classify_message(self._decode(raw), recv_ts)
        except MessageParseError as e:
            self._stats.parse_errors += 1
            logger.error(f"Failed to decode frame: {e}")
            return

        type_key = routed_msg.message_type.value
        self._stats.by_type[type_key] = self._stats.by_type.get(type_key, 0) + 1

        handlers = self._handlers.get(routed_msg.message_type, [])
        if not handlers:
            logger.info(f"Unhandled {type_key} message: {routed_msg.data}")
            self._stats.dropped_messages += 1
            return

        self._stats.routed_messages += 1
        for handler in handlers:
            try:
                await handler(routed_msg)
            except Exception as e:
                logger.error(f"Handler error for {type_key}: {e}", exc_info=True)

    @staticmethod
    def _decode(raw: Union[str, bytes]) -> Any:
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            raise MessageParseError(
                f"Invalid JSON frame: {e}",
                raw_data=raw if isinstance(raw, str) else None,
                expected_type="json",
                component="MessageRouter",
            ) from e

    @staticmethod
    def _classify_message(data: Any, recv_ts: int) -> RoutedMessage:
        if isinstance(data, list) and data:
            message_type = MessageType.TRADES
        elif isinstance(data, dict) and "status" in data:
            message_type = MessageType.STATUS
        else:
            message_type = MessageType.UNKNOWN
        return RoutedMessage(message_type=message_type, data=data, recv_ts=recv_ts)

    def get_handler_count(self, message_type: MessageType) -> int:
        """Get number of registered handlers for a message type."""
        return len(self._handlers.get(message_type, []))

    def reset_stats(self) -> None:
        """Reset routing statistics."""
        self._stats = RouterStats()
