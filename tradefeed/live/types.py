"""
Shared types, enums, and data structures for the live subscription module.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

SUBSCRIBE_QUERY = "SUBSCRIBE_QUERY"


class ClientState(str, Enum):
    """State machine for a QuerySubscriptionClient."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class MessageType(str, Enum):
    """Classification of decoded inbound frames."""

    TRADES = "trades"
    STATUS = "status"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class SubscriptionRequest:
    """The only outbound application message: a query subscription."""

    query: str
    live: bool
    date_from: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        # Key order is part of the wire format
        return {
            "messageType": SUBSCRIBE_QUERY,
            "query": self.query,
            "live": self.live,
            "from": self.date_from,
        }


@dataclass(frozen=True, slots=True)
class CloseEvent:
    """Payload handed to on_close when the receive loop ends."""

    code: Optional[int] = None
    reason: str = ""


@dataclass(frozen=True, slots=True)
class RoutedMessage:
    """Decoded inbound frame."""

    message_type: MessageType
    data: Any
    recv_ts: int  # Local receive timestamp (Unix ms)


@dataclass
class ClientMetrics:
    """Counters for a single subscription connection."""

    messages_received: int = 0
    bytes_received: int = 0
    pings_sent: int = 0
    pings_skipped: int = 0
    errors: int = 0

    # Timing
    connected_at: Optional[float] = None  # monotonic time
    last_message_at: Optional[float] = None  # monotonic time
