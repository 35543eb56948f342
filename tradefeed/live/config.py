"""
Configuration types for the live subscription module.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from tradefeed.errors import ConfigurationError


@dataclass(frozen=True)
class ClientConfig:
    """Configuration for a single query subscription connection."""

    # Full WebSocket URL, e.g. ws://localhost:8099/ws/v0/query
    url: str

    # Subscription mode; also gates the heartbeat
    live: bool = True

    # Protocol-level ping period; None disables the heartbeat
    heartbeat_interval_s: Optional[float] = None

    # Name for logging purposes
    name: str = "query_client"

    def __post_init__(self) -> None:
        if not self.url:
            raise ConfigurationError("url must be non-empty", field="url")
        if not self.url.startswith(("ws://", "wss://")):
            raise ConfigurationError(
                "url must use the ws:// or wss:// scheme",
                field="url",
                value=self.url,
            )
        if self.heartbeat_interval_s is not None and self.heartbeat_interval_s <= 0:
            raise ConfigurationError(
                "heartbeat_interval_s must be positive",
                field="heartbeat_interval_s",
                value=self.heartbeat_interval_s,
            )
