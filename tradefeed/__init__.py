"""tradefeed: reconstruct trade lifecycles from a TimeBase query subscription."""

from tradefeed.aggregation.trades import TradeAggregator
from tradefeed.app import TradeFeedApp
from tradefeed.errors import (
    AuthenticationError,
    ConfigurationError,
    ConnectionError,
    MessageParseError,
    SubscriptionError,
    TradeFeedError,
)
from tradefeed.live import ClientCallbacks, ClientConfig, QuerySubscriptionClient

__version__ = "0.1.0"

__all__ = [
    "TradeFeedApp",
    "TradeAggregator",
    "QuerySubscriptionClient",
    "ClientCallbacks",
    "ClientConfig",
    "TradeFeedError",
    "ConnectionError",
    "SubscriptionError",
    "MessageParseError",
    "AuthenticationError",
    "ConfigurationError",
]
