"""
TradeFeed application - top-level composition root.

Wires the components together:
- TokenProvider (or any async token source) for the bearer token
- QuerySubscriptionClient for the WebSocket lifecycle
- MessageRouter for frame decoding/classification
- TradeAggregator for order lifecycle reconstruction
- Telemetry (optional) for closed trades and lifecycle events
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import aiohttp

from tradefeed.aggregation.trades import FillRecord, TradeAggregator
from tradefeed.config.settings import AppSettings
from tradefeed.errors import AuthenticationError
from tradefeed.live.client import ClientCallbacks, QuerySubscriptionClient
from tradefeed.live.router import MessageRouter
from tradefeed.live.types import CloseEvent, MessageType, RoutedMessage
from tradefeed.ports.telemetry import Telemetry

logger = logging.getLogger(__name__)

TokenSource = Callable[[], Awaitable[str]]


class AppState(str, Enum):
    """State machine for TradeFeedApp."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    FAILED = "failed"


class TradeFeedApp:
    """
    Owns one subscription and the trade ledger fed by it.

    State Machine:
        [STOPPED] --start()--> [STARTING] --token ok--> [RUNNING] --socket closed--> [STOPPED]
                                    |                       |
                                [FAILED]               stop() -> [STOPPING] -> [STOPPED]

    Usage:
        settings = load_settings(Path("tradefeed.toml"))
        provider = TokenProvider(settings.auth, EnvSecretsProvider())
        app = TradeFeedApp(settings, provider.fetch_token)
        await app.run()
    """

    def __init__(
        self,
        settings: AppSettings,
        token_source: TokenSource,
        telemetry: Optional[Telemetry] = None,
        session: Optional[aiohttp.ClientSession] = None,
        name: str = "tradefeed",
    ) -> None:
        """
        Initialize the application.

        Args:
            settings: Resolved application settings
            token_source: Async callable returning a bearer token
            telemetry: Optional structured event sink
            session: Optional aiohttp session handed to the subscription client
            name: Name for logging purposes
        """
        self._settings = settings
        self._token_source = token_source
        self._telemetry = telemetry
        self._name = name

        self._state = AppState.STOPPED
        self._closed_trades = 0

        self._aggregator = TradeAggregator(on_trade_close=self._on_trade_close)

        self._router = MessageRouter()
        self._router.register_handler(MessageType.TRADES, self._on_trades)
        self._router.register_handler(MessageType.STATUS, self._on_status)

        self._client = QuerySubscriptionClient(
            settings.client_config(name=f"{name}_ws"),
            ClientCallbacks(
                on_open=self._on_open,
                on_message=self._on_message,
                on_error=self._on_error,
                on_close=self._on_close,
            ),
            session=session,
        )

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def aggregator(self) -> TradeAggregator:
        return self._aggregator

    @property
    def client(self) -> QuerySubscriptionClient:
        return self._client

    @property
    def router(self) -> MessageRouter:
        return self._router

    async def start(self) -> None:
        """
        Acquire a token, then connect the subscription client.

        Raises:
            AuthenticationError: If no token could be obtained; the client is
                never connected in that case
        """
        if self._state not in (AppState.STOPPED, AppState.FAILED):
            logger.warning(f"[{self._name}] Cannot start from state: {self._state}")
            return

        logger.info(f"[{self._name}] Starting...")
        self._state = AppState.STARTING

        try:
            token = await self._token_source()
        except AuthenticationError as e:
            self._state = AppState.FAILED
            logger.error(f"[{self._name}] Token acquisition failed: {e}")
            raise
        except Exception as e:
            self._state = AppState.FAILED
            logger.error(f"[{self._name}] Token acquisition failed: {e}")
            raise AuthenticationError(
                f"Token acquisition failed: {e}", component="TradeFeedApp"
            ) from e

        logger.info(f"[{self._name}] Access token acquired")
        self._state = AppState.RUNNING
        await self._client.connect(token)

    async def run(self) -> None:
        """Start and block until the subscription socket closes."""
        await self.start()
        await self._client.wait_closed()

    async def stop(self) -> None:
        """Disconnect the subscription."""
        if self._state in (AppState.STOPPED, AppState.STOPPING):
            return

        logger.info(f"[{self._name}] Stopping...")
        self._state = AppState.STOPPING
        await self._client.disconnect()
        self._state = AppState.STOPPED

    # --- Client callbacks ---

    async def _on_open(self, client: QuerySubscriptionClient) -> None:
        stream = self._settings.stream
        await client.start_subscription(stream.query, stream.live, stream.date_from)

    async def _on_message(self, data: str) -> None:
        await self._router.route(data)

    async def _on_error(self, error: BaseException, client: QuerySubscriptionClient) -> None:
        logger.error(f"[{self._name}] Error Trades Subscription: {error}")
        self._emit(
            "subscription_error",
            error=str(error),
            error_type=type(error).__name__,
            url=client.url,
        )

    async def _on_close(self, event: CloseEvent, client: QuerySubscriptionClient) -> None:
        not_closed = self._aggregator.get_not_closed_trades()
        logger.warning(
            f"[{self._name}] Closed Trades Subscription (code={event.code}, reason={event.reason!r})"
        )
        logger.info(f"[{self._name}] Not Closed Trades: {not_closed}")
        self._emit(
            "subscription_closed",
            code=event.code,
            reason=event.reason,
            closed_trades=self._closed_trades,
            not_closed_trades=not_closed,
        )
        if self._state != AppState.STOPPING:
            self._state = AppState.STOPPED

    # --- Router handlers ---

    async def _on_trades(self, msg: RoutedMessage) -> None:
        self._aggregator.add_new_trade(msg.data)

    async def _on_status(self, msg: RoutedMessage) -> None:
        logger.info(f"[{self._name}] Status message: {msg.data}")

    # --- Closed trade sink ---

    def _on_trade_close(self, fills: list[FillRecord]) -> None:
        self._closed_trades += 1
        logger.info(f"[{self._name}] Closed Trade: {fills}")
        self._emit(
            "trade_closed",
            order_key=str(TradeAggregator.order_key(fills[-1])),
            fill_count=len(fills),
            fills=fills,
        )

    def _emit(self, event: str, **fields: Any) -> None:
        if self._telemetry is None:
            return
        try:
            self._telemetry.log(event, component=self._name, **fields)
        except Exception as e:
            logger.error(f"[{self._name}] Telemetry write failed for {event}: {e}")

    def get_stats(self) -> dict[str, Any]:
        """Get statistics summary."""
        metrics = self._client.metrics
        return {
            "state": self._state.value,
            "client_state": self._client.state.value,
            "closed_trades": self._closed_trades,
            "open_orders": len(self._aggregator),
            "client": {
                "messages_received": metrics.messages_received,
                "bytes_received": metrics.bytes_received,
                "pings_sent": metrics.pings_sent,
                "errors": metrics.errors,
            },
            "router": {
                "total_messages": self._router.stats.total_messages,
                "routed_messages": self._router.stats.routed_messages,
                "dropped_messages": self._router.stats.dropped_messages,
                "parse_errors": self._router.stats.parse_errors,
            },
            "aggregator": {
                "records_received": self._aggregator.stats.records_received,
                "records_skipped": self._aggregator.stats.records_skipped,
                "orders_opened": self._aggregator.stats.orders_opened,
                "orders_closed": self._aggregator.stats.orders_closed,
                "sink_errors": self._aggregator.stats.sink_errors,
            },
        }
