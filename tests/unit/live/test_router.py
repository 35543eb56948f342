"""
Unit tests for the MessageRouter.
"""

import logging

import pytest

from tradefeed.live.router import MessageRouter
from tradefeed.live.types import MessageType, RoutedMessage


class TestMessageRouter:
    """Tests for MessageRouter."""

    @pytest.fixture
    def router(self) -> MessageRouter:
        """Create a fresh router for each test."""
        return MessageRouter()

    @pytest.mark.asyncio
    async def test_route_trades_array(self, router: MessageRouter) -> None:
        """Test that a non-empty array is routed as a trades batch."""
        received: list[RoutedMessage] = []

        async def handler(msg: RoutedMessage) -> None:
            received.append(msg)

        router.register_handler(MessageType.TRADES, handler)

        await router.route(
            '[{"correlationOrderId": "A", "remainingQuantity": "5"}]', recv_ts=1234567890123
        )

        assert len(received) == 1
        assert received[0].message_type == MessageType.TRADES
        assert received[0].data == [{"correlationOrderId": "A", "remainingQuantity": "5"}]
        assert received[0].recv_ts == 1234567890123

    @pytest.mark.asyncio
    async def test_route_status_frame(self, router: MessageRouter) -> None:
        """Test that a frame with a status field is not treated as trades."""
        trades: list[RoutedMessage] = []
        statuses: list[RoutedMessage] = []

        async def on_trades(msg: RoutedMessage) -> None:
            trades.append(msg)

        async def on_status(msg: RoutedMessage) -> None:
            statuses.append(msg)

        router.register_handler(MessageType.TRADES, on_trades)
        router.register_handler(MessageType.STATUS, on_status)

        await router.route(b'{"status": "END_OF_CURSOR"}')

        assert trades == []
        assert statuses[0].data == {"status": "END_OF_CURSOR"}

    @pytest.mark.asyncio
    async def test_empty_array_is_unknown(self, router: MessageRouter, caplog) -> None:
        """Test that an empty array goes to the log path, not the trades handler."""
        trades: list[RoutedMessage] = []

        async def on_trades(msg: RoutedMessage) -> None:
            trades.append(msg)

        router.register_handler(MessageType.TRADES, on_trades)

        with caplog.at_level(logging.INFO, logger="tradefeed.live.router"):
            await router.route("[]")

        assert trades == []
        assert router.stats.dropped_messages == 1
        assert router.stats.by_type == {"unknown": 1}
        assert "Unhandled unknown message" in caplog.text

    @pytest.mark.asyncio
    async def test_invalid_json_is_logged_not_raised(self, router: MessageRouter, caplog) -> None:
        """Test that a frame that fails to decode is counted and dropped."""
        with caplog.at_level(logging.ERROR, logger="tradefeed.live.router"):
            await router.route("{not json")

        assert router.stats.total_messages == 1
        assert router.stats.parse_errors == 1
        assert router.stats.routed_messages == 0
        assert "Failed to decode frame" in caplog.text

    @pytest.mark.asyncio
    async def test_multiple_handlers_same_type(self, router: MessageRouter) -> None:
        """Test multiple handlers for same message type run in registration order."""
        calls: list[str] = []

        async def handler1(msg: RoutedMessage) -> None:
            calls.append("handler1")

        async def handler2(msg: RoutedMessage) -> None:
            calls.append("handler2")

        router.register_handler(MessageType.TRADES, handler1)
        router.register_handler(MessageType.TRADES, handler2)

        await router.route('[{"correlationOrderId": "A"}]')

        assert calls == ["handler1", "handler2"]
        assert router.get_handler_count(MessageType.TRADES) == 2

    @pytest.mark.asyncio
    async def test_handler_error_is_contained(self, router: MessageRouter) -> None:
        """Test that a failing handler does not stop the next one."""
        calls: list[str] = []

        async def failing(msg: RoutedMessage) -> None:
            raise RuntimeError("boom")

        async def healthy(msg: RoutedMessage) -> None:
            calls.append("healthy")

        router.register_handler(MessageType.TRADES, failing)
        router.register_handler(MessageType.TRADES, healthy)

        await router.route('[{"correlationOrderId": "A"}]')

        assert calls == ["healthy"]

    @pytest.mark.asyncio
    async def test_stats_and_reset(self, router: MessageRouter) -> None:
        """Test routing statistics."""

        async def handler(msg: RoutedMessage) -> None:
            pass

        router.register_handler(MessageType.TRADES, handler)

        await router.route('[{"a": 1}]')
        await router.route('{"status": "ok"}')
        await router.route("oops")

        assert router.stats.total_messages == 3
        assert router.stats.routed_messages == 1
        assert router.stats.dropped_messages == 1
        assert router.stats.parse_errors == 1
        assert router.stats.by_type == {"trades": 1, "status": 1}

        router.reset_stats()
        assert router.stats.total_messages == 0
