"""
WebSocket query subscription client.

Handles a single subscription socket including:
- Bearer-token authenticated handshake
- SUBSCRIBE_QUERY request framing
- Protocol-level ping heartbeat for live subscriptions
- Translation of transport events into caller-supplied callbacks

The client never reconnects; once the socket closes the caller decides what
happens next.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import aiohttp
import orjson

from tradefeed.errors import ConnectionError, SubscriptionError
from tradefeed.live.config import ClientConfig
from tradefeed.live.types import (
    ClientMetrics,
    ClientState,
    CloseEvent,
    SubscriptionRequest,
)

logger = logging.getLogger(__name__)

# RFC 6455 close code for a connection dropped without a close frame
ABNORMAL_CLOSURE = 1006

OpenCallback = Callable[["QuerySubscriptionClient"], Awaitable[None]]
MessageCallback = Callable[[str], Awaitable[None]]
ErrorCallback = Callable[[BaseException, "QuerySubscriptionClient"], Awaitable[None]]
CloseCallback = Callable[[CloseEvent, "QuerySubscriptionClient"], Awaitable[None]]


async def _log_open(client: QuerySubscriptionClient) -> None:
    logger.info(f"[{client.name}] ### WS opened ###")


async def _log_message(data: str) -> None:
    logger.info(f"MESSAGE: {data}")


async def _log_error(error: BaseException, client: QuerySubscriptionClient) -> None:
    logger.error(f"[{client.name}] {error!r}")


async def _log_close(event: CloseEvent, client: QuerySubscriptionClient) -> None:
    logger.info(f"[{client.name}] ### closed ### (code={event.code})")


@dataclass(frozen=True)
class ClientCallbacks:
    """
    Callback slots for the subscription client.

    Unset slots fall back to logging implementations when resolved, so the
    client is usable standalone. on_open, on_error and on_close receive the
    client itself so the caller can drive follow-up actions.
    """

    on_open: Optional[OpenCallback] = None
    on_message: Optional[MessageCallback] = None
    on_error: Optional[ErrorCallback] = None
    on_close: Optional[CloseCallback] = None

    def resolve(self) -> ClientCallbacks:
        """Return a copy with every slot populated."""
        return ClientCallbacks(
            on_open=self.on_open or _log_open,
            on_message=self.on_message or _log_message,
            on_error=self.on_error or _log_error,
            on_close=self.on_close or _log_close,
        )


class QuerySubscriptionClient:
    """
    Owns one WebSocket connection to a query endpoint.

    Usage:
        async def on_open(client: QuerySubscriptionClient) -> None:
            await client.start_subscription('select * from "trades"')

        client = QuerySubscriptionClient(
            ClientConfig(url="ws://localhost:8099/ws/v0/query", heartbeat_interval_s=30),
            ClientCallbacks(on_open=on_open),
        )
        await client.connect(token)
        await client.wait_closed()
    """

    def __init__(
        self,
        config: ClientConfig,
        callbacks: Optional[ClientCallbacks] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        """
        Initialize the subscription client.

        Args:
            config: Connection configuration
            callbacks: Event callbacks; missing slots log instead
            session: Optional externally-owned aiohttp session. When omitted the
                client creates one per connection and closes it afterwards.
        """
        self._config = config
        self._name = config.name
        self._callbacks = (callbacks or ClientCallbacks()).resolve()

        self._session = session
        self._owns_session = session is None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None

        # State
        self._state = ClientState.DISCONNECTED
        self._live = config.live

        # Tasks
        self._receive_task: Optional[asyncio.Task[None]] = None
        self._heartbeat_task: Optional[asyncio.Task[None]] = None

        self._metrics = ClientMetrics()
        self._closed_event = asyncio.Event()

    @property
    def name(self) -> str:
        return self._name

    @property
    def url(self) -> str:
        return self._config.url

    @property
    def state(self) -> ClientState:
        """Current client state."""
        return self._state

    @property
    def live(self) -> bool:
        """Effective subscription mode."""
        return self._live

    @property
    def is_open(self) -> bool:
        """Check if the socket is open and usable."""
        return (
            self._state == ClientState.OPEN and self._ws is not None and not self._ws.closed
        )

    @property
    def metrics(self) -> ClientMetrics:
        return self._metrics

    def _set_state(self, new_state: ClientState) -> None:
        old_state = self._state
        self._state = new_state
        if old_state != new_state:
            logger.debug(f"[{self._name}] State: {old_state.value} -> {new_state.value}")

    # --- Public API ---

    async def connect(self, token: str) -> None:
        """
        Open the WebSocket, presenting ``token`` as a bearer credential.

        Handshake failures are reported through on_error followed by on_close;
        nothing is raised and nothing is retried.
        """
        if self._state in (ClientState.CONNECTING, ClientState.OPEN):
            logger.warning(f"[{self._name}] Already connected or connecting")
            return

        self._closed_event.clear()
        self._set_state(ClientState.CONNECTING)

        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

        headers = {"Authorization": f"bearer {token}"}
        logger.info(f"[{self._name}] Connecting to {self._config.url}")
        try:
            self._ws = await self._session.ws_connect(
                self._config.url,
                headers=headers,
                autoping=True,
            )
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
            self._metrics.errors += 1
            logger.error(f"[{self._name}] Connection failed: {e}")
            error = ConnectionError(
                f"Failed to connect: {e}",
                url=self._config.url,
                component="QuerySubscriptionClient",
            )
            error.__cause__ = e
            await self._dispatch_error(error)
            await self._finish(CloseEvent(code=ABNORMAL_CLOSURE, reason=str(e)))
            return

        self._metrics.connected_at = time.monotonic()
        self._set_state(ClientState.OPEN)
        logger.info(f"[{self._name}] Connected successfully")

        # on_open completes before the first inbound frame is dispatched
        await self._dispatch_open()

        if self._ws is None:
            # Disconnected from inside on_open
            return

        if self._live and self._config.heartbeat_interval_s is not None:
            self._start_heartbeat(self._config.heartbeat_interval_s)

        self._receive_task = asyncio.create_task(
            self._receive_loop(self._ws), name=f"{self._name}_receive"
        )

    async def start_subscription(
        self,
        query: str,
        live: Optional[bool] = None,
        date_from: Optional[str] = None,
    ) -> None:
        """
        Send a SUBSCRIBE_QUERY request over the open connection.

        Args:
            query: Query text
            live: Subscription mode; defaults to ``ClientConfig.live``
            date_from: ISO-8601 lower bound, or None to let the server decide

        Raises:
            SubscriptionError: If the connection is not open
        """
        if not self.is_open or self._ws is None:
            raise SubscriptionError(
                "Cannot start subscription: connection is not open",
                query=query,
                component="QuerySubscriptionClient",
                details={"state": self._state.value},
            )

        effective_live = self._config.live if live is None else live
        request = SubscriptionRequest(query=query, live=effective_live, date_from=date_from)
        frame = orjson.dumps(request.to_dict()).decode()
        logger.info(f"[{self._name}] Subscribe request: {frame}")

        self._live = effective_live
        await self._ws.send_str(frame)

    async def disconnect(self) -> None:
        """Stop the heartbeat and close the connection. Safe to call repeatedly."""
        await self._stop_heartbeat()

        if self._ws is None:
            return

        if self._state == ClientState.CLOSING:
            # Another disconnect() owns the handshake
            if self._receive_task is not asyncio.current_task():
                await self._closed_event.wait()
            return

        logger.info(f"[{self._name}] Closing connection")
        ws = self._ws
        # close() wakes the reader, which may clear _receive_task before we resume
        receive_task = self._receive_task
        self._set_state(ClientState.CLOSING)
        await ws.close()

        if receive_task is not None and receive_task is not asyncio.current_task():
            await receive_task

        # The close handshake is complete, so close_code is the server's reply
        await self._finish(CloseEvent(code=ws.close_code, reason=self._close_reason(ws)))

    async def wait_closed(self) -> None:
        """Wait until on_close has been dispatched."""
        await self._closed_event.wait()

    # --- Heartbeat ---

    def _start_heartbeat(self, interval_s: float) -> None:
        if self._heartbeat_task is not None:
            return
        self._heartbeat_task = asyncio.create_task(
            self._heartbeat_loop(interval_s), name=f"{self._name}_heartbeat"
        )
        logger.debug(f"[{self._name}] Heartbeat started ({interval_s}s)")

    async def _heartbeat_loop(self, interval_s: float) -> None:
        """Ping the server every interval while the socket reports open."""
        try:
            while True:
                await asyncio.sleep(interval_s)

                ws = self._ws
                if ws is None or ws.closed:
                    self._metrics.pings_skipped += 1
                    continue

                try:
                    await ws.ping()
                    self._metrics.pings_sent += 1
                    logger.debug(f"[{self._name}] Sent ping")
                except Exception as e:
                    logger.warning(f"[{self._name}] Ping failed: {e}")

        except asyncio.CancelledError:
            pass

    async def _stop_heartbeat(self) -> None:
        task = self._heartbeat_task
        self._heartbeat_task = None
        if task is None:
            return
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.debug(f"[{self._name}] Heartbeat stopped")

    # --- Receive path ---

    async def _receive_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        """Dispatch inbound frames until the socket closes."""
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._metrics.messages_received += 1
                    self._metrics.bytes_received += len(msg.data)
                    self._metrics.last_message_at = time.monotonic()
                    await self._dispatch_message(msg.data)

                elif msg.type == aiohttp.WSMsgType.BINARY:
                    logger.debug(f"[{self._name}] Received binary message (ignored)")

                elif msg.type == aiohttp.WSMsgType.ERROR:
                    self._metrics.errors += 1
                    error = ws.exception() or ConnectionError(
                        "WebSocket error frame",
                        url=self._config.url,
                        component="QuerySubscriptionClient",
                    )
                    logger.error(f"[{self._name}] WebSocket error: {error}")
                    await self._dispatch_error(error)
                    break

        except asyncio.CancelledError:
            logger.debug(f"[{self._name}] Receive loop cancelled")
            raise
        except Exception as e:
            logger.error(f"[{self._name}] Receive loop error: {e}")
            self._metrics.errors += 1
            await self._dispatch_error(e)

        if self._state == ClientState.CLOSING:
            # disconnect() owns the close handshake and reports it
            return
        await self._finish(CloseEvent(code=ws.close_code, reason=self._close_reason(ws)))

    @staticmethod
    def _close_reason(ws: aiohttp.ClientWebSocketResponse) -> str:
        exc = ws.exception()
        return str(exc) if exc is not None else ""

    async def _finish(self, event: CloseEvent) -> None:
        """Release transport resources and report the close exactly once."""
        if self._state == ClientState.CLOSED:
            return
        self._set_state(ClientState.CLOSED)
        self._ws = None
        self._receive_task = None
        await self._stop_heartbeat()

        if self._owns_session and self._session is not None:
            session, self._session = self._session, None
            await session.close()

        await self._dispatch_close(event)
        self._closed_event.set()

    # --- Callback dispatch ---

    async def _dispatch_open(self) -> None:
        try:
            await self._callbacks.on_open(self)
        except Exception as e:
            logger.error(f"[{self._name}] on_open callback error: {e}", exc_info=True)

    async def _dispatch_message(self, data: str) -> None:
        try:
            await self._callbacks.on_message(data)
        except Exception as e:
            logger.error(f"[{self._name}] on_message callback error: {e}", exc_info=True)

    async def _dispatch_error(self, error: BaseException) -> None:
        try:
            await self._callbacks.on_error(error, self)
        except Exception as e:
            logger.warning(f"[{self._name}] on_error callback failed: {e}")

    async def _dispatch_close(self, event: CloseEvent) -> None:
        try:
            await self._callbacks.on_close(event, self)
        except Exception as e:
            logger.warning(f"[{self._name}] on_close callback failed: {e}")
