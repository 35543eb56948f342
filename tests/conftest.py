"""
Shared test doubles: an in-memory WebSocket and an aiohttp-like session.
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any, Callable, Optional

import aiohttp
import pytest


class FakeWebSocket:
    """
    Stands in for aiohttp.ClientWebSocketResponse.

    close() follows aiohttp's ordering: a waiting reader is woken with a
    CLOSING message and must return before the close handshake completes.
    """

    def __init__(self) -> None:
        self.closed = False
        self.close_code: Optional[int] = None
        self.sent: list[str] = []
        self.pings = 0
        self.close_calls = 0
        self._exception: Optional[BaseException] = None
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._waiting: Optional[asyncio.Future[None]] = None
        self._closing = False

    # --- server side helpers ---

    def feed_text(self, data: str) -> None:
        self._queue.put_nowait(SimpleNamespace(type=aiohttp.WSMsgType.TEXT, data=data, extra=None))

    def feed_binary(self, data: bytes) -> None:
        self._queue.put_nowait(
            SimpleNamespace(type=aiohttp.WSMsgType.BINARY, data=data, extra=None)
        )

    def feed_error(self, exc: BaseException) -> None:
        self._exception = exc
        self._queue.put_nowait(SimpleNamespace(type=aiohttp.WSMsgType.ERROR, data=exc, extra=None))

    def server_close(self, code: int = 1000) -> None:
        self._queue.put_nowait(SimpleNamespace(type=aiohttp.WSMsgType.CLOSE, data=code, extra=""))

    # --- client API ---

    async def send_str(self, data: str) -> None:
        if self.closed:
            raise ConnectionResetError("Cannot write to closing transport")
        self.sent.append(data)

    async def ping(self, message: bytes = b"") -> None:
        self.pings += 1

    def exception(self) -> Optional[BaseException]:
        return self._exception

    async def close(self, *, code: int = 1000, message: bytes = b"") -> bool:
        self.close_calls += 1
        if self._waiting is not None and not self._closing:
            self._closing = True
            waiting = self._waiting
            self._queue.put_nowait(
                SimpleNamespace(type=aiohttp.WSMsgType.CLOSING, data=None, extra=None)
            )
            await waiting

        if self.closed:
            return False
        self.closed = True
        # Round trip for the server's close reply
        await asyncio.sleep(0)
        self.close_code = code
        return True

    def __aiter__(self) -> FakeWebSocket:
        return self

    async def __anext__(self) -> Any:
        if self.closed:
            raise StopAsyncIteration

        self._waiting = asyncio.get_running_loop().create_future()
        try:
            msg = await self._queue.get()
        finally:
            if not self._waiting.done():
                self._waiting.set_result(None)
            self._waiting = None

        if msg.type == aiohttp.WSMsgType.CLOSE:
            self.closed = True
            self.close_code = msg.data
            raise StopAsyncIteration
        if msg.type == aiohttp.WSMsgType.CLOSING:
            raise StopAsyncIteration
        return msg


class FakeSession:
    """Stands in for aiohttp.ClientSession.ws_connect."""

    def __init__(self, ws: Optional[FakeWebSocket] = None, error: Optional[BaseException] = None):
        self.ws = ws
        self.error = error
        self.closed = False
        self.connect_calls: list[tuple[str, dict[str, Any]]] = []

    async def ws_connect(self, url: str, **kwargs: Any) -> FakeWebSocket:
        self.connect_calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        assert self.ws is not None
        return self.ws

    async def close(self) -> None:
        self.closed = True


async def wait_for(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Poll until ``predicate`` holds or fail after ``timeout`` seconds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def fake_ws() -> FakeWebSocket:
    return FakeWebSocket()


@pytest.fixture
def fake_session(fake_ws: FakeWebSocket) -> FakeSession:
    return FakeSession(ws=fake_ws)


@pytest.fixture
def wait() -> Callable[..., Any]:
    return wait_for
