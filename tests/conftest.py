from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, List, Optional, Union

import httpx
import pytest
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

from creole_sdk import CreolePlatformClient, SDKConfig

_CLOSE = object()
_DROP = object()


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self) -> None:
        self.sent: List[str] = []
        self.closed = False
        self.close_calls = 0
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, message: str) -> None:
        if self.closed:
            raise ConnectionClosedOK(None, None)
        self.sent.append(message)

    async def close(self) -> None:
        self.close_calls += 1
        if not self.closed:
            self.closed = True
            self._incoming.put_nowait(_CLOSE)

    # ---- test controls ----
    def feed(self, message: Union[str, dict]) -> None:
        self._incoming.put_nowait(json.dumps(message) if isinstance(message, dict) else message)

    def server_close(self) -> None:
        self.closed = True
        self._incoming.put_nowait(_CLOSE)

    def drop(self) -> None:
        self._incoming.put_nowait(_DROP)

    @property
    def frames(self) -> List[dict]:
        return [json.loads(m) for m in self.sent]

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> str:
        item = await self._incoming.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        if item is _DROP:
            self.closed = True
            raise ConnectionClosedError(None, None)
        return item


class FakeConnector:
    def __init__(self, ws: Optional[FakeWebSocket] = None, error: Optional[BaseException] = None) -> None:
        self.ws = ws or FakeWebSocket()
        self.error = error
        self.urls: List[str] = []

    async def __call__(self, url: str) -> FakeWebSocket:
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.ws


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


async def settle(rounds: int = 5) -> None:
    """Let background reader tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_client(sleep_recorder):
    def _make(
        handler: Callable[[httpx.Request], Any],
        *,
        ws_connect: Optional[FakeConnector] = None,
        **config: Any,
    ) -> CreolePlatformClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = CreolePlatformClient(
            SDKConfig(**config),
            http_client=http,
            ws_connect=ws_connect,
            sleep=sleep_recorder,
        )
        return client

    return _make
