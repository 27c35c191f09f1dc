from __future__ import annotations

import asyncio
import enum
import logging
import re
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Protocol, Union

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

from .errors import CreoleSDKError, StreamConnectionError, StreamParseError, StreamServerError
from .frames import (
    AudioChunkFrame,
    ConfigAck,
    ConfigFrame,
    ErrorNotice,
    FinalTranscript,
    InboundMessage,
    OutboundFrame,
    PartialTranscript,
    StopFrame,
    encode_frame,
    parse_inbound,
)
from .types import TranscriptionResult

logger = logging.getLogger(__name__)

STREAM_PATH = "/api/v1/stream"


class SessionState(enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class Connection(Protocol):
    """The subset of a websockets client connection the session relies on."""

    async def send(self, message: str) -> None: ...

    async def close(self) -> None: ...

    def __aiter__(self) -> AsyncIterator[Union[str, bytes]]: ...


Connector = Callable[[str], Awaitable[Connection]]
PartialResultCallback = Callable[[str, float], None]
FinalResultCallback = Callable[[TranscriptionResult], None]
ErrorCallback = Callable[[Exception], None]


@dataclass(frozen=True)
class SessionError:
    """Event published when the session hits a parse or connection error."""
    error: CreoleSDKError


StreamEvent = Union[ConfigAck, PartialTranscript, FinalTranscript, ErrorNotice, SessionError]


def stream_url(stt_url: str) -> str:
    """http://host:8002 -> ws://host:8002/api/v1/stream (https -> wss)."""
    return re.sub(r"^http", "ws", stt_url.rstrip("/")) + STREAM_PATH


def websocket_connector(headers: Optional[Dict[str, str]] = None, open_timeout: Optional[float] = 10.0) -> Connector:
    async def connect(url: str) -> Connection:
        return await websockets.connect(url, additional_headers=headers or None, open_timeout=open_timeout)
    return connect


class StreamingSession:
    """
    One persistent duplex connection used for streaming transcription.

    Results are delivered to the optional callbacks and, once ``events()`` has
    been called, also published as typed events readable with
    ``async for ev in session.events()``. Nothing is buffered before that.
    Errors never raise out of ``send_audio_chunk``/``stop``; they go to
    ``on_error`` and the event stream. A closed session cannot be reopened.

    Usage:
        session = await client.start_streaming_transcription(language="ht")
        await session.send_audio_chunk(pcm)
        await session.stop()
    """

    def __init__(
        self,
        url: str,
        *,
        language: Optional[str] = None,
        model: Optional[str] = None,
        on_partial_result: Optional[PartialResultCallback] = None,
        on_final_result: Optional[FinalResultCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        connect: Optional[Connector] = None,
    ):
        self.url = url
        self.language = language
        self.model = model
        self.on_partial_result = on_partial_result
        self.on_final_result = on_final_result
        self.on_error = on_error
        self._connect = connect or websocket_connector()
        self._state = SessionState.CONNECTING
        self._ws: Optional[Connection] = None
        self._reader: Optional[asyncio.Task] = None
        self._connecting = False
        self._events: "Optional[asyncio.Queue[Optional[StreamEvent]]]" = None

    # ---- state ----
    @property
    def state(self) -> SessionState:
        return self._state

    def is_connected(self) -> bool:
        return self._state is SessionState.OPEN

    # ---- context management ----
    async def __aenter__(self) -> "StreamingSession":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    # ---- lifecycle ----
    async def open(self) -> "StreamingSession":
        if self._state is not SessionState.CONNECTING or self._connecting or self._ws is not None:
            return self

        self._connecting = True
        try:
            self._ws = await self._connect(self.url)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            logger.warning("Streaming connection to %s failed: %s", self.url, e)
            self._connection_failed(e)
            return self
        finally:
            self._connecting = False

        if self._state is not SessionState.CONNECTING:
            # stop() arrived while we were connecting
            await self._ws.close()
            self._mark_closed()
            return self

        if self.language or self.model:
            try:
                await self._ws.send(encode_frame(ConfigFrame(self.language, self.model)))
            except ConnectionClosed as e:
                logger.warning("Streaming connection closed before config was sent: %s", e)
                self._connection_failed(e)
                return self

        self._state = SessionState.OPEN
        logger.info("Streaming session open: %s", self.url)
        self._reader = asyncio.create_task(self._read_loop())
        return self

    async def send_audio_chunk(self, chunk: bytes) -> None:
        """Send one chunk of audio. Silently dropped unless the session is open."""
        if self._state is not SessionState.OPEN:
            logger.debug("Dropping %d byte audio chunk; session is %s", len(chunk), self._state.value)
            return
        await self._send(AudioChunkFrame(bytes(chunk)))

    async def stop(self) -> None:
        """Send the stop frame and close. Safe to call any number of times."""
        if self._state is SessionState.CONNECTING:
            if self._connecting:
                # open() closes the socket once the connect returns
                self._state = SessionState.CLOSING
            else:
                self._mark_closed()
            return
        if self._state is not SessionState.OPEN:
            return

        self._state = SessionState.CLOSING
        logger.info("Stopping streaming session: %s", self.url)
        await self._send(StopFrame())
        await self._ws.close()
        if self._reader is not None and self._reader is not asyncio.current_task():
            await self._reader
        self._mark_closed()

    def events(self) -> AsyncIterator[StreamEvent]:
        """
        Yield session events in arrival order until the session closes.

        Buffering starts with the first call; earlier messages only reach the
        callbacks.
        """
        if self._events is None:
            self._events = asyncio.Queue()
            if self._state is SessionState.CLOSED:
                self._events.put_nowait(None)
        return self._drain(self._events)

    @staticmethod
    async def _drain(queue: "asyncio.Queue[Optional[StreamEvent]]") -> AsyncIterator[StreamEvent]:
        while True:
            ev = await queue.get()
            if ev is None:
                # leave the end marker for other consumers
                queue.put_nowait(None)
                return
            yield ev

    # ---- internals ----
    async def _send(self, frame: OutboundFrame) -> None:
        try:
            await self._ws.send(encode_frame(frame))
        except ConnectionClosed as e:
            if self._state is SessionState.OPEN:
                self._connection_lost(e)

    async def _read_loop(self) -> None:
        try:
            async for raw in self._ws:
                self._dispatch(raw)
        except ConnectionClosedOK:
            pass
        except (ConnectionClosed, OSError) as e:
            if self._state is SessionState.OPEN:
                self._connection_lost(e)
        finally:
            if self._state is SessionState.OPEN:
                logger.info("Streaming session closed by server: %s", self.url)
                self._state = SessionState.CLOSING
            self._mark_closed()

    def _dispatch(self, raw: Union[str, bytes]) -> None:
        try:
            msg: Optional[InboundMessage] = parse_inbound(raw)
        except StreamParseError as e:
            logger.warning("Unparseable streaming message: %r", raw[:200])
            self._report(e)
            return

        if msg is None:
            logger.debug("Dropping streaming message with unknown type: %r", raw[:200])
            return

        self._publish(msg)
        if isinstance(msg, PartialTranscript):
            self._call(self.on_partial_result, msg.text, msg.confidence)
        elif isinstance(msg, FinalTranscript):
            result = TranscriptionResult(text=msg.text, language=msg.language, confidence=msg.confidence, duration=0.0)
            self._call(self.on_final_result, result)
        elif isinstance(msg, ErrorNotice):
            self._call(self.on_error, StreamServerError(msg.message))

    def _connection_failed(self, cause: BaseException) -> None:
        err = StreamConnectionError("WebSocket connection error")
        err.__cause__ = cause
        self._mark_closed(error=err)

    def _connection_lost(self, cause: BaseException) -> None:
        logger.warning("Streaming connection lost: %s", cause)
        err = StreamConnectionError("WebSocket connection error")
        err.__cause__ = cause
        self._state = SessionState.CLOSING
        self._report(err)

    def _report(self, err: CreoleSDKError) -> None:
        self._publish(SessionError(err))
        self._call(self.on_error, err)

    def _mark_closed(self, error: Optional[CreoleSDKError] = None) -> None:
        if self._state is SessionState.CLOSED:
            return
        if error is not None:
            self._report(error)
        self._state = SessionState.CLOSED
        self._publish(None)
        logger.debug("Streaming session closed: %s", self.url)

    def _publish(self, item: Optional[StreamEvent]) -> None:
        if self._events is not None:
            self._events.put_nowait(item)

    @staticmethod
    def _call(cb: Optional[Callable[..., Any]], *args: Any) -> None:
        if cb is None:
            return
        try:
            cb(*args)
        except Exception:
            logger.exception("Error in streaming callback")
