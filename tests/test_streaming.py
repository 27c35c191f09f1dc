import asyncio
import json

import pytest

from conftest import FakeConnector, FakeWebSocket, settle
from creole_sdk import (
    ConfigAck,
    FinalTranscript,
    PartialTranscript,
    SessionError,
    SessionState,
    StreamConnectionError,
    StreamParseError,
    StreamServerError,
    StreamingSession,
    TranscriptionResult,
)
from creole_sdk.frames import decode_audio
from creole_sdk.streaming import stream_url

URL = "ws://stt.test/api/v1/stream"


class Recorder:
    def __init__(self):
        self.partials = []
        self.finals = []
        self.errors = []

    def callbacks(self):
        return {
            "on_partial_result": lambda text, conf: self.partials.append((text, conf)),
            "on_final_result": self.finals.append,
            "on_error": self.errors.append,
        }


async def _open(ws=None, recorder=None, **kwargs):
    connector = FakeConnector(ws)
    cbs = recorder.callbacks() if recorder else {}
    session = StreamingSession(URL, connect=connector, **cbs, **kwargs)
    await session.open()
    return session, connector.ws


async def _collect(stream):
    return [ev async for ev in stream]


def test_stream_url_upgrades_scheme():
    assert stream_url("http://localhost:8002") == "ws://localhost:8002/api/v1/stream"
    assert stream_url("https://stt.example.org/") == "wss://stt.example.org/api/v1/stream"


@pytest.mark.asyncio
async def test_open_sends_config_first_when_language_or_model_given():
    session, ws = await _open(language="ht")
    await session.send_audio_chunk(b"\x01\x02")

    assert session.state is SessionState.OPEN
    assert [f["type"] for f in ws.frames] == ["config", "audio_chunk"]
    assert json.loads(ws.frames[0]["data"]) == {"language": "ht", "model": "whisper-base"}
    await session.stop()


@pytest.mark.asyncio
async def test_open_without_options_sends_no_config():
    session, ws = await _open()

    assert session.is_connected()
    assert ws.sent == []
    await session.stop()


@pytest.mark.asyncio
async def test_send_before_open_is_a_noop():
    connector = FakeConnector()
    session = StreamingSession(URL, connect=connector)

    await session.send_audio_chunk(b"early")

    assert session.state is SessionState.CONNECTING
    assert connector.urls == []
    assert connector.ws.sent == []


@pytest.mark.asyncio
async def test_each_send_emits_one_lossless_audio_chunk():
    session, ws = await _open()
    chunks = [b"\x00\xff" * 160, bytes(range(256)), b""]

    for chunk in chunks:
        await session.send_audio_chunk(chunk)

    assert [f["type"] for f in ws.frames] == ["audio_chunk"] * 3
    assert [decode_audio(f["data"]) for f in ws.frames] == chunks
    await session.stop()


@pytest.mark.asyncio
async def test_inbound_messages_reach_matching_callbacks():
    rec = Recorder()
    session, ws = await _open(recorder=rec)

    ws.feed({"type": "partial_transcript", "data": {"text": "bon", "confidence": 0.4}})
    ws.feed({"type": "final_transcript", "data": {"text": "bonjou", "language": "ht", "confidence": 0.9}})
    ws.feed({"type": "error", "data": {"message": "model overloaded"}})
    await settle()

    assert rec.partials == [("bon", 0.4)]
    assert rec.finals == [TranscriptionResult(text="bonjou", language="ht", confidence=0.9, duration=0.0)]
    assert len(rec.errors) == 1
    assert isinstance(rec.errors[0], StreamServerError)
    assert str(rec.errors[0]) == "model overloaded"
    assert session.is_connected()
    await session.stop()


@pytest.mark.asyncio
async def test_unparseable_and_unknown_messages():
    rec = Recorder()
    session, ws = await _open(recorder=rec)

    ws.feed("{not json")
    ws.feed({"type": "server_stats", "data": {"load": 1}})
    ws.feed({"type": "partial_transcript", "data": "no text here"})
    await settle()

    assert len(rec.errors) == 2
    assert all(isinstance(e, StreamParseError) for e in rec.errors)
    assert str(rec.errors[0]) == "Failed to parse WebSocket message"
    assert rec.partials == []
    assert session.state is SessionState.OPEN
    await session.stop()


@pytest.mark.asyncio
async def test_stop_is_idempotent():
    session, ws = await _open()

    await session.stop()
    frames_after_first_stop = list(ws.sent)
    await session.stop()

    assert not session.is_connected()
    assert session.state is SessionState.CLOSED
    assert [json.loads(m) for m in frames_after_first_stop] == [{"type": "stop"}]
    assert ws.sent == frames_after_first_stop
    assert ws.close_calls == 1


@pytest.mark.asyncio
async def test_send_after_stop_is_dropped():
    session, ws = await _open()
    await session.stop()

    await session.send_audio_chunk(b"late")

    assert [f["type"] for f in ws.frames] == ["stop"]


@pytest.mark.asyncio
async def test_connect_failure_reports_error_and_closes():
    rec = Recorder()
    connector = FakeConnector(error=OSError("connection refused"))
    session = StreamingSession(URL, connect=connector, **rec.callbacks())

    await session.open()

    assert session.state is SessionState.CLOSED
    assert len(rec.errors) == 1
    assert isinstance(rec.errors[0], StreamConnectionError)
    assert isinstance(rec.errors[0].__cause__, OSError)

    await session.send_audio_chunk(b"x")
    await session.stop()
    assert connector.ws.sent == []


@pytest.mark.asyncio
async def test_dropped_connection_reports_error_without_reconnecting():
    rec = Recorder()
    connector = FakeConnector()
    session = StreamingSession(URL, connect=connector, **rec.callbacks())
    await session.open()

    connector.ws.drop()
    await settle()

    assert session.state is SessionState.CLOSED
    assert [type(e) for e in rec.errors] == [StreamConnectionError]
    assert connector.urls == [URL]


@pytest.mark.asyncio
async def test_server_close_is_quiet():
    rec = Recorder()
    session, ws = await _open(recorder=rec)

    ws.server_close()
    await settle()

    assert session.state is SessionState.CLOSED
    assert rec.errors == []


@pytest.mark.asyncio
async def test_failing_callback_does_not_stop_dispatch():
    finals = []

    def bad_partial(text, conf):
        raise ValueError("ui went away")

    session = StreamingSession(
        URL, connect=FakeConnector(), on_partial_result=bad_partial, on_final_result=finals.append,
    )
    await session.open()
    ws = session._ws

    ws.feed({"type": "partial_transcript", "data": {"text": "a", "confidence": 0.1}})
    ws.feed({"type": "final_transcript", "data": {"text": "ab", "language": "en", "confidence": 0.8}})
    await settle()

    assert [r.text for r in finals] == ["ab"]
    assert session.is_connected()
    await session.stop()


@pytest.mark.asyncio
async def test_events_stream_until_close():
    session, ws = await _open()
    stream = session.events()
    ws.feed({"type": "config_ack", "data": {"language": "ht"}})
    ws.feed({"type": "partial_transcript", "data": {"text": "bon", "confidence": 0.5}})
    ws.feed("garbage")
    ws.feed({"type": "final_transcript", "data": {"text": "bonjou", "language": "ht", "confidence": 0.9}})
    await settle()
    await session.stop()

    events = [ev async for ev in stream]

    assert events[0] == ConfigAck(data={"language": "ht"})
    assert events[1] == PartialTranscript(text="bon", confidence=0.5)
    assert isinstance(events[2], SessionError)
    assert isinstance(events[2].error, StreamParseError)
    assert events[3] == FinalTranscript(text="bonjou", language="ht", confidence=0.9)
    assert len(events) == 4

    # a second consumer also terminates
    assert [ev async for ev in session.events()] == []


@pytest.mark.asyncio
async def test_callback_only_session_buffers_no_events():
    rec = Recorder()
    session, ws = await _open(recorder=rec)

    for i in range(2000):
        ws.feed({"type": "partial_transcript", "data": {"text": f"w{i}", "confidence": 0.5}})
    await settle()

    assert len(rec.partials) == 2000
    assert session._events is None
    await session.stop()


@pytest.mark.asyncio
async def test_events_requested_late_only_sees_later_messages():
    session, ws = await _open()
    ws.feed({"type": "partial_transcript", "data": {"text": "early", "confidence": 0.1}})
    await settle()

    stream = session.events()
    ws.feed({"type": "partial_transcript", "data": {"text": "late", "confidence": 0.2}})
    await settle()
    await session.stop()

    assert [ev async for ev in stream] == [PartialTranscript(text="late", confidence=0.2)]


@pytest.mark.asyncio
async def test_events_after_close_end_immediately():
    session, ws = await _open()
    await session.stop()

    assert [ev async for ev in session.events()] == []


@pytest.mark.asyncio
async def test_stop_before_open_closes_session():
    connector = FakeConnector()
    session = StreamingSession(URL, connect=connector)

    await session.stop()
    await session.open()

    assert session.state is SessionState.CLOSED
    assert connector.urls == []
    assert await asyncio.wait_for(_collect(session.events()), timeout=1.0) == []


@pytest.mark.asyncio
async def test_context_manager_body_failing_before_open_closes_session():
    connector = FakeConnector()

    with pytest.raises(RuntimeError):
        async with StreamingSession(URL, connect=connector) as session:
            raise RuntimeError("mic unavailable")

    assert session.state is SessionState.CLOSED
    assert connector.urls == []


@pytest.mark.asyncio
async def test_context_manager_stops_session():
    ws = FakeWebSocket()
    async with StreamingSession(URL, connect=FakeConnector(ws)) as session:
        await session.open()
        assert session.is_connected()

    assert session.state is SessionState.CLOSED
    assert ws.frames == [{"type": "stop"}]


@pytest.mark.asyncio
async def test_stop_during_connect_closes_new_connection():
    ws = FakeWebSocket()
    gate = asyncio.Event()

    async def slow_connect(url):
        await gate.wait()
        return ws

    session = StreamingSession(URL, connect=slow_connect, language="ht")
    opener = asyncio.create_task(session.open())
    await settle()
    await session.stop()
    gate.set()
    await opener

    assert session.state is SessionState.CLOSED
    assert ws.sent == []
    assert ws.closed


@pytest.mark.asyncio
async def test_client_opens_session_on_derived_url(make_client):
    connector = FakeConnector()
    client = make_client(lambda request: None, ws_connect=connector, stt_url="https://stt.test:8443")

    session = await client.start_streaming_transcription(model="whisper-small")

    assert connector.urls == ["wss://stt.test:8443/api/v1/stream"]
    assert json.loads(connector.ws.frames[0]["data"]) == {"language": "auto", "model": "whisper-small"}

    await client.close()
    assert session.state is SessionState.CLOSED
    assert connector.ws.frames[-1] == {"type": "stop"}
