"""
Wire format for the streaming transcription socket.

Outbound frames are JSON text messages ``{"type": ..., "data": ...}``:

    config       data = JSON string {"language", "model"}
    audio_chunk  data = base64 of the raw audio bytes
    stop         no data

Inbound frames carry a ``type`` tag and an object in ``data``.
"""
from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any, Optional, Union

from .errors import StreamParseError

DEFAULT_STREAM_LANGUAGE = "auto"
DEFAULT_STREAM_MODEL = "whisper-base"
PARSE_FAILURE_MESSAGE = "Failed to parse WebSocket message"


# ---- outbound ----

@dataclass(frozen=True)
class ConfigFrame:
    language: Optional[str] = None
    model: Optional[str] = None


@dataclass(frozen=True)
class AudioChunkFrame:
    audio: bytes


@dataclass(frozen=True)
class StopFrame:
    pass


OutboundFrame = Union[ConfigFrame, AudioChunkFrame, StopFrame]


def encode_audio(chunk: bytes) -> str:
    return base64.b64encode(bytes(chunk)).decode("ascii")


def decode_audio(data: str) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise StreamParseError(f"Invalid audio chunk encoding: {e}") from e


def encode_frame(frame: OutboundFrame) -> str:
    if isinstance(frame, ConfigFrame):
        data = json.dumps({
            "language": frame.language or DEFAULT_STREAM_LANGUAGE,
            "model": frame.model or DEFAULT_STREAM_MODEL,
        })
        return json.dumps({"type": "config", "data": data})
    if isinstance(frame, AudioChunkFrame):
        return json.dumps({"type": "audio_chunk", "data": encode_audio(frame.audio)})
    if isinstance(frame, StopFrame):
        return json.dumps({"type": "stop"})
    raise TypeError(f"Not an outbound frame: {frame!r}")


# ---- inbound ----

@dataclass(frozen=True)
class ConfigAck:
    data: Any = None


@dataclass(frozen=True)
class PartialTranscript:
    text: str
    confidence: float


@dataclass(frozen=True)
class FinalTranscript:
    text: str
    language: str
    confidence: float


@dataclass(frozen=True)
class ErrorNotice:
    message: str


InboundMessage = Union[ConfigAck, PartialTranscript, FinalTranscript, ErrorNotice]


def parse_inbound(raw: Union[str, bytes]) -> Optional[InboundMessage]:
    """
    Parse one inbound frame.

    Returns None for well-formed frames with an unknown ``type``.
    Raises StreamParseError for anything that cannot be parsed.
    """
    try:
        msg = json.loads(raw)
    except (ValueError, TypeError) as e:
        raise StreamParseError(PARSE_FAILURE_MESSAGE) from e
    if not isinstance(msg, dict):
        raise StreamParseError(PARSE_FAILURE_MESSAGE)

    typ = msg.get("type")
    data = msg.get("data")
    try:
        if typ == "config_ack":
            return ConfigAck(data=data)
        if typ == "partial_transcript":
            return PartialTranscript(text=data["text"], confidence=float(data.get("confidence") or 0.0))
        if typ == "final_transcript":
            return FinalTranscript(
                text=data["text"],
                language=data.get("language") or "",
                confidence=float(data.get("confidence") or 0.0),
            )
        if typ == "error":
            return ErrorNotice(message=str(data["message"]))
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise StreamParseError(PARSE_FAILURE_MESSAGE) from e
    return None
