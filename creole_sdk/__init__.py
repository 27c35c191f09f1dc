"""
creole_sdk: Async client for the Creole translation, STT and TTS services.
"""
import logging

from .client import CreolePlatformClient
from .config import SDKConfig
from .errors import (
    CreoleSDKError,
    DecodeError,
    RequestTimeoutError,
    ServiceError,
    StreamConnectionError,
    StreamParseError,
    StreamServerError,
    TransportError,
)
from .frames import ConfigAck, ErrorNotice, FinalTranscript, PartialTranscript
from .stats import HttpEvent
from .streaming import SessionError, SessionState, StreamingSession
from .transport import Invoker, RequestDescriptor
from .types import (
    HealthStatus,
    Language,
    LanguageDetectionResult,
    TranscriptionResult,
    TranslationResult,
    Voice,
)

__all__ = [
    "CreolePlatformClient",
    "SDKConfig",
    "CreoleSDKError",
    "RequestTimeoutError",
    "TransportError",
    "ServiceError",
    "DecodeError",
    "StreamParseError",
    "StreamConnectionError",
    "StreamServerError",
    "Invoker",
    "RequestDescriptor",
    "HttpEvent",
    "StreamingSession",
    "SessionState",
    "SessionError",
    "ConfigAck",
    "PartialTranscript",
    "FinalTranscript",
    "ErrorNotice",
    "Language",
    "Voice",
    "TranslationResult",
    "TranscriptionResult",
    "LanguageDetectionResult",
    "HealthStatus",
]

logging.getLogger(__name__).addHandler(logging.NullHandler())

# Single source of truth for version (read by setup.py)
__version__ = "0.1.0"
