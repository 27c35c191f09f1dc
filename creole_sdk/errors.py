from __future__ import annotations

from typing import Any, Dict, Optional


class CreoleSDKError(RuntimeError):
    """Base SDK error."""


class RequestTimeoutError(CreoleSDKError, TimeoutError):
    """Raised when an attempt did not get a response before its deadline."""

    def __init__(self, url: str, timeout_s: float):
        super().__init__(f"Request to {url} timed out after {timeout_s:g}s")
        self.url = url
        self.timeout_s = timeout_s


class TransportError(CreoleSDKError):
    """Connection-level failure (DNS, refused connection, broken protocol)."""

    def __init__(self, message: str, *, url: str):
        super().__init__(f"Network error for {url}: {message}")
        self.url = url


class ServiceError(CreoleSDKError):
    """Raised when the server returns a non-2xx status code."""

    def __init__(self, status_code: int, message: str, *, url: str, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url
        self.payload = payload or {}


class DecodeError(CreoleSDKError):
    """A 2xx response whose body does not have the expected shape."""


class StreamParseError(CreoleSDKError):
    """Inbound streaming message could not be parsed."""


class StreamConnectionError(CreoleSDKError):
    """The streaming connection failed or closed unexpectedly."""


class StreamServerError(CreoleSDKError):
    """The server reported an error over the streaming connection."""
