from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Optional

DEFAULT_TRANSLATION_URL = "http://localhost:8001"
DEFAULT_STT_URL = "http://localhost:8002"
DEFAULT_TTS_URL = "http://localhost:8003"


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(key)
    return v if (v is not None and v != "") else default


@dataclass
class SDKConfig:
    """
    Configuration for the three backing services.

    - translation_url / stt_url / tts_url: service base URLs
    - timeout_s: deadline applied to every request attempt
    - retry_attempts: retries after the first attempt (0 = no retry)
    - backoff_s: fixed sleep between attempts
    - health_timeout_s: deadline for each /health probe (never retried)
    - api_key: optional bearer token sent to every service
    - headers: extra headers merged into every HTTP request
    """
    translation_url: str = DEFAULT_TRANSLATION_URL
    stt_url: str = DEFAULT_STT_URL
    tts_url: str = DEFAULT_TTS_URL
    timeout_s: float = 30.0
    retry_attempts: int = 3
    backoff_s: float = 1.0
    health_timeout_s: float = 5.0
    api_key: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.translation_url = self.translation_url.rstrip("/")
        self.stt_url = self.stt_url.rstrip("/")
        self.tts_url = self.tts_url.rstrip("/")
        if self.timeout_s <= 0:
            raise ValueError("timeout_s must be positive")
        if self.health_timeout_s <= 0:
            raise ValueError("health_timeout_s must be positive")
        if self.retry_attempts < 0:
            raise ValueError("retry_attempts must be >= 0")
        if self.backoff_s < 0:
            raise ValueError("backoff_s must be >= 0")

    @classmethod
    def from_env(cls, **overrides: Any) -> "SDKConfig":
        """Build a config from CREOLE_* environment variables; keyword overrides win."""
        values: Dict[str, Any] = {
            "translation_url": _env("CREOLE_TRANSLATION_URL", DEFAULT_TRANSLATION_URL),
            "stt_url": _env("CREOLE_STT_URL", DEFAULT_STT_URL),
            "tts_url": _env("CREOLE_TTS_URL", DEFAULT_TTS_URL),
            "api_key": _env("CREOLE_API_KEY"),
        }
        timeout = _env("CREOLE_TIMEOUT_S")
        if timeout is not None:
            values["timeout_s"] = float(timeout)
        retries = _env("CREOLE_RETRY_ATTEMPTS")
        if retries is not None:
            values["retry_attempts"] = int(retries)
        backoff = _env("CREOLE_BACKOFF_S")
        if backoff is not None:
            values["backoff_s"] = float(backoff)
        values.update(overrides)
        return cls(**values)

    def updated(self, **changes: Any) -> "SDKConfig":
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise TypeError(f"Unknown config field(s): {', '.join(sorted(unknown))}")
        # None means "keep current value"
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    def request_headers(self) -> Dict[str, str]:
        h = dict(self.headers)
        if self.api_key:
            h["Authorization"] = f"Bearer {self.api_key}"
        return h
