# client.py
# -----------------------------------------------------------------------------
# Async client for the Creole translation, STT and TTS services.
# - One pooled httpx.AsyncClient shared by all three services
# - Every request goes through the Invoker (deadline + fixed-backoff retries)
# - Streaming transcription over a WebSocket session
# - Parallel health probes that never raise
# -----------------------------------------------------------------------------
from __future__ import annotations

import asyncio
import logging
import mimetypes
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Set, Union

import httpx

from .config import SDKConfig
from .streaming import (
    Connector,
    ErrorCallback,
    FinalResultCallback,
    PartialResultCallback,
    StreamingSession,
    stream_url,
    websocket_connector,
)
from .transport import EventHook, FileField, Invoker, RequestDescriptor, SleepFn
from .types import (
    HealthStatus,
    Language,
    LanguageDetectionResult,
    TranscriptionResult,
    TranslationResult,
    Voice,
    parse_languages,
    parse_translations,
    parse_voices,
)

logger = logging.getLogger(__name__)

AudioInput = Union[bytes, bytearray, str, "os.PathLike[str]"]

DEFAULT_TTS_LANGUAGE = "ht"
DEFAULT_VOICE = "default"
DEFAULT_PREVIEW_TEXT = "Bonjou, koman ou ye?"


def _audio_file(audio: AudioInput, field_name: str = "file") -> Dict[str, FileField]:
    if isinstance(audio, (bytes, bytearray)):
        return {field_name: ("audio.wav", bytes(audio), "audio/wav")}
    path = Path(audio)
    content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return {field_name: (path.name, path.read_bytes(), content_type)}


class CreolePlatformClient:
    """
    High-level async client for the three Creole platform services.

    Usage:
        async with CreolePlatformClient(SDKConfig(translation_url="http://...")) as cli:
            res = await cli.translate("Hello world", source="en", target="ht")
            print(res.translated_text)
    """

    def __init__(
        self,
        config: Optional[SDKConfig] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        on_event: Optional[EventHook] = None,
        ws_connect: Optional[Connector] = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self._config = config or SDKConfig()
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient()
        self._invoker = Invoker(self.client, backoff_s=self._config.backoff_s, on_event=on_event, sleep=sleep)
        self._ws_connect = ws_connect
        self._sessions: Set[StreamingSession] = set()

    # ---- context management ----
    async def __aenter__(self) -> "CreolePlatformClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self) -> None:
        for session in list(self._sessions):
            await session.stop()
        self._sessions.clear()
        if self._owns_client:
            await self.client.aclose()

    # ---- configuration ----
    def update_config(self, **changes: Any) -> None:
        """Override any SDKConfig field, e.g. ``update_config(timeout_s=10, retry_attempts=0)``."""
        self._config = self._config.updated(**changes)
        self._invoker.backoff_s = self._config.backoff_s

    def get_config(self) -> SDKConfig:
        return self._config.updated(headers=dict(self._config.headers))

    # ---- helpers ----
    def _descriptor(self, method: str, url: str, **kwargs: Any) -> RequestDescriptor:
        cfg = self._config
        return RequestDescriptor(
            url=url,
            method=method,
            headers=cfg.request_headers(),
            timeout_s=cfg.timeout_s,
            retries_left=cfg.retry_attempts,
            **kwargs,
        )

    async def _json(self, method: str, url: str, **kwargs: Any) -> Any:
        return await self._invoker.invoke(self._descriptor(method, url, **kwargs))

    async def _audio(self, url: str, body: Dict[str, Any]) -> bytes:
        return await self._invoker.invoke(self._descriptor("POST", url, json_body=body, expect="bytes"))

    # ---- translation ----
    async def translate(self, text: str, *, source: str, target: str) -> TranslationResult:
        payload = await self._json(
            "POST",
            f"{self._config.translation_url}/api/v1/translate",
            json_body={"text": text, "source_language": source, "target_language": target},
        )
        return TranslationResult.from_dict(payload)

    async def translate_batch(self, text: str, *, source: str, targets: Sequence[str]) -> Dict[str, TranslationResult]:
        payload = await self._json(
            "POST",
            f"{self._config.translation_url}/api/v1/translate/batch",
            json_body={"text": text, "source_language": source, "target_languages": list(targets)},
        )
        return parse_translations(payload)

    async def get_supported_languages(self) -> List[Language]:
        payload = await self._json("GET", f"{self._config.translation_url}/api/v1/languages")
        return parse_languages(payload)

    # ---- speech-to-text ----
    async def transcribe_audio(
        self,
        audio: AudioInput,
        *,
        language: Optional[str] = None,
        model: Optional[str] = None,
    ) -> TranscriptionResult:
        """
        Transcribe raw audio bytes or an audio file path.

        language / model: optional; omitted fields let the server pick
        (auto-detect, default model).
        """
        data: Dict[str, str] = {}
        if language:
            data["language"] = language
        if model:
            data["model"] = model
        payload = await self._json(
            "POST",
            f"{self._config.stt_url}/api/v1/transcribe",
            files=_audio_file(audio),
            data=data or None,
        )
        return TranscriptionResult.from_dict(payload)

    async def detect_language(self, audio: AudioInput) -> LanguageDetectionResult:
        payload = await self._json(
            "POST",
            f"{self._config.stt_url}/api/v1/detect-language",
            files=_audio_file(audio),
        )
        return LanguageDetectionResult.from_dict(payload)

    async def start_streaming_transcription(
        self,
        *,
        language: Optional[str] = None,
        model: Optional[str] = None,
        on_partial_result: Optional[PartialResultCallback] = None,
        on_final_result: Optional[FinalResultCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> StreamingSession:
        """
        Open a streaming transcription session.

        Connection failures are reported to ``on_error`` and leave the returned
        session closed; this method does not raise for them.
        """
        connect = self._ws_connect or websocket_connector(
            headers=self._config.request_headers(), open_timeout=self._config.timeout_s
        )
        session = StreamingSession(
            stream_url(self._config.stt_url),
            language=language,
            model=model,
            on_partial_result=on_partial_result,
            on_final_result=on_final_result,
            on_error=on_error,
            connect=connect,
        )
        await session.open()
        if session.is_connected():
            self._sessions = {s for s in self._sessions if s.is_connected()}
            self._sessions.add(session)
        return session

    # ---- text-to-speech ----
    async def synthesize_text(
        self,
        text: str,
        *,
        language: str = DEFAULT_TTS_LANGUAGE,
        voice: str = DEFAULT_VOICE,
        speed: float = 1.0,
        pitch: float = 1.0,
        volume: float = 1.0,
    ) -> bytes:
        return await self._audio(
            f"{self._config.tts_url}/api/v1/synthesize",
            {
                "text": text,
                "language": language,
                "voice": voice,
                "speed": speed,
                "pitch": pitch,
                "volume": volume,
            },
        )

    async def get_available_voices(self, language: Optional[str] = None) -> List[Voice]:
        url = f"{self._config.tts_url}/api/v1/voices"
        if language:
            url = f"{url}/{language}"
        payload = await self._json("GET", url)
        return parse_voices(payload)

    async def preview_voice(
        self,
        voice_id: str,
        *,
        language: str = DEFAULT_TTS_LANGUAGE,
        text: str = DEFAULT_PREVIEW_TEXT,
    ) -> bytes:
        return await self._audio(
            f"{self._config.tts_url}/api/v1/preview",
            {"voice_id": voice_id, "language": language, "text": text},
        )

    # ---- health ----
    async def _probe(self, base_url: str) -> bool:
        url = f"{base_url}/health"
        try:
            r = await asyncio.wait_for(
                self.client.get(url, headers=self._config.request_headers(), timeout=None),
                timeout=self._config.health_timeout_s,
            )
        except (asyncio.TimeoutError, httpx.HTTPError) as e:
            logger.info("Health probe %s failed: %s", url, e.__class__.__name__)
            return False
        return r.is_success

    async def check_health(self) -> HealthStatus:
        cfg = self._config
        translation, stt, tts = await asyncio.gather(
            self._probe(cfg.translation_url),
            self._probe(cfg.stt_url),
            self._probe(cfg.tts_url),
        )
        return HealthStatus(translation=translation, stt=stt, tts=tts)

    # ---- observability ----
    def latency_summary(self) -> Dict[str, Optional[float]]:
        return self._invoker.stats.summary()
