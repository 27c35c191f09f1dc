from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from .errors import DecodeError


def _require(data: Any, *keys: str, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise DecodeError(f"{what}: expected an object, got {type(data).__name__}")
    missing = [k for k in keys if k not in data]
    if missing:
        raise DecodeError(f"{what}: missing field(s) {', '.join(missing)}")
    return data


def _float(data: Mapping[str, Any], key: str, what: str, default: Any = None) -> float:
    v = data.get(key)
    if v is None:
        v = default
    try:
        return float(v)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"{what}: field {key!r} is not a number: {v!r}") from e


@dataclass
class Language:
    code: str
    name: str
    native_name: str

    @classmethod
    def from_dict(cls, data: Any) -> "Language":
        d = _require(data, "code", "name", what="language")
        return cls(code=d["code"], name=d["name"], native_name=d.get("native_name", d["name"]))


@dataclass
class Voice:
    id: str
    name: str
    language: str
    gender: str = ""
    age: str = ""
    description: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "Voice":
        d = _require(data, "id", "name", "language", what="voice")
        return cls(
            id=d["id"],
            name=d["name"],
            language=d["language"],
            gender=d.get("gender") or "",
            age=d.get("age") or "",
            description=d.get("description") or "",
        )


@dataclass
class TranslationResult:
    translated_text: str
    source_language: str
    target_language: str
    confidence: float
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Any) -> "TranslationResult":
        d = _require(data, "translated_text", "source_language", "target_language", what="translation")
        return cls(
            translated_text=d["translated_text"],
            source_language=d["source_language"],
            target_language=d["target_language"],
            confidence=_float(d, "confidence", "translation", 0.0),
            raw=dict(d),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "translated_text": self.translated_text,
            "source_language": self.source_language,
            "target_language": self.target_language,
            "confidence": self.confidence,
        }


@dataclass
class TranscriptionResult:
    text: str
    language: str
    confidence: float
    duration: float = 0.0
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Any) -> "TranscriptionResult":
        d = _require(data, "text", what="transcription")
        return cls(
            text=d["text"],
            language=d.get("language") or "",
            confidence=_float(d, "confidence", "transcription", 0.0),
            duration=_float(d, "duration", "transcription", 0.0),
            raw=dict(d),
        )


@dataclass
class LanguageDetectionResult:
    detected_language: str
    confidence: float

    @classmethod
    def from_dict(cls, data: Any) -> "LanguageDetectionResult":
        d = _require(data, "detected_language", what="language detection")
        return cls(
            detected_language=d["detected_language"],
            confidence=_float(d, "confidence", "language detection", 0.0),
        )


@dataclass
class HealthStatus:
    translation: bool
    stt: bool
    tts: bool

    @property
    def all_healthy(self) -> bool:
        return self.translation and self.stt and self.tts

    def to_dict(self) -> Dict[str, bool]:
        return {"translation": self.translation, "stt": self.stt, "tts": self.tts}


def parse_translations(data: Any) -> Dict[str, TranslationResult]:
    d = _require(data, "translations", what="batch translation")
    translations = d["translations"]
    if not isinstance(translations, Mapping):
        raise DecodeError("batch translation: 'translations' is not an object")
    return {lang: TranslationResult.from_dict(item) for lang, item in translations.items()}


def parse_languages(data: Any) -> List[Language]:
    d = _require(data, "supported_languages", what="language catalog")
    items = d["supported_languages"]
    if not isinstance(items, list):
        raise DecodeError("language catalog: 'supported_languages' is not a list")
    return [Language.from_dict(item) for item in items]


def parse_voices(data: Any) -> List[Voice]:
    d = _require(data, "voices", what="voice catalog")
    items = d["voices"]
    if not isinstance(items, list):
        raise DecodeError("voice catalog: 'voices' is not a list")
    return [Voice.from_dict(item) for item in items]
