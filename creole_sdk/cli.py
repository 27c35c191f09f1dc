#!/usr/bin/env python3
"""
Command line front-end for the Creole platform SDK.

Usage:
  creole-sdk health
  creole-sdk translate "Hello world" --from en --to ht
  creole-sdk translate "Hello world" --from en --to ht --to fr
  creole-sdk transcribe sample.wav --language ht
  creole-sdk synthesize "Bonjou" --out bonjou.wav --voice default
  creole-sdk stream sample.wav --language ht --chunk-bytes 3200

Service URLs default to CREOLE_TRANSLATION_URL / CREOLE_STT_URL / CREOLE_TTS_URL.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import pathlib
import sys
from typing import List, Optional

from .client import CreolePlatformClient
from .config import SDKConfig
from .errors import CreoleSDKError
from .streaming import SessionError


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="creole-sdk", description="Creole translation / STT / TTS client")
    p.add_argument("--translation-url", default=None, help="Translation service URL, e.g. http://host:8001")
    p.add_argument("--stt-url", default=None, help="STT service URL, e.g. http://host:8002")
    p.add_argument("--tts-url", default=None, help="TTS service URL, e.g. http://host:8003")
    p.add_argument("--api-key", default=None, help="Bearer token sent to every service")
    p.add_argument("--timeout", type=float, default=None, help="Per-attempt deadline in seconds")
    p.add_argument("--retries", type=int, default=None, help="Retry attempts after the first failure")
    p.add_argument("--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("health", help="Probe the three services")
    sub.add_parser("languages", help="List supported translation languages")

    t = sub.add_parser("translate", help="Translate text")
    t.add_argument("text")
    t.add_argument("--from", dest="source", required=True, help="Source language code")
    t.add_argument("--to", dest="targets", action="append", required=True,
                   help="Target language code; repeat for a batch translation")

    tr = sub.add_parser("transcribe", help="Transcribe an audio file")
    tr.add_argument("file")
    tr.add_argument("--language", default=None, help="e.g. ht, en. Omit to auto-detect.")
    tr.add_argument("--model", default=None)

    d = sub.add_parser("detect", help="Detect the spoken language of an audio file")
    d.add_argument("file")

    s = sub.add_parser("synthesize", help="Synthesize speech to a file")
    s.add_argument("text")
    s.add_argument("--out", required=True, help="Output audio path")
    s.add_argument("--language", default="ht")
    s.add_argument("--voice", default="default")
    s.add_argument("--speed", type=float, default=1.0)
    s.add_argument("--pitch", type=float, default=1.0)
    s.add_argument("--volume", type=float, default=1.0)

    v = sub.add_parser("voices", help="List available voices")
    v.add_argument("--language", default=None)

    st = sub.add_parser("stream", help="Stream an audio file through the live transcription socket")
    st.add_argument("file")
    st.add_argument("--language", default=None)
    st.add_argument("--model", default=None)
    st.add_argument("--chunk-bytes", type=int, default=3200, help="Bytes per audio_chunk frame")
    st.add_argument("--linger", type=float, default=2.0, help="Seconds to wait for final results before stopping")
    return p.parse_args(argv)


def build_config(args: argparse.Namespace) -> SDKConfig:
    return SDKConfig.from_env().updated(
        translation_url=args.translation_url,
        stt_url=args.stt_url,
        tts_url=args.tts_url,
        api_key=args.api_key,
        timeout_s=args.timeout,
        retry_attempts=args.retries,
    )


def _print_json(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


async def _stream(client: CreolePlatformClient, args: argparse.Namespace) -> int:
    audio = pathlib.Path(args.file).read_bytes()
    session = await client.start_streaming_transcription(language=args.language, model=args.model)
    if not session.is_connected():
        print("Could not open streaming session", file=sys.stderr)
        return 1

    events = session.events()

    async def consume() -> None:
        async for ev in events:
            if isinstance(ev, SessionError):
                print(f"[error] {ev.error}", file=sys.stderr)
            else:
                print(f"[{type(ev).__name__}] {ev}")

    consumer = asyncio.create_task(consume())
    for i in range(0, len(audio), args.chunk_bytes):
        await session.send_audio_chunk(audio[i:i + args.chunk_bytes])
    await asyncio.sleep(args.linger)
    await session.stop()
    await consumer
    return 0


async def run(args: argparse.Namespace) -> int:
    async with CreolePlatformClient(build_config(args)) as client:
        if args.command == "health":
            status = await client.check_health()
            _print_json(status.to_dict())
            return 0 if status.all_healthy else 1
        if args.command == "languages":
            for lang in await client.get_supported_languages():
                print(f"{lang.code}\t{lang.name}\t{lang.native_name}")
            return 0
        if args.command == "translate":
            if len(args.targets) == 1:
                res = await client.translate(args.text, source=args.source, target=args.targets[0])
                _print_json(res.to_dict())
            else:
                batch = await client.translate_batch(args.text, source=args.source, targets=args.targets)
                _print_json({lang: r.to_dict() for lang, r in batch.items()})
            return 0
        if args.command == "transcribe":
            res = await client.transcribe_audio(args.file, language=args.language, model=args.model)
            print(f"[{res.language} conf={res.confidence:.2f} dur={res.duration:.2f}s] {res.text}")
            return 0
        if args.command == "detect":
            det = await client.detect_language(args.file)
            print(f"{det.detected_language}\t{det.confidence:.2f}")
            return 0
        if args.command == "synthesize":
            audio = await client.synthesize_text(
                args.text,
                language=args.language,
                voice=args.voice,
                speed=args.speed,
                pitch=args.pitch,
                volume=args.volume,
            )
            pathlib.Path(args.out).write_bytes(audio)
            print(f"wrote {len(audio)} bytes to {args.out}")
            return 0
        if args.command == "voices":
            for voice in await client.get_available_voices(args.language):
                print(f"{voice.id}\t{voice.name}\t{voice.language}\t{voice.gender}\t{voice.description}")
            return 0
        # stream
        return await _stream(client, args)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        return asyncio.run(run(args))
    except CreoleSDKError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
