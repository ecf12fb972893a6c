"""
Local microphone session against a /transcribe server.

  python -m livescribe --url http://localhost:8000/transcribe

Transcript lines are printed as they arrive; Ctrl+C stops capture, waits for
outstanding transcriptions and exits.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from livescribe.audio.capture import MicrophoneCaptureSource
from livescribe.config import configure_logging, get_settings
from livescribe.errors import SessionStartError
from livescribe.session import LiveSession, SessionStatus
from livescribe.session_store import generate_session_id
from livescribe.transcript import create_transcript_writer
from livescribe.transcription.client import HttpTranscriptionClient

logger = logging.getLogger("livescribe")


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(prog="livescribe", description="Live microphone transcription")
    parser.add_argument("--url", type=str, default=settings.TRANSCRIPTION_URL, help="Transcription endpoint")
    parser.add_argument("--device", type=str, default=None, help="Input device name or index")
    parser.add_argument(
        "--timeout",
        type=float,
        default=settings.TRANSCRIPTION_TIMEOUT_SECONDS,
        help="Per-segment transcription timeout (seconds)",
    )
    return parser


def _device(value: str | None) -> int | str | None:
    if value is None:
        return None
    return int(value) if value.isdigit() else value


async def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()

    client = HttpTranscriptionClient(url=args.url, timeout=args.timeout)
    session_id = generate_session_id()
    session = LiveSession(
        MicrophoneCaptureSource(device=_device(args.device)),
        client,
        session_id=session_id,
        writer=create_transcript_writer(session_id),
    )

    def _print_chunk(transcript: str, chunk: str) -> None:
        sys.stdout.write(chunk)
        sys.stdout.flush()

    def _log_status(status: SessionStatus) -> None:
        logger.info("Status: %s", status.value)

    session.transcript.add_listener(_print_chunk)
    session.add_status_listener(_log_status)

    try:
        await session.start()
    except SessionStartError as e:
        logger.error("%s", e)
        await client.aclose()
        return 1

    loop = asyncio.get_running_loop()
    for s in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(s, session.stop)

    try:
        await session.run()
    finally:
        session.stop()
        await session.drain(timeout=args.timeout)
        await client.aclose()
        sys.stdout.write("\n")
    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
