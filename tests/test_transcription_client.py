import httpx
import pytest

from livescribe.asr.base import ASRAuthError, ASREngine, ASRError, ASRResult, SegmentTimestamp
from livescribe.audio.types import Segment
from livescribe.errors import TranscriptionAuthError, TranscriptionError, TranscriptionTimeout
from livescribe.transcription.client import EngineTranscriptionClient, HttpTranscriptionClient
from livescribe.transcription.models import TranscriptFragment, parse_transcription_payload

URL = "http://asr.test/transcribe"


def _segment() -> Segment:
    return Segment(data=b"\x01" * 2000, mime_type="audio/webm;codecs=opus", started_at=0.0, ended_at=2.0)


def _client(handler) -> HttpTranscriptionClient:
    transport = httpx.MockTransport(handler)
    return HttpTranscriptionClient(url=URL, client=httpx.AsyncClient(transport=transport))


@pytest.mark.asyncio
async def test_posts_multipart_audio_and_parses_segments():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = request.content
        return httpx.Response(
            200,
            json={
                "text": "Hello there",
                "segments": [
                    {"text": "Hello", "start": 0.0, "end": 0.8},
                    {"text": "there", "start": 0.9, "end": 1.4},
                ],
            },
        )

    client = _client(handler)
    result = await client.transcribe(_segment())
    assert seen["url"] == URL
    assert b'name="audio"; filename="audio.webm"' in seen["body"]
    assert result.text == "Hello there"
    assert result.fragments == [
        TranscriptFragment("Hello", 0.0, 0.8),
        TranscriptFragment("there", 0.9, 1.4),
    ]


@pytest.mark.asyncio
async def test_text_only_response():
    client = _client(lambda request: httpx.Response(200, json={"text": "just text"}))
    result = await client.transcribe(_segment())
    assert result.text == "just text"
    assert result.fragments is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, error_type",
    [
        (401, TranscriptionAuthError),
        (504, TranscriptionTimeout),
        (500, TranscriptionError),
        (400, TranscriptionError),
    ],
)
async def test_status_mapping(status, error_type):
    client = _client(lambda request: httpx.Response(status, json={"error": "nope"}))
    with pytest.raises(error_type) as info:
        await client.transcribe(_segment())
    assert type(info.value) is error_type


@pytest.mark.asyncio
async def test_transport_timeout_maps_to_timeout():
    def handler(request):
        raise httpx.ReadTimeout("slow upstream", request=request)

    with pytest.raises(TranscriptionTimeout):
        await _client(handler).transcribe(_segment())


@pytest.mark.asyncio
async def test_connection_error_maps_to_generic_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(TranscriptionError) as info:
        await _client(handler).transcribe(_segment())
    assert type(info.value) is TranscriptionError


@pytest.mark.asyncio
async def test_invalid_json_is_an_error():
    client = _client(lambda request: httpx.Response(200, content=b"<html>"))
    with pytest.raises(TranscriptionError):
        await client.transcribe(_segment())


def test_malformed_segments_fall_back_to_text():
    result = parse_transcription_payload({"text": " hi ", "segments": [{"text": "hi"}]})
    assert result.text == "hi"
    assert result.fragments is None
    assert parse_transcription_payload(["not", "a", "dict"]).text == ""


class _Engine(ASREngine):
    def __init__(self, outcome):
        self.outcome = outcome
        self.calls = []

    async def transcribe(self, audio: bytes, mime_type: str) -> ASRResult:
        self.calls.append((len(audio), mime_type))
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


@pytest.mark.asyncio
async def test_engine_client_converts_segments():
    engine = _Engine(ASRResult(text="a b", segments=[SegmentTimestamp(start=0.0, end=1.0, text="a b")]))
    result = await EngineTranscriptionClient(engine).transcribe(_segment())
    assert engine.calls == [(2000, "audio/webm;codecs=opus")]
    assert result.fragments == [TranscriptFragment("a b", 0.0, 1.0)]


@pytest.mark.asyncio
async def test_engine_client_maps_errors():
    with pytest.raises(TranscriptionAuthError):
        await EngineTranscriptionClient(_Engine(ASRAuthError("key"))).transcribe(_segment())
    with pytest.raises(TranscriptionError):
        await EngineTranscriptionClient(_Engine(ASRError("boom"))).transcribe(_segment())
