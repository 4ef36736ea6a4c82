"""Tests for OpenAiSttClient and transcribe_audio."""

from __future__ import annotations

import json

import httpx
import numpy as np
import pytest

import recognizer
from config import AppConfig
from errors import AuthFailed, EncodingError, InvalidResponse, RateLimited, RequestTimeout
from recognizer import OpenAiSttClient, transcribe_audio


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

class FakeSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class Recorded:
    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)


def _client(handler, retry_count: int = 3, sleep=None) -> OpenAiSttClient:  # noqa: ANN001
    return OpenAiSttClient(
        base_url="https://api.test/",
        api_key="sk-test",
        model="gpt-4o-mini-transcribe",
        retry_count=retry_count,
        transport=httpx.MockTransport(handler),
        sleep=sleep or FakeSleep(),
    )


def _ok(text: str) -> httpx.Response:
    return httpx.Response(200, json={"text": text})


# ---------------------------------------------------------------
# OpenAiSttClient
# ---------------------------------------------------------------

async def test_transcribe_posts_multipart_request() -> None:
    handler = Recorded(_ok("hello world"))

    text = await _client(handler).transcribe(b"OggS-audio", "en")

    assert text == "hello world"
    (request,) = handler.requests
    assert request.url == "https://api.test/v1/audio/transcriptions"
    assert request.headers["Authorization"] == "Bearer sk-test"
    body = request.content
    assert b'name="model"' in body
    assert b"gpt-4o-mini-transcribe" in body
    assert b'name="language"' in body
    assert b'filename="audio.ogg"' in body
    assert b"audio/ogg" in body
    assert b"OggS-audio" in body


async def test_auto_language_is_not_sent() -> None:
    handler = Recorded(_ok("hi"))
    await _client(handler).transcribe(b"x", "auto")
    assert b'name="language"' not in handler.requests[0].content


async def test_auth_failure_is_not_retried() -> None:
    handler = Recorded(httpx.Response(401, json={"error": "bad key"}))
    with pytest.raises(AuthFailed):
        await _client(handler).transcribe(b"x", None)
    assert len(handler.requests) == 1


async def test_server_errors_are_retried_with_backoff() -> None:
    sleep = FakeSleep()
    handler = Recorded(httpx.Response(500), httpx.Response(502), _ok("done"))

    assert await _client(handler, sleep=sleep).transcribe(b"x", None) == "done"
    assert sleep.delays == [1, 2]
    assert len(handler.requests) == 3


async def test_rate_limit_honours_retry_after() -> None:
    sleep = FakeSleep()
    handler = Recorded(httpx.Response(429, headers={"Retry-After": "3"}), _ok("done"))

    assert await _client(handler, retry_count=0, sleep=sleep).transcribe(b"x", None) == "done"
    assert sleep.delays == [3]


async def test_rate_limit_exhausted() -> None:
    handler = Recorded(httpx.Response(429))
    with pytest.raises(RateLimited):
        await _client(handler).transcribe(b"x", None)


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"text": "   "}),
        httpx.Response(200, json={"result": "hi"}),
        httpx.Response(200, content=b"not json"),
    ],
)
async def test_bad_payloads_raise_invalid_response(response: httpx.Response) -> None:
    with pytest.raises(InvalidResponse):
        await _client(Recorded(response)).transcribe(b"x", None)


async def test_timeouts_are_retried_then_raised() -> None:
    sleep = FakeSleep()

    def slow(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(RequestTimeout):
        await _client(slow, retry_count=1, sleep=sleep).transcribe(b"x", None)
    assert sleep.delays == [1]


def test_from_config_uses_stt_settings() -> None:
    config = AppConfig(stt_model="whisper-1", read_timeout_stt_sec=12, retry_count=1)
    client = OpenAiSttClient.from_config(config, "sk")
    assert client.model == "whisper-1"
    assert client.retry_count == 1
    assert client.base_url == "https://api.openai.com"


# ---------------------------------------------------------------
# transcribe_audio
# ---------------------------------------------------------------

class FakeProvider:
    def __init__(self, texts: list[str]) -> None:
        self.texts = list(texts)
        self.calls: list[tuple[bytes, str | None]] = []

    async def transcribe(self, audio: bytes, language: str | None) -> str:
        self.calls.append((audio, language))
        return self.texts.pop(0)


@pytest.fixture
def fake_encode(monkeypatch):  # noqa: ANN001, ANN201
    def encode(samples, sample_rate):  # noqa: ANN001, ANN202
        return json.dumps({"n": len(samples), "sr": sample_rate}).encode()

    monkeypatch.setattr(recognizer, "encode_ogg_opus", encode)
    return encode


async def test_short_audio_is_one_request(fake_encode) -> None:  # noqa: ANN001
    provider = FakeProvider(["hello"])
    text = await transcribe_audio(provider, np.zeros(16000, dtype=np.float32), 16000, language="en")

    assert text == "hello"
    assert len(provider.calls) == 1
    assert json.loads(provider.calls[0][0]) == {"n": 16000, "sr": 16000}
    assert provider.calls[0][1] == "en"


async def test_long_audio_is_chunked_and_stitched(fake_encode) -> None:  # noqa: ANN001
    provider = FakeProvider(["one two three", "two three four", "  ", "three four five"])
    audio = np.zeros(70 * 16000, dtype=np.float32)

    text = await transcribe_audio(provider, audio, 16000, max_chunk_sec=30)

    assert len(provider.calls) == 4
    assert text == "one two three four five"


async def test_zero_max_chunk_clamps_to_one_second(fake_encode) -> None:  # noqa: ANN001
    provider = FakeProvider([f"part{i}" for i in range(20)])
    audio = np.zeros(10 * 16000, dtype=np.float32)

    await transcribe_audio(provider, audio, 16000, max_chunk_sec=0)

    # The default 30 s would have sent one request
    assert len(provider.calls) > 1
    assert all(json.loads(payload)["n"] <= 6 * 16000 for payload, _ in provider.calls)


async def test_invalid_sample_rate_is_rejected() -> None:
    with pytest.raises(EncodingError):
        await transcribe_audio(FakeProvider([]), np.zeros(10, dtype=np.float32), 0)
