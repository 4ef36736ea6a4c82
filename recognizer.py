"""Speech-to-text client for the OpenAI transcription endpoint.

Audio is posted as an Ogg/Opus file to ``/v1/audio/transcriptions``.
Long recordings are split by ``chunker.chunk_audio`` and transcribed one
chunk at a time; the per-chunk texts are stitched back together by
``transcript.assemble``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx
import numpy as np

import retry
from chunker import DEFAULT_MAX_CHUNK_SEC, chunk_audio
from encoder import encode_ogg_opus
from errors import EncodingError, InvalidResponse
from interfaces import SttProvider
from transcript import assemble

logger = logging.getLogger(__name__)

TRANSCRIPTIONS_PATH = "/v1/audio/transcriptions"


class OpenAiSttClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        connect_timeout_s: float = 5.0,
        read_timeout_s: float = 30.0,
        retry_count: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: retry.Sleep = asyncio.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.retry_count = retry_count
        self._api_key = api_key
        self._connect_timeout_s = connect_timeout_s
        self._read_timeout_s = read_timeout_s
        self._transport = transport
        self._sleep = sleep

    @classmethod
    def from_config(cls, config, api_key: str, **kwargs) -> "OpenAiSttClient":
        return cls(
            base_url=config.api_base_url,
            api_key=api_key,
            model=config.stt_model,
            connect_timeout_s=config.connect_timeout_sec,
            read_timeout_s=config.read_timeout_stt_sec,
            retry_count=config.retry_count,
            **kwargs,
        )

    async def transcribe(self, audio: bytes, language: Optional[str]) -> str:
        url = f"{self.base_url}{TRANSCRIPTIONS_PATH}"
        async with retry.build_client(self._connect_timeout_s, self._read_timeout_s, self._transport) as client:
            return await retry.call_with_retry(
                lambda: self._send_request(client, url, audio, language),
                retry_count=self.retry_count,
                label="STT",
                sleep=self._sleep,
            )

    async def _send_request(
        self,
        client: httpx.AsyncClient,
        url: str,
        audio: bytes,
        language: Optional[str],
    ) -> str:
        data = {"model": self.model, "response_format": "json"}
        if language and language != "auto":
            data["language"] = language

        response = await retry.post(
            client,
            url,
            headers={"Authorization": f"Bearer {self._api_key}"},
            data=data,
            files={"file": ("audio.ogg", audio, "audio/ogg")},
        )
        retry.raise_for_status(response)
        return self._extract_text(response)

    def _extract_text(self, response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError as exc:
            raise InvalidResponse(str(exc)) from exc

        text = payload.get("text") if isinstance(payload, dict) else None
        if not isinstance(text, str):
            raise InvalidResponse("missing text field")
        if not text.strip():
            raise InvalidResponse("empty transcription text")
        return text


async def transcribe_audio(
    provider: SttProvider,
    samples,
    sample_rate: int,
    language: Optional[str] = None,
    max_chunk_sec: Optional[float] = None,
) -> str:
    """Encode and transcribe mono samples, chunking long recordings."""
    if sample_rate <= 0:
        raise EncodingError("sample_rate must be > 0")

    data = np.asarray(samples, dtype=np.float32).reshape(-1)
    max_sec = max(DEFAULT_MAX_CHUNK_SEC if max_chunk_sec is None else max_chunk_sec, 1)
    chunks = chunk_audio(data, sample_rate, max_sec)
    if len(chunks) == 1:
        encoded = encode_ogg_opus(chunks[0].samples, sample_rate)
        return await provider.transcribe(encoded, language)

    logger.info(
        "Audio too long (%.1fs), split into %d chunks (max %ss each)",
        len(data) / sample_rate,
        len(chunks),
        max_sec,
    )
    texts = []
    for i, chunk in enumerate(chunks, start=1):
        encoded = encode_ogg_opus(chunk.samples, sample_rate)
        logger.debug(
            "Transcribing chunk %d/%d (%.1fs, %d bytes Ogg)",
            i,
            len(chunks),
            len(chunk) / sample_rate,
            len(encoded),
        )
        text = (await provider.transcribe(encoded, language)).strip()
        if text:
            texts.append(text)
    return assemble(texts)
