"""Best-effort transcript clean-up through the OpenAI Responses API."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

import retry
from errors import InvalidResponse, ServiceError
from validation import validate_enhancement

logger = logging.getLogger(__name__)

RESPONSES_PATH = "/v1/responses"

SYSTEM_PROMPT = (
    "You are a text post-processor. Fix punctuation, grammar, and normalize "
    "spacing/capitalization in the following dictated text. Do NOT change meaning, "
    "do NOT add facts, do NOT rephrase, do NOT shorten or expand. Return only "
    "the corrected text, nothing else."
)

SYSTEM_PROMPT_WITH_LANG = (
    "You are a text post-processor. The text is dictated in {lang}. "
    "Fix punctuation, grammar, and normalize spacing/capitalization. "
    "Do NOT change meaning, do NOT add facts, do NOT rephrase, "
    "do NOT shorten or expand. Return only the corrected text, nothing else."
)


def build_instructions(language: Optional[str]) -> str:
    if language and language != "auto":
        return SYSTEM_PROMPT_WITH_LANG.format(lang=language)
    return SYSTEM_PROMPT


def extract_output_text(payload: object) -> str:
    """Concatenate every ``output[].content[].text`` in order."""
    if not isinstance(payload, dict) or not isinstance(payload.get("output"), list):
        raise InvalidResponse("missing output list")

    parts = []
    for item in payload["output"]:
        if not isinstance(item, dict):
            continue
        content = item.get("content")
        if not isinstance(content, list):
            continue
        for block in content:
            if isinstance(block, dict) and isinstance(block.get("text"), str):
                parts.append(block["text"])

    text = "".join(parts)
    if not text.strip():
        raise InvalidResponse("empty output text in response")
    return text


class OpenAiEnhancer:
    """Never raises for service failures: the raw text is returned instead."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        connect_timeout_s: float = 5.0,
        read_timeout_s: float = 15.0,
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
    def from_config(cls, config, api_key: str, **kwargs) -> "OpenAiEnhancer":
        return cls(
            base_url=config.api_base_url,
            api_key=api_key,
            model=config.enhance_model,
            connect_timeout_s=config.connect_timeout_sec,
            read_timeout_s=config.read_timeout_enhance_sec,
            retry_count=config.retry_count,
            **kwargs,
        )

    async def enhance(self, raw_text: str, language: Optional[str]) -> str:
        url = f"{self.base_url}{RESPONSES_PATH}"
        instructions = build_instructions(language)
        try:
            async with retry.build_client(self._connect_timeout_s, self._read_timeout_s, self._transport) as client:
                enhanced = await retry.call_with_retry(
                    lambda: self._send_request(client, url, instructions, raw_text),
                    retry_count=self.retry_count,
                    label="Enhance",
                    sleep=self._sleep,
                )
        except ServiceError as exc:
            logger.warning("Enhance failed: %s, returning raw text", exc)
            return raw_text

        return validate_enhancement(raw_text, enhanced).text

    async def _send_request(self, client: httpx.AsyncClient, url: str, instructions: str, text: str) -> str:
        response = await retry.post(
            client,
            url,
            headers={"Authorization": f"Bearer {self._api_key}"},
            json={"model": self.model, "instructions": instructions, "input": text},
        )
        retry.raise_for_status(response)
        try:
            payload = response.json()
        except ValueError as exc:
            raise InvalidResponse(str(exc)) from exc
        return extract_output_text(payload)
