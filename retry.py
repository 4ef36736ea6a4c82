"""Retry, backoff and status mapping shared by the remote service clients."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from errors import (
    ApiStatusError,
    AuthFailed,
    NetworkError,
    RateLimited,
    RequestTimeout,
    ServiceError,
    is_retryable,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

USER_AGENT = "VoiceDictation/0.1.0"
MAX_RATE_LIMIT_RETRIES = 5
MAX_BACKOFF_SEC = 16
DEFAULT_RETRY_AFTER_SEC = 5
MIN_RETRY_AFTER_SEC = 1
MAX_RETRY_AFTER_SEC = 60

Sleep = Callable[[float], Awaitable[None]]


def backoff_seconds(attempt: int) -> int:
    """``2 ** attempt`` seconds, capped at MAX_BACKOFF_SEC."""
    return min(2 ** min(max(attempt, 0), 16), MAX_BACKOFF_SEC)


def parse_retry_after(value: Optional[str]) -> int:
    try:
        seconds = int(str(value).strip())
    except (TypeError, ValueError):
        seconds = DEFAULT_RETRY_AFTER_SEC
    return min(max(seconds, MIN_RETRY_AFTER_SEC), MAX_RETRY_AFTER_SEC)


def build_client(
    connect_timeout_s: float,
    read_timeout_s: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    timeout = httpx.Timeout(read_timeout_s, connect=connect_timeout_s)
    return httpx.AsyncClient(
        timeout=timeout,
        headers={"User-Agent": USER_AGENT},
        transport=transport,
    )


async def post(client: httpx.AsyncClient, url: str, **kwargs) -> httpx.Response:
    """POST mapping transport failures onto the service error types."""
    try:
        return await client.post(url, **kwargs)
    except httpx.TimeoutException as exc:
        raise RequestTimeout() from exc
    except httpx.TransportError as exc:
        raise NetworkError(str(exc) or type(exc).__name__) from exc


def raise_for_status(response: httpx.Response) -> None:
    status = response.status_code
    if status == 401:
        raise AuthFailed()
    if status == 429:
        raise RateLimited(parse_retry_after(response.headers.get("Retry-After")))
    if not 200 <= status < 300:
        raise ApiStatusError(status, response.text)


async def call_with_retry(
    send: Callable[[], Awaitable[T]],
    *,
    retry_count: int,
    label: str,
    sleep: Sleep = asyncio.sleep,
    max_rate_limit_retries: int = MAX_RATE_LIMIT_RETRIES,
) -> T:
    """Run ``send`` until it succeeds or fails terminally.

    Rate limiting and transient failures are counted separately, so the
    worst case is ``max_rate_limit_retries + retry_count`` retries.
    """
    retries_left = retry_count
    rate_limit_retries = 0

    while True:
        try:
            return await send()
        except RateLimited as exc:
            rate_limit_retries += 1
            if rate_limit_retries > max_rate_limit_retries:
                raise
            logger.warning(
                "%s rate limited, waiting %ds (attempt %d/%d)",
                label,
                exc.retry_after_sec,
                rate_limit_retries,
                max_rate_limit_retries,
            )
            await sleep(exc.retry_after_sec)
        except ServiceError as exc:
            if not is_retryable(exc) or retries_left <= 0:
                raise
            attempt = retry_count - retries_left
            delay = backoff_seconds(attempt)
            logger.warning(
                "%s request failed (retry %d/%d), backoff %ds: %s",
                label,
                attempt + 1,
                retry_count,
                delay,
                exc,
            )
            await sleep(delay)
            retries_left -= 1
