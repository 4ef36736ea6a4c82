from __future__ import annotations

import httpx
import pytest

import retry
from errors import ApiStatusError, AuthFailed, NetworkError, RateLimited, RequestTimeout
from retry import backoff_seconds, call_with_retry, parse_retry_after, raise_for_status


class FakeSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def scripted(*outcomes):  # noqa: ANN001, ANN201
    """Async callable raising/returning each outcome in turn."""
    queue = list(outcomes)
    calls = {"n": 0}

    async def send():  # noqa: ANN202
        calls["n"] += 1
        outcome = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    send.calls = calls  # type: ignore[attr-defined]
    return send


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

def test_backoff_doubles_and_caps() -> None:
    assert [backoff_seconds(a) for a in range(6)] == [1, 2, 4, 8, 16, 16]
    assert backoff_seconds(100) == 16


@pytest.mark.parametrize(
    "value, expected",
    [(None, 5), ("7", 7), ("0", 1), ("120", 60), ("soon", 5), (" 3 ", 3)],
)
def test_parse_retry_after(value, expected) -> None:  # noqa: ANN001
    assert parse_retry_after(value) == expected


def test_raise_for_status_maps_codes() -> None:
    raise_for_status(httpx.Response(200))
    with pytest.raises(AuthFailed):
        raise_for_status(httpx.Response(401))
    with pytest.raises(RateLimited) as info:
        raise_for_status(httpx.Response(429, headers={"Retry-After": "3"}))
    assert info.value.retry_after_sec == 3
    with pytest.raises(ApiStatusError) as info:
        raise_for_status(httpx.Response(503, text="overloaded"))
    assert info.value.status == 503
    assert info.value.message == "overloaded"


# ---------------------------------------------------------------
# call_with_retry
# ---------------------------------------------------------------

async def test_transient_errors_back_off_then_succeed() -> None:
    sleep = FakeSleep()
    send = scripted(NetworkError("reset"), RequestTimeout(), "ok")

    assert await call_with_retry(send, retry_count=3, label="t", sleep=sleep) == "ok"
    assert sleep.delays == [1, 2]


async def test_transient_errors_exhaust_retry_count() -> None:
    sleep = FakeSleep()
    send = scripted(NetworkError("down"))

    with pytest.raises(NetworkError):
        await call_with_retry(send, retry_count=2, label="t", sleep=sleep)
    assert send.calls["n"] == 3
    assert sleep.delays == [1, 2]


async def test_zero_retry_count_fails_immediately() -> None:
    send = scripted(ApiStatusError(502, "bad gateway"))
    with pytest.raises(ApiStatusError):
        await call_with_retry(send, retry_count=0, label="t", sleep=FakeSleep())
    assert send.calls["n"] == 1


@pytest.mark.parametrize("exc", [AuthFailed(), ApiStatusError(400, "bad request"), ApiStatusError(404, "nope")])
async def test_terminal_errors_are_not_retried(exc) -> None:  # noqa: ANN001
    sleep = FakeSleep()
    send = scripted(exc, "ok")
    with pytest.raises(type(exc)):
        await call_with_retry(send, retry_count=3, label="t", sleep=sleep)
    assert sleep.delays == []


async def test_server_errors_are_retried() -> None:
    sleep = FakeSleep()
    send = scripted(ApiStatusError(500, "oops"), "ok")
    assert await call_with_retry(send, retry_count=1, label="t", sleep=sleep) == "ok"
    assert sleep.delays == [1]


async def test_rate_limit_waits_retry_after_without_using_retry_count() -> None:
    sleep = FakeSleep()
    send = scripted(RateLimited(7), RateLimited(7), "ok")
    assert await call_with_retry(send, retry_count=0, label="t", sleep=sleep) == "ok"
    assert sleep.delays == [7, 7]


async def test_rate_limit_gives_up_after_cap() -> None:
    sleep = FakeSleep()
    send = scripted(RateLimited(2))
    with pytest.raises(RateLimited):
        await call_with_retry(send, retry_count=3, label="t", sleep=sleep)
    assert sleep.delays == [2] * retry.MAX_RATE_LIMIT_RETRIES


# ---------------------------------------------------------------
# post
# ---------------------------------------------------------------

async def test_post_maps_transport_errors() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with retry.build_client(1, 1, httpx.MockTransport(refuse)) as client:
        with pytest.raises(NetworkError):
            await retry.post(client, "https://api.test/x")


async def test_post_maps_timeouts() -> None:
    def slow(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    async with retry.build_client(1, 1, httpx.MockTransport(slow)) as client:
        with pytest.raises(RequestTimeout):
            await retry.post(client, "https://api.test/x")


async def test_client_sends_user_agent() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    async with retry.build_client(1, 1, httpx.MockTransport(handler)) as client:
        await retry.post(client, "https://api.test/x")
    assert seen[0].headers["User-Agent"] == retry.USER_AGENT
