import asyncio

import httpx
import pytest

from syncgate.core.dispatcher import UpstreamDispatcher
from syncgate.core.errors import ConfigError, UpstreamTimeout
from syncgate.core.models import (
    UpstreamHttpFailure,
    UpstreamNetworkFailure,
    UpstreamRequest,
    UpstreamStream,
    UpstreamSuccess,
    UpstreamTimedOut,
)


def _dispatcher(handler) -> UpstreamDispatcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return UpstreamDispatcher(client=client)


def _request(url: str = "https://upstream.example.com/v1/thing", timeout: float = 5.0) -> UpstreamRequest:
    return UpstreamRequest.json(service="demo", url=url, payload={"hello": "world"}, timeout_seconds=timeout)


@pytest.mark.asyncio
async def test_dispatch_success_keeps_body_and_lowercases_headers():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b"\x00\x01audio", headers={"Content-Type": "audio/wav"})

    dispatcher = _dispatcher(handler)
    result = await dispatcher.dispatch(_request())
    await dispatcher.aclose()

    assert isinstance(result, UpstreamSuccess)
    assert result.content == b"\x00\x01audio"
    assert result.content_type == "audio/wav"
    assert len(seen) == 1
    assert seen[0].method == "POST"
    assert seen[0].headers["content-type"] == "application/json"
    assert seen[0].content == b'{"hello": "world"}'


@pytest.mark.asyncio
async def test_dispatch_non_2xx_is_http_failure_with_truncated_body():
    dispatcher = _dispatcher(lambda _request: httpx.Response(429, text="x" * 2000))
    result = await dispatcher.dispatch(_request())
    await dispatcher.aclose()

    assert isinstance(result, UpstreamHttpFailure)
    assert result.status_code == 429
    assert len(result.body_text) == 600


@pytest.mark.asyncio
async def test_dispatch_deadline_is_timed_out():
    async def slow(_request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(2)
        return httpx.Response(200, json={})

    dispatcher = _dispatcher(slow)
    result = await dispatcher.dispatch(_request(timeout=0.05))
    await dispatcher.aclose()

    assert isinstance(result, UpstreamTimedOut)
    assert result.timeout_seconds == pytest.approx(0.05)


@pytest.mark.asyncio
async def test_dispatch_connect_error_is_network_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    dispatcher = _dispatcher(handler)
    result = await dispatcher.dispatch(_request())
    await dispatcher.aclose()

    assert isinstance(result, UpstreamNetworkFailure)
    assert "connection refused" in result.message


@pytest.mark.asyncio
async def test_dispatch_empty_url_is_config_error():
    calls = []
    dispatcher = _dispatcher(lambda request: calls.append(request) or httpx.Response(200))
    with pytest.raises(ConfigError):
        await dispatcher.dispatch(_request(url=""))
    await dispatcher.aclose()
    assert calls == []


def test_form_request_encodes_fields_in_order():
    request = UpstreamRequest.form(
        service="twilio",
        url="https://api.example.com/Calls.json",
        fields=[("To", "+15550001111"), ("Twiml", "<Response/>")],
        timeout_seconds=3,
    )
    assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
    assert request.body == b"To=%2B15550001111&Twiml=%3CResponse%2F%3E"


@pytest.mark.asyncio
async def test_open_stream_yields_lines_as_they_arrive():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"Content-Type": "text/event-stream"}, content=b"data: a\n\ndata: b\n\n")

    dispatcher = _dispatcher(handler)
    result = await dispatcher.open_stream(_request())
    assert isinstance(result, UpstreamStream)
    assert result.content_type == "text/event-stream"
    lines = [line async for line in result.lines() if line]
    await result.aclose()
    await dispatcher.aclose()
    assert lines == ["data: a", "data: b"]


@pytest.mark.asyncio
async def test_open_stream_non_2xx_is_http_failure():
    dispatcher = _dispatcher(lambda _request: httpx.Response(503, text="busy"))
    result = await dispatcher.open_stream(_request())
    await dispatcher.aclose()

    assert isinstance(result, UpstreamHttpFailure)
    assert result.status_code == 503
    assert result.body_text == "busy"


@pytest.mark.asyncio
async def test_open_stream_body_shares_the_deadline():
    async def slow_body():
        yield b"data: first\n\n"
        await asyncio.sleep(2)
        yield b"data: second\n\n"

    dispatcher = _dispatcher(lambda _request: httpx.Response(200, content=slow_body()))
    result = await dispatcher.open_stream(_request(timeout=0.1))
    assert isinstance(result, UpstreamStream)
    received = []
    with pytest.raises(UpstreamTimeout):
        async for line in result.lines():
            received.append(line)
    await result.aclose()
    await dispatcher.aclose()
    assert received[0] == "data: first"
    assert "data: second" not in received


@pytest.mark.asyncio
async def test_open_stream_connect_error_is_network_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    dispatcher = _dispatcher(handler)
    result = await dispatcher.open_stream(_request())
    await dispatcher.aclose()
    assert isinstance(result, UpstreamNetworkFailure)
