"""Tests for the forwarding engine against a fake upstream transport."""

import asyncio

import httpx
import pytest

from core.exceptions import (
    ClientDisconnected,
    StreamTruncated,
    UpstreamTimeout,
    UpstreamUnreachable,
)
from core.request_types import OutboundRequest
from services.upstream import UpstreamClient


class FailingStream(httpx.AsyncByteStream):
    """Yields one chunk, then fails like a dropped connection."""

    def __init__(self):
        self.closed = False

    async def __aiter__(self):
        yield b"partial"
        raise httpx.ReadError("connection reset by peer")

    async def aclose(self):
        self.closed = True


def _outbound(url="https://api.onepeloton.com/me", method="GET", body=None, headers=None):
    return OutboundRequest(method=method, url=url, headers=headers or [], body=body)


def _engine(handler):
    return UpstreamClient(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


async def _read(body):
    return b"".join([chunk async for chunk in body])


@pytest.mark.asyncio
async def test_forward_returns_status_headers_and_body():
    def handler(request):
        assert request.url == "https://api.onepeloton.com/me?x=1"
        assert request.headers["origin"] == "https://members.onepeloton.com"
        return httpx.Response(
            201,
            headers=[("set-cookie", "a=1"), ("set-cookie", "b=2")],
            content=b'{"ok": true}',
        )

    engine = _engine(handler)
    response = await engine.forward(
        _outbound(
            url="https://api.onepeloton.com/me?x=1",
            headers=[("Origin", "https://members.onepeloton.com")],
        )
    )

    assert response.status_code == 201
    assert [v for k, v in response.headers if k == "set-cookie"] == ["a=1", "b=2"]
    assert await _read(response.body) == b'{"ok": true}'


@pytest.mark.asyncio
async def test_body_relayed_raw_without_decoding():
    compressed = b"\x1f\x8b\x08\x00not-really-gzip"

    def handler(request):
        return httpx.Response(200, headers={"content-encoding": "gzip"}, content=compressed)

    response = await _engine(handler).forward(_outbound())

    assert await _read(response.body) == compressed


@pytest.mark.asyncio
async def test_request_body_streamed():
    received = {}

    async def chunks():
        yield b"hello "
        yield b"world"

    async def handler(request):
        received["body"] = await request.aread()
        received["method"] = request.method
        return httpx.Response(204)

    response = await _engine(handler).forward(_outbound(method="POST", body=chunks()))

    assert response.status_code == 204
    assert received == {"body": b"hello world", "method": "POST"}


@pytest.mark.asyncio
async def test_connection_refused_is_unreachable():
    def handler(request):
        raise httpx.ConnectError("Connection refused", request=request)

    with pytest.raises(UpstreamUnreachable) as exc_info:
        await _engine(handler).forward(_outbound())

    assert exc_info.value.message == "Connection refused"
    assert exc_info.value.upstream_url == "https://api.onepeloton.com/me"


@pytest.mark.asyncio
async def test_non_ascii_header_bytes_preserved():
    received = {}

    def handler(request):
        received.update((key.lower(), value) for key, value in request.headers.raw)
        return httpx.Response(200)

    # Inbound header values arrive latin-1 decoded
    cookie = "name=José".encode().decode("latin-1")
    await _engine(handler).forward(_outbound(headers=[("Cookie", cookie)]))

    assert received[b"cookie"] == "name=José".encode()


@pytest.mark.asyncio
async def test_unencodable_header_is_unreachable():
    def handler(request):
        raise AssertionError("request should not be sent")

    with pytest.raises(UpstreamUnreachable, match="Invalid upstream request"):
        await _engine(handler).forward(_outbound(headers=[("X-Note", "snow ☃")]))


@pytest.mark.asyncio
async def test_malformed_response_is_unreachable():
    def handler(request):
        raise httpx.RemoteProtocolError("illegal status line", request=request)

    with pytest.raises(UpstreamUnreachable, match="illegal status line"):
        await _engine(handler).forward(_outbound())


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [httpx.ConnectTimeout, httpx.ReadTimeout, httpx.PoolTimeout])
async def test_timeouts_classified(error):
    def handler(request):
        raise error("timed out", request=request)

    with pytest.raises(UpstreamTimeout, match="timed out"):
        await _engine(handler).forward(_outbound())


@pytest.mark.asyncio
async def test_empty_error_message_gets_fallback():
    def handler(request):
        raise httpx.ConnectError("", request=request)

    with pytest.raises(UpstreamUnreachable, match="Upstream connection error"):
        await _engine(handler).forward(_outbound())


@pytest.mark.asyncio
async def test_real_connection_refused_within_timeout():
    """Nothing listens on port 9 locally; the failure comes back quickly."""
    client = httpx.AsyncClient(timeout=httpx.Timeout(2.0))
    engine = UpstreamClient(client)

    try:
        with pytest.raises((UpstreamUnreachable, UpstreamTimeout)):
            await asyncio.wait_for(engine.forward(_outbound(url="http://127.0.0.1:9/")), 5)
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_stream_error_after_headers_is_truncation():
    stream = FailingStream()

    def handler(request):
        return httpx.Response(200, stream=stream)

    response = await _engine(handler).forward(_outbound())
    chunks = []
    with pytest.raises(StreamTruncated, match="connection reset by peer"):
        async for chunk in response.body:
            chunks.append(chunk)

    assert chunks == [b"partial"]
    assert stream.closed


@pytest.mark.asyncio
async def test_upstream_closed_when_relay_abandoned():
    stream = FailingStream()

    def handler(request):
        return httpx.Response(200, stream=stream)

    response = await _engine(handler).forward(_outbound())
    async for _ in response.body:
        break
    await response.body.aclose()

    assert stream.closed


@pytest.mark.asyncio
async def test_client_disconnect_cancels_upstream():
    started = asyncio.Event()
    cancelled = asyncio.Event()

    async def handler(request):
        started.set()
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        return httpx.Response(200)

    async def disconnected():
        return started.is_set()

    with pytest.raises(ClientDisconnected):
        await _engine(handler).forward(_outbound(), disconnected=disconnected)

    assert cancelled.is_set()


@pytest.mark.asyncio
async def test_connected_client_waits_for_response():
    async def handler(request):
        await asyncio.sleep(0.25)
        return httpx.Response(200, content=b"slow")

    async def disconnected():
        return False

    response = await _engine(handler).forward(_outbound(), disconnected=disconnected)

    assert response.status_code == 200
    assert await _read(response.body) == b"slow"
