"""FastAPI route handlers."""

from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask
from starlette.requests import ClientDisconnect

from core.exceptions import ClientDisconnected, ForwardError, StreamTruncated
from core.protocols import ProxyObserver
from core.request_types import Exchange, ExchangeState, InboundRequest

# Never sent in practice: the caller is already gone.
CLIENT_CLOSED_REQUEST = 499


class _BodyRelay:
    """Stream the inbound body once, remembering when it has been fully read."""

    def __init__(self, request: Request) -> None:
        self._request = request
        self.finished = False

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._stream()

    async def _stream(self) -> AsyncIterator[bytes]:
        async for chunk in self._request.stream():
            if chunk:
                yield chunk
        self.finished = True


def proxy_error_response(message: str) -> JSONResponse:
    return JSONResponse(
        {"error": "Proxy server error", "details": message},
        status_code=500,
    )


def not_found_response(path: str) -> JSONResponse:
    return JSONResponse({"error": "Not found", "path": path}, status_code=404)


def _has_body(request: Request) -> bool:
    length = request.headers.get("content-length")
    if length is not None:
        return length.strip() not in ("", "0")
    return "transfer-encoding" in request.headers


def _inbound_from(request: Request, body: AsyncIterable[bytes] | None) -> InboundRequest:
    raw_path = request.scope.get("raw_path")
    # Some servers include the query string in raw_path
    path = raw_path.decode("latin-1").partition("?")[0] if raw_path else request.url.path
    return InboundRequest(
        method=request.method,
        path=path,
        query=request.url.query,
        headers=[
            (key.decode("latin-1"), value.decode("latin-1"))
            for key, value in request.headers.raw
        ],
        body=body,
    )


def _disconnect_probe(
    request: Request,
    relay: _BodyRelay | None,
) -> Callable[[], Awaitable[bool]]:
    async def disconnected() -> bool:
        # Probing receive() while the body is still streaming would eat chunks
        if relay is not None and not relay.finished:
            return False
        return await request.is_disconnected()

    return disconnected


async def _observed_body(
    body: AsyncIterator[bytes],
    exchange: Exchange,
    observer: ProxyObserver,
) -> AsyncIterator[bytes]:
    """Relay the upstream body; a late failure can only cut the stream short."""
    try:
        async for chunk in body:
            yield chunk
    except StreamTruncated as e:
        exchange.truncated = True
        observer.on_stream_error(exchange, str(e))
        raise


async def handle_proxy(request: Request) -> Response:
    """Forward a request to the upstream, or fall through to 404."""
    routing_service = request.app.state.routing_service
    upstream = request.app.state.upstream_client
    observer: ProxyObserver = request.app.state.observer

    relay = _BodyRelay(request) if _has_body(request) else None
    inbound = _inbound_from(request, relay)

    route = routing_service.match(inbound)
    if route is None:
        return not_found_response(inbound.path)

    exchange, outbound = routing_service.prepare(route, inbound)
    try:
        upstream_response = await upstream.forward(
            outbound,
            disconnected=_disconnect_probe(request, relay),
        )
    except ForwardError as e:
        exchange.state = ExchangeState.FAILED
        observer.on_error(exchange, e.message)
        return proxy_error_response(e.message)
    except (ClientDisconnected, ClientDisconnect) as e:
        exchange.state = ExchangeState.FAILED
        observer.on_error(exchange, str(e) or "Client disconnected")
        return Response(status_code=CLIENT_CLOSED_REQUEST)

    headers = routing_service.relay_headers(route, upstream_response.headers)
    exchange.state = ExchangeState.SUCCEEDED
    exchange.status_code = upstream_response.status_code
    exchange.response_headers = headers
    observer.on_response(exchange)

    response = StreamingResponse(
        _observed_body(upstream_response.body, exchange, observer),
        status_code=upstream_response.status_code,
        background=BackgroundTask(upstream_response.close),
    )
    for key, value in headers:
        response.headers.append(key, value)
    return response


class ProxyEndpoint:
    """ASGI endpoint for the catch-all route.

    Starlette only filters methods on function endpoints, so mounting an
    instance lets every verb reach the router.
    """

    async def __call__(self, scope, receive, send) -> None:
        request = Request(scope, receive, send)
        response = await handle_proxy(request)
        await response(scope, receive, send)
