"""FastAPI application factory."""

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request

from api.handlers import ProxyEndpoint, proxy_error_response
from core.config import Config
from core.exceptions import ProxyError
from core.headers import HeaderBuilder
from core.protocols import ProxyObserver
from core.router import RouteTable, build_target
from services.routing_service import RoutingService
from services.upstream import UpstreamClient


def build_http_client(
    config: Config,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Pooled client for the upstream; redirects are relayed, not followed."""
    timeouts = config.timeouts
    limits = httpx.Limits(
        max_connections=config.limits.max_connections,
        max_keepalive_connections=config.limits.max_keepalive_connections,
    )
    return httpx.AsyncClient(
        timeout=httpx.Timeout(
            connect=timeouts.connect,
            read=timeouts.read,
            write=timeouts.write,
            pool=timeouts.pool,
        ),
        limits=limits,
        follow_redirects=False,
        transport=transport,
    )


def create_app(
    config: Config,
    observer: ProxyObserver,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``transport`` replaces the network transport of the upstream client
    (tests pass an ``httpx.MockTransport``).
    """
    table = RouteTable.from_config(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = build_http_client(config, transport)
        app.state.upstream_client = UpstreamClient(client)
        try:
            yield
        finally:
            await client.aclose()

    app = FastAPI(
        title="Peloton API Proxy",
        version="0.1.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.observer = observer
    app.state.routing_service = RoutingService(
        table=table,
        target=build_target(config),
        observer=observer,
        header_builder=HeaderBuilder(),
    )

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError):
        return proxy_error_response(str(exc))

    app.add_route("/{path:path}", ProxyEndpoint(), include_in_schema=False)

    return app
