"""Routing orchestration for proxy requests."""

from core.headers import HeaderBuilder
from core.paths import rewrite_path
from core.protocols import ProxyObserver
from core.request_types import (
    Exchange,
    HeaderList,
    InboundRequest,
    OutboundRequest,
    RouteConfig,
    UpstreamTarget,
)
from core.router import RouteTable


class RoutingService:
    """Prepare inbound requests for forwarding to the upstream."""

    def __init__(
        self,
        table: RouteTable,
        target: UpstreamTarget,
        observer: ProxyObserver,
        header_builder: HeaderBuilder,
    ) -> None:
        self._table = table
        self._target = target
        self._observer = observer
        self._headers = header_builder

    def match(self, inbound: InboundRequest) -> RouteConfig | None:
        route = self._table.match(inbound.method, inbound.path)
        if route is None:
            self._observer.on_unmatched(inbound.method, inbound.path)
        return route

    def prepare(
        self,
        route: RouteConfig,
        inbound: InboundRequest,
    ) -> tuple[Exchange, OutboundRequest]:
        """Rewrite path and headers; the inbound request is left untouched."""
        upstream_path = rewrite_path(route, inbound.path)
        upstream_url = self._target.url_for(upstream_path, inbound.query)
        outbound = OutboundRequest(
            method=inbound.method,
            url=upstream_url,
            headers=self._headers.build_upstream_headers(inbound.headers, route),
            body=inbound.body,
        )
        exchange = Exchange(
            method=inbound.method,
            path=inbound.path,
            prefix=route.prefix,
            upstream_url=upstream_url,
            request_headers=list(inbound.headers),
        )
        self._observer.on_request(exchange)
        return exchange, outbound

    def relay_headers(self, route: RouteConfig, headers: HeaderList) -> HeaderList:
        return self._headers.build_response_headers(headers, route)
