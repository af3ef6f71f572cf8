"""Shared request data types."""

import enum
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

# Ordered, multi-valued header list as it travels on the wire.
HeaderList = list[tuple[str, str]]


@dataclass(frozen=True)
class UpstreamTarget:
    """The single upstream host requests are forwarded to."""

    scheme: str
    host: str

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}"

    def url_for(self, path: str, query: str = "") -> str:
        """Absolute upstream URL; an empty path means the host root."""
        url = self.base_url + (path or "/")
        if query:
            url += f"?{query}"
        return url


@dataclass(frozen=True)
class RouteConfig:
    """Per-prefix forwarding rules, shared read-only by all matching requests."""

    prefix: str
    path_rewrite: Callable[[str], str]
    forced_headers: Mapping[str, str]
    cookie_domain_rewrites: Mapping[str, str]


@dataclass(frozen=True)
class InboundRequest:
    method: str
    path: str
    query: str
    headers: HeaderList
    body: AsyncIterable[bytes] | None = None


@dataclass(frozen=True)
class OutboundRequest:
    method: str
    url: str
    headers: HeaderList
    body: AsyncIterable[bytes] | None = None


@dataclass
class UpstreamResponse:
    """Upstream status and headers, with the raw body still on the wire."""

    status_code: int
    headers: HeaderList
    body: AsyncIterator[bytes]
    close: Callable[[], Awaitable[None]]


class ExchangeState(enum.Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class Exchange:
    """One proxied request, as reported to observers."""

    method: str
    path: str
    prefix: str
    upstream_url: str
    request_headers: HeaderList = field(default_factory=list)
    response_headers: HeaderList = field(default_factory=list)
    id: str = field(default_factory=lambda: uuid4().hex[:12])
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    state: ExchangeState = ExchangeState.PENDING
    status_code: int | None = None
    truncated: bool = False

    @property
    def elapsed_ms(self) -> float:
        return (datetime.now(UTC) - self.started_at).total_seconds() * 1000
