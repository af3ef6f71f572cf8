"""Header construction for upstream requests and relayed responses."""

import re
from collections.abc import Iterable, Mapping

from core.request_types import HeaderList, RouteConfig

# Hop-by-hop headers are connection-scoped and never forwarded (RFC 7230).
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)

_DOMAIN_ATTR = re.compile(r";\s*domain=([^;]*)", re.IGNORECASE)


def get_all(headers: Iterable[tuple[str, str]], name: str) -> list[str]:
    """All values of a header, in order, matched case-insensitively."""
    name = name.lower()
    return [value for key, value in headers if key.lower() == name]


def rewrite_cookie_domain(set_cookie: str, rewrites: Mapping[str, str]) -> str:
    """Rewrite or drop the ``Domain`` attribute of one Set-Cookie value.

    ``rewrites`` maps a domain (or ``"*"``) to its replacement; an empty
    replacement removes the attribute together with its separator. The
    cookie pair and all other attributes are kept byte-for-byte.
    """
    lowered = {key.lower(): value for key, value in rewrites.items()}

    def _replace(match: re.Match) -> str:
        domain = match.group(1).strip()
        replacement = lowered.get(domain.lower(), lowered.get("*"))
        if replacement is None:
            return match.group(0)
        if replacement == "":
            return ""
        return f"; Domain={replacement}"

    return _DOMAIN_ATTR.sub(_replace, set_cookie)


class HeaderBuilder:
    """Build upstream request headers and relayed response headers."""

    def build_upstream_headers(self, headers: HeaderList, route: RouteConfig) -> HeaderList:
        """Copy inbound headers, force the route's overrides and carry the cookie.

        ``Host`` is dropped so the transport addresses the upstream host.
        Applying this twice gives the same result as applying it once.
        """
        forced = {key.lower() for key in route.forced_headers}
        cookies = get_all(headers, "cookie")

        upstream: HeaderList = []
        for key, value in headers:
            key_lower = key.lower()
            if key_lower in HOP_BY_HOP_HEADERS or key_lower in forced:
                continue
            if key_lower in ("host", "cookie"):
                continue
            upstream.append((key, value))

        upstream.extend(route.forced_headers.items())
        # Explicitly carried: the browser's session must reach the upstream.
        if cookies:
            upstream.append(("Cookie", "; ".join(cookies)))
        return upstream

    def build_response_headers(self, headers: HeaderList, route: RouteConfig) -> HeaderList:
        """Relay upstream headers with Set-Cookie domains rewritten."""
        relayed: HeaderList = []
        for key, value in headers:
            key_lower = key.lower()
            if key_lower in HOP_BY_HOP_HEADERS:
                continue
            if key_lower == "set-cookie":
                value = rewrite_cookie_domain(value, route.cookie_domain_rewrites)
            relayed.append((key, value))
        return relayed
