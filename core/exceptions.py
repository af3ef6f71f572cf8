"""Custom exception hierarchy for the Peloton proxy."""


class ProxyError(Exception):
    """Base exception for all proxy errors."""


class ConfigurationError(ProxyError):
    """Raised when configuration is missing or invalid."""


class ForwardError(ProxyError):
    """Raised when a request cannot be forwarded to the upstream.

    Attributes:
        message: Error message, safe to hand back to the caller
        upstream_url: URL the proxy was trying to reach (optional)
    """

    def __init__(self, message: str, upstream_url: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.upstream_url = upstream_url


class UpstreamUnreachable(ForwardError):
    """Raised on connection, DNS, TLS or protocol failures talking to the upstream."""


class UpstreamTimeout(ForwardError):
    """Raised when the upstream does not connect or answer within the bound."""


class StreamTruncated(ProxyError):
    """Raised when the upstream body fails after headers were already relayed."""


class ClientDisconnected(ProxyError):
    """Raised when the caller went away before the upstream answered."""
