"""Shared protocol definitions."""

from typing import Protocol

from core.request_types import Exchange


class ProxyObserver(Protocol):
    """Hook points the proxy calls at each stage of an exchange (Dashboard, ConsoleLog)."""

    def on_request(self, exchange: Exchange) -> None: ...
    def on_response(self, exchange: Exchange) -> None: ...
    def on_error(self, exchange: Exchange, message: str) -> None: ...
    def on_stream_error(self, exchange: Exchange, message: str) -> None: ...
    def on_unmatched(self, method: str, path: str) -> None: ...
