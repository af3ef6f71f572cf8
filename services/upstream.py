"""HTTP forwarding to the upstream with streaming support."""

import asyncio
import contextlib
from collections.abc import AsyncIterator, Awaitable, Callable

import httpx

from core.exceptions import (
    ClientDisconnected,
    StreamTruncated,
    UpstreamTimeout,
    UpstreamUnreachable,
)
from core.request_types import OutboundRequest, UpstreamResponse

DISCONNECT_POLL_INTERVAL = 0.1


class UpstreamClient:
    """Forward prepared requests to the upstream, one attempt each."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def forward(
        self,
        outbound: OutboundRequest,
        disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> UpstreamResponse:
        """Send the request and return once upstream headers are in.

        Raises UpstreamTimeout or UpstreamUnreachable; never retries. If
        ``disconnected`` reports the caller gone before headers arrive, the
        upstream request is cancelled and ClientDisconnected is raised.
        """
        try:
            # Bytes keep header values exactly as the caller sent them
            request = self._client.build_request(
                outbound.method,
                outbound.url,
                headers=[
                    (key.encode("latin-1"), value.encode("latin-1"))
                    for key, value in outbound.headers
                ],
                content=outbound.body,
            )
        except (httpx.InvalidURL, UnicodeEncodeError) as e:
            raise UpstreamUnreachable(f"Invalid upstream request: {e}", outbound.url) from e

        try:
            response = await self._send(request, disconnected)
        except httpx.TimeoutException as e:
            raise UpstreamTimeout(_describe(e, "Upstream timeout"), outbound.url) from e
        except httpx.TransportError as e:
            # Connect/DNS/TLS failures and unparsable responses alike
            raise UpstreamUnreachable(
                _describe(e, "Upstream connection error"), outbound.url
            ) from e
        except httpx.DecodingError as e:
            raise UpstreamUnreachable(
                _describe(e, "Malformed upstream response"), outbound.url
            ) from e

        return UpstreamResponse(
            status_code=response.status_code,
            headers=[
                (key.decode("latin-1"), value.decode("latin-1"))
                for key, value in response.headers.raw
            ],
            body=self._relay_body(response),
            close=response.aclose,
        )

    async def _send(
        self,
        request: httpx.Request,
        disconnected: Callable[[], Awaitable[bool]] | None,
    ) -> httpx.Response:
        """Send with stream=True, racing the caller's disconnect if given."""
        if disconnected is None:
            return await self._client.send(request, stream=True)

        task = asyncio.create_task(self._client.send(request, stream=True))
        try:
            while True:
                done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_INTERVAL)
                if done:
                    return task.result()
                if await disconnected():
                    task.cancel()
                    # A response that landed meanwhile still holds a connection
                    with contextlib.suppress(asyncio.CancelledError, httpx.HTTPError):
                        response = await task
                        await response.aclose()
                    raise ClientDisconnected("Client disconnected before upstream responded")
        except asyncio.CancelledError:
            task.cancel()
            raise

    async def _relay_body(self, response: httpx.Response) -> AsyncIterator[bytes]:
        """Yield raw body bytes; always releases the upstream connection."""
        try:
            async for chunk in response.aiter_raw():
                yield chunk
        except httpx.HTTPError as e:
            raise StreamTruncated(_describe(e, "Upstream stream interrupted")) from e
        finally:
            await response.aclose()


def _describe(error: Exception, fallback: str) -> str:
    return str(error) or fallback
