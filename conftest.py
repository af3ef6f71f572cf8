# Shared fixtures: a recording observer and an app wired to a fake upstream.
from contextlib import asynccontextmanager

import httpx
import pytest

from app import create_app
from core.config import Config


class RecordingObserver:
    """Collects hook calls as (event, payload) tuples."""

    def __init__(self):
        self.events = []

    def on_request(self, exchange):
        self.events.append(("request", exchange))

    def on_response(self, exchange):
        self.events.append(("response", exchange))

    def on_error(self, exchange, message):
        self.events.append(("error", exchange, message))

    def on_stream_error(self, exchange, message):
        self.events.append(("stream_error", exchange, message))

    def on_unmatched(self, method, path):
        self.events.append(("unmatched", method, path))

    def named(self, name):
        return [event for event in self.events if event[0] == name]


@pytest.fixture
def config():
    return Config()


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def proxy_client(config, observer):
    """Factory: ``async with proxy_client(handler) as client`` talks to the app.

    ``handler`` receives the upstream ``httpx.Request`` and returns an
    ``httpx.Response`` (or raises an httpx error).
    """

    @asynccontextmanager
    async def _client(handler, app_config=None):
        app = create_app(app_config or config, observer, transport=httpx.MockTransport(handler))
        async with app.router.lifespan_context(app):
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://proxy.test") as client:
                yield client

    return _client
