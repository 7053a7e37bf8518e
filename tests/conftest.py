"""
Pytest configuration and shared fixtures for the merchant client tests.
"""

from collections import defaultdict
from unittest.mock import AsyncMock

import pytest

from skincrib.client import MerchantClient
from skincrib.errors import RemoteOperationError
from skincrib.models import ResponseEnvelope


class FakeTransport:
    """In-memory stand-in for SocketTransport.

    Records every request and replays pushes to the registered handlers.
    """

    def __init__(self):
        self.handlers = defaultdict(list)
        self.connected = True
        self.calls = []
        self.responses = {}
        self.connect = AsyncMock()
        self.disconnect = AsyncMock()

    def on(self, event, handler):
        self.handlers[event].append(handler)

    async def call(self, event, payload, timeout=None):
        self.calls.append((event, payload))
        result = self.responses.get(event, ResponseEnvelope())
        if isinstance(result, Exception):
            raise result
        return result

    def push(self, event, *args):
        for handler in self.handlers[event]:
            handler(*args)

    def respond(self, event, data=None, message=None):
        self.responses[event] = ResponseEnvelope(data=data, message=message)

    def fail(self, event, message):
        self.responses[event] = RemoteOperationError(message, event=event)

    def events_sent(self):
        return [event for event, _ in self.calls]


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def client(transport):
    """Unauthenticated client with memory enabled."""
    return MerchantClient(api_key="test-key", transport=transport)


@pytest.fixture
def authed_client(client):
    """Client that has already authenticated."""
    client.authenticated = True
    return client


@pytest.fixture
def stateless_client(transport):
    """Authenticated client with memory disabled."""
    client = MerchantClient(api_key="test-key", memory=False, transport=transport)
    client.authenticated = True
    return client
