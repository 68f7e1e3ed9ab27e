"""
Pytest configuration and shared fixtures for eludris tests.
"""

import asyncio
import json

import httpx
import pytest

from eludris.client import RESTClient
from eludris.models import InstanceInfo

API_URL = "https://api.test"
EFFIS_URL = "https://cdn.test"
PANDEMONIUM_URL = "wss://gateway.test"

INSTANCE_INFO = {
    "instance_name": "test",
    "description": None,
    "version": "0.4.0",
    "message_limit": 2000,
    "oprish_url": API_URL,
    "pandemonium_url": PANDEMONIUM_URL,
    "effis_url": EFFIS_URL,
    "file_size": 20_000_000,
    "attachment_file_size": 25_000_000,
}

USER = {
    "id": 48615849987333,
    "username": "yendri",
    "social_credit": 42,
    "status": {"type": "ONLINE", "text": None},
    "badges": 0,
    "permissions": 0,
}


def rate_limit_headers(count: int, maximum: int, last_reset: int, reset_after: int) -> dict:
    return {
        "X-RateLimit-Request-Count": str(count),
        "X-RateLimit-Max": str(maximum),
        "X-RateLimit-Last-Reset": str(last_reset),
        "X-RateLimit-Reset": str(reset_after),
    }


def make_rest(handler, **kwargs) -> RESTClient:
    """RESTClient whose HTTP traffic goes to ``handler(request) -> httpx.Response``."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RESTClient(API_URL, http_client=http_client, **kwargs)


# Captured before any test patches asyncio.sleep.
_real_sleep = asyncio.sleep


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection.

    Frames queued with feed() are yielded by async iteration; a queued
    exception is raised instead. close() ends the iteration.
    """

    def __init__(self):
        self.sent = []
        self.close_code = None
        self.close_reason = None
        self.closed = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    def feed(self, frame) -> None:
        if isinstance(frame, dict):
            frame = json.dumps(frame)
        self._incoming.put_nowait(frame)

    def server_close(self, code: int, reason: str) -> None:
        self.close_code = code
        self.close_reason = reason
        self.closed = True
        self._incoming.put_nowait(None)

    async def send(self, data: str) -> None:
        if self.closed:
            raise RuntimeError("socket is closed")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if not self.closed:
            self.server_close(code, reason)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is None:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item


async def wait_for(condition, timeout: float = 1.0) -> None:
    """Yield to the loop until ``condition()`` holds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not condition():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await _real_sleep(0.005)


@pytest.fixture
def instance_info():
    return InstanceInfo.model_validate(INSTANCE_INFO)


@pytest.fixture
def fake_ws():
    return FakeWebSocket()
