"""Shared unit-test fixtures: a controllable clock and mock HTTP clients."""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest

from genai_relay.core.config import Settings


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        PROXY_BASE_URL="http://proxy.test",
        GEMINI_API_BASE_URL="https://provider.test/v1beta",
        GEMINI_API_KEY=None,
        DIRECT_FALLBACK_API_KEY=None,
    )


def mock_http_client(*, request=None, post=None) -> AsyncMock:
    """Return an ``AsyncClient`` mock with the given request/post coroutines."""
    client = AsyncMock(spec=httpx.AsyncClient)
    if request is not None:
        client.request = request
    if post is not None:
        client.post = post
    return client
