"""
Pytest configuration and fixtures.

Every outbound HTTP call goes through ``FakePlatform`` via
``httpx.MockTransport``; nothing touches the network. Rate-limit jitter is
pinned to zero and time comes from a controllable clock.
"""

import os

import httpx
import pytest

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from alertbot.alerts.dedup import InMemoryDeduplicationStore  # noqa: E402
from alertbot.alerts.publisher import AlertPublisher  # noqa: E402
from alertbot.alerts.rate_limit import RateLimitState  # noqa: E402

from fakes import SERVER_URL, FakeBot, FakeClock, FakePlatform  # noqa: E402


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
async def http_client(platform):
    async with httpx.AsyncClient(transport=platform.transport()) as client:
        yield client


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rate_limit(clock) -> RateLimitState:
    return RateLimitState(clock=clock, jitter=lambda max_ms: 0)


@pytest.fixture
def publisher(http_client, rate_limit, tmp_path) -> AlertPublisher:
    return AlertPublisher(
        http_client,
        rate_limit,
        server_url=SERVER_URL,
        temp_dir=str(tmp_path),
    )


@pytest.fixture
def dedup() -> InMemoryDeduplicationStore:
    return InMemoryDeduplicationStore()


@pytest.fixture
def bot() -> FakeBot:
    return FakeBot()
