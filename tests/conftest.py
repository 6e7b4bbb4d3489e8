"""
Shared test fixtures.
"""

import base64
import json

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.config import Settings
from app.main import app
from app.services.stream_hub import build_stream_hub


class FakeClock:
    """Manually advanced clock for eviction tests."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def hub_settings() -> Settings:
    return Settings(
        ENVIRONMENT="test",
        PUBLIC_BASE_URL="",
        APNS_KEY_ID=None,
        APNS_TEAM_ID=None,
        APNS_PRIVATE_KEY_PATH=None,
    )


@pytest.fixture
def hub(hub_settings, fake_clock):
    return build_stream_hub(hub_settings, clock=fake_clock)


@pytest_asyncio.fixture
async def client(hub):
    """HTTP client bound to the app with a fresh in-memory hub."""
    app.state.hub = hub
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    await hub.push_client.close()


def _encode_state(data: dict) -> str:
    return base64.b64encode(json.dumps(data).encode("utf-8")).decode("ascii")


@pytest.fixture
def encode_state():
    """Base64-encode a JSON object the way the iOS client does."""
    return _encode_state


@pytest.fixture
def valid_token() -> str:
    return "a1b2c3d4" * 8
