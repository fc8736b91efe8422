"""
Shared pytest fixtures and configuration.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from focusguard.api.app import create_app
from focusguard.clock import MINUTE_MS
from focusguard.storage import MemoryStore

T0 = 1_700_000_000_000      # 2023-11-14T22:13:20Z


class FakeClock:
    """Controllable epoch-ms clock. Call it like now_ms()."""

    def __init__(self, start: int = T0):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now

    def advance_minutes(self, minutes: float) -> int:
        return self.advance(int(minutes * MINUTE_MS))


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def store():
    return MemoryStore()


@pytest.fixture()
def app(tmp_path, clock):
    """A fresh app instance per test, with its own data dir and a fake clock."""
    # long tick interval: tests drive ticks explicitly
    return create_app(data_dir=tmp_path, clock=clock, tick_interval_s=3600)


@pytest_asyncio.fixture()
async def client(app):
    """Async HTTP client wired directly to the ASGI app (no server needed)."""
    async with app.router.lifespan_context(app):
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as ac:
            yield ac
