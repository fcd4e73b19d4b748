"""
Pytest configuration and shared fixtures for Whoop MCP tests.

Provides fixtures for:
- An isolated SQLite database per test
- A fake Whoop API behind httpx.MockTransport
- Fully wired services on a controllable clock
"""

import os

os.environ.setdefault("ENCRYPTION_SECRET", "test-encryption-secret")

from datetime import timedelta
from typing import AsyncGenerator

import httpx
import pytest

from whoop_mcp.database.session import create_engine_from_url, init_db
from whoop_mcp.schemas.whoop import WhoopTokens
from whoop_mcp.services.container import WhoopServices
from whoop_mcp.services.whoop_store import WhoopStore

from tests.factories import REDIRECT_URI, TEST_SECRET, FakeWhoopAPI, FixedClock


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
async def engine(tmp_path):
    """Fresh SQLite database file, schema created and sync_state seeded."""
    db_engine = create_engine_from_url(f"sqlite+aiosqlite:///{tmp_path / 'whoop.db'}")
    await init_db(db_engine)
    yield db_engine
    await db_engine.dispose()


@pytest.fixture
def store(engine, clock) -> WhoopStore:
    return WhoopStore(engine, clock=clock)


@pytest.fixture
def whoop_api() -> FakeWhoopAPI:
    return FakeWhoopAPI()


@pytest.fixture
async def http_client(whoop_api) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(whoop_api.handler)) as client:
        yield client


@pytest.fixture
def services(engine, http_client, clock) -> WhoopServices:
    return WhoopServices.create(
        engine=engine,
        http_client=http_client,
        secret=TEST_SECRET,
        clock=clock,
        client_id="test-client-id",
        client_secret="test-client-secret",
        redirect_uri=REDIRECT_URI,
    )


@pytest.fixture
def valid_tokens(clock) -> WhoopTokens:
    """Token pair comfortably outside the refresh margin."""
    return WhoopTokens(
        access_token="access-initial",
        refresh_token="refresh-initial",
        expires_at=clock() + timedelta(hours=1),
    )


@pytest.fixture
def expiring_tokens(clock) -> WhoopTokens:
    """Token pair inside the 5-minute refresh margin."""
    return WhoopTokens(
        access_token="access-initial",
        refresh_token="refresh-initial",
        expires_at=clock() + timedelta(minutes=4),
    )


@pytest.fixture
async def authenticated(services, valid_tokens) -> WhoopServices:
    """Services with tokens persisted, as after a completed authorization."""
    await services.credentials.save(valid_tokens)
    return services
