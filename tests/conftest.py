"""Pytest fixtures and shared test configuration.

Provides reusable fixtures for unit and integration tests.

Fixtures:
    - stream_config: Short keep-alive and polling bounds
    - history: Fresh in-memory history store
    - backend: Scripted assistant backend with a grounded answer
    - producer: StreamProducer wired to the fake backend
    - async_client: HTTPX client for API testing with the fakes injected
    - auth_headers: Bearer header for a signed-in user
"""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from askuni.api import app
from askuni.api.deps import get_producer
from askuni.auth import create_access_token
from askuni.config import StreamConfig
from askuni.history.store import HistoryStore, get_history_store
from askuni.streaming.producer import StreamProducer
from tests.fakes import FakeBackend, grounded

TEST_USER = "student@uob.edu.bh"


@pytest.fixture
def stream_config() -> StreamConfig:
    """Timing bounds small enough for tests to hit them."""
    return StreamConfig(
        keepalive_interval=0.05,
        max_idle_intervals=10,
        poll_interval=0.01,
        max_poll_attempts=20,
    )


@pytest.fixture
def history() -> HistoryStore:
    return HistoryStore()


@pytest.fixture
def backend() -> FakeBackend:
    """Backend answering "The room is B101." with one citation."""
    return FakeBackend(grounded("The room ", "is B101."))


@pytest.fixture
def producer(backend: FakeBackend, history: HistoryStore, stream_config: StreamConfig) -> StreamProducer:
    return StreamProducer(backend, history, stream_config)


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Authorization header for TEST_USER.

    Returns:
        Header dict carrying a freshly signed bearer token.
    """
    return {"Authorization": f"Bearer {create_access_token(TEST_USER)}"}


@pytest.fixture
async def async_client(
    producer: StreamProducer,
    history: HistoryStore,
) -> AsyncGenerator[AsyncClient]:
    """Create async HTTP client for API testing.

    The producer and history store are swapped for the test fixtures.

    Yields:
        Configured AsyncClient for making test requests.
    """
    app.dependency_overrides[get_producer] = lambda: producer
    app.dependency_overrides[get_history_store] = lambda: history

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
