"""Pytest configuration and fixtures."""
from typing import Any, Dict, List, Optional

import pytest
from unittest.mock import AsyncMock

from pgsearch.clients.postgres import ConnectionPool
from pgsearch.config import ConnectionConfig
from pgsearch.retrieval.vector_store import PostgresVectorStore


class FakeConnection:
    """Stands in for an asyncpg connection; records every statement."""

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None, error: Optional[Exception] = None):
        self.rows = rows or []
        self.error = error
        self.calls: List[tuple] = []

    async def fetch(self, sql: str, *params: Any, timeout: Optional[float] = None):
        self.calls.append((sql, params, timeout))
        if self.error is not None:
            raise self.error
        return list(self.rows)

    async def fetchval(self, sql: str, *params: Any):
        self.calls.append((sql, params, None))
        if self.error is not None:
            raise self.error
        return 1


class FakeAsyncpgPool:
    """Stands in for asyncpg.Pool with acquire/release bookkeeping."""

    def __init__(self, connection: FakeConnection, acquire_error: Optional[Exception] = None):
        self.connection = connection
        self.acquire_error = acquire_error
        self.acquired = 0
        self.released = 0
        self.closed = False

    async def acquire(self, timeout: Optional[float] = None):
        if self.acquire_error is not None:
            raise self.acquire_error
        self.acquired += 1
        return self.connection

    async def release(self, conn):
        self.released += 1

    async def close(self):
        self.closed = True


@pytest.fixture
def connection_config():
    """Connection parameters for a local store."""
    return ConnectionConfig(
        host="localhost",
        port=5432,
        database="vectors",
        username="reader",
        password="secret",
        driver_options={"command_timeout": 30, "host": "ignored"},
    )


@pytest.fixture
def fake_connection():
    """Connection returning no rows."""
    return FakeConnection()


@pytest.fixture
def fake_pool(fake_connection):
    """Underlying pool handed out by the factory."""
    return FakeAsyncpgPool(fake_connection)


@pytest.fixture
def pool_factory(fake_pool):
    """Pool factory capturing the connect arguments."""
    captured: Dict[str, Any] = {}

    async def create_pool(**kwargs):
        captured.update(kwargs)
        return fake_pool

    create_pool.captured = captured
    return create_pool


@pytest.fixture
def connection_pool(connection_config, pool_factory):
    """ConnectionPool over the fake asyncpg pool."""
    return ConnectionPool(connection_config, create_pool=pool_factory)


@pytest.fixture
def mock_embeddings():
    """Embedding provider returning a distinct vector per text."""
    mock = AsyncMock()
    mock.embed_query = AsyncMock(return_value=[0.1, 0.2, 0.3])

    async def embed_documents(texts):
        return [[float(len(text)), 0.5] for text in texts]

    mock.embed_documents = AsyncMock(side_effect=embed_documents)
    return mock


@pytest.fixture
def sample_rows():
    """Rows as the single-vector query returns them."""
    return [
        {
            "id": 1,
            "pageContent": "Java developer with ten years of experience",
            "metadata": {"source": "cv-1.pdf"},
            "embedding": [0.1, 0.2, 0.3],
            "_distance": 0.12,
        },
        {
            "id": 2,
            "pageContent": "Python data engineer",
            "metadata": '{"source": "cv-2.pdf"}',
            "embedding": [0.3, 0.2, 0.1],
            "_distance": 0.34,
            "tag": "python",
        },
        {
            "id": 3,
            "pageContent": None,
            "metadata": {},
            "embedding": [0.0, 0.0, 0.0],
            "_distance": 0.2,
        },
        {
            "id": 4,
            "pageContent": "Row without a distance",
            "metadata": {},
            "embedding": [0.0, 0.0, 0.0],
            "_distance": None,
        },
    ]


@pytest.fixture
def make_store(mock_embeddings, connection_pool):
    """Factory for stores sharing the fake pool."""

    def _make(**kwargs):
        return PostgresVectorStore(mock_embeddings, connection_pool, **kwargs)

    return _make
