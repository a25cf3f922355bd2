"""Pytest configuration and fixtures."""

from typing import AsyncGenerator, Callable, List

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.models.base import Base
from app.services.column_storage import SqlColumnStorage
from app.services.table_service import TableService, get_table_service
from app.services.upstream_client import UpstreamClient
from smarttable.column_persist import MemoryColumnStorage
from smarttable.types import ColumnPreset
from tests.fake_upstream import FakeUpstream

UPSTREAM_URL = "http://upstream.test/api"


@pytest.fixture
def presets() -> List[ColumnPreset]:
    """Simple three-column preset list."""
    return [
        ColumnPreset(key="name", title="Name", width=200),
        ColumnPreset(key="dept", title="Department", width=120),
        ColumnPreset(key="secret", title="Internal", width=100, hidden=True),
    ]


@pytest.fixture
def memory_storage() -> MemoryColumnStorage:
    return MemoryColumnStorage()


@pytest.fixture
def session_factory() -> Callable:
    """In-memory SQLite session factory with the service tables created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest_asyncio.fixture
async def table_service(upstream, session_factory) -> AsyncGenerator[TableService, None]:
    """Table service wired to the mock upstream and in-memory SQLite."""
    client = UpstreamClient(
        base_url=UPSTREAM_URL,
        token="test-token",
        transport=httpx.MockTransport(upstream.handler),
    )
    service = TableService(client=client, storage=SqlColumnStorage(session_factory))
    yield service
    await service.close()


@pytest_asyncio.fixture
async def client(table_service) -> AsyncGenerator[AsyncClient, None]:
    """Get test HTTP client."""
    app.dependency_overrides[get_table_service] = lambda: table_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
