"""Global test configuration: temporary SQLite database and application overrides."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

from funcbase.api.app import app
from funcbase.api.dependencies import get_definition_cache

# Import models to ensure metadata is populated
from funcbase.models import FunctionStored  # noqa: F401
from funcbase.services.pipeline.cache import DefinitionCache
from funcbase.services.pipeline.gateway import SQLTableGateway
from funcbase.utils.database import get_async_session, get_table_gateway

USER_TABLES = [
    """
    CREATE TABLE orders (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT,
        total REAL NOT NULL,
        status TEXT DEFAULT 'new'
    )
    """,
    """
    CREATE TABLE order_items (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        order_id INTEGER NOT NULL,
        sku TEXT NOT NULL,
        quantity INTEGER DEFAULT 1
    )
    """,
    """
    CREATE TABLE products (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        stock INTEGER DEFAULT 0,
        active BOOLEAN DEFAULT 1,
        released DATE,
        updated_at DATETIME
    )
    """,
]


@pytest_asyncio.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine with the ``_function`` table and sample user tables."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
        for statement in USER_TABLES:
            await conn.execute(text(statement))

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def test_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def gateway(test_engine) -> SQLTableGateway:
    return SQLTableGateway(test_engine)


@pytest_asyncio.fixture
async def definition_cache() -> DefinitionCache:
    return DefinitionCache(maxsize=16, ttl_seconds=60)


@pytest.fixture
def test_app(test_session, gateway, definition_cache):
    """The application with database, gateway and cache dependencies overridden."""

    async def override_get_session():
        yield test_session

    app.dependency_overrides[get_async_session] = override_get_session
    app.dependency_overrides[get_table_gateway] = lambda: gateway
    app.dependency_overrides[get_definition_cache] = lambda: definition_cache

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Create test API client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
