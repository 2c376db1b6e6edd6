"""
Database engine for Funcbase.

One engine serves both the ``_function`` table and the user tables that
function steps operate on. It is created lazily so that importing the package
never opens a connection.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

from funcbase.settings import DatabaseDriver, settings
from funcbase.utils.logger import logger


def async_database_url() -> str:
    """The configured database URL with an async driver."""
    match settings.database_driver:
        case DatabaseDriver.SQLITE:
            return f"sqlite+aiosqlite:///{settings.database_name}.db"
        case DatabaseDriver.POSTGRESQL:
            return settings.database_url.replace("postgresql+psycopg2", "postgresql+asyncpg")
        case _:
            return settings.database_url


class DatabaseManager:
    """Lazily created async engine and session factory."""

    def __init__(self) -> None:
        self._async_engine: AsyncEngine | None = None
        self._async_session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def async_engine(self) -> AsyncEngine:
        if self._async_engine is None:
            url = async_database_url()
            self._async_engine = create_async_engine(
                url, echo=settings.debug, pool_pre_ping=True
            )
            logger.info(f"Async database engine created: {url}")
        return self._async_engine

    @property
    def async_session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._async_session_factory is None:
            self._async_session_factory = async_sessionmaker(
                self.async_engine, class_=AsyncSession, expire_on_commit=False
            )
        return self._async_session_factory

    async def create_db_and_tables_async(self) -> None:
        """Create the ``_function`` table if it does not exist."""
        async with self.async_engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        logger.info("Function table ready")

    @asynccontextmanager
    async def get_async_session_context(self) -> AsyncGenerator[AsyncSession]:
        """Session that commits on success and rolls back on a database error.

        Usage:
            async with db_manager.get_async_session_context() as session:
                await FunctionRepository(session).get("create_order")
        """
        async with self.async_session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                logger.error(f"Database error: {e}")
                await session.rollback()
                raise

    async def get_async_session(self) -> AsyncGenerator[AsyncSession]:
        """FastAPI dependency form of ``get_async_session_context``."""
        async with self.get_async_session_context() as session:
            yield session

    async def close(self) -> None:
        if self._async_engine:
            await self._async_engine.dispose()
            self._async_engine = None
            self._async_session_factory = None
            logger.info("Async database engine disposed")


db_manager = DatabaseManager()
