"""
Database dependencies for the FastAPI layer.

Session and table gateway providers, overridden in tests.
"""

from collections.abc import AsyncGenerator
from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncSession

from funcbase.services.pipeline.gateway import SQLTableGateway
from funcbase.utils.db_manager import db_manager


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Get an async database session as a FastAPI dependency.

    Yields:
        AsyncSession: SQLModel async session
    """
    async for session in db_manager.get_async_session():
        yield session


@lru_cache
def get_table_gateway() -> SQLTableGateway:
    """Get the process-wide table gateway bound to the application engine."""
    return SQLTableGateway(db_manager.async_engine)
