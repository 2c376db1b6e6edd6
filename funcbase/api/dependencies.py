"""
Common dependencies for Funcbase API endpoints.

This module provides reusable dependency providers (database session, repository,
table gateway, definition cache, function service, caller identity) and the
``Annotated`` aliases routers use to request them.
"""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from funcbase.api.security import get_optional_user_id
from funcbase.repositories.function_repository import FunctionRepository
from funcbase.services.function_service import FunctionService
from funcbase.services.pipeline.cache import DefinitionCache, definition_cache
from funcbase.services.pipeline.gateway import TableGateway
from funcbase.utils.database import get_async_session, get_table_gateway

SessionDep = Annotated[AsyncSession, Depends(get_async_session)]


def get_definition_cache() -> DefinitionCache:
    """Return the process-wide definition cache."""
    return definition_cache


async def get_function_repository(session: SessionDep) -> FunctionRepository:
    """Get a function repository bound to the request's session."""
    return FunctionRepository(session)


FunctionRepositoryDep = Annotated[FunctionRepository, Depends(get_function_repository)]
TableGatewayDep = Annotated[TableGateway, Depends(get_table_gateway)]
DefinitionCacheDep = Annotated[DefinitionCache, Depends(get_definition_cache)]


async def get_function_service(
    repo: FunctionRepositoryDep,
    gateway: TableGatewayDep,
    cache: DefinitionCacheDep,
) -> FunctionService:
    """Get the function service for a request."""
    return FunctionService(repo, gateway, cache)


FunctionServiceDep = Annotated[FunctionService, Depends(get_function_service)]
OptionalUserIdDep = Annotated[str | None, Depends(get_optional_user_id)]
