"""Repository for stored function definitions."""

from collections.abc import Sequence
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from funcbase.exceptions import FunctionAlreadyExistsError, FunctionNotFoundError
from funcbase.models.function import FunctionStored
from funcbase.repositories.base import BaseRepository


class FunctionRepository(BaseRepository[FunctionStored]):
    """Repository for managing function definitions in the ``_function`` table."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, FunctionStored)

    async def get(self, id: Any) -> FunctionStored:
        """Get a function by name.

        Raises:
            FunctionNotFoundError: If no function has this name.
        """
        entity = await self.get_optional(id)
        if entity is None:
            raise FunctionNotFoundError(id)
        return entity

    async def search(self, search: str | None = None) -> Sequence[FunctionStored]:
        """List functions ordered by name, optionally filtered by a name substring.

        Args:
            search: Case-insensitive substring of the function name.
        """
        statement = select(FunctionStored).order_by(col(FunctionStored.name))
        if search:
            statement = statement.where(col(FunctionStored.name).icontains(search, autoescape=True))
        result = await self.session.execute(statement)
        return result.scalars().all()

    async def add(self, name: str, steps: list[dict[str, Any]]) -> FunctionStored:
        """Store a new function.

        Args:
            name: Unique function name.
            steps: Steps in their tagged JSON form.

        Raises:
            FunctionAlreadyExistsError: If the name is taken.
        """
        if await self.get_optional(name) is not None:
            raise FunctionAlreadyExistsError(name)
        try:
            return await self.create(FunctionStored(name=name, steps=steps))
        except IntegrityError as e:
            await self.session.rollback()
            raise FunctionAlreadyExistsError(name) from e

    async def replace_steps(self, name: str, steps: list[dict[str, Any]]) -> FunctionStored:
        """Replace every step of an existing function.

        Raises:
            FunctionNotFoundError: If no function has this name.
        """
        existing = await self.get(name)
        return await self.update(existing, {"steps": steps})

    async def remove(self, name: str) -> None:
        """Delete a function by name.

        Raises:
            FunctionNotFoundError: If no function has this name.
        """
        existing = await self.get(name)
        await self.delete(existing)
