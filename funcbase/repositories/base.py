"""Base repository with common CRUD operations."""

from typing import Any, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel

from funcbase.exceptions import EntityNotFoundError

ModelT = TypeVar("ModelT", bound=SQLModel)


class BaseRepository[ModelT: SQLModel]:
    """Base repository providing common database operations."""

    def __init__(self, session: AsyncSession, model_class: type[ModelT]):
        """Initialize repository with session and model class.

        Args:
            session: Database session
            model_class: SQLModel class this repository operates on
        """
        self.session = session
        self.model_class = model_class

    async def get(self, id: Any) -> ModelT:
        """Get entity by ID or raise EntityNotFoundError.

        Args:
            id: Entity ID

        Returns:
            Found entity

        Raises:
            EntityNotFoundError: If entity doesn't exist
        """
        entity = await self.session.get(self.model_class, id)
        if not entity:
            raise EntityNotFoundError(f"{self.model_class.__name__} with ID {id} not found")
        return entity

    async def get_optional(self, id: Any) -> ModelT | None:
        """Get entity by ID or return None."""
        return await self.session.get(self.model_class, id)

    async def create(self, entity: ModelT) -> ModelT:
        """Create new entity.

        Args:
            entity: Entity to create

        Returns:
            Created entity with refreshed data
        """
        self.session.add(entity)
        await self.session.commit()
        await self.session.refresh(entity)
        return entity

    async def update(self, entity: ModelT, update_data: dict[str, Any]) -> ModelT:
        """Update entity with given data.

        Args:
            entity: Entity to update
            update_data: Dictionary with fields to update

        Returns:
            Updated entity
        """
        for field, value in update_data.items():
            if hasattr(entity, field):
                setattr(entity, field, value)

        self.session.add(entity)
        await self.session.commit()
        await self.session.refresh(entity)
        return entity

    async def delete(self, entity: ModelT) -> None:
        """Delete entity."""
        await self.session.delete(entity)
        await self.session.commit()
