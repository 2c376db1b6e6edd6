"""Repository layer for database operations."""

from funcbase.repositories.base import BaseRepository
from funcbase.repositories.function_repository import FunctionRepository

__all__ = ["BaseRepository", "FunctionRepository"]
