"""Service layer for Funcbase."""

from funcbase.services.function_service import FunctionService

__all__ = ["FunctionService"]
