"""
Main API application module for Funcbase.

This module creates and configures the FastAPI application with all routers
and middleware.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from funcbase.api.exception_handlers import setup_exception_handlers
from funcbase.api.routers import function, invoke, table
from funcbase.settings import settings
from funcbase.utils.db_manager import db_manager
from funcbase.utils.logger import logger


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:  # noqa: ARG001
    """
    Application lifespan context manager.

    Creates the ``_function`` table and disposes of connections on shutdown.
    """
    await db_manager.create_db_and_tables_async()
    logger.info("Application startup complete")

    try:
        yield
    finally:
        await db_manager.close()
        logger.info("Application shutdown")


def create_app(root_path: str = "/") -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        root_path: The root path for the application

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Funcbase",
        description="Declarative multi-step CRUD functions over database tables",
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
        root_path=root_path,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_exception_handlers(app)

    app.include_router(function.router, prefix="/api/function", tags=["Functions"])
    app.include_router(table.router, prefix="/api/table", tags=["Tables"])
    # Catch-all POST /api/{name}, must stay last
    app.include_router(invoke.router, prefix="/api", tags=["Invoke"])

    return app


# Create default application instance
app = create_app(root_path=settings.root_url)
