#!/usr/bin/env python3
"""Funcbase CLI - management utility for a Funcbase server.

Runs the server, prepares the database, checks function definition files
offline and mints caller tokens.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from pydantic import ValidationError as SchemaError

from funcbase.exceptions import FuncbaseError
from funcbase.models.function import FunctionDefinition
from funcbase.services.pipeline.resolver import ValidatedPipeline, validate
from funcbase.settings import settings
from funcbase.utils.db_manager import db_manager
from funcbase.utils.logger import logger

EXAMPLE_FUNCTION = {
    "name": "create_order",
    "functions": [
        {
            "idx": 0,
            "name": "order",
            "table": "orders",
            "action": "insert",
            "values": {"user_id": "$user.id", "total": "$input"},
        },
        {
            "idx": 1,
            "name": "items",
            "table": "order_items",
            "action": "insert",
            "multiple": True,
            "values": {"order_id": "$order", "sku": "$input", "quantity": "$input"},
        },
    ],
}


def init_project(path: str) -> None:
    """Initialize a new Funcbase project in the specified directory."""
    project_path = Path(path).resolve()
    functions_dir = project_path / "functions"
    functions_dir.mkdir(parents=True, exist_ok=True)
    logger.info(f"Created directory: {functions_dir}")

    settings_content = """# Funcbase Configuration File

# Server settings
port = 8000
host = "127.0.0.1"
debug = true

# Database settings
database_driver = "sqlite"
database_name = "funcbase"

# Security (change in production!)
jwt_secret_key = "change-this-secret-key-in-production"
# api_key = "protects /api/function and /api/table"

# Function engine
function_timeout_seconds = 30.0
"""

    settings_file = project_path / "settings.toml"
    if not settings_file.exists():
        settings_file.write_text(settings_content)
        logger.info(f"Created settings file: {settings_file}")

    example_file = functions_dir / "create_order.json"
    if not example_file.exists():
        example_file.write_text(json.dumps(EXAMPLE_FUNCTION, indent=2))
        logger.info(f"Created example function: {example_file}")

    logger.info(f"Project initialized at {project_path}")


def run_server(host: str | None = None, port: int | None = None) -> None:
    """Run the Funcbase server."""
    import uvicorn

    host = host or settings.host or "127.0.0.1"
    port = port or settings.port or 8000

    logger.info(f"Starting Funcbase server at http://{host}:{port}")

    uvicorn.run(
        "funcbase.api.app:app",
        host=host,
        port=port,
        reload=settings.debug,
        log_level="info" if settings.debug else "warning",
    )


async def init_database() -> None:
    """Create the ``_function`` table."""
    logger.info("Initializing database...")
    await db_manager.create_db_and_tables_async()
    await db_manager.close()
    logger.info("Database initialized successfully")


def read_definition_file(path: str | Path) -> FunctionDefinition:
    """Read a JSON function definition (``{"name": ..., "functions": [...]}``)."""
    return FunctionDefinition.model_validate_json(Path(path).read_text())


def validate_definition_file(path: str | Path) -> ValidatedPipeline:
    """Parse and structurally validate a definition file without touching the database.

    Raises:
        pydantic.ValidationError: If the file does not match the definition schema.
        ValidationError: If the steps break a structural rule.
    """
    return validate(read_definition_file(path))


async def load_definition_file(path: str | Path, replace: bool = False) -> None:
    """Store the function of a definition file in the configured database.

    Args:
        path: Definition file.
        replace: Replace the steps of an existing function of the same name.
    """
    from funcbase.repositories.function_repository import FunctionRepository
    from funcbase.services.function_service import FunctionService
    from funcbase.services.pipeline.cache import definition_cache
    from funcbase.services.pipeline.gateway import SQLTableGateway

    definition = read_definition_file(path)
    await db_manager.create_db_and_tables_async()
    try:
        async with db_manager.get_async_session_context() as session:
            service = FunctionService(
                FunctionRepository(session),
                SQLTableGateway(db_manager.async_engine),
                definition_cache,
            )
            if replace and definition.name in {f.name for f in await service.list_functions()}:
                await service.update(definition.name, definition.functions)
            else:
                await service.create(definition)
    finally:
        await db_manager.close()


def mint_token(user_id: str, minutes: int | None = None) -> str:
    """Create a bearer token whose ``sub`` claim is ``user_id``."""
    from datetime import timedelta

    from funcbase.api.security import create_access_token

    expires = timedelta(minutes=minutes) if minutes else None
    return create_access_token(user_id, expires).access_token


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="funcbase", description="Funcbase CLI - declarative CRUD functions over SQL tables"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init command
    init_parser = subparsers.add_parser("init", help="Initialize a new Funcbase project")
    init_parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Path where to create the project (default: current directory)",
    )

    # run command
    run_parser = subparsers.add_parser("run", help="Run the server")
    run_parser.add_argument(
        "--host", type=str, default=None, help="Host to bind to (default: 127.0.0.1)"
    )
    run_parser.add_argument(
        "--port", type=int, default=None, help="Port to bind to (default: 8000)"
    )

    # db command
    db_parser = subparsers.add_parser("db", help="Database management")
    db_subparsers = db_parser.add_subparsers(dest="db_command")
    db_subparsers.add_parser("init", help="Create the function definition table")

    # function command
    function_parser = subparsers.add_parser("function", help="Function definition files")
    function_subparsers = function_parser.add_subparsers(dest="function_command")
    validate_parser = function_subparsers.add_parser(
        "validate", help="Check a definition file without a database"
    )
    validate_parser.add_argument("file", help="JSON definition file")
    load_parser = function_subparsers.add_parser("load", help="Store a definition file")
    load_parser.add_argument("file", help="JSON definition file")
    load_parser.add_argument(
        "--replace", action="store_true", help="Replace an existing function of the same name"
    )

    # token command
    token_parser = subparsers.add_parser("token", help="Mint a bearer token for a caller")
    token_parser.add_argument("user_id", help="User id carried in the token")
    token_parser.add_argument(
        "--minutes", type=int, default=None, help="Token lifetime (default: jwt_expire_minutes)"
    )

    args = parser.parse_args()

    if args.command == "init":
        init_project(args.path)
    elif args.command == "run":
        run_server(args.host, args.port)
    elif args.command == "db":
        if args.db_command == "init":
            asyncio.run(init_database())
        else:
            db_parser.print_help()
    elif args.command == "function":
        if args.function_command is None:
            function_parser.print_help()
            sys.exit(1)
        try:
            if args.function_command == "validate":
                pipeline = validate_definition_file(args.file)
                print(f"{pipeline.name}: {len(pipeline.steps)} step(s) OK")
            else:
                asyncio.run(load_definition_file(args.file, replace=args.replace))
        except (SchemaError, FuncbaseError, OSError) as e:
            logger.error(f"{args.file}: {e}")
            sys.exit(1)
    elif args.command == "token":
        print(mint_token(args.user_id, args.minutes))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
