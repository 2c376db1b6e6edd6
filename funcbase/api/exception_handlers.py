"""
Exception handlers for converting domain exceptions to HTTP responses.

This module maps domain exceptions to HTTP status codes. Error bodies are
``{"error": message, "code": machine code}``; failures of a function
invocation also carry the failing step's ``step`` name and ``idx``.
"""

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from funcbase.exceptions.domain import (
    AuthRequiredError,
    EntityAlreadyExistsError,
    EntityNotFoundError,
    FuncbaseError,
    InvalidInputError,
    MissingInputError,
    PipelineCancelledError,
    PipelineError,
    PipelineExecutionError,
    PipelineTimeoutError,
    StorageError,
    TypeCoercionError,
    ValidationError,
)
from funcbase.utils.logger import logger

HTTP_499_CLIENT_CLOSED_REQUEST = 499

_CODE_BY_STATUS = {
    status.HTTP_401_UNAUTHORIZED: "unauthorized",
    status.HTTP_403_FORBIDDEN: "forbidden",
    status.HTTP_404_NOT_FOUND: "not_found",
    status.HTTP_405_METHOD_NOT_ALLOWED: "method_not_allowed",
}

# Checked in order, so subclasses come before their bases
_STATUS_BY_ERROR: list[tuple[type[FuncbaseError], int]] = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (EntityNotFoundError, status.HTTP_404_NOT_FOUND),
    (EntityAlreadyExistsError, status.HTTP_409_CONFLICT),
    (AuthRequiredError, status.HTTP_401_UNAUTHORIZED),
    (MissingInputError, status.HTTP_400_BAD_REQUEST),
    (InvalidInputError, status.HTTP_400_BAD_REQUEST),
    (TypeCoercionError, status.HTTP_400_BAD_REQUEST),
    (PipelineTimeoutError, status.HTTP_504_GATEWAY_TIMEOUT),
    (PipelineCancelledError, HTTP_499_CLIENT_CLOSED_REQUEST),
    (StorageError, status.HTTP_502_BAD_GATEWAY),
]


def status_for(exc: FuncbaseError) -> int:
    """HTTP status for a domain error; 500 for anything unmapped."""
    for error_class, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_class):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_body(exc: FuncbaseError, default: str) -> dict[str, Any]:
    return {"error": str(exc) if str(exc) else default, "code": exc.code}


def setup_exception_handlers(app: FastAPI) -> None:
    """Setup exception handlers using decorators.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(PipelineExecutionError)
    async def handle_pipeline_execution(_: Request, exc: PipelineExecutionError) -> JSONResponse:
        """Convert a failed invocation to the status of the error that aborted it."""
        content = error_body(exc, "Function failed")
        content.update(step=exc.step_name, idx=exc.idx)
        headers = None
        if isinstance(exc.cause, AuthRequiredError):
            headers = {"WWW-Authenticate": "Bearer"}
        return JSONResponse(status_code=status_for(exc.cause), content=content, headers=headers)

    @app.exception_handler(ValidationError)
    async def handle_validation_error(_: Request, exc: ValidationError) -> JSONResponse:
        """Convert ValidationError to 422 response."""
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=error_body(exc, "Validation failed"),
        )

    @app.exception_handler(EntityNotFoundError)
    async def handle_entity_not_found(_: Request, exc: EntityNotFoundError) -> JSONResponse:
        """Convert EntityNotFoundError to 404 response."""
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=error_body(exc, "Resource not found"),
        )

    @app.exception_handler(EntityAlreadyExistsError)
    async def handle_entity_already_exists(
        _: Request, exc: EntityAlreadyExistsError
    ) -> JSONResponse:
        """Convert EntityAlreadyExistsError to 409 response."""
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=error_body(exc, "Resource already exists"),
        )

    @app.exception_handler(PipelineError)
    async def handle_pipeline_error(_: Request, exc: PipelineError) -> JSONResponse:
        """Convert engine errors raised outside an invocation (table browsing)."""
        return JSONResponse(status_code=status_for(exc), content=error_body(exc, "Request failed"))

    @app.exception_handler(FuncbaseError)
    async def handle_funcbase_error(_: Request, exc: FuncbaseError) -> JSONResponse:
        """Convert any other domain error to 500 response."""
        logger.error(f"Unhandled domain error: {exc!r}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body(exc, "Internal error"),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(_: Request, exc: RequestValidationError) -> JSONResponse:
        """Report malformed request bodies in the common error shape."""
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": "Request validation failed",
                "code": "validation",
                "detail": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Render HTTP errors from security dependencies and routing in the common shape."""
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.detail,
                "code": _CODE_BY_STATUS.get(exc.status_code, "http_error"),
            },
            headers=exc.headers,
        )
