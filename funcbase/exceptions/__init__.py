"""
Exceptions for the Funcbase service.

Domain exceptions live in :mod:`funcbase.exceptions.domain`; HTTP shortcuts used
directly by routers live in :mod:`funcbase.exceptions.http`.
"""

from .domain import (
    AuthRequiredError,
    DuplicateStepNameError,
    EntityAlreadyExistsError,
    EntityNotFoundError,
    FilterSyntaxError,
    ForwardOrSelfReferenceError,
    FuncbaseError,
    FunctionAlreadyExistsError,
    FunctionNotFoundError,
    InvalidActionFieldsError,
    InvalidInputError,
    MissingInputError,
    MissingReferencedStepError,
    MissingStepResultError,
    NonMonotonicIndexError,
    PipelineCancelledError,
    PipelineError,
    PipelineExecutionError,
    PipelineTimeoutError,
    StorageError,
    TypeCoercionError,
    ValidationError,
)
from .http import FORBIDDEN, UNAUTHORIZED, CustomHTTPException

__all__ = [
    "FORBIDDEN",
    "UNAUTHORIZED",
    "AuthRequiredError",
    "CustomHTTPException",
    "DuplicateStepNameError",
    "EntityAlreadyExistsError",
    "EntityNotFoundError",
    "FilterSyntaxError",
    "ForwardOrSelfReferenceError",
    "FuncbaseError",
    "FunctionAlreadyExistsError",
    "FunctionNotFoundError",
    "InvalidActionFieldsError",
    "InvalidInputError",
    "MissingInputError",
    "MissingReferencedStepError",
    "MissingStepResultError",
    "NonMonotonicIndexError",
    "PipelineCancelledError",
    "PipelineError",
    "PipelineExecutionError",
    "PipelineTimeoutError",
    "StorageError",
    "TypeCoercionError",
    "ValidationError",
]
