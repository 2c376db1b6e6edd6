"""
Funcbase data models.

This package contains the SQLModel table for stored functions and the pydantic
schemas used to author and invoke them.
"""

from .function import (
    CallerSupplied,
    FilterOperator,
    FilterPredicate,
    FunctionCall,
    FunctionDefinition,
    FunctionStep,
    FunctionStored,
    FunctionSummary,
    FunctionUpdate,
    LiteralBinding,
    StepAction,
    StepResultReference,
    TypeHint,
    UserIdentityToken,
    ValueBinding,
    dump_steps,
)

__all__ = [
    "CallerSupplied",
    "FilterOperator",
    "FilterPredicate",
    "FunctionCall",
    "FunctionDefinition",
    "FunctionStep",
    "FunctionStored",
    "FunctionSummary",
    "FunctionUpdate",
    "LiteralBinding",
    "StepAction",
    "StepResultReference",
    "TypeHint",
    "UserIdentityToken",
    "ValueBinding",
    "dump_steps",
]
