"""
Pipeline engine: declarative multi-step CRUD functions.

A function is an ordered list of insert/update/fetch/delete steps. Authored
definitions are validated once into an immutable ``ValidatedPipeline``; each
invocation resolves value bindings against its own ``ExecutionContext`` and
dispatches the steps, in ``idx`` order, to a ``TableGateway``.

Example:
    from funcbase.services.pipeline import PipelineExecutor, validate

    pipeline = validate(definition)
    result = await PipelineExecutor(gateway).execute(
        pipeline, caller_payload={"order": {"total": 10}}, authenticated_user_id="7"
    )
    result.raise_for_failure()
"""

from .cache import DefinitionCache, definition_cache
from .coercion import apply_column_hints, coerce_literal, type_hint_for_column
from .executor import PipelineExecutor, PipelineResult, PipelineState, output_key
from .filters import (
    ColumnArithmetic,
    Condition,
    Page,
    SortOrder,
    SubstringFilter,
    parse_arithmetic,
    parse_filter_expression,
    parse_sort,
)
from .gateway import SQLTableGateway, TableGateway
from .resolver import (
    LinkedStepResult,
    ValidatedFilter,
    ValidatedPipeline,
    ValidatedStep,
    validate,
)
from .tokens import MISSING, ExecutionContext, TokenResolver

__all__ = [
    "MISSING",
    "ColumnArithmetic",
    "Condition",
    "DefinitionCache",
    "ExecutionContext",
    "LinkedStepResult",
    "Page",
    "PipelineExecutor",
    "PipelineResult",
    "PipelineState",
    "SQLTableGateway",
    "SortOrder",
    "SubstringFilter",
    "TableGateway",
    "TokenResolver",
    "ValidatedFilter",
    "ValidatedPipeline",
    "ValidatedStep",
    "apply_column_hints",
    "coerce_literal",
    "definition_cache",
    "output_key",
    "parse_arithmetic",
    "parse_filter_expression",
    "parse_sort",
    "type_hint_for_column",
    "validate",
]
