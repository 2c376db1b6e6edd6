"""Literal type hints and coercion.

``type_hint_for_column`` maps a storage column type string to the hint used
when coercing literals; it has no knowledge of how tables are displayed.
"""

import re
from collections.abc import Mapping
from typing import Any

from funcbase.exceptions.domain import TypeCoercionError
from funcbase.models.function import FunctionStep, LiteralBinding, TypeHint

NUMERIC_COLUMN_TYPES = ("INT", "REAL", "NUMERIC", "FLOAT", "DOUBLE", "DECIMAL")
# Literals for these columns keep their JSON type; the gateway converts strings
UNHINTED_COLUMN_TYPES = ("BOOL",)
_INTEGER_RE = re.compile(r"^[+-]?\d+$")


def type_hint_for_column(column_type: str) -> TypeHint | None:
    """Map a SQL column type string to a literal type hint.

    Returns None for boolean columns, whose literals are stored as written.

    Examples:
        >>> type_hint_for_column("REAL")
        <TypeHint.NUMBER: 'number'>
        >>> type_hint_for_column("VARCHAR(20)")
        <TypeHint.STRING: 'string'>
        >>> type_hint_for_column("BOOLEAN") is None
        True
    """
    normalized = column_type.strip().upper()
    if normalized.startswith(UNHINTED_COLUMN_TYPES):
        return None
    if normalized.startswith("INTERVAL"):
        return TypeHint.STRING
    if any(normalized.startswith(prefix) for prefix in NUMERIC_COLUMN_TYPES):
        return TypeHint.NUMBER
    if normalized in ("BIGINT", "SMALLINT", "TINYINT", "MEDIUMINT"):
        return TypeHint.NUMBER
    return TypeHint.STRING


def coerce_literal(binding: LiteralBinding) -> Any:
    """Coerce a literal's raw value according to its type hint.

    Raises:
        TypeCoercionError: If a ``number`` literal is not numeric.
    """
    raw = binding.value
    if raw is None or binding.type is None:
        return raw

    if binding.type == TypeHint.STRING:
        return raw if isinstance(raw, str) else str(raw)

    if isinstance(raw, bool):
        raise TypeCoercionError(f"Boolean literal {raw!r} is not a number")
    if isinstance(raw, int | float):
        return raw
    text = raw.strip()
    try:
        if _INTEGER_RE.match(text):
            return int(text)
        return float(text)
    except ValueError as e:
        raise TypeCoercionError(f"Literal {raw!r} is not a number") from e


def apply_column_hints(
    step: FunctionStep, column_types: Mapping[str, str]
) -> FunctionStep:
    """Fill in type hints of untyped literals from their destination columns.

    Literals with an explicit hint are left alone, as are columns the table
    does not describe or that take no hint.

    Args:
        step: Authored step.
        column_types: Column name to SQL type string of the step's table.

    Returns:
        The step, copied when any hint was added.
    """
    changed = False
    values: dict[str, Any] = {}
    for column, binding in step.values.items():
        hinted = _hinted(binding, column, column_types)
        if hinted is not None:
            binding = hinted
            changed = True
        values[column] = binding

    filters = []
    for predicate in step.filters:
        hinted = _hinted(predicate.value, predicate.column, column_types)
        if hinted is not None:
            predicate = predicate.model_copy(update={"value": hinted})
            changed = True
        filters.append(predicate)

    if not changed:
        return step
    return step.model_copy(update={"values": values, "filters": filters})


def _hinted(binding: Any, column: str, column_types: Mapping[str, str]) -> LiteralBinding | None:
    if not isinstance(binding, LiteralBinding) or binding.type is not None:
        return None
    if column not in column_types:
        return None
    hint = type_hint_for_column(column_types[column])
    if hint is None:
        return None
    return binding.model_copy(update={"type": hint})
