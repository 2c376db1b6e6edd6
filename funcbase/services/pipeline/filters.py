"""
Filter grammar shared by fetch/delete steps and table browsing.

A filter expression is either a chain of comparisons joined by ``AND``::

    owner = "$user.id" AND price >= 10 AND title startsWith "The"

or a bare substring, matched against every column of the table. The token
``$user.id`` inside a literal is replaced with the authenticated caller's id
before anything reaches the table gateway.

Update steps also accept caller values of the form ``"$stock - 1"``, which
set a column from an arithmetic expression evaluated by the database.
"""

import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from funcbase.exceptions.domain import AuthRequiredError, FilterSyntaxError
from funcbase.models.function import USER_ID_TOKEN, FilterOperator

_CONDITION_RE = re.compile(
    r"""\s*(?P<column>[A-Za-z_]\w*)\s*
    (?P<op>!=|<=|>=|=|<|>|\bstartsWith\b|\bendsWith\b|\bcontains\b)\s*
    (?P<value>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*'|[^\s"']+)\s*""",
    re.VERBOSE,
)
_AND_RE = re.compile(r"AND\b", re.IGNORECASE)
_ESCAPE_RE = re.compile(r"\\(.)")
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_]\w*$")
_ARITHMETIC_RE = re.compile(
    r"^\s*\$(?P<column>[A-Za-z_]\w*)\s*(?P<op>[-+*/])\s*(?P<operand>\d+(?:\.\d+)?)\s*$"
)


@dataclass(frozen=True, slots=True)
class Condition:
    """A resolved ``column OP value`` comparison."""

    column: str
    operator: FilterOperator
    value: Any


@dataclass(frozen=True, slots=True)
class SubstringFilter:
    """Match rows where any column contains ``text``."""

    text: str


type RowFilter = Condition | SubstringFilter


@dataclass(frozen=True, slots=True)
class ColumnArithmetic:
    """New column value computed from a column of the same row, e.g. ``stock - 1``."""

    column: str
    operator: str
    operand: int | float


@dataclass(frozen=True, slots=True)
class SortOrder:
    column: str
    descending: bool = False


@dataclass(frozen=True, slots=True)
class Page:
    """1-based page of ``size`` rows."""

    number: int = 1
    size: int = 50

    @property
    def offset(self) -> int:
        return (self.number - 1) * self.size


def parse_filter_expression(text: str | None, user_id: str | None = None) -> list[RowFilter]:
    """Parse a filter expression into gateway filters.

    Args:
        text: Filter expression; empty or None means no filter.
        user_id: Authenticated caller id substituted for ``$user.id``.

    Returns:
        List of filters, all of which must hold.

    Raises:
        FilterSyntaxError: If a comparison chain cannot be parsed.
        AuthRequiredError: If ``$user.id`` is used without a caller.
    """
    if text is None or not text.strip():
        return []
    text = text.strip()

    if not _CONDITION_RE.match(text):
        return [SubstringFilter(_substitute_user(text, user_id))]

    conditions: list[RowFilter] = []
    pos = 0
    while True:
        match = _CONDITION_RE.match(text, pos)
        if not match:
            raise FilterSyntaxError(f"Cannot parse filter near {text[pos:]!r}")
        raw = match.group("value")
        conditions.append(
            Condition(
                column=match.group("column"),
                operator=FilterOperator(match.group("op")),
                value=_literal(raw, user_id),
            )
        )
        pos = match.end()
        if pos >= len(text):
            return conditions
        joiner = _AND_RE.match(text, pos)
        if not joiner:
            raise FilterSyntaxError(f"Expected AND near {text[pos:]!r}")
        pos = joiner.end()


def parse_sort(text: str | None) -> SortOrder | None:
    """Parse ``"column"``, ``"column desc"``, ``"column asc"`` or ``"-column"``.

    Raises:
        FilterSyntaxError: If the clause is not one of those forms.
    """
    if text is None or not text.strip():
        return None
    parts = text.split()
    descending = False
    column = parts[0]
    if column.startswith("-"):
        descending, column = True, column[1:]
    if len(parts) == 2 and parts[1].lower() in ("asc", "desc"):
        descending = parts[1].lower() == "desc"
    elif len(parts) != 1:
        raise FilterSyntaxError(f"Invalid sort clause {text!r}")
    if not _IDENTIFIER_RE.match(column):
        raise FilterSyntaxError(f"Invalid sort column {column!r}")
    return SortOrder(column=column, descending=descending)


def parse_arithmetic(value: Any) -> ColumnArithmetic | None:
    """Parse ``"$column OP number"`` (OP one of ``+ - * /``); None for anything else.

    Examples:
        >>> parse_arithmetic("$stock - 1")
        ColumnArithmetic(column='stock', operator='-', operand=1)
        >>> parse_arithmetic("stock - 1") is None
        True
    """
    if not isinstance(value, str):
        return None
    match = _ARITHMETIC_RE.match(value)
    if not match:
        return None
    raw = match.group("operand")
    operand = float(raw) if "." in raw else int(raw)
    return ColumnArithmetic(
        column=match.group("column"), operator=match.group("op"), operand=operand
    )


def describe(filters: Sequence[RowFilter]) -> str:
    """Render filters back to the expression grammar, for logging."""
    parts = []
    for item in filters:
        if isinstance(item, SubstringFilter):
            parts.append(repr(item.text))
        else:
            parts.append(f"{item.column} {item.operator.value} {item.value!r}")
    return " AND ".join(parts) or "<all rows>"


def _literal(raw: str, user_id: str | None) -> Any:
    if raw[0] in "\"'":
        return _substitute_user(_ESCAPE_RE.sub(r"\1", raw[1:-1]), user_id)
    if raw == USER_ID_TOKEN:
        return _substitute_user(raw, user_id)
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        return float(raw)
    except ValueError:
        return raw


def _substitute_user(value: str, user_id: str | None) -> str:
    if USER_ID_TOKEN not in value:
        return value
    if user_id is None:
        raise AuthRequiredError("Filter uses $user.id but the request is not authenticated")
    return value.replace(USER_ID_TOKEN, user_id)
