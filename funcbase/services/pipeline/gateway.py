"""
Table gateway: the storage operations the pipeline engine calls into.

``TableGateway`` is the injected abstraction. ``SQLTableGateway`` implements it
with SQLAlchemy core against tables that already exist in the configured
database. Every call runs in its own transaction and commits on return, so an
aborted pipeline keeps whatever earlier steps wrote.
"""

import asyncio
import operator
from collections.abc import Iterable, Mapping, Sequence
from functools import lru_cache
from typing import Any, Protocol

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import (
    Boolean,
    Column,
    ColumnElement,
    Date,
    DateTime,
    MetaData,
    String,
    Table,
    Time,
    and_,
    cast,
    delete,
    false,
    insert,
    or_,
    select,
    true,
    update,
)
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from funcbase.exceptions.domain import StorageError
from funcbase.models.function import FilterOperator
from funcbase.utils.logger import logger

from .filters import ColumnArithmetic, Condition, Page, RowFilter, SortOrder, SubstringFilter

type Row = dict[str, Any]

# Column types whose values arrive from JSON as strings and need parsing before binding
CONVERTED_COLUMN_TYPES = (Date, DateTime, Time, Boolean)

_ARITHMETIC_OPERATORS = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
}


class TableGateway(Protocol):
    """Primitive per-table operations used by pipeline steps."""

    async def insert(self, table: str, row: Mapping[str, Any]) -> Any:
        """Insert one row and return its primary key."""
        ...

    async def update(
        self, table: str, filters: Sequence[RowFilter], row: Mapping[str, Any]
    ) -> int:
        """Update matching rows and return the affected count.

        Values may be ``ColumnArithmetic``, computed from the row being updated.
        """
        ...

    async def fetch(
        self,
        table: str,
        filters: Sequence[RowFilter],
        columns: Sequence[str],
        sort: SortOrder | None = None,
        page: Page | None = None,
    ) -> list[Row]:
        """Return matching rows projected to ``columns``."""
        ...

    async def delete(self, table: str, filters: Sequence[RowFilter]) -> int:
        """Delete matching rows and return the affected count."""
        ...

    async def column_types(self, table: str) -> dict[str, str]:
        """Return column name to SQL type string for ``table``."""
        ...


class SQLTableGateway:
    """TableGateway over an SQLAlchemy async engine.

    Tables are reflected on first use and remembered. A statement naming a
    column the remembered table lacks reflects the table once more, so columns
    added while the service runs are picked up.
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._metadata = MetaData()
        self._tables: dict[str, Table] = {}
        self._reflect_lock = asyncio.Lock()

    async def _table(self, name: str, stale: Table | None = None) -> Table:
        table = self._tables.get(name)
        if table is not None and table is not stale:
            return table

        async with self._reflect_lock:
            table = self._tables.get(name)
            if table is not None and table is not stale:
                return table
            if table is not None:
                self._metadata.remove(self._tables.pop(name))
            try:
                async with self.engine.connect() as conn:
                    table = await conn.run_sync(
                        lambda sync_conn: Table(name, self._metadata, autoload_with=sync_conn)
                    )
            except NoSuchTableError as e:
                raise StorageError(f"Table '{name}' does not exist") from e
            except SQLAlchemyError as e:
                raise StorageError(f"Cannot read table '{name}': {e}") from e
            self._tables[name] = table
            logger.debug(f"Reflected table '{name}' with columns {list(table.columns.keys())}")
            return table

    async def _table_with(self, name: str, columns: Iterable[str]) -> Table:
        """Return ``name`` with every column of ``columns``, reflecting again if needed."""
        wanted = list(dict.fromkeys(columns))
        table = await self._table(name)
        if all(column in table.c for column in wanted):
            return table
        logger.debug(f"Table '{name}' lacks some of {wanted}, reflecting it again")
        table = await self._table(name, stale=table)
        _check_columns(table, wanted)
        return table

    def forget(self, name: str | None = None) -> None:
        """Drop cached table reflections (all of them when ``name`` is None)."""
        if name is None:
            self._tables.clear()
            self._metadata = MetaData()
        elif name in self._tables:
            self._metadata.remove(self._tables.pop(name))

    async def insert(self, table: str, row: Mapping[str, Any]) -> Any:
        target = await self._table_with(table, row.keys())
        statement = insert(target).values(_bind_row(target, row))
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(statement)
        except SQLAlchemyError as e:
            raise StorageError(f"Insert into '{table}' failed: {_reason(e)}") from e

        key = result.inserted_primary_key
        if key is None or len(key) == 0:
            return None
        return key[0] if len(key) == 1 else tuple(key)

    async def update(
        self, table: str, filters: Sequence[RowFilter], row: Mapping[str, Any]
    ) -> int:
        referenced = [v.column for v in row.values() if isinstance(v, ColumnArithmetic)]
        target = await self._table_with(
            table, [*row.keys(), *referenced, *_filter_columns(filters)]
        )
        statement = update(target).where(_where(target, filters)).values(_bind_row(target, row))
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(statement)
        except SQLAlchemyError as e:
            raise StorageError(f"Update of '{table}' failed: {_reason(e)}") from e
        return result.rowcount

    async def fetch(
        self,
        table: str,
        filters: Sequence[RowFilter],
        columns: Sequence[str],
        sort: SortOrder | None = None,
        page: Page | None = None,
    ) -> list[Row]:
        all_columns = not columns or list(columns) == ["*"]
        wanted = [] if all_columns else list(columns)
        if sort is not None:
            wanted.append(sort.column)
        target = await self._table_with(table, [*wanted, *_filter_columns(filters)])

        if all_columns:
            selected = list(target.columns)
        else:
            selected = [target.c[name] for name in columns]

        statement = select(*selected).where(_where(target, filters))
        if sort is not None:
            column = target.c[sort.column]
            statement = statement.order_by(column.desc() if sort.descending else column.asc())
        if page is not None:
            statement = statement.limit(page.size).offset(page.offset)

        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(statement)
                return [dict(record._mapping) for record in result]
        except SQLAlchemyError as e:
            raise StorageError(f"Fetch from '{table}' failed: {_reason(e)}") from e

    async def delete(self, table: str, filters: Sequence[RowFilter]) -> int:
        target = await self._table_with(table, _filter_columns(filters))
        statement = delete(target).where(_where(target, filters))
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(statement)
        except SQLAlchemyError as e:
            raise StorageError(f"Delete from '{table}' failed: {_reason(e)}") from e
        return result.rowcount

    async def column_types(self, table: str) -> dict[str, str]:
        target = await self._table(table)
        return {column.name: str(column.type) for column in target.columns}


def _check_columns(table: Table, names: Iterable[str]) -> None:
    unknown = [name for name in names if name not in table.c]
    if unknown:
        raise StorageError(f"Table '{table.name}' has no column(s) {', '.join(unknown)}")


def _filter_columns(filters: Sequence[RowFilter]) -> list[str]:
    return [item.column for item in filters if isinstance(item, Condition)]


@lru_cache
def _adapter(python_type: type) -> TypeAdapter[Any]:
    return TypeAdapter(python_type)


def _convert(column: Column[Any], value: Any) -> Any:
    """Parse a JSON string into the Python type a date, time or boolean column binds."""
    if not isinstance(value, str) or not isinstance(column.type, CONVERTED_COLUMN_TYPES):
        return value
    try:
        return _adapter(column.type.python_type).validate_python(value)
    except PydanticValidationError as e:
        raise StorageError(
            f"Value {value!r} does not fit column '{column.name}' ({column.type})"
        ) from e


def _bind_row(table: Table, row: Mapping[str, Any]) -> dict[str, Any]:
    bound: dict[str, Any] = {}
    for name, value in row.items():
        if isinstance(value, ColumnArithmetic):
            apply = _ARITHMETIC_OPERATORS[value.operator]
            bound[name] = apply(table.c[value.column], value.operand)
        else:
            bound[name] = _convert(table.c[name], value)
    return bound


def _where(table: Table, filters: Sequence[RowFilter]) -> ColumnElement[bool]:
    clauses = [_clause(table, item) for item in filters]
    return and_(true(), *clauses)


def _clause(table: Table, item: RowFilter) -> ColumnElement[bool]:
    if isinstance(item, SubstringFilter):
        matches = [
            cast(column, String).contains(item.text, autoescape=True) for column in table.columns
        ]
        return or_(*matches) if matches else false()
    return _comparison(table, item)


def _comparison(table: Table, condition: Condition) -> ColumnElement[bool]:
    _check_columns(table, [condition.column])
    column = table.c[condition.column]
    value = condition.value
    match condition.operator:
        case FilterOperator.EQ:
            return column.is_(None) if value is None else column == _convert(column, value)
        case FilterOperator.NE:
            return column.is_not(None) if value is None else column != _convert(column, value)
        case FilterOperator.LT:
            return column < _convert(column, value)
        case FilterOperator.GT:
            return column > _convert(column, value)
        case FilterOperator.LE:
            return column <= _convert(column, value)
        case FilterOperator.GE:
            return column >= _convert(column, value)
        case FilterOperator.STARTS_WITH:
            return cast(column, String).startswith(str(value), autoescape=True)
        case FilterOperator.ENDS_WITH:
            return cast(column, String).endswith(str(value), autoescape=True)
        case FilterOperator.CONTAINS:
            return cast(column, String).contains(str(value), autoescape=True)
    raise StorageError(f"Unsupported filter operator {condition.operator!r}")


def _reason(error: SQLAlchemyError) -> str:
    orig = getattr(error, "orig", None)
    return str(orig) if orig is not None else str(error)
