"""Test doubles and builders shared by the unit tests."""

from collections.abc import Mapping, Sequence
from typing import Any

from funcbase.models import FunctionDefinition
from funcbase.services.pipeline.filters import Page, RowFilter, SortOrder
from funcbase.services.pipeline.resolver import ValidatedPipeline, validate


def make_pipeline(steps: list[dict[str, Any]], name: str = "fn") -> ValidatedPipeline:
    """Validate a definition written in the wire format."""
    return validate(FunctionDefinition.model_validate({"name": name, "functions": steps}))


class RecordingGateway:
    """In-memory TableGateway that records every call.

    Inserts return consecutive keys starting at ``first_key``. ``fail_on``
    maps a table name to the exception raised by any call touching it.
    """

    def __init__(
        self,
        first_key: int = 42,
        rows: dict[str, list[dict[str, Any]]] | None = None,
        fail_on: dict[str, Exception] | None = None,
        on_call: Any = None,
    ):
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.next_key = first_key
        self.rows = rows or {}
        self.fail_on = fail_on or {}
        self.on_call = on_call

    async def _record(self, action: str, table: str, **details: Any) -> None:
        if self.on_call is not None:
            await self.on_call(action, table)
        if table in self.fail_on:
            raise self.fail_on[table]
        self.calls.append((action, table, details))

    async def insert(self, table: str, row: Mapping[str, Any]) -> Any:
        await self._record("insert", table, row=dict(row))
        key = self.next_key
        self.next_key += 1
        return key

    async def update(self, table: str, filters: Sequence[RowFilter], row: Mapping[str, Any]) -> int:
        await self._record("update", table, filters=list(filters), row=dict(row))
        return 1

    async def fetch(
        self,
        table: str,
        filters: Sequence[RowFilter],
        columns: Sequence[str],
        sort: SortOrder | None = None,
        page: Page | None = None,
    ) -> list[dict[str, Any]]:
        await self._record(
            "fetch", table, filters=list(filters), columns=list(columns), sort=sort, page=page
        )
        return list(self.rows.get(table, []))

    async def delete(self, table: str, filters: Sequence[RowFilter]) -> int:
        await self._record("delete", table, filters=list(filters))
        return 1

    async def column_types(self, table: str) -> dict[str, str]:
        return {}
