"""Table browsing router, using the filter expression grammar of functions."""

from typing import Any

from fastapi import APIRouter, Depends, Query

from funcbase.api.dependencies import FunctionServiceDep, OptionalUserIdDep
from funcbase.api.security import require_api_key

router = APIRouter(dependencies=[Depends(require_api_key)])


@router.get("/{table}")
async def browse_table(
    table: str,
    service: FunctionServiceDep,
    user_id: OptionalUserIdDep,
    filter: str | None = Query(None, description='e.g. name = "a" AND age > 3'),
    sort: str | None = Query(None, description='e.g. "age desc" or "-age"'),
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1),
) -> dict[str, Any]:
    """Fetch one page of rows from a table.

    Raises:
        FilterSyntaxError: If the filter or sort cannot be parsed (-> 422).
        StorageError: If the table or a column does not exist (-> 502).
    """
    return await service.browse_table(
        table, filter=filter, sort=sort, page=page, page_size=page_size, user_id=user_id
    )
