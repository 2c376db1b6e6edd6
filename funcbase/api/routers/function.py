"""Function definition management router."""

from fastapi import APIRouter, Depends, Query

from funcbase.api.dependencies import FunctionServiceDep
from funcbase.api.security import require_api_key
from funcbase.models.function import FunctionDefinition, FunctionSummary, FunctionUpdate

router = APIRouter(dependencies=[Depends(require_api_key)])


@router.post("/create", response_model=FunctionDefinition)
async def create_function(
    definition: FunctionDefinition,
    service: FunctionServiceDep,
) -> FunctionDefinition:
    """Validate and store a new function.

    Args:
        definition: Function name and its steps under ``functions``.
        service: Function service.

    Returns:
        The stored definition, with literal types inferred from the target columns.

    Raises:
        ValidationError: If the steps break a structural rule (-> 422).
        FunctionAlreadyExistsError: If the name is taken (-> 409).
    """
    return await service.create(definition)


@router.get("", response_model=list[FunctionSummary])
async def list_functions(
    service: FunctionServiceDep,
    search: str | None = Query(None, description="Substring of the function name"),
) -> list[FunctionSummary]:
    """List stored functions."""
    return await service.list_functions(search)


@router.get("/{name}", response_model=FunctionDefinition)
async def get_function(name: str, service: FunctionServiceDep) -> FunctionDefinition:
    """Get a stored definition by name.

    Raises:
        FunctionNotFoundError: If the function does not exist (-> 404).
    """
    return await service.get(name)


@router.put("/{name}", response_model=FunctionDefinition)
async def update_function(
    name: str,
    update: FunctionUpdate,
    service: FunctionServiceDep,
) -> FunctionDefinition:
    """Replace every step of a function.

    Invocations already running keep the steps they started with.
    """
    return await service.update(name, update.functions)


@router.delete("/{name}")
async def delete_function(name: str, service: FunctionServiceDep) -> dict[str, str]:
    """Delete a function.

    Raises:
        FunctionNotFoundError: If the function does not exist (-> 404).
    """
    await service.delete(name)
    return {"message": "success"}
