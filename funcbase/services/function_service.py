"""Service layer for function definitions and invocations."""

from collections.abc import Mapping
from typing import Any

from funcbase.exceptions import StorageError
from funcbase.models.function import (
    FunctionDefinition,
    FunctionStep,
    FunctionStored,
    FunctionSummary,
    dump_steps,
)
from funcbase.repositories.function_repository import FunctionRepository
from funcbase.services.pipeline.cache import DefinitionCache
from funcbase.services.pipeline.coercion import apply_column_hints
from funcbase.services.pipeline.executor import CancellationCheck, PipelineExecutor
from funcbase.services.pipeline.filters import Page, describe, parse_filter_expression, parse_sort
from funcbase.services.pipeline.gateway import TableGateway
from funcbase.services.pipeline.resolver import ValidatedPipeline, validate
from funcbase.settings import settings
from funcbase.utils.logger import logger


class FunctionService:
    """Orchestrates storage, validation, caching and execution of functions."""

    def __init__(
        self,
        repo: FunctionRepository,
        gateway: TableGateway,
        cache: DefinitionCache,
        executor: PipelineExecutor | None = None,
    ):
        """Initialize the service.

        Args:
            repo: Repository of stored definitions.
            gateway: Storage the function steps run against.
            cache: Shared cache of validated pipelines.
            executor: Pipeline executor; one over ``gateway`` is created when omitted.
        """
        self.repo = repo
        self.gateway = gateway
        self.cache = cache
        self.executor = executor or PipelineExecutor(gateway)

    async def prepare(
        self, definition: FunctionDefinition
    ) -> tuple[FunctionDefinition, ValidatedPipeline]:
        """Add column type hints to a definition and validate it.

        Steps whose table cannot be described are validated without hints.

        Returns:
            The hinted definition and its validated pipeline.

        Raises:
            ValidationError: If the definition breaks a structural rule.
        """
        described: dict[str, dict[str, str]] = {}
        steps: list[FunctionStep] = []
        for step in definition.functions:
            if step.table not in described:
                try:
                    described[step.table] = await self.gateway.column_types(step.table)
                except StorageError as e:
                    logger.debug(f"No column hints for table '{step.table}': {e}")
                    described[step.table] = {}
            steps.append(apply_column_hints(step, described[step.table]))

        hinted = definition.model_copy(update={"functions": steps})
        return hinted, validate(hinted)

    async def create(self, definition: FunctionDefinition) -> FunctionDefinition:
        """Validate and store a new function.

        Raises:
            ValidationError: If the definition is invalid; nothing is stored.
            FunctionAlreadyExistsError: If the name is taken.
        """
        hinted, pipeline = await self.prepare(definition)
        await self.cache.swap(
            hinted.name,
            pipeline,
            persist=lambda: self.repo.add(hinted.name, dump_steps(hinted.functions)),
        )
        logger.info(f"Created function '{hinted.name}' with {len(pipeline.steps)} step(s)")
        return hinted

    async def update(self, name: str, steps: list[FunctionStep]) -> FunctionDefinition:
        """Replace every step of an existing function.

        Raises:
            FunctionNotFoundError: If the function does not exist.
            ValidationError: If the new steps are invalid; the old ones stay.
        """
        await self.repo.get(name)
        hinted, pipeline = await self.prepare(FunctionDefinition(name=name, functions=steps))
        await self.cache.swap(
            name,
            pipeline,
            persist=lambda: self.repo.replace_steps(name, dump_steps(hinted.functions)),
        )
        logger.info(f"Updated function '{name}' to {len(pipeline.steps)} step(s)")
        return hinted

    async def get(self, name: str) -> FunctionDefinition:
        """Return a stored definition.

        Raises:
            FunctionNotFoundError: If the function does not exist.
        """
        stored: FunctionStored = await self.repo.get(name)
        return stored.to_definition()

    async def list_functions(self, search: str | None = None) -> list[FunctionSummary]:
        """List function names, optionally filtered by substring."""
        return [FunctionSummary(name=stored.name) for stored in await self.repo.search(search)]

    async def delete(self, name: str) -> None:
        """Delete a function and evict it from the cache.

        Raises:
            FunctionNotFoundError: If the function does not exist.
        """
        await self.cache.swap(name, None, persist=lambda: self.repo.remove(name))
        logger.info(f"Deleted function '{name}'")

    async def load(self, name: str) -> ValidatedPipeline:
        """Return the validated pipeline of a function, from cache when possible.

        Raises:
            FunctionNotFoundError: If the function does not exist.
        """

        async def loader() -> ValidatedPipeline:
            stored = await self.repo.get(name)
            _, pipeline = await self.prepare(stored.to_definition())
            return pipeline

        return await self.cache.get_or_load(name, loader)

    async def invoke(
        self,
        name: str,
        payload: Mapping[str, Any],
        user_id: str | None = None,
        deadline: float | None = None,
        is_cancelled: CancellationCheck | None = None,
    ) -> dict[str, Any]:
        """Run a function and build its response body.

        Args:
            name: Function name.
            payload: The caller's ``data`` mapping.
            user_id: Authenticated caller id, if any.
            deadline: Absolute monotonic deadline for starting steps.
            is_cancelled: Check telling whether the caller went away.

        Returns:
            ``{"message": "success", <fetch step>: rows, ...}``

        Raises:
            FunctionNotFoundError: If the function does not exist.
            PipelineExecutionError: If a step failed.
        """
        pipeline = await self.load(name)
        result = await self.executor.execute(
            pipeline,
            caller_payload=payload,
            authenticated_user_id=user_id,
            deadline=deadline,
            is_cancelled=is_cancelled,
        )
        result.raise_for_failure()
        return result.to_response()

    async def browse_table(
        self,
        table: str,
        filter: str | None = None,
        sort: str | None = None,
        page: int = 1,
        page_size: int | None = None,
        user_id: str | None = None,
    ) -> dict[str, Any]:
        """Fetch one page of a table's rows using the filter expression grammar.

        Raises:
            FilterSyntaxError: If the filter or sort cannot be parsed.
            AuthRequiredError: If the filter uses ``$user.id`` without a caller.
            StorageError: If the table or a column does not exist.
        """
        filters = parse_filter_expression(filter, user_id)
        order = parse_sort(sort)
        size = min(page_size or settings.default_page_size, settings.max_page_size)
        logger.debug(f"Browsing '{table}' where {describe(filters)}, page {page} of {size}")
        rows = await self.gateway.fetch(table, filters, [], order, Page(number=page, size=size))
        return {"data": rows, "page": page, "page_size": size}
