"""
Pipeline execution.

Steps run one after another in ``idx`` order; a later step may need the key an
earlier insert produced, so nothing inside one invocation runs in parallel.
The first failing step aborts the run. Steps that already ran are not undone:
each gateway call commits on its own and there is no compensation.

State machine::

    PENDING -> RUNNING(idx) -> SUCCEEDED
                            -> FAILED(idx, cause)
"""

import enum
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from funcbase.exceptions.domain import (
    FilterSyntaxError,
    FuncbaseError,
    InvalidInputError,
    MissingInputError,
    PipelineCancelledError,
    PipelineError,
    PipelineExecutionError,
    PipelineTimeoutError,
)
from funcbase.models.function import FilterOperator, StepAction
from funcbase.settings import settings
from funcbase.utils.logger import logger

from .filters import Condition, Page, RowFilter, describe, parse_filter_expression
from .gateway import Row, TableGateway
from .resolver import (
    RESPONSE_MESSAGE_KEY,
    ValidatedPipeline,
    ValidatedStep,
    fetch_output_key,
)
from .tokens import ExecutionContext, TokenResolver

type CancellationCheck = Callable[[], Awaitable[bool]]

# Key of a fetch or delete step's input holding an extra filter expression
CALLER_FILTER_KEY = "filter"


class PipelineState(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class PipelineResult:
    """Outcome of one invocation.

    ``outputs`` holds fetched rows keyed by step name; ``completed`` lists the
    idx of every step that finished, in the order they ran.
    """

    pipeline: str
    state: PipelineState = PipelineState.PENDING
    current_idx: int | None = None
    outputs: dict[str, list[Row]] = field(default_factory=dict)
    completed: list[int] = field(default_factory=list)
    step_results: dict[str, Any] = field(default_factory=dict)
    failed_idx: int | None = None
    failed_step: str | None = None
    error: FuncbaseError | None = None

    @property
    def succeeded(self) -> bool:
        return self.state == PipelineState.SUCCEEDED

    def to_response(self) -> dict[str, Any]:
        """Build the invocation response body of a successful run."""
        return {RESPONSE_MESSAGE_KEY: "success", **self.outputs}

    def raise_for_failure(self) -> None:
        """Raise ``PipelineExecutionError`` if the run failed."""
        if self.state == PipelineState.FAILED and self.error is not None:
            raise PipelineExecutionError(
                self.failed_idx if self.failed_idx is not None else -1,
                self.failed_step,
                self.error,
            )


def output_key(step: ValidatedStep) -> str:
    """Key under which a fetch step's rows appear in the response."""
    return fetch_output_key(step.name, step.idx)


class PipelineExecutor:
    """Runs validated pipelines against a table gateway.

    Args:
        gateway: Storage the steps are dispatched to.
        resolver: Token resolver; a default one is created when omitted.
        min_step_budget: Seconds of deadline budget a step needs to be started.
        default_page_size: Page size for fetch steps that set only ``page``.
        clock: Monotonic clock used for deadline checks.
    """

    def __init__(
        self,
        gateway: TableGateway,
        resolver: TokenResolver | None = None,
        *,
        min_step_budget: float | None = None,
        default_page_size: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.gateway = gateway
        self.resolver = resolver or TokenResolver()
        self.min_step_budget = (
            settings.min_step_budget_seconds if min_step_budget is None else min_step_budget
        )
        self.default_page_size = default_page_size or settings.default_page_size
        self.clock = clock

    async def execute(
        self,
        pipeline: ValidatedPipeline,
        caller_payload: Mapping[str, Any],
        authenticated_user_id: str | None = None,
        deadline: float | None = None,
        is_cancelled: CancellationCheck | None = None,
    ) -> PipelineResult:
        """Run every step of ``pipeline`` in order.

        Args:
            pipeline: Validated pipeline to run.
            caller_payload: The request's ``data`` mapping.
            authenticated_user_id: Id of the authenticated caller, if any.
            deadline: Absolute deadline on ``clock``; None means no deadline.
            is_cancelled: Awaited before each step; True aborts the run.

        Returns:
            The run's result. Failures are reported in the result, not raised.
        """
        ctx = ExecutionContext(
            caller_payload=caller_payload, authenticated_user_id=authenticated_user_id
        )
        result = PipelineResult(pipeline=pipeline.name)
        started = self.clock()
        logger.info(f"Running function '{pipeline.name}' ({len(pipeline.steps)} steps)")

        for step in pipeline.steps:
            result.state = PipelineState.RUNNING
            result.current_idx = step.idx
            try:
                await self._check_can_start(step, deadline, is_cancelled)
                await self._run_step(step, ctx, result)
            except PipelineError as e:
                result.state = PipelineState.FAILED
                result.failed_idx = step.idx
                result.failed_step = step.name
                result.error = e
                result.step_results = dict(ctx.step_results)
                logger.warning(
                    f"Function '{pipeline.name}' failed at step {step.label}: {e} "
                    f"({len(result.completed)} earlier step(s) stay applied)"
                )
                return result
            result.completed.append(step.idx)

        result.state = PipelineState.SUCCEEDED
        result.current_idx = None
        result.step_results = dict(ctx.step_results)
        logger.info(
            f"Function '{pipeline.name}' succeeded in {self.clock() - started:.3f}s"
        )
        return result

    async def _check_can_start(
        self,
        step: ValidatedStep,
        deadline: float | None,
        is_cancelled: CancellationCheck | None,
    ) -> None:
        if is_cancelled is not None and await is_cancelled():
            raise PipelineCancelledError(f"Request cancelled before step {step.label}")
        if deadline is not None:
            remaining = deadline - self.clock()
            if remaining <= 0 or remaining < self.min_step_budget:
                raise PipelineTimeoutError(
                    f"Deadline leaves {max(remaining, 0.0):.3f}s, step {step.label} not started"
                )

    async def _run_step(
        self, step: ValidatedStep, ctx: ExecutionContext, result: PipelineResult
    ) -> None:
        step_input = _step_input(step, ctx.caller_payload)
        logger.debug(f"Step {step.label}: {step.action.value} on '{step.table}'")

        match step.action:
            case StepAction.INSERT:
                await self._insert(step, ctx, step_input)
            case StepAction.UPDATE:
                await self._update(step, ctx, step_input)
            case StepAction.FETCH:
                filters = self._row_filters(step, ctx, _single_row(step, step_input))
                rows = await self.gateway.fetch(
                    step.table, filters, list(step.columns), step.sort, self._page(step)
                )
                result.outputs[output_key(step)] = rows
                logger.debug(f"Step {step.label} fetched {len(rows)} row(s)")
            case StepAction.DELETE:
                filters = self._row_filters(step, ctx, _single_row(step, step_input))
                affected = await self.gateway.delete(step.table, filters)
                logger.debug(f"Step {step.label} deleted {affected} row(s)")

    async def _insert(self, step: ValidatedStep, ctx: ExecutionContext, step_input: Any) -> None:
        if step.multiple:
            rows = [
                self.resolver.resolve_values(step.values, ctx, source=source)
                for source in _many_rows(step, step_input)
            ]
            for row in rows:
                await self.gateway.insert(step.table, row)
            logger.debug(f"Step {step.label} inserted {len(rows)} row(s)")
            return

        row = self.resolver.resolve_values(
            step.values, ctx, source=_single_row(step, step_input)
        )
        key = await self.gateway.insert(step.table, row)
        if step.produces_key:
            ctx.step_results[step.name] = key
        logger.debug(f"Step {step.label} inserted row with key {key!r}")

    async def _update(self, step: ValidatedStep, ctx: ExecutionContext, step_input: Any) -> None:
        sources = (
            _many_rows(step, step_input) if step.multiple else [_single_row(step, step_input)]
        )
        affected = 0
        for source in sources:
            row = self.resolver.resolve_values(
                step.values, ctx, source=source, required=False, arithmetic=True
            )
            if not row:
                raise MissingInputError(f"Step {step.label} has no values to update")
            filters = self._update_filters(step, ctx, source)
            affected += await self.gateway.update(step.table, filters, row)
        logger.debug(f"Step {step.label} updated {affected} row(s)")

    def _row_filters(
        self, step: ValidatedStep, ctx: ExecutionContext, source: Mapping[str, Any]
    ) -> list[RowFilter]:
        """Step predicates ANDed with the caller's ``filter`` expression, if any."""
        filters: list[RowFilter] = [
            *self.resolver.resolve_filters(step.filters, ctx, source=source)
        ]
        text = source.get(CALLER_FILTER_KEY)
        if text is None:
            return filters
        if not isinstance(text, str):
            raise InvalidInputError(f"Step {step.label}: '{CALLER_FILTER_KEY}' must be a string")
        try:
            extra = parse_filter_expression(text, ctx.authenticated_user_id)
        except FilterSyntaxError as e:
            raise InvalidInputError(f"Step {step.label}: {e}") from e
        logger.debug(f"Step {step.label} adds caller filter {describe(extra)}")
        return filters + extra

    def _update_filters(
        self, step: ValidatedStep, ctx: ExecutionContext, source: Mapping[str, Any]
    ) -> list[Condition]:
        if step.filters:
            return self.resolver.resolve_filters(step.filters, ctx, source=source)
        if "id" not in source:
            raise MissingInputError(f"Step {step.label} needs filters or an 'id' in its input")
        return [Condition(column="id", operator=FilterOperator.EQ, value=source["id"])]

    def _page(self, step: ValidatedStep) -> Page | None:
        if step.page is None and step.page_size is None:
            return None
        return Page(number=step.page or 1, size=step.page_size or self.default_page_size)


def _step_input(step: ValidatedStep, payload: Mapping[str, Any]) -> Any:
    """A named step reads ``payload[name]`` when present, otherwise the whole payload."""
    if step.name is not None:
        nested = payload.get(step.name)
        if isinstance(nested, Mapping | list):
            return nested
    return payload


def _single_row(step: ValidatedStep, step_input: Any) -> Mapping[str, Any]:
    if not isinstance(step_input, Mapping):
        raise MissingInputError(f"Step {step.label} expects a single object as input")
    return step_input


def _many_rows(step: ValidatedStep, step_input: Any) -> list[Mapping[str, Any]]:
    if isinstance(step_input, Mapping):
        return [step_input]
    rows = list(step_input)
    for number, row in enumerate(rows):
        if not isinstance(row, Mapping):
            raise MissingInputError(f"Row {number} of step {step.label} is not an object")
    return rows
