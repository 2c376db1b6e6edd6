"""
Step resolution: turn an authored function definition into a validated pipeline.

Validation happens once, when a definition is created, updated or loaded into
the cache. The result is an immutable ``ValidatedPipeline`` whose step result
references already point at the position of the step they read from, so the
executor never has to look names up or re-check structure per invocation.
"""

from dataclasses import dataclass

from funcbase.exceptions.domain import (
    DuplicateStepNameError,
    FilterSyntaxError,
    ForwardOrSelfReferenceError,
    InvalidActionFieldsError,
    MissingReferencedStepError,
    NonMonotonicIndexError,
    ValidationError,
)
from funcbase.models.function import (
    CallerSupplied,
    FilterOperator,
    FunctionDefinition,
    FunctionStep,
    LiteralBinding,
    StepAction,
    StepResultReference,
    UserIdentityToken,
)
from funcbase.services.pipeline.filters import SortOrder, parse_sort

WRITE_ACTIONS = frozenset({StepAction.INSERT, StepAction.UPDATE})
# Top-level key of the invocation response that fetch results must not replace
RESPONSE_MESSAGE_KEY = "message"


@dataclass(frozen=True, slots=True)
class LinkedStepResult:
    """A step result reference bound to the position of its target step."""

    step: str
    position: int


type FilterBinding = LiteralBinding | CallerSupplied | UserIdentityToken
type ResolvedBinding = LiteralBinding | CallerSupplied | UserIdentityToken | LinkedStepResult


@dataclass(frozen=True, slots=True)
class ValidatedFilter:
    column: str
    operator: FilterOperator
    value: FilterBinding


@dataclass(frozen=True, slots=True)
class ValidatedStep:
    """A step that passed validation. ``values`` keeps the authored column order."""

    idx: int
    name: str | None
    table: str
    action: StepAction
    multiple: bool
    columns: tuple[str, ...]
    values: tuple[tuple[str, ResolvedBinding], ...]
    filters: tuple[ValidatedFilter, ...]
    sort: SortOrder | None = None
    page: int | None = None
    page_size: int | None = None

    @property
    def label(self) -> str:
        return f"'{self.name}' (idx {self.idx})" if self.name else f"idx {self.idx}"

    @property
    def produces_key(self) -> bool:
        """Whether later steps may reference this step's primary key."""
        return self.action == StepAction.INSERT and not self.multiple and self.name is not None


@dataclass(frozen=True, slots=True)
class ValidatedPipeline:
    """Immutable, ordered, cross-referenced form of a function definition."""

    name: str
    steps: tuple[ValidatedStep, ...]


def validate(definition: FunctionDefinition) -> ValidatedPipeline:
    """Validate a function definition.

    Checks run in a fixed order: duplicate step names, index monotonicity,
    per-action field presence, response key clashes, then reference legality.
    The function is pure, so identical input always yields an identical
    pipeline or identical error.

    Args:
        definition: Authored function definition.

    Returns:
        The validated pipeline.

    Raises:
        DuplicateStepNameError: Two steps share a name.
        NonMonotonicIndexError: Indexes are not unique and strictly increasing.
        InvalidActionFieldsError: A step's fields do not match its action, or
            its results would land on an already used response key.
        MissingReferencedStepError: A reference names no earlier single-row insert.
        ForwardOrSelfReferenceError: A reference points at itself or a later step.
    """
    steps = definition.functions
    if not steps:
        raise ValidationError(f"Function '{definition.name}' has no steps")

    _check_unique_names(steps)
    _check_monotonic_idx(steps)
    for step in steps:
        _check_action_fields(step)
    _check_response_keys(steps)

    ordered = sorted(steps, key=lambda s: s.idx)
    positions = {step.name: pos for pos, step in enumerate(ordered) if step.name}

    validated = tuple(_link_step(step, ordered, positions) for step in ordered)
    return ValidatedPipeline(name=definition.name, steps=validated)


def _check_unique_names(steps: list[FunctionStep]) -> None:
    seen: set[str] = set()
    for step in steps:
        if step.name is None:
            continue
        if step.name in seen:
            raise DuplicateStepNameError(step.name)
        seen.add(step.name)


def _check_monotonic_idx(steps: list[FunctionStep]) -> None:
    for previous, current in zip(steps, steps[1:], strict=False):
        if current.idx <= previous.idx:
            raise NonMonotonicIndexError(previous.idx, current.idx)


def fetch_output_key(name: str | None, idx: int) -> str:
    """Key under which a fetch step's rows appear in the invocation response."""
    return name or f"step_{idx}"


def _check_response_keys(steps: list[FunctionStep]) -> None:
    used: set[str] = set()
    for step in steps:
        if step.name == RESPONSE_MESSAGE_KEY:
            raise InvalidActionFieldsError(
                f"Step idx {step.idx}: the name '{RESPONSE_MESSAGE_KEY}' is reserved"
            )
        if step.action != StepAction.FETCH:
            continue
        key = fetch_output_key(step.name, step.idx)
        if key in used:
            raise InvalidActionFieldsError(
                f"Step idx {step.idx}: response key '{key}' is already used by another fetch step"
            )
        used.add(key)


def _check_action_fields(step: FunctionStep) -> None:
    def invalid(reason: str) -> InvalidActionFieldsError:
        return InvalidActionFieldsError(f"Step idx {step.idx} ({step.action.value}): {reason}")

    if step.action in WRITE_ACTIONS:
        if not step.values:
            raise invalid("values must not be empty")
        if step.columns:
            raise invalid("columns are only allowed on fetch steps")
    else:
        if step.values:
            raise invalid("values are only allowed on insert and update steps")

    if step.action == StepAction.INSERT and step.filters:
        raise invalid("filters are not allowed on insert steps")

    if step.action == StepAction.FETCH:
        if not step.columns:
            raise invalid("columns must not be empty")
        try:
            parse_sort(step.sort)
        except FilterSyntaxError as e:
            raise invalid(str(e)) from e
    else:
        if step.action == StepAction.DELETE and step.columns:
            raise invalid("columns are not allowed on delete steps")
        if step.sort is not None or step.page is not None or step.page_size is not None:
            raise invalid("sort and paging are only allowed on fetch steps")

    for predicate in step.filters:
        if isinstance(predicate.value, StepResultReference):
            raise invalid(f"filter on '{predicate.column}' cannot reference a step result")


def _link_step(
    step: FunctionStep, ordered: list[FunctionStep], positions: dict[str, int]
) -> ValidatedStep:
    values: list[tuple[str, ResolvedBinding]] = []
    for column, binding in step.values.items():
        if isinstance(binding, StepResultReference):
            values.append((column, _link_reference(step, binding.step, ordered, positions)))
        else:
            values.append((column, binding))

    filters = tuple(
        ValidatedFilter(
            column=p.column, operator=p.operator, value=p.value  # type: ignore[arg-type]
        )
        for p in step.filters
    )

    return ValidatedStep(
        idx=step.idx,
        name=step.name,
        table=step.table,
        action=step.action,
        # fetch and delete always address any number of rows
        multiple=step.multiple if step.action in WRITE_ACTIONS else True,
        columns=tuple(dict.fromkeys(step.columns)),
        values=tuple(values),
        filters=filters,
        sort=parse_sort(step.sort),
        page=step.page,
        page_size=step.page_size,
    )


def _link_reference(
    step: FunctionStep, target: str, ordered: list[FunctionStep], positions: dict[str, int]
) -> LinkedStepResult:
    position = positions.get(target)
    if position is None:
        raise MissingReferencedStepError(
            f"Step idx {step.idx} references unknown step '{target}'"
        )

    referenced = ordered[position]
    if referenced.idx >= step.idx:
        raise ForwardOrSelfReferenceError(step.idx, target)
    if referenced.action != StepAction.INSERT or referenced.multiple:
        raise MissingReferencedStepError(
            f"Step idx {step.idx} references step '{target}', "
            "which is not a single-row insert and produces no key"
        )
    return LinkedStepResult(step=target, position=position)
