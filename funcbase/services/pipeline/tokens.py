"""
Token resolution: turn value bindings into concrete values at call time.

The resolver never re-checks structure; references were linked when the
pipeline was validated. All per-invocation state lives in ``ExecutionContext``.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from funcbase.exceptions.domain import (
    AuthRequiredError,
    MissingInputError,
    MissingStepResultError,
)
from funcbase.models.function import CallerSupplied, LiteralBinding, UserIdentityToken

from .coercion import coerce_literal
from .filters import Condition, parse_arithmetic
from .resolver import LinkedStepResult, ResolvedBinding, ValidatedFilter


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


@dataclass
class ExecutionContext:
    """Mutable state of one invocation.

    Args:
        caller_payload: The ``data`` mapping of the request.
        authenticated_user_id: Id of the authenticated caller, if any.
        step_results: Primary keys of finished single-row insert steps, by name.
    """

    caller_payload: Mapping[str, Any]
    authenticated_user_id: str | None = None
    step_results: dict[str, Any] = field(default_factory=dict)


class TokenResolver:
    """Resolves bindings against an execution context."""

    def resolve(
        self,
        binding: ResolvedBinding,
        ctx: ExecutionContext,
        column: str,
        *,
        source: Mapping[str, Any] | None = None,
        required: bool = True,
        arithmetic: bool = False,
    ) -> Any:
        """Resolve one binding to a value.

        Args:
            binding: The binding to resolve.
            ctx: Current execution context.
            column: Destination column; default payload key for caller input.
            source: Row the caller supplied for this step, if not the whole payload.
            required: Whether an absent caller value is an error. When False,
                ``MISSING`` is returned instead.
            arithmetic: Whether a caller value like ``"$stock - 1"`` becomes a
                ``ColumnArithmetic`` instead of a plain string.

        Raises:
            TypeCoercionError: A literal does not match its type hint.
            MissingInputError: A required caller value is absent.
            AuthRequiredError: The caller id is needed but nobody is authenticated.
            MissingStepResultError: A referenced step has not produced a key.
        """
        match binding:
            case LiteralBinding():
                return coerce_literal(binding)
            case CallerSupplied():
                key = binding.key or column
                payload = ctx.caller_payload if source is None else source
                if key in payload:
                    value = payload[key]
                    if arithmetic:
                        return parse_arithmetic(value) or value
                    return value
                if required:
                    raise MissingInputError(f"Missing input '{key}'")
                return MISSING
            case UserIdentityToken():
                if ctx.authenticated_user_id is None:
                    raise AuthRequiredError()
                return ctx.authenticated_user_id
            case LinkedStepResult():
                try:
                    return ctx.step_results[binding.step]
                except KeyError:
                    raise MissingStepResultError(
                        f"No result recorded for step '{binding.step}'"
                    ) from None
        raise TypeError(f"Unknown binding {binding!r}")

    def resolve_values(
        self,
        values: tuple[tuple[str, ResolvedBinding], ...],
        ctx: ExecutionContext,
        *,
        source: Mapping[str, Any] | None = None,
        required: bool = True,
        arithmetic: bool = False,
    ) -> dict[str, Any]:
        """Resolve a step's column bindings into a row, skipping absent optional inputs."""
        row: dict[str, Any] = {}
        for column, binding in values:
            value = self.resolve(
                binding, ctx, column, source=source, required=required, arithmetic=arithmetic
            )
            if value is not MISSING:
                row[column] = value
        return row

    def resolve_filters(
        self,
        filters: tuple[ValidatedFilter, ...],
        ctx: ExecutionContext,
        *,
        source: Mapping[str, Any] | None = None,
    ) -> list[Condition]:
        """Resolve filter predicates into gateway conditions. Filter inputs are always required."""
        return [
            Condition(
                column=predicate.column,
                operator=predicate.operator,
                value=self.resolve(predicate.value, ctx, predicate.column, source=source),
            )
            for predicate in filters
        ]
