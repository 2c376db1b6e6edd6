"""
Domain exceptions for business logic layer.

These exceptions are used in repositories, services and the pipeline engine
to represent business logic errors without coupling to HTTP status codes.
"""

from typing import Self


class FuncbaseError(Exception):
    """Base exception for all Funcbase-specific errors."""

    code = "error"

    def with_context(self, detail: str) -> Self:
        """Add context information to the exception.

        Args:
            detail: Additional details about the error

        Returns:
            Self with updated message
        """
        self.args = (detail,)
        return self


# Base domain exceptions
class EntityNotFoundError(FuncbaseError):
    """Raised when an entity is not found in the database."""

    code = "not_found"


class EntityAlreadyExistsError(FuncbaseError):
    """Raised when trying to create an entity that already exists."""

    code = "already_exists"


# Function definition exceptions
class FunctionNotFoundError(EntityNotFoundError):
    """Raised when a function definition is not found."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Function '{name}' does not exist")


class FunctionAlreadyExistsError(EntityAlreadyExistsError):
    """Raised when trying to create a function that already exists."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Function '{name}' already exists")


# Definition validation exceptions, raised before a definition is persisted
class ValidationError(FuncbaseError):
    """Raised when a function definition violates a structural invariant."""

    code = "validation"


class DuplicateStepNameError(ValidationError):
    """Two steps of one function share a name."""

    code = "duplicate_step_name"

    def __init__(self, step_name: str) -> None:
        super().__init__(f"Step name '{step_name}' is used more than once")


class NonMonotonicIndexError(ValidationError):
    """Step indexes are not unique and strictly increasing."""

    code = "non_monotonic_index"

    def __init__(self, previous_idx: int, idx: int) -> None:
        super().__init__(f"Step idx {idx} does not follow idx {previous_idx}")


class ForwardOrSelfReferenceError(ValidationError):
    """A step references its own result or the result of a later step."""

    code = "forward_or_self_reference"

    def __init__(self, idx: int, target: str) -> None:
        super().__init__(f"Step {idx} references step '{target}' which does not run before it")


class MissingReferencedStepError(ValidationError):
    """A step references a name that no earlier single-row insert carries."""

    code = "missing_referenced_step"


class InvalidActionFieldsError(ValidationError):
    """A step carries fields its action does not allow, or lacks required ones."""

    code = "invalid_action_fields"


class FilterSyntaxError(ValidationError):
    """A filter expression or sort clause could not be parsed."""

    code = "filter_syntax"


# Runtime exceptions, raised while a function is being invoked
class PipelineError(FuncbaseError):
    """Base exception for errors raised while running a pipeline."""

    code = "pipeline"


class AuthRequiredError(PipelineError):
    """An identity token was used without an authenticated caller."""

    code = "auth_required"

    def __init__(self, detail: str = "Authenticated user is required") -> None:
        super().__init__(detail)


class MissingInputError(PipelineError):
    """The caller omitted a value the step requires."""

    code = "missing_input"


class InvalidInputError(PipelineError):
    """The caller supplied a value the step cannot use, such as an unparsable filter."""

    code = "invalid_input"


class TypeCoercionError(PipelineError):
    """A literal could not be coerced to its declared type."""

    code = "type_coercion"


class MissingStepResultError(PipelineError):
    """A referenced step result is absent at run time.

    Validation guarantees references only point backwards, so reaching this
    means the executor itself is broken.
    """

    code = "missing_step_result"


class StorageError(PipelineError):
    """Raised when the table gateway fails."""

    code = "storage"


class PipelineTimeoutError(PipelineError):
    """The request deadline left no budget for the next step."""

    code = "timeout"


class PipelineCancelledError(PipelineError):
    """The inbound request went away before the next step started."""

    code = "cancelled"


class PipelineExecutionError(FuncbaseError):
    """A function invocation failed at a specific step.

    Args:
        idx: Index of the failing step.
        step_name: Name of the failing step, if it has one.
        cause: The error that aborted the step.
    """

    def __init__(self, idx: int, step_name: str | None, cause: FuncbaseError) -> None:
        self.idx = idx
        self.step_name = step_name
        self.cause = cause
        self.code = cause.code
        label = f"'{step_name}' (idx {idx})" if step_name else f"idx {idx}"
        super().__init__(f"Step {label} failed: {cause}")
