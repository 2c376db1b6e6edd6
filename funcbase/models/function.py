"""Function definition models.

Covers the stored ``_function`` table and the wire schemas used to author a
function: steps, value bindings and filter predicates. Bindings are a tagged
union decided once when a definition is parsed; the engine never looks at
``"$..."`` strings again after that.
"""

import enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator
from sqlmodel import JSON, Column, SQLModel
from sqlmodel import Field as SQLField

USER_ID_TOKEN = "$user.id"
INPUT_TOKEN = "$input"
RESERVED_FUNCTION_NAMES = frozenset({"function", "table"})
FUNCTION_NAME_PATTERN = r"^[A-Za-z_][A-Za-z0-9_]*$"


class StepAction(str, enum.Enum):
    """CRUD action performed by a single step."""

    INSERT = "insert"
    UPDATE = "update"
    FETCH = "fetch"
    DELETE = "delete"


class TypeHint(str, enum.Enum):
    """Declared type of a literal binding."""

    STRING = "string"
    NUMBER = "number"


class FilterOperator(str, enum.Enum):
    """Comparison operators understood by filter predicates."""

    EQ = "="
    NE = "!="
    LT = "<"
    GT = ">"
    LE = "<="
    GE = ">="
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    CONTAINS = "contains"


type Scalar = str | int | float | bool | None


class LiteralBinding(BaseModel):
    """A constant written into the definition."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["literal"] = "literal"
    value: Scalar
    type: TypeHint | None = None


class CallerSupplied(BaseModel):
    """A value taken from the caller's request payload.

    ``key`` defaults to the destination column name.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["input"] = "input"
    key: str | None = None


class UserIdentityToken(BaseModel):
    """The authenticated caller's identifier."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["user_id"] = "user_id"


class StepResultReference(BaseModel):
    """The primary key produced by an earlier single-row insert step."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["step"] = "step"
    step: str = Field(min_length=1)


def parse_binding_shorthand(value: Any) -> Any:
    """Turn the string shorthand of a binding into its tagged form.

    ``"$user.id"`` is the caller's id, ``"$input"`` a caller-supplied value,
    ``"$<name>"`` the result of step ``name``; any other scalar is a literal.
    Tagged mappings and model instances pass through untouched.
    """
    if isinstance(value, dict | BaseModel):
        return value
    if isinstance(value, str) and value.startswith("$") and len(value) > 1:
        if value == USER_ID_TOKEN:
            return {"kind": "user_id"}
        if value == INPUT_TOKEN:
            return {"kind": "input"}
        return {"kind": "step", "step": value[1:]}
    if isinstance(value, int | float) and not isinstance(value, bool):
        return {"kind": "literal", "value": value, "type": TypeHint.NUMBER}
    return {"kind": "literal", "value": value}


ValueBinding = Annotated[
    LiteralBinding | CallerSupplied | UserIdentityToken | StepResultReference,
    Field(discriminator="kind"),
    BeforeValidator(parse_binding_shorthand),
]


class FilterPredicate(BaseModel):
    """``column OP value`` condition used by fetch, update and delete steps."""

    model_config = ConfigDict(frozen=True)

    column: str = Field(min_length=1)
    operator: FilterOperator = FilterOperator.EQ
    value: ValueBinding


class FunctionStep(BaseModel):
    """One CRUD action within a function, as authored.

    Structural rules (index ordering, references, per-action fields) are not
    checked here; see :func:`funcbase.services.pipeline.resolver.validate`.
    """

    idx: int
    name: str | None = Field(default=None, min_length=1, max_length=100)
    table: str = Field(min_length=1)
    action: StepAction
    multiple: bool = False
    columns: list[str] = Field(default_factory=list)
    values: dict[str, ValueBinding] = Field(default_factory=dict)
    filters: list[FilterPredicate] = Field(default_factory=list)
    sort: str | None = None
    page: int | None = Field(default=None, ge=1)
    page_size: int | None = Field(default=None, ge=1)


class FunctionDefinition(BaseModel):
    """A named, ordered set of steps exposed as one callable endpoint."""

    name: str = Field(min_length=1, max_length=100, pattern=FUNCTION_NAME_PATTERN)
    functions: list[FunctionStep] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def name_not_reserved(cls, value: str) -> str:
        if value.lower() in RESERVED_FUNCTION_NAMES:
            raise ValueError(f"'{value}' is a reserved name")
        return value


class FunctionUpdate(BaseModel):
    """Full replacement of a function's steps."""

    functions: list[FunctionStep] = Field(default_factory=list)


class FunctionSummary(BaseModel):
    """Entry of the function listing."""

    name: str


class FunctionCall(BaseModel):
    """Body of a function invocation."""

    data: dict[str, Any] = Field(default_factory=dict)


class FunctionStored(SQLModel, table=True):
    """Stored function definition.

    Args:
        name: Unique function name (primary key).
        steps: Steps serialized in their tagged JSON form.
    """

    __tablename__ = "_function"

    name: str = SQLField(primary_key=True, min_length=1, max_length=100)
    steps: list[dict[str, Any]] = SQLField(default_factory=list, sa_column=Column(JSON))

    def to_definition(self) -> FunctionDefinition:
        """Parse the stored steps back into a definition."""
        return FunctionDefinition(name=self.name, functions=self.steps)  # type: ignore[arg-type]


def dump_steps(steps: list[FunctionStep]) -> list[dict[str, Any]]:
    """Serialize steps to the tagged JSON form stored in the database."""
    return [step.model_dump(mode="json") for step in steps]
