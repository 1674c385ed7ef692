"""Data models for endpoints, sequence steps and execution results.

The catalog, the sequence runner and the export file all share these models.
Models that travel through the export file use camelCase aliases on the wire.
"""

import random
import re
import string
import time
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")
BODY_METHODS = ("POST", "PUT", "PATCH")

PATH_PARAM_PATTERN = re.compile(r"\{([^}]+)\}")
TEMPLATE_FIELD_PATTERN = re.compile(r"\{([^{}]+)\}")


class WireModel(BaseModel):
    """Base for models serialized into sequence export files."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EndpointDescriptor(BaseModel):
    """A single API endpoint as supplied by the catalog."""

    model_config = ConfigDict(frozen=True)

    method: str  # GET / POST / PUT / PATCH / DELETE / HEAD / OPTIONS
    path: str  # /projects/{project_gid}/tasks
    summary: str = ""
    description: str = ""
    tags: tuple[str, ...] = ()
    operation_id: str = ""
    security: tuple[str, ...] = ()

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        method = value.upper()
        if method not in HTTP_METHODS:
            raise ValueError(f"method must be one of {HTTP_METHODS}, got '{value}'")
        return method

    def path_parameters(self) -> list[str]:
        return PATH_PARAM_PATTERN.findall(self.path)

    @property
    def accepts_body(self) -> bool:
        return self.method in BODY_METHODS

    @property
    def label(self) -> str:
        return f"{self.method} {self.path}"


class ParameterSet(WireModel):
    """Captured path, query and body inputs of a step."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True)

    path: dict[str, str] = {}
    query: dict[str, str | bool] = {}
    body: str | None = None


class IterationConfig(WireModel):
    """Fan a step out over an array produced by an earlier step."""

    enabled: bool = False
    source_expression: str = ""
    loop_variable: str = "item"
    unify_results: bool = True


class ExecutionState(str, Enum):
    NOT_RUN = "not_run"
    RAN = "ran"


class IterationState(str, Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Success(BaseModel):
    status: Literal["success"] = "success"
    http_status: int | None = None
    data: Any = None
    payload: Any = None  # full decoded response body, resolvable by later steps

    @property
    def ok(self) -> bool:
        return True

    @property
    def is_iteration(self) -> bool:
        return isinstance(self.data, IterationSummary)


class Failure(BaseModel):
    status: Literal["failure"] = "failure"
    http_status: int | None = None
    message: str
    kind: str = "StepError"

    @property
    def ok(self) -> bool:
        return False


ExecutionResult = Annotated[Union[Success, Failure], Field(discriminator="status")]


class IterationOutcome(BaseModel):
    """Diagnostics for one element of an iterated step."""

    index: int
    item: Any = None
    state: IterationState = IterationState.PENDING
    result: ExecutionResult | None = None


class IterationSummary(BaseModel):
    total_iterations: int = 0
    succeeded: int = 0
    failed: int = 0
    unified_items: list[Any] = []
    iterations: list[IterationOutcome] = []


def new_step_id() -> str:
    """Runtime correlation id, unique within a session only."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"seq_{int(time.time() * 1000)}_{suffix}"


class SequenceStep(BaseModel):
    """One node of the user's call sequence."""

    id: str = Field(default_factory=new_step_id)
    endpoint: EndpointDescriptor
    parameters: ParameterSet = Field(default_factory=ParameterSet)
    variable_mappings: dict[str, str] = {}
    iteration: IterationConfig = Field(default_factory=IterationConfig)
    execution_state: ExecutionState = ExecutionState.NOT_RUN
    result: ExecutionResult | None = None
    is_imported_placeholder: bool = False

    @property
    def ran(self) -> bool:
        return self.execution_state is ExecutionState.RAN

    @property
    def failed(self) -> bool:
        return self.result is not None and not self.result.ok

    def reset(self) -> None:
        self.execution_state = ExecutionState.NOT_RUN
        self.result = None


class FieldMapping(WireModel):
    source_field: str = ""
    target_field: str = ""


class UnifiedColumn(WireModel):
    name: str = ""
    format_template: str = ""

    @computed_field
    @property
    def source_fields(self) -> list[str]:
        return TEMPLATE_FIELD_PATTERN.findall(self.format_template)


class DataTransformations(WireModel):
    field_mappings: list[FieldMapping] = []
    unified_columns: list[UnifiedColumn] = []

    @property
    def count(self) -> int:
        return len(self.field_mappings) + len(self.unified_columns)
