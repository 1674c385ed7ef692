"""Runtime session: the ordered sequence, its result store and transformations."""

import logging
from typing import Any

from api_sequencer.errors import StepNotFound
from api_sequencer.models import (
    DataTransformations,
    EndpointDescriptor,
    IterationConfig,
    ParameterSet,
    SequenceStep,
)
from api_sequencer.params import preset_parameters
from api_sequencer.resolver import VariableResolver

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://app.asana.com/api/1.0"


class Session:
    """Owns everything a sequence run reads and writes.

    ``results`` maps runtime step ids to the decoded response bodies of steps
    that succeeded; it is what variable expressions resolve against.
    """

    def __init__(self, base_url: str = DEFAULT_BASE_URL, token: str = ""):
        self.base_url = base_url
        self.token = token
        self.steps: list[SequenceStep] = []
        self.results: dict[str, Any] = {}
        self.transformations = DataTransformations()

    @property
    def step_ids(self) -> list[str]:
        return [step.id for step in self.steps]

    def resolver(self) -> VariableResolver:
        return VariableResolver(self.results, self.step_ids)

    def add_step(
        self,
        endpoint: EndpointDescriptor,
        parameters: ParameterSet | None = None,
        variable_mappings: dict[str, str] | None = None,
        iteration: IterationConfig | None = None,
        is_imported_placeholder: bool = False,
    ) -> SequenceStep:
        step = SequenceStep(
            endpoint=endpoint,
            parameters=parameters or ParameterSet(),
            variable_mappings=variable_mappings or {},
            iteration=iteration or IterationConfig(),
            is_imported_placeholder=is_imported_placeholder,
        )
        self.steps.append(step)
        logger.debug("Added step %d: %s (%s)", len(self.steps), endpoint.label, step.id)
        return step

    def get_step(self, step_id: str) -> SequenceStep:
        for step in self.steps:
            if step.id == step_id:
                return step
        raise StepNotFound(step_id)

    def position(self, step_id: str) -> int:
        for index, step in enumerate(self.steps):
            if step.id == step_id:
                return index
        raise StepNotFound(step_id)

    def remove_step(self, step_id: str) -> None:
        step = self.get_step(step_id)
        self.steps.remove(step)
        self.results.pop(step_id, None)

    def clear(self) -> None:
        self.steps = []
        self.results.clear()
        self.transformations = DataTransformations()

    def update_parameter(self, step_id: str, kind: str, name: str, value: Any) -> None:
        """Edit one captured parameter; blank query values are dropped."""
        step = self.get_step(step_id)
        if kind == "path":
            step.parameters.path[name] = value
        elif kind == "query":
            if isinstance(value, str) and not value.strip():
                step.parameters.query.pop(name, None)
            else:
                step.parameters.query[name] = value.strip() if isinstance(value, str) else value
        elif kind == "body":
            step.parameters.body = value
        else:
            raise ValueError(f"Unknown parameter kind: {kind}")

    def apply_preset(self, step_id: str, preset: str) -> None:
        """Overwrite the step's ``limit`` and ``opt_fields`` with a named preset."""
        step = self.get_step(step_id)
        step.parameters.query.update(preset_parameters(step.endpoint.path, preset))
        logger.debug("Applied %s preset to %s", preset, step_id)

    def map_variable(self, step_id: str, name: str, expression: str) -> None:
        """Bind a parameter to a variable expression; empty clears the binding."""
        step = self.get_step(step_id)
        if expression:
            step.variable_mappings[name] = expression
        else:
            step.variable_mappings.pop(name, None)

    def executed_steps(self) -> list[SequenceStep]:
        return [step for step in self.steps if step.ran]
