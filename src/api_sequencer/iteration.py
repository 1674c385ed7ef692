"""Fans a single step out into one call per element of an earlier result.

Elements are processed one after another, in source order. A failed element
is recorded and the loop moves on; the step as a whole only fails when the
source array itself cannot be resolved.
"""

import logging
import re
from typing import Any

from api_sequencer.errors import (
    InvalidIterationConfig,
    IterationSourceNotArray,
    StepError,
    UnknownStepReference,
)
from api_sequencer.http import HttpClient
from api_sequencer.models import (
    Failure,
    IterationOutcome,
    IterationState,
    IterationSummary,
    SequenceStep,
    Success,
)
from api_sequencer.params import ParameterBuilder
from api_sequencer.resolver import STABLE_REF_PATTERN, VariableResolver, split_expression

logger = logging.getLogger(__name__)

DEFAULT_LOOP_VARIABLE = "item"
LOOP_VARIABLE_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def failure_from(error: StepError) -> Failure:
    return Failure(http_status=error.status, message=error.message, kind=error.kind)


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, dict):
        return "an object"
    return f"a {type(value).__name__}"


class IterationEngine:
    """Runs iterated steps through the parameter builder and HTTP client."""

    def __init__(self, builder: ParameterBuilder, client: HttpClient):
        self.builder = builder
        self.client = client

    def run(self, step: SequenceStep, resolver: VariableResolver, position: int) -> Success | Failure:
        config = step.iteration
        loop_variable = config.loop_variable.strip() or DEFAULT_LOOP_VARIABLE

        try:
            self._check_loop_variable(loop_variable, resolver)
            source = self._resolve_source(config.source_expression, resolver, position)
        except StepError as e:
            logger.error("Iteration for %s not started: %s", step.endpoint.label, e.message)
            return failure_from(e)

        summary = IterationSummary(total_iterations=len(source))
        logger.info("Iterating %s over %d items as '%s'", step.endpoint.label, len(source), loop_variable)

        last_status = None
        for index, item in enumerate(source):
            outcome = IterationOutcome(index=index, item=item)
            summary.iterations.append(outcome)
            scope = {loop_variable: item, f"{loop_variable}_index": index}

            outcome.state = IterationState.EXECUTING
            try:
                request = self.builder.build(step, resolver, scope)
                result = self.client.execute(request)
            except StepError as e:
                logger.warning("Iteration %d/%d failed: %s", index + 1, len(source), e.message)
                outcome.result = failure_from(e)
                outcome.state = IterationState.FAILED
                summary.failed += 1
                continue

            outcome.result = result
            outcome.state = IterationState.SUCCEEDED
            summary.succeeded += 1
            last_status = result.http_status

        summary.unified_items = unify(summary.iterations, config.unify_results)
        logger.info(
            "Iteration finished: %d succeeded, %d failed, %d unified items",
            summary.succeeded, summary.failed, len(summary.unified_items),
        )
        payload = {
            "data": summary.unified_items,
            "total_iterations": summary.total_iterations,
            "succeeded": summary.succeeded,
            "failed": summary.failed,
        }
        return Success(http_status=last_status, data=summary, payload=payload)

    def _check_loop_variable(self, name: str, resolver: VariableResolver) -> None:
        if not LOOP_VARIABLE_PATTERN.match(name):
            raise InvalidIterationConfig(f"Loop variable '{name}' is not a valid name")
        if STABLE_REF_PATTERN.match(name) or name in resolver.step_ids:
            raise InvalidIterationConfig(f"Loop variable '{name}' collides with a step reference")

    def _resolve_source(self, expression: str, resolver: VariableResolver, position: int) -> list:
        expression = expression.strip()
        if expression.startswith("{{") and expression.endswith("}}"):
            expression = expression[2:-2].strip()
        if not expression:
            raise InvalidIterationConfig("Iteration source expression is empty")

        ref, _ = split_expression(expression)
        source_position = resolver.position_of(ref)
        if source_position is not None and source_position >= position:
            raise UnknownStepReference(ref, "iteration source must be an earlier step")

        value = resolver.resolve(expression)
        if not isinstance(value, list):
            raise IterationSourceNotArray(expression, _type_name(value))
        return value


def unify(iterations: list[IterationOutcome], flatten: bool) -> list[Any]:
    """Fold the data of succeeded iterations into one list, in order."""
    items: list[Any] = []
    for outcome in iterations:
        if outcome.state is not IterationState.SUCCEEDED:
            continue
        data = outcome.result.data
        if not flatten:
            items.append(data)
        elif isinstance(data, list):
            items.extend(data)
        elif data is not None:
            items.append(data)
    return items
