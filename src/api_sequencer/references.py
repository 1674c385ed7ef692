"""Rewrites step references between runtime ids and ``step<N>`` form.

Runtime ids only exist for the session that created them, so exported
sequences refer to earlier steps by position instead. Only backward
references are rewritten; a reference to the owning step or a later one is
left untouched. Text outside ``{{...}}`` placeholders is never modified.
"""

import re
from collections.abc import Sequence
from typing import Any

from api_sequencer.models import ParameterSet
from api_sequencer.resolver import STABLE_REF_PATTERN

PLACEHOLDER_REF_PATTERN = re.compile(r"\{\{(\s*)([A-Za-z_][\w-]*)((?:[.\[][^{}]*?)?)(\s*)\}\}")


class ReferenceRewriter:
    """Converts references using the ordered step ids of one sequence."""

    def __init__(self, step_ids: Sequence[str]):
        self.step_ids = list(step_ids)

    def to_stable(self, text: Any, current_index: int) -> Any:
        if not isinstance(text, str):
            return text

        def replace(match: re.Match) -> str:
            ref = match.group(2)
            if ref in self.step_ids:
                position = self.step_ids.index(ref)
                if position < current_index:
                    return _rebuild(match, f"step{position}")
            return match.group(0)

        return PLACEHOLDER_REF_PATTERN.sub(replace, text)

    def to_runtime(self, text: Any, current_index: int) -> Any:
        if not isinstance(text, str):
            return text

        def replace(match: re.Match) -> str:
            stable = STABLE_REF_PATTERN.match(match.group(2))
            if stable:
                position = int(stable.group(1))
                if position < current_index and position < len(self.step_ids):
                    return _rebuild(match, self.step_ids[position])
            return match.group(0)

        return PLACEHOLDER_REF_PATTERN.sub(replace, text)

    def expression_to_stable(self, expression: str, current_index: int) -> str:
        """Same as to_stable for a bare mapping expression without braces."""
        return _unwrapped(self.to_stable(_wrapped(expression), current_index), expression)

    def expression_to_runtime(self, expression: str, current_index: int) -> str:
        return _unwrapped(self.to_runtime(_wrapped(expression), current_index), expression)

    def parameters_to_stable(self, parameters: ParameterSet, current_index: int) -> ParameterSet:
        return _map_parameters(parameters, lambda value: self.to_stable(value, current_index))

    def parameters_to_runtime(self, parameters: ParameterSet, current_index: int) -> ParameterSet:
        return _map_parameters(parameters, lambda value: self.to_runtime(value, current_index))

    def mappings_to_stable(self, mappings: dict[str, str], current_index: int) -> dict[str, str]:
        return {k: self.expression_to_stable(v, current_index) if v else v for k, v in mappings.items()}

    def mappings_to_runtime(self, mappings: dict[str, str], current_index: int) -> dict[str, str]:
        return {k: self.expression_to_runtime(v, current_index) if v else v for k, v in mappings.items()}


def _rebuild(match: re.Match, ref: str) -> str:
    return "{{" + match.group(1) + ref + match.group(3) + match.group(4) + "}}"


def _wrapped(expression: str) -> str:
    if expression.startswith("{{"):
        return expression
    return "{{" + expression + "}}"


def _unwrapped(converted: str, original: str) -> str:
    if original.startswith("{{"):
        return converted
    if converted.startswith("{{") and converted.endswith("}}"):
        return converted[2:-2]
    return converted


def _map_parameters(parameters: ParameterSet, convert) -> ParameterSet:
    return ParameterSet(
        path={k: convert(v) for k, v in parameters.path.items()},
        query={k: convert(v) for k, v in parameters.query.items()},
        body=convert(parameters.body) if parameters.body else parameters.body,
    )
