"""Variable resolution against the results of earlier steps.

An expression names a step and walks into its stored response body:

    seq_1718000000000_ab12cd34e.data[0].gid
    step0.data[0].workspace.gid

The step part may be a runtime correlation id or a positional ``step<N>``
reference; both are understood without rewriting. Walking past a missing
key, a null value, an out-of-range index or a value of the wrong shape yields
``None``, which callers treat as "parameter omitted". Only a step part that
cannot be mapped to a stored result raises UnknownStepReference.
"""

import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any

from api_sequencer.errors import UnknownStepReference

logger = logging.getLogger(__name__)

STABLE_REF_PATTERN = re.compile(r"^step(\d+)$")
PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")
SEGMENT_PATTERN = re.compile(r"^([^\[\]]*)((?:\[\d+\])*)$")
INDEX_PATTERN = re.compile(r"\[(\d+)\]")


def split_expression(expression: str) -> tuple[str, str]:
    """Split ``ref.path`` into ``("ref", "path")``; path may be empty."""
    expression = expression.strip()
    ref, _, path = expression.partition(".")
    # step0[1] style: index directly on the step ref
    if "[" in ref:
        head, bracket, rest = ref.partition("[")
        ref, path = head, bracket + rest + ("." + path if path else "")
    return ref, path


def walk(value: Any, path: str) -> Any:
    """Walk a dotted/indexed path through decoded JSON."""
    if not path:
        return value
    for segment in path.split("."):
        match = SEGMENT_PATTERN.match(segment)
        if not match:
            return None
        name, indexes = match.groups()
        if name:
            if not isinstance(value, Mapping):
                return None
            value = value.get(name)
            if value is None:
                return None
        for index in INDEX_PATTERN.findall(indexes):
            if not isinstance(value, list):
                return None
            position = int(index)
            if position >= len(value):
                return None
            value = value[position]
            if value is None:
                return None
    return value


def stringify(value: Any) -> str:
    """Text form of a resolved value for URL and template substitution."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class VariableResolver:
    """Resolves variable expressions against a shared result store.

    ``store`` maps runtime step ids to the response bodies of steps that
    succeeded. ``step_ids`` is the ordered list of step ids in the sequence,
    used to map ``step<N>`` to a runtime id.
    """

    def __init__(self, store: Mapping[str, Any], step_ids: Sequence[str] = ()):
        self.store = store
        self.step_ids = step_ids

    def runtime_id(self, ref: str) -> str | None:
        """Map a step reference of either form to a runtime id."""
        if ref in self.store or ref in self.step_ids:
            return ref
        match = STABLE_REF_PATTERN.match(ref)
        if match:
            position = int(match.group(1))
            if position < len(self.step_ids):
                return self.step_ids[position]
        return None

    def position_of(self, ref: str) -> int | None:
        step_id = self.runtime_id(ref)
        if step_id is None or step_id not in self.step_ids:
            return None
        return list(self.step_ids).index(step_id)

    def resolve(self, expression: str, scope: Mapping[str, Any] | None = None) -> Any:
        ref, path = split_expression(expression)
        if scope and ref in scope:
            value = walk(scope[ref], path)
            logger.debug("Resolved %s from local scope -> %r", expression, value)
            return value

        step_id = self.runtime_id(ref)
        if step_id is None or step_id not in self.store:
            raise UnknownStepReference(ref)

        value = walk(self.store[step_id], path)
        logger.debug("Resolved %s -> %r", expression, value)
        return value

    def interpolate(self, text: str, scope: Mapping[str, Any] | None = None) -> Any:
        """Substitute every ``{{expr}}`` placeholder in ``text``.

        A text that is exactly one placeholder yields the raw resolved value
        (which may be ``None`` or structured); otherwise each placeholder is
        replaced by its text form and a string is returned.
        """
        whole = PLACEHOLDER_PATTERN.fullmatch(text.strip())
        if whole:
            return self.resolve(whole.group(1), scope)
        return PLACEHOLDER_PATTERN.sub(lambda m: stringify(self.resolve(m.group(1), scope)), text)


def has_placeholder(value: Any) -> bool:
    return isinstance(value, str) and PLACEHOLDER_PATTERN.search(value) is not None


def available_variables(steps: Sequence[Any], before_index: int) -> list[dict[str, Any]]:
    """Suggest commonly useful expressions from steps that already ran.

    Only steps strictly before ``before_index`` with a stored success payload
    are considered.
    """
    variables = []
    for position, step in enumerate(steps[:before_index]):
        result = step.result
        if result is None or not result.ok or not isinstance(result.payload, Mapping):
            continue
        data = result.payload.get("data")
        if isinstance(data, list):
            first = data[0] if data and isinstance(data[0], Mapping) else {}
            for field in ("gid", "name"):
                variables.append({
                    "path": f"{step.id}.data[0].{field}",
                    "description": f"First item {field} from step {position + 1}",
                    "example": first.get(field),
                })
        elif isinstance(data, Mapping):
            for field in ("gid", "name"):
                variables.append({
                    "path": f"{step.id}.data.{field}",
                    "description": f"{field} from step {position + 1}",
                    "example": data.get(field),
                })
    return variables
