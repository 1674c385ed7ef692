"""Reshapes the final result of a sequence into flat output records.

Only the last step that ran successfully with non-empty data is used. Each
record is flattened to dotted keys, then field mappings copy values to new
keys and unified columns interpolate ``{field}`` templates.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from api_sequencer.models import (
    FieldMapping,
    SequenceStep,
    TEMPLATE_FIELD_PATTERN,
    UnifiedColumn,
)
from api_sequencer.resolver import stringify

logger = logging.getLogger(__name__)

MAX_DEPTH = 3
OBJECT_MARKER = "[Object]"


def array_marker(value: list) -> str:
    return f"[Array({len(value)})]"


def flatten(obj: Any, prefix: str = "", max_depth: int = MAX_DEPTH, depth: int = 0) -> dict[str, Any]:
    """Flatten nested objects into dotted keys.

    Objects nested deeper than ``max_depth`` collapse to ``[Object]`` and
    arrays collapse to ``[Array(n)]``.
    """
    if not isinstance(obj, Mapping):
        return {prefix or "value": obj}
    if depth >= max_depth:
        return {prefix: OBJECT_MARKER}

    flat: dict[str, Any] = {}
    for key, value in obj.items():
        name = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            flat.update(flatten(value, name, max_depth, depth + 1))
        elif isinstance(value, list):
            flat[name] = array_marker(value)
        else:
            flat[name] = value
    return flat


def step_records(step: SequenceStep) -> list[Any]:
    """Records carried by a step's success data (iteration-aware)."""
    result = step.result
    if result is None or not result.ok:
        return []
    data = result.data.unified_items if result.is_iteration else result.data
    if data is None:
        return []
    if isinstance(data, list):
        return data
    return [data]


def final_step(steps: Sequence[SequenceStep]) -> SequenceStep | None:
    for step in reversed(steps):
        if step.ran and step_records(step):
            return step
    return None


def final_result(steps: Sequence[SequenceStep]) -> list[Any]:
    step = final_step(steps)
    return step_records(step) if step else []


class TransformationEngine:
    """Applies field mappings and unified columns to result records."""

    def apply(
        self,
        final_result: Sequence[Any],
        field_mappings: Sequence[FieldMapping],
        unified_columns: Sequence[UnifiedColumn],
    ) -> list[dict[str, Any]]:
        output = []
        for record in final_result:
            flat = flatten(record)
            transformed: dict[str, Any] = {}

            for mapping in field_mappings:
                if mapping.source_field and mapping.target_field:
                    value = flat.get(mapping.source_field)
                    transformed[mapping.target_field] = "" if value is None else value

            for column in unified_columns:
                if column.name and column.format_template:
                    transformed[column.name] = render_template(column.format_template, flat)

            output.append(transformed)

        logger.debug("Transformed %d records", len(output))
        return output

    def auto_populate(self, final_result: Sequence[Any]) -> list[FieldMapping]:
        """One identity mapping per field of the first record."""
        return [FieldMapping(source_field=f, target_field=f) for f in self._sample_fields(final_result)]

    def available_fields(self, final_result: Sequence[Any]) -> list[str]:
        return sorted(self._sample_fields(final_result))

    def _sample_fields(self, final_result: Sequence[Any]) -> list[str]:
        if not final_result:
            return []
        return list(flatten(final_result[0]))


def render_template(template: str, record: Mapping[str, Any]) -> str:
    return TEMPLATE_FIELD_PATTERN.sub(lambda m: stringify(record.get(m.group(1))), template)


def grid_rows(steps: Sequence[SequenceStep]) -> list[dict[str, Any]]:
    """One flattened row per record of every step that ran successfully."""
    rows = []
    for position, step in enumerate(steps):
        records = step_records(step) if step.ran else []
        for index, record in enumerate(records):
            row = {
                "Step": position + 1,
                "Endpoint": step.endpoint.label,
                "Status": "Success",
                "Records": len(records),
                "Row": index + 1,
            }
            row.update(flatten(record))
            rows.append(row)
    return rows
