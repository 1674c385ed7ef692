"""Plain-text and CSV renderings of sequence results."""

import csv
import io
import json
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from api_sequencer.models import SequenceStep
from api_sequencer.transform import step_records

SEPARATOR = "=" * 47
PREVIEW_ITEMS = 3


def _cell(value: Any) -> Any:
    if isinstance(value, dict):
        return value.get("name") or value.get("gid") or json.dumps(value)
    if isinstance(value, list):
        return json.dumps(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return "" if value is None else value


def to_csv(rows: Sequence[dict[str, Any]]) -> str:
    """Render rows as CSV with the union of their keys as the header.

    Nested objects are reduced to their ``name``, then ``gid``, then JSON.
    """
    if not rows:
        return ""

    headers: list[str] = []
    for row in rows:
        for key in row:
            if key not in headers:
                headers.append(key)

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_cell(row.get(header)) for header in headers])
    return buffer.getvalue()


def _raw_json(step: SequenceStep) -> str:
    if step.result is None:
        return "null"
    payload = step.result.payload if step.result.ok else step.result.model_dump()
    return json.dumps(payload, indent=2, default=str)


def format_step(step: SequenceStep, position: int) -> str:
    """Detailed text block for one executed step."""
    lines = [
        f"Step {position + 1}: {step.endpoint.label}",
        f"Summary: {step.endpoint.summary}",
        f"Timestamp: {datetime.now(timezone.utc).isoformat()}",
        f"Status: {'Error' if step.failed else 'Success'}",
        "",
    ]
    lines += _result_lines(step)
    lines += ["--- Raw JSON ---", _raw_json(step)]
    return "\n".join(lines)


def _result_lines(step: SequenceStep) -> list[str]:
    result = step.result
    if result is None:
        return []
    if not result.ok:
        return [f"Error: {result.message}", ""]

    lines = []
    if isinstance(result.data, list) or result.is_iteration:
        records = step_records(step)
        lines += [f"Results: {len(records)} items", ""]
        for index, record in enumerate(records):
            lines.append(f"Item {index + 1}:")
            lines += _item_lines(record)
            lines.append("")
    elif isinstance(result.data, dict):
        lines.append("Result:")
        lines += _item_lines(result.data)
        for key, value in result.data.items():
            if key in ("gid", "name") or value is None:
                continue
            lines.append(f"  {key}: {json.dumps(value) if isinstance(value, (dict, list)) else value}")
        lines.append("")
    return lines


def _item_lines(record: Any) -> list[str]:
    if not isinstance(record, dict):
        return [f"  Value: {record}"]
    lines = [
        f"  GID: {record.get('gid') or 'N/A'}",
        f"  Name: {record.get('name') or 'N/A'}",
    ]
    if "completed" in record:
        lines.append(f"  Completed: {record['completed']}")
    if record.get("due_date"):
        lines.append(f"  Due Date: {record['due_date']}")
    assignee = record.get("assignee")
    if isinstance(assignee, dict) and assignee.get("name"):
        lines.append(f"  Assignee: {assignee['name']}")
    return lines


def format_results(steps: Sequence[SequenceStep]) -> str:
    """Summary of every executed step with a short preview of its records."""
    executed = [(position, step) for position, step in enumerate(steps) if step.ran]
    parts = [
        "API Sequence Results",
        f"Generated: {datetime.now(timezone.utc).isoformat()}",
        f"Total Steps: {len(steps)}",
        f"Executed Steps: {len(executed)}",
        "",
        SEPARATOR,
        "",
    ]

    for position, step in executed:
        parts += [
            f"Step {position + 1}: {step.endpoint.label}",
            f"Summary: {step.endpoint.summary}",
            f"Status: {'ERROR' if step.failed else 'SUCCESS'}",
            "",
        ]
        if step.failed:
            parts += [f"Error: {step.result.message}", ""]
        else:
            parts += _preview(step)
            parts.append("")
        parts += ["--- Raw JSON ---", _raw_json(step), "", SEPARATOR, ""]

    return "\n".join(parts)


def _preview(step: SequenceStep) -> list[str]:
    data = step.result.data
    if isinstance(data, list) or step.result.is_iteration:
        records = step_records(step)
        lines = [f"Results: {len(records)} items"]
        for index, record in enumerate(records[:PREVIEW_ITEMS]):
            lines.append(f"  {index + 1}. {_display_name(record)}")
        if len(records) > PREVIEW_ITEMS:
            lines.append(f"  ... and {len(records) - PREVIEW_ITEMS} more items")
        return lines
    if data is not None:
        return [f"Result: {_display_name(data, default='Single item')}"]
    return []


def _display_name(record: Any, default: str = "Unnamed") -> str:
    if isinstance(record, dict):
        return str(record.get("name") or record.get("gid") or default)
    return str(record)
