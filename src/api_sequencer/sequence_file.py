"""Export and import of sequences as JSON documents.

Exported steps refer to earlier steps as ``step<N>`` so the file can be
replayed in a fresh session. Import rebuilds runtime ids step by step,
tolerating entries whose endpoint is unknown (placeholder steps) and
skipping entries that fail validation.
"""

import json
import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

from api_sequencer.errors import SequenceFileError
from api_sequencer.models import (
    DataTransformations,
    EndpointDescriptor,
    IterationConfig,
    ParameterSet,
    WireModel,
)
from api_sequencer.references import ReferenceRewriter
from api_sequencer.session import Session

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0"


class SequenceEntry(WireModel):
    method: str
    path: str
    summary: str = ""
    description: str = ""
    tags: list[str] = []
    parameters: ParameterSet = ParameterSet()
    variable_mappings: dict[str, str] = {}
    iteration: IterationConfig | None = None


class SequenceDocument(WireModel):
    version: str = FORMAT_VERSION
    name: str = ""
    description: str = ""
    sequence: list[SequenceEntry] = []
    data_transformations: DataTransformations = DataTransformations()
    timestamp: str = ""
    base_url: str = ""


class ImportReport(BaseModel):
    loaded: int = 0
    skipped: int = 0
    placeholders: int = 0
    transformations: int = 0

    def summary(self) -> str:
        if self.skipped:
            message = f"Loaded {self.loaded} endpoints ({self.skipped} skipped due to errors)"
        else:
            message = f"Successfully loaded {self.loaded} endpoints"
        if self.transformations:
            plural = "s" if self.transformations != 1 else ""
            message += f" and {self.transformations} transformation setting{plural}"
        return message


def export_sequence(session: Session, name: str | None = None) -> SequenceDocument:
    rewriter = ReferenceRewriter(session.step_ids)
    entries = []
    for index, step in enumerate(session.steps):
        endpoint = step.endpoint
        entries.append(SequenceEntry(
            method=endpoint.method,
            path=endpoint.path,
            summary=endpoint.summary,
            description=endpoint.description,
            tags=list(endpoint.tags),
            parameters=rewriter.parameters_to_stable(step.parameters, index),
            variable_mappings=rewriter.mappings_to_stable(step.variable_mappings, index),
            iteration=_iteration_to_stable(step.iteration, rewriter, index),
        ))

    return SequenceDocument(
        name=name or f"API Sequence - {date.today().isoformat()}",
        description=f"API sequence with {len(session.steps)} endpoints",
        sequence=entries,
        data_transformations=session.transformations.model_copy(deep=True),
        timestamp=datetime.now(timezone.utc).isoformat(),
        base_url=session.base_url,
    )


def _iteration_to_stable(iteration: IterationConfig, rewriter: ReferenceRewriter, index: int) -> IterationConfig | None:
    if not iteration.enabled:
        return None
    return iteration.model_copy(update={
        "source_expression": rewriter.expression_to_stable(iteration.source_expression, index),
    })


def dump_document(document: SequenceDocument) -> str:
    return document.model_dump_json(by_alias=True, indent=2)


def save_sequence(session: Session, path: Path, name: str | None = None) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_document(export_sequence(session, name)), encoding="utf-8")


def import_sequence(session: Session, data: Any, catalog: list[EndpointDescriptor]) -> ImportReport:
    """Replace the session's sequence with the steps of an export document."""
    if not isinstance(data, dict) or not isinstance(data.get("sequence"), list):
        raise SequenceFileError("Invalid sequence format: missing or invalid sequence array")

    session.clear()
    report = ImportReport()
    known = {(ep.method, ep.path): ep for ep in catalog}

    for index, raw in enumerate(data["sequence"]):
        try:
            entry = SequenceEntry.model_validate(raw)
            endpoint = known.get((entry.method.upper(), entry.path))
            placeholder = endpoint is None
            if placeholder:
                endpoint = EndpointDescriptor(
                    method=entry.method,
                    path=entry.path,
                    summary=entry.summary or "Imported endpoint",
                    description=entry.description or "This endpoint was imported but not found in the current catalog",
                    tags=entry.tags or ["imported"],
                    operation_id=f"imported_{index}",
                    security=["oauth2"],
                )
        except (ValidationError, AttributeError, TypeError) as e:
            logger.warning("Skipping invalid sequence item %d: %s", index, e)
            report.skipped += 1
            continue

        step = session.add_step(endpoint, is_imported_placeholder=placeholder)
        position = len(session.steps) - 1
        rewriter = ReferenceRewriter(session.step_ids)
        step.parameters = rewriter.parameters_to_runtime(entry.parameters, position)
        step.variable_mappings = rewriter.mappings_to_runtime(entry.variable_mappings, position)
        if entry.iteration:
            step.iteration = entry.iteration.model_copy(update={
                "source_expression": rewriter.expression_to_runtime(entry.iteration.source_expression, position),
            })

        report.loaded += 1
        if placeholder:
            report.placeholders += 1

    transformations = data.get("dataTransformations") or data.get("data_transformations")
    if transformations:
        try:
            session.transformations = DataTransformations.model_validate(transformations)
        except ValidationError as e:
            logger.warning("Ignoring invalid transformation settings: %s", e)
        else:
            report.transformations = session.transformations.count

    logger.info(report.summary())
    return report


def load_sequence(session: Session, path: Path, catalog: list[EndpointDescriptor]) -> ImportReport:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise SequenceFileError(f"Invalid JSON file format: {e}") from e
    return import_sequence(session, data, catalog)


def sample_document() -> dict:
    """A two-step workspace -> projects flow in export format."""
    return {
        "version": FORMAT_VERSION,
        "name": "Sample Workspace -> Projects Flow",
        "description": "Demonstrates workspace to projects API workflow pattern",
        "sequence": [
            {
                "method": "GET",
                "path": "/workspaces",
                "summary": "Get available workspaces",
                "description": "Retrieves all workspaces accessible to the authenticated user",
                "tags": ["workspaces"],
                "parameters": {
                    "path": {},
                    "query": {"limit": "10", "opt_fields": "gid,name,is_organization"},
                    "body": None,
                },
                "variableMappings": {},
            },
            {
                "method": "GET",
                "path": "/projects",
                "summary": "Get projects in workspace",
                "description": "Retrieves projects from the first workspace",
                "tags": ["projects"],
                "parameters": {
                    "path": {},
                    "query": {
                        "limit": "5",
                        "opt_fields": "gid,name,completed,archived",
                        "workspace": "{{step0.data[0].gid}}",
                    },
                    "body": None,
                },
                "variableMappings": {},
            },
        ],
        "dataTransformations": {"fieldMappings": [], "unifiedColumns": []},
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "baseUrl": "https://app.asana.com/api/1.0",
    }
