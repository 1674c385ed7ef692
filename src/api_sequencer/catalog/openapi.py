"""OpenAPI / Swagger document parser.

Best-effort extraction of EndpointDescriptors from OpenAPI 3.x and Swagger
2.0 documents. Operations that cannot be read are skipped.
"""

import logging

import yaml
from pydantic import ValidationError

from api_sequencer.errors import CatalogError
from api_sequencer.models import HTTP_METHODS, EndpointDescriptor

logger = logging.getLogger(__name__)


def parse_openapi(text: str) -> list[EndpointDescriptor]:
    """Parse OpenAPI/Swagger YAML or JSON text into a list of EndpointDescriptor."""
    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise CatalogError(f"Cannot parse API document: {e}") from e
    if not isinstance(doc, dict):
        raise CatalogError("API document is not a mapping")

    endpoints = []
    paths = doc.get("paths") or {}
    global_security = _security_names(doc.get("security"))

    for path, methods in paths.items():
        if not isinstance(methods, dict):
            continue
        for method, operation in methods.items():
            if not isinstance(method, str) or method.upper() not in HTTP_METHODS or not isinstance(operation, dict):
                continue

            try:
                endpoint = EndpointDescriptor(
                    method=method.upper(),
                    path=path,
                    summary=operation.get("summary") or "",
                    description=_one_line(str(operation.get("description") or "")),
                    tags=operation.get("tags") or (),
                    operation_id=operation.get("operationId") or "",
                    security=_security_names(operation.get("security")) or global_security,
                )
            except ValidationError as e:
                logger.warning("Skipping %s %s: %s", method.upper(), path, e)
                continue
            endpoints.append(endpoint)

    logger.debug("Parsed %d endpoints from API document", len(endpoints))
    return endpoints


def _security_names(requirements) -> tuple[str, ...]:
    if not isinstance(requirements, list):
        return ()
    names = []
    for requirement in requirements:
        if isinstance(requirement, dict):
            names.extend(str(name) for name in requirement)
    return tuple(names)


def _one_line(text: str) -> str:
    return " ".join(text.split())
