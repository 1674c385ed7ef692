"""Turns a step's captured parameters into a concrete request.

Every value goes through one resolve-or-literal rule, in order of precedence:

1. an explicit variable mapping for the parameter (``variable_mappings``),
2. inline ``{{expr}}`` placeholders inside the literal value,
3. the literal value itself.
"""

import json
import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

from api_sequencer.errors import InvalidBodyJSON, MissingRequiredParameter
from api_sequencer.http import RequestDescriptor
from api_sequencer.models import EndpointDescriptor, SequenceStep
from api_sequencer.resolver import (
    PLACEHOLDER_PATTERN,
    VariableResolver,
    has_placeholder,
    stringify,
)

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10
PAGINATION_PARAM = "limit"
PRETTY_PARAM = "opt_pretty"


class ParameterBuilder:
    """Builds RequestDescriptors for sequence steps."""

    def __init__(self, base_url: str, default_limit: int = DEFAULT_LIMIT):
        self.base_url = base_url.rstrip("/")
        self.default_limit = default_limit

    def build(
        self,
        step: SequenceStep,
        resolver: VariableResolver,
        scope: Mapping[str, Any] | None = None,
    ) -> RequestDescriptor:
        endpoint = step.endpoint
        path = endpoint.path
        for name in endpoint.path_parameters():
            value = self._resolve_value(name, step.parameters.path.get(name, ""), step, resolver, scope)
            text = stringify(value).strip()
            if not text:
                raise MissingRequiredParameter(name)
            path = path.replace(f"{{{name}}}", quote(text, safe=""))

        query = self._build_query(step, resolver, scope)

        body = None
        if endpoint.accepts_body and step.parameters.body and step.parameters.body.strip():
            body = self._build_body(step.parameters.body.strip(), resolver, scope)

        return RequestDescriptor(method=endpoint.method, url=f"{self.base_url}{path}", query=query, body=body)

    def _resolve_value(self, name, literal, step, resolver, scope) -> Any:
        expression = step.variable_mappings.get(name)
        if expression:
            return resolver.resolve(expression, scope)
        if has_placeholder(literal):
            return resolver.interpolate(literal, scope)
        return literal

    def _build_query(self, step, resolver, scope) -> dict[str, str]:
        query: dict[str, str] = {}
        names = list(step.parameters.query)
        names += [n for n in step.variable_mappings if n not in names and n not in step.endpoint.path_parameters()]

        for name in names:
            literal = step.parameters.query.get(name, "")
            if isinstance(literal, bool) and not step.variable_mappings.get(name):
                if literal:
                    query[name] = "true"
                continue
            value = self._resolve_value(name, literal, step, resolver, scope)
            if value is None or value is False or value == "":
                continue
            if value is True:
                query[name] = "true"
            else:
                query[name] = stringify(value)

        if PAGINATION_PARAM not in query:
            query[PAGINATION_PARAM] = str(self.default_limit)
        query[PRETTY_PARAM] = "true"
        return query

    def _build_body(self, raw: str, resolver, scope) -> str:
        if not has_placeholder(raw):
            return _validated(raw)

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            # unquoted placeholders, e.g. {"limit": {{step0.data.count}}}
            return _validated(_substitute_text(raw, resolver, scope))

        return json.dumps(_substitute(parsed, resolver, scope))


def _validated(text: str) -> str:
    try:
        json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidBodyJSON(str(e)) from e
    return text


def _substitute(value: Any, resolver: VariableResolver, scope) -> Any:
    """Replace placeholders inside the string leaves of a parsed body."""
    if isinstance(value, dict):
        return {key: _substitute(item, resolver, scope) for key, item in value.items()}
    if isinstance(value, list):
        return [_substitute(item, resolver, scope) for item in value]
    if has_placeholder(value):
        return resolver.interpolate(value, scope)
    return value


def _substitute_text(raw: str, resolver: VariableResolver, scope) -> str:
    """Substitute placeholders into body text that is not yet valid JSON.

    Inside a string literal a value is inserted as escaped text; elsewhere it
    is inserted as a JSON value.
    """
    parts = []
    in_string = escaped = False
    pos = 0
    for match in PLACEHOLDER_PATTERN.finditer(raw):
        before = raw[pos:match.start()]
        in_string, escaped = _scan_string_state(before, in_string, escaped)
        value = resolver.resolve(match.group(1), scope)
        parts += [before, json.dumps(stringify(value))[1:-1] if in_string else json.dumps(value)]
        pos = match.end()
    parts.append(raw[pos:])
    return "".join(parts)


def _scan_string_state(text: str, in_string: bool, escaped: bool) -> tuple[bool, bool]:
    for char in text:
        if escaped:
            escaped = False
        elif in_string and char == "\\":
            escaped = True
        elif char == '"':
            in_string = not in_string
    return in_string, escaped


PRESETS = ("minimal", "detailed", "full")

_PRESET_LIMITS = {"minimal": "10", "detailed": "20", "full": "50"}

# (path fragment, minimal, detailed, full) opt_fields, first match wins
_PRESET_FIELDS = [
    (
        "/tasks",
        "gid,name,completed",
        "gid,name,completed,assignee.name,due_date,created_at",
        "gid,name,completed,assignee,due_date,notes,created_at,modified_at,projects.name,tags.name",
    ),
    (
        "/projects",
        "gid,name,completed",
        "gid,name,completed,team.name,created_at,modified_at",
        "gid,name,completed,notes,team,members.name,created_at,modified_at,archived,color",
    ),
    (
        "/workspaces",
        "gid,name",
        "gid,name,is_organization",
        "gid,name,is_organization,email_domains",
    ),
    (
        "/users",
        "gid,name",
        "gid,name,created_at,modified_at",
        "gid,name,email,photo.image_128x128,workspaces.name",
    ),
]

_DEFAULT_FIELDS = ("gid,name", "gid,name,created_at,modified_at", "gid,name,created_at,modified_at")


def preset_parameters(path: str, preset: str) -> dict[str, str]:
    """Query parameters (``limit`` and ``opt_fields``) for a named preset."""
    if preset not in PRESETS:
        raise ValueError(f"Unknown preset '{preset}', expected one of: {', '.join(PRESETS)}")

    path = path.lower()
    fields = _DEFAULT_FIELDS
    for fragment, *candidates in _PRESET_FIELDS:
        if fragment in path:
            fields = tuple(candidates)
            break
    return {PAGINATION_PARAM: _PRESET_LIMITS[preset], "opt_fields": fields[PRESETS.index(preset)]}


def sample_body(endpoint: EndpointDescriptor) -> str:
    """A starting JSON body for an endpoint that accepts one."""
    path = endpoint.path.lower()
    if endpoint.method == "POST" and "/task" in path:
        data = {"name": "New task name", "notes": "Task description", "projects": ["project_gid_here"]}
    elif endpoint.method == "POST" and "/project" in path:
        data = {"name": "New project name", "notes": "Project description", "team": "team_gid_here"}
    else:
        data = {"name": "Example name", "notes": "Example description"}
    return json.dumps({"data": data}, indent=2)
