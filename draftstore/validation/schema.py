"""
draftstore/validation/schema.py -- Structural validation with JSON Schema.

Checks required fields, primitive types, the phase enum and a few
enums/ranges using ``jsonschema`` (Draft 2020-12).  Every schema error
is a blocker; a draft that fails here cannot be exported.
"""

from __future__ import annotations

import logging

from jsonschema import Draft202012Validator

from draftstore.kinds import EntityKind
from draftstore.models.schemas import SCHEMAS
from draftstore.validation.issues import ValidatorOutcome, blocker

logger = logging.getLogger(__name__)


class SchemaValidator:
    """Validate a draft against its kind's JSON Schema."""

    name = "schema"

    def __init__(self, kind: EntityKind, schema: dict | None = None):
        self.kind = kind
        self.schema = schema or SCHEMAS[kind.name]
        Draft202012Validator.check_schema(self.schema)
        self._validator = Draft202012Validator(self.schema)

    def check(self, entity: dict) -> ValidatorOutcome:
        outcome = ValidatorOutcome()
        if not isinstance(entity, dict):
            outcome.add(blocker(
                "schema_error",
                f"A {self.kind.name} must be a JSON object, got {type(entity).__name__}",
            ))
            return outcome

        errors = sorted(self._validator.iter_errors(entity), key=lambda e: list(e.absolute_path))
        for error in errors:
            outcome.add(blocker(
                _error_type(error),
                humanize_error(error),
                path=format_path(error.absolute_path),
            ))
        return outcome


def format_path(parts) -> str:
    """Render ``["tools", 0, "name"]`` as ``tools[0].name``."""
    out = ""
    for part in parts:
        if isinstance(part, int):
            out += f"[{part}]"
        else:
            out += f".{part}" if out else str(part)
    return out


def humanize_error(error) -> str:
    """Convert a ``jsonschema.ValidationError`` into plain English."""
    path = format_path(error.absolute_path) or "(root)"
    msg = error.message
    if error.validator == "required":
        return f"Missing required field at {path}: {msg}"
    if error.validator == "type":
        return f"Wrong data type at '{path}': {msg}"
    if error.validator == "enum":
        return f"Invalid value at '{path}': {msg}"
    if error.validator in ("minimum", "maximum"):
        return f"Value out of range at '{path}': {msg}"
    if error.validator == "minLength":
        return f"Empty value at '{path}': {msg}"
    return f"Issue at '{path}': {msg}"


def _error_type(error) -> str:
    if error.validator == "required":
        return "missing_field"
    if error.validator == "enum" and list(error.absolute_path) == ["phase"]:
        return "invalid_phase"
    return "schema_error"
