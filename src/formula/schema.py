"""JSON Schema for formula records.

Records are validated with jsonschema Draft 7 before they are turned into
immutable PackageSpec values. Dependency tags are deliberately left as free
strings here: the requirement model rejects unknown tags itself.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from jsonschema import Draft7Validator

_STRING_LIST = {"type": "array", "items": {"type": "string", "minLength": 1}}
_SHA256 = {"type": "string", "pattern": "^[0-9a-fA-F]{64}$"}

DEPENDENCY_SCHEMA: Dict[str, Any] = {
    "oneOf": [
        {"type": "string", "minLength": 1},
        {
            "type": "object",
            "required": ["name"],
            "properties": {
                "name": {"type": "string", "minLength": 1},
                "tag": {"type": "string"},
                "tags": {"type": "array", "items": {"type": "string"}},
                "since": {"type": ["string", "number"]},
            },
            "additionalProperties": False,
        },
    ]
}

REQUIREMENT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["kind"],
    "properties": {
        "kind": {"type": "string", "minLength": 1},
        "tag": {"type": "string"},
        "tags": {"type": "array", "items": {"type": "string"}},
        "fatal": {"type": "boolean"},
    },
}

BOTTLE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["url", "sha256"],
    "properties": {"url": {"type": "string", "minLength": 1}, "sha256": _SHA256},
    "additionalProperties": False,
}

CONFLICT_SCHEMA: Dict[str, Any] = {
    "oneOf": [
        {"type": "string", "minLength": 1},
        {
            "type": "object",
            "required": ["name"],
            "properties": {"name": {"type": "string", "minLength": 1}, "because": {"type": "string"}},
            "additionalProperties": False,
        },
    ]
}

HEAD_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["url"],
    "properties": {
        "url": {"type": "string", "minLength": 1},
        "version": {"type": "string"},
        "dependencies": {"type": "array", "items": DEPENDENCY_SCHEMA},
        "requirements": {"type": "array", "items": REQUIREMENT_SCHEMA},
    },
    "additionalProperties": False,
}

FORMULA_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["name", "version"],
    "properties": {
        "name": {"type": "string", "pattern": "^[a-z0-9][a-z0-9@+._-]*$"},
        "desc": {"type": "string"},
        "homepage": {"type": "string"},
        "version": {"type": ["string", "number"]},
        "revision": {"type": "integer", "minimum": 0},
        "version_scheme": {"type": "integer", "minimum": 0},
        "url": {"type": "string", "minLength": 1},
        "sha256": _SHA256,
        "keg_only": {"type": ["boolean", "string"]},
        "deprecated": {"type": ["boolean", "string"]},
        "disabled": {"type": ["boolean", "string"]},
        "aliases": _STRING_LIST,
        "options": _STRING_LIST,
        "conflicts": {"type": "array", "items": CONFLICT_SCHEMA},
        "bottles": {"type": "object", "additionalProperties": BOTTLE_SCHEMA},
        "dependencies": {"type": "array", "items": DEPENDENCY_SCHEMA},
        "requirements": {"type": "array", "items": REQUIREMENT_SCHEMA},
        "head": HEAD_SCHEMA,
        "install": _STRING_LIST,
    },
    "additionalProperties": False,
}

_VALIDATOR = Draft7Validator(FORMULA_SCHEMA)


class FormulaSchemaError(ValueError):
    """Raised when a formula record fails schema validation."""

    def __init__(self, message: str, source: Optional[str] = None, path: str = ""):
        self.source = source
        self.path = path
        where = f"{source}: " if source else ""
        at = f" at '{path}'" if path else ""
        super().__init__(f"{where}invalid formula{at}: {message}")


def validate_record(record: Any, source: Optional[str] = None) -> None:
    """Validate a formula record strictly and raise on the first error.

    Args:
        record: Parsed YAML/JSON mapping.
        source: File the record came from, used in the error message.
    """
    errs = sorted(_VALIDATOR.iter_errors(record), key=lambda e: [str(p) for p in e.absolute_path])
    if errs:
        first = errs[0]
        path = "/".join(str(p) for p in first.absolute_path)
        raise FormulaSchemaError(first.message, source=source, path=path)
