"""Schema validation utilities for request payloads."""

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

import jsonschema
from referencing import Registry, Resource

# Schema directory relative to this file
SCHEMAS_DIR = Path(__file__).parent.parent / "schemas"


def _load_schema(schema_name: str) -> dict[str, Any]:
    """Load a JSON schema by name."""
    schema_path = SCHEMAS_DIR / f"{schema_name}.schema.json"
    if not schema_path.exists():
        raise FileNotFoundError(f"Schema not found: {schema_path}")
    return json.loads(schema_path.read_text())


@lru_cache
def _registry() -> Registry:
    """All shipped schemas, so they can reference each other by file name."""
    resources = [
        (path.name, Resource.from_contents(json.loads(path.read_text())))
        for path in SCHEMAS_DIR.glob("*.schema.json")
    ]
    return Registry().with_resources(resources)


def _validate(schema_name: str, data: Any) -> list[str]:
    """
    Validate data against a named schema.

    Returns list of validation errors (empty if valid).
    """
    try:
        schema = _load_schema(schema_name)
    except FileNotFoundError as e:
        return [str(e)]

    validator_cls = jsonschema.validators.validator_for(schema)
    validator = validator_cls(schema, registry=_registry())
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.path))
    return [_format_error(e) for e in errors]


def _format_error(error: jsonschema.ValidationError) -> str:
    location = "/".join(str(p) for p in error.path)
    return f"{location}: {error.message}" if location else str(error.message)


def validate_field_mapping(data: Any) -> list[str]:
    """Validate a FieldMapping payload (camelCase keys)."""
    return _validate("field_mapping", data)


def validate_process_request(data: Any) -> list[str]:
    """Validate the body of a process request."""
    return _validate("process_request", data)


def validate_validation_options(data: Any) -> list[str]:
    return _validate("validation_options", data)


def validate_mapping_preferences(data: Any) -> list[str]:
    return _validate("mapping_preferences", data)
