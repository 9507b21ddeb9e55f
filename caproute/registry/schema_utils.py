"""
JSON Schema helpers for card input and output schemas.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from jsonschema import Draft202012Validator


@dataclass(frozen=True, slots=True)
class SchemaIssue:
    """One schema violation: where it happened and what is wrong."""

    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "message": self.message}


def _format_path(parts: Any) -> str:
    rendered = "/".join(str(part) for part in parts)
    return f"/{rendered}" if rendered else "(root)"


def validate_against_schema(schema: dict[str, Any], value: Any) -> list[SchemaIssue]:
    """
    Validate a value and return every violation, ordered by path.

    An empty list means the value is valid.
    """
    validator = Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(value), key=lambda error: list(map(str, error.absolute_path)))
    return [SchemaIssue(_format_path(error.absolute_path), error.message) for error in errors]


def validate_input(schema: dict[str, Any], params: Any) -> list[SchemaIssue]:
    return validate_against_schema(schema, params)


def validate_output(schema: dict[str, Any], data: Any) -> list[SchemaIssue]:
    return validate_against_schema(schema, data)


def format_issues(issues: list[SchemaIssue]) -> str:
    return "; ".join(str(issue) for issue in issues)


def extract_required_inputs(input_schema: dict[str, Any] | None) -> list[str]:
    """Names listed under ``required`` in an object schema."""
    if not isinstance(input_schema, dict):
        return []
    required = input_schema.get("required")
    if not isinstance(required, list):
        return []
    return [entry for entry in required if isinstance(entry, str)]


def extract_optional_inputs(input_schema: dict[str, Any] | None) -> dict[str, Any]:
    """Properties of an object schema that are not required, with their schemas."""
    if not isinstance(input_schema, dict):
        return {}
    properties = input_schema.get("properties")
    if not isinstance(properties, dict):
        return {}
    required = set(extract_required_inputs(input_schema))
    return {key: value for key, value in properties.items() if key not in required}


def extract_output_fields(output_schema: dict[str, Any] | None) -> list[str]:
    """Top-level property names of an output schema."""
    if not isinstance(output_schema, dict):
        return []
    properties = output_schema.get("properties")
    if not isinstance(properties, dict):
        return []
    return list(properties.keys())
