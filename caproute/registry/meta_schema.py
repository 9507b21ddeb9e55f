"""
JSON Schema every operation card document must satisfy.

Checked with ``jsonschema`` before a card is turned into a model, so a
malformed document fails at load time with the offending path.
"""

from __future__ import annotations

from typing import Any

ROUTE_ENUM = ["cli", "graphql", "rest"]

_SCALAR_INJECT = {
    "type": "object",
    "required": ["target", "source", "path"],
    "properties": {
        "target": {"type": "string", "minLength": 1},
        "source": {"const": "scalar"},
        "path": {"type": "string", "minLength": 1},
    },
    "additionalProperties": False,
}

_MAP_ARRAY_INJECT = {
    "type": "object",
    "required": ["target", "source", "from_input", "nodes_path", "match_field", "extract_field"],
    "properties": {
        "target": {"type": "string", "minLength": 1},
        "source": {"const": "map_array"},
        "from_input": {"type": "string", "minLength": 1},
        "nodes_path": {"type": "string", "pattern": r"\.nodes$"},
        "match_field": {"type": "string", "minLength": 1},
        "extract_field": {"type": "string", "minLength": 1},
    },
    "additionalProperties": False,
}

_INPUT_INJECT = {
    "type": "object",
    "required": ["target", "source", "from_input"],
    "properties": {
        "target": {"type": "string", "minLength": 1},
        "source": {"const": "input"},
        "from_input": {"type": "string", "minLength": 1},
    },
    "additionalProperties": False,
}

_NULL_LITERAL_INJECT = {
    "type": "object",
    "required": ["target", "source"],
    "properties": {
        "target": {"type": "string", "minLength": 1},
        "source": {"const": "null_literal"},
    },
    "additionalProperties": False,
}

_COMPOSITE_STEP = {
    "type": "object",
    "required": ["capability_id", "params_map"],
    "properties": {
        "capability_id": {"type": "string", "minLength": 1},
        "foreach": {"type": "string", "minLength": 1},
        "actions": {"type": "array", "items": {"type": "string", "minLength": 1}, "minItems": 1},
        "requires_any_of": {"type": "array", "items": {"type": "string"}, "minItems": 1},
        "params_map": {"type": "object", "additionalProperties": {"type": "string"}},
    },
    "additionalProperties": False,
}

OPERATION_CARD_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": "https://caproute.local/schemas/operation-card.json",
    "type": "object",
    "required": ["capability_id", "version", "description", "input_schema", "output_schema", "routing"],
    "properties": {
        "capability_id": {"type": "string", "minLength": 1},
        "version": {"type": "string", "minLength": 1},
        "description": {"type": "string", "minLength": 1},
        "input_schema": {"type": "object"},
        "output_schema": {"type": "object"},
        "routing": {
            "type": "object",
            "required": ["preferred", "fallbacks"],
            "properties": {
                "preferred": {"enum": ROUTE_ENUM},
                "fallbacks": {"type": "array", "items": {"enum": ROUTE_ENUM}},
                "suitability": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["when", "predicate", "reason"],
                        "properties": {
                            "when": {"enum": ["always", "env", "params"]},
                            "predicate": {"type": "string", "minLength": 1},
                            "reason": {"type": "string", "minLength": 1},
                        },
                        "additionalProperties": False,
                    },
                },
                "notes": {"type": "array", "items": {"type": "string"}},
            },
            "additionalProperties": False,
        },
        "graphql": {
            "type": "object",
            "required": ["operationName", "documentPath"],
            "properties": {
                "operationName": {"type": "string", "minLength": 1},
                "documentPath": {"type": "string", "minLength": 1},
                "operationType": {"enum": ["query", "mutation"]},
                "variables": {"type": "object"},
                "limits": {
                    "type": "object",
                    "properties": {"maxPageSize": {"type": "number"}},
                    "additionalProperties": False,
                },
                "resolution": {
                    "type": "object",
                    "required": ["lookup", "inject"],
                    "properties": {
                        "lookup": {
                            "type": "object",
                            "required": ["operationName", "documentPath", "vars"],
                            "properties": {
                                "operationName": {"type": "string", "minLength": 1},
                                "documentPath": {"type": "string", "minLength": 1},
                                "vars": {
                                    "type": "object",
                                    "additionalProperties": {"type": "string"},
                                },
                            },
                            "additionalProperties": False,
                        },
                        "inject": {
                            "type": "array",
                            "minItems": 1,
                            "items": {
                                "oneOf": [
                                    _SCALAR_INJECT,
                                    _MAP_ARRAY_INJECT,
                                    _INPUT_INJECT,
                                    _NULL_LITERAL_INJECT,
                                ]
                            },
                        },
                    },
                    "additionalProperties": False,
                },
            },
            "additionalProperties": False,
        },
        "cli": {
            "type": "object",
            "required": ["command"],
            "properties": {
                "command": {"type": "string", "minLength": 1},
                "jsonFields": {"type": "array", "items": {"type": "string"}},
                "jq": {"type": "string"},
                "limits": {
                    "type": "object",
                    "properties": {"maxItemsPerCall": {"type": "number"}},
                    "additionalProperties": False,
                },
            },
            "additionalProperties": False,
        },
        "rest": {
            "type": "object",
            "required": ["endpoints"],
            "properties": {
                "endpoints": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["method", "path"],
                        "properties": {
                            "method": {"type": "string", "minLength": 1},
                            "path": {"type": "string", "minLength": 1},
                        },
                        "additionalProperties": False,
                    },
                }
            },
            "additionalProperties": False,
        },
        "composite": {
            "type": "object",
            "required": ["steps", "output_strategy"],
            "properties": {
                "steps": {"type": "array", "items": _COMPOSITE_STEP, "minItems": 1},
                "output_strategy": {"enum": ["array", "merge", "last"]},
            },
            "additionalProperties": False,
        },
        "examples": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["title", "input"],
                "properties": {
                    "title": {"type": "string", "minLength": 1},
                    "input": {"type": "object"},
                },
                "additionalProperties": False,
            },
        },
    },
    "additionalProperties": False,
}
