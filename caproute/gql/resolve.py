"""
Injection / Resolve.

Turns a resolved lookup payload (plus the caller's input) into the
variable set of a dependent operation.

Inject sources:
- null_literal: always null
- scalar: one value at a dotted path of the lookup payload
- input: an input field passed through unchanged
- map_array: a list of input names mapped to ids from a lookup node list

A map_array lookup whose connection reports ``hasNextPage`` fails rather
than resolving against a partial list.

Usage:
    resolved = {}
    for spec in card.graphql.resolution.inject:
        resolved.update(apply_inject(spec, lookup_payload, params))

    variables = build_operation_vars(document, params, resolved)
"""

from __future__ import annotations

from typing import Any

from ..errors import ResolutionError
from ..registry.schemas import (
    InjectSpec,
    InputInject,
    MapArrayInject,
    NullLiteralInject,
    ScalarInject,
)
from .document import declared_variable_names

_MISSING = object()


def get_at_path(value: Any, path: str, default: Any = None) -> Any:
    """Follow a dotted path through nested dicts; ``default`` when any hop is missing."""
    current = value
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def _page_info_path(nodes_path: str) -> str:
    return nodes_path.removesuffix(".nodes") + ".pageInfo.hasNextPage"


def _map_array(spec: MapArrayInject, lookup_result: Any, params: dict[str, Any]) -> dict[str, Any]:
    nodes = get_at_path(lookup_result, spec.nodes_path)
    if not isinstance(nodes, list):
        raise ResolutionError(
            f"Resolution failed for '{spec.target}': nodes at '{spec.nodes_path}' is not an array"
        )

    if get_at_path(lookup_result, _page_info_path(spec.nodes_path)) is True:
        raise ResolutionError(
            f"Resolution failed for '{spec.target}': lookup at '{spec.nodes_path}' has more pages; "
            "refusing to resolve against a truncated list"
        )

    id_by_name: dict[str, Any] = {}
    for node in nodes:
        if not isinstance(node, dict):
            continue
        key = node.get(spec.match_field)
        if isinstance(key, str):
            id_by_name[key.lower()] = node.get(spec.extract_field)

    names = params.get(spec.from_input)
    if not isinstance(names, list):
        raise ResolutionError(
            f"Resolution failed for '{spec.target}': input field '{spec.from_input}' is not an array"
        )

    resolved = []
    for name in names:
        if not isinstance(name, str):
            raise ResolutionError(f"Resolution failed for '{spec.target}': expected string in '{spec.from_input}'")
        found = id_by_name.get(name.lower(), _MISSING)
        if found is _MISSING:
            raise ResolutionError(f"Resolution failed for '{spec.target}': '{name}' not found in lookup result")
        resolved.append(found)
    return {spec.target: resolved}


def apply_inject(spec: InjectSpec, lookup_result: Any, params: dict[str, Any]) -> dict[str, Any]:
    """
    Produce ``{target: value}`` for one inject spec.

    Raises:
        ResolutionError: If the required value cannot be produced
    """
    if isinstance(spec, NullLiteralInject):
        return {spec.target: None}

    if isinstance(spec, ScalarInject):
        value = get_at_path(lookup_result, spec.path)
        if value is None:
            raise ResolutionError(f"Resolution failed for '{spec.target}': no value at path '{spec.path}'")
        return {spec.target: value}

    if isinstance(spec, InputInject):
        value = params.get(spec.from_input)
        if value is None:
            raise ResolutionError(
                f"Resolution failed for '{spec.target}': no value at input field '{spec.from_input}'"
            )
        return {spec.target: value}

    if isinstance(spec, MapArrayInject):
        return _map_array(spec, lookup_result, params)

    raise ResolutionError(f"Unknown inject source: {getattr(spec, 'source', spec)!r}")


def apply_injects(specs: tuple[InjectSpec, ...], lookup_result: Any, params: dict[str, Any]) -> dict[str, Any]:
    """Apply every inject spec in order; later targets overwrite earlier ones."""
    resolved: dict[str, Any] = {}
    for spec in specs:
        resolved.update(apply_inject(spec, lookup_result, params))
    return resolved


def build_operation_vars(
    document: str,
    params: dict[str, Any],
    resolved: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Variables for an operation from input fields and resolved values.

    Only variables the operation declares are set. Input fields with a
    matching name pass through; resolved values overwrite them.
    """
    declared = declared_variable_names(document)
    variables = {name: params[name] for name in declared if name in params}
    for key, value in (resolved or {}).items():
        if key in declared:
            variables[key] = value
    return variables


build_mutation_vars = build_operation_vars
