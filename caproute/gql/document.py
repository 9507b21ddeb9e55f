"""
GraphQL document inspection.

Small helpers over graphql-core's parser: find the single operation in a
document, list its declared variables, and name its root field.
"""

from __future__ import annotations

import re
from functools import lru_cache

from graphql import (
    DocumentNode,
    FieldNode,
    GraphQLSyntaxError,
    OperationDefinitionNode,
    parse,
)

from ..errors import BatchBuildError

_ROOT_FIELD_FALLBACK = re.compile(r"\{\s*([_A-Za-z][_0-9A-Za-z]*)")


@lru_cache(maxsize=256)
def parse_document(document: str) -> DocumentNode:
    """
    Parse a document, caching the AST by text.

    Callers must not mutate the returned tree.

    Raises:
        BatchBuildError: If the document is not valid GraphQL
    """
    try:
        return parse(document, no_location=True)
    except GraphQLSyntaxError as e:
        raise BatchBuildError(f"Invalid GraphQL document: {e.message}") from e


def single_operation(ast: DocumentNode, label: str = "document") -> OperationDefinitionNode:
    """The one operation definition of a document."""
    operations = [d for d in ast.definitions if isinstance(d, OperationDefinitionNode)]
    if len(operations) != 1:
        raise BatchBuildError(
            f"{label}: expected exactly one operation definition, found {len(operations)}"
        )
    return operations[0]


def declared_variable_names(document: str) -> list[str]:
    """Variable names declared in the operation header, in declaration order."""
    operation = single_operation(parse_document(document))
    return [definition.variable.name.value for definition in operation.variable_definitions or ()]


def extract_root_field_name(document: str) -> str | None:
    """
    Response key of the first field inside the outermost selection set.

    Returns None when the document has no selection set at all.
    """
    if "{" not in document:
        return None
    try:
        ast = parse_document(document)
    except BatchBuildError:
        match = _ROOT_FIELD_FALLBACK.search(document)
        return match.group(1) if match else None

    for definition in ast.definitions:
        if isinstance(definition, OperationDefinitionNode):
            for selection in definition.selection_set.selections:
                if isinstance(selection, FieldNode):
                    return (selection.alias or selection.name).value
            return None
    return None
