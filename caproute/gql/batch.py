"""
Batch Query/Mutation Builder.

Merges N independent GraphQL operations into one document so they can
be sent in a single round trip.

For each input operation:
- its root field is re-emitted under the operation's alias
- every declared variable ``$name`` is renamed ``$<alias>_<name>``, both in
  the header and wherever it is referenced
- its variable values are merged under the same prefixed names

Fragment definitions are carried over once per fragment name, so
operations sharing a fragment produce a single definition.

The rewrite works on the graphql-core AST (parse, visit, print) rather
than on document text.

Usage:
    batch = build_batch_mutation([
        BatchOperation("step0", CLOSE_ISSUE, {"issueId": "I_1"}),
        BatchOperation("step1", ADD_COMMENT, {"subjectId": "I_2", "body": "hi"}),
    ])
    data = await client.query(batch.document, batch.variables)
    data["step0"], data["step1"]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from graphql import (
    DocumentNode,
    FieldNode,
    FragmentDefinitionNode,
    NameNode,
    OperationDefinitionNode,
    OperationType,
    SelectionSetNode,
    VariableNode,
    Visitor,
    print_ast,
    visit,
)

from ..errors import BatchBuildError
from .document import parse_document, single_operation

BATCH_QUERY_NAME = "BatchChain"
BATCH_MUTATION_NAME = "BatchComposite"


@dataclass(frozen=True, slots=True)
class BatchOperation:
    """One operation to merge: its alias, document text and variable values."""

    alias: str
    document: str
    variables: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class BatchDocument:
    """A merged document and its prefixed variables."""

    document: str
    variables: dict[str, Any]


class _VariablePrefixer(Visitor):
    """Renames references to declared variables."""

    def __init__(self, prefix: str, declared: set[str]) -> None:
        super().__init__()
        self.prefix = prefix
        self.declared = declared

    def enter_variable(self, node: VariableNode, *_args: Any) -> VariableNode | None:
        name = node.name.value
        if name not in self.declared:
            return None
        return VariableNode(name=NameNode(value=f"{self.prefix}{name}"))


def _aliased_root_field(operation: OperationDefinitionNode, alias: str) -> FieldNode:
    selections = operation.selection_set.selections
    if len(selections) != 1 or not isinstance(selections[0], FieldNode):
        raise BatchBuildError(
            f"Operation for alias '{alias}' must select exactly one root field, "
            f"found {len(selections)} selections"
        )
    root = selections[0]
    return FieldNode(
        alias=NameNode(value=alias),
        name=root.name,
        arguments=root.arguments,
        directives=root.directives,
        selection_set=root.selection_set,
    )


def _build_batch(
    operations: list[BatchOperation],
    operation_type: OperationType,
    batch_name: str,
) -> BatchDocument:
    if not operations:
        raise BatchBuildError(f"Cannot build a batch {operation_type.value} from zero operations")

    aliases = [op.alias for op in operations]
    if len(set(aliases)) != len(aliases):
        raise BatchBuildError(f"Batch aliases must be unique, got {aliases}")

    variable_definitions = []
    root_fields: list[FieldNode] = []
    fragments: dict[str, FragmentDefinitionNode] = {}
    merged_variables: dict[str, Any] = {}

    for op in operations:
        ast = parse_document(op.document)
        operation = single_operation(ast, f"Operation for alias '{op.alias}'")
        if operation.operation != operation_type:
            raise BatchBuildError(
                f"Operation for alias '{op.alias}' is a {operation.operation.value}, "
                f"expected {operation_type.value}"
            )

        prefix = f"{op.alias}_"
        declared = {d.variable.name.value for d in operation.variable_definitions or ()}
        rewritten = visit(operation, _VariablePrefixer(prefix, declared))

        variable_definitions.extend(rewritten.variable_definitions or ())
        root_fields.append(_aliased_root_field(rewritten, op.alias))

        for definition in ast.definitions:
            if isinstance(definition, FragmentDefinitionNode):
                fragments.setdefault(definition.name.value, definition)

        for key, value in op.variables.items():
            merged_variables[f"{prefix}{key}"] = value

    batch_operation = OperationDefinitionNode(
        operation=operation_type,
        name=NameNode(value=batch_name),
        variable_definitions=tuple(variable_definitions),
        directives=(),
        selection_set=SelectionSetNode(selections=tuple(root_fields)),
    )
    document = DocumentNode(definitions=(batch_operation, *fragments.values()))
    return BatchDocument(document=print_ast(document), variables=merged_variables)


def build_batch_query(operations: list[BatchOperation]) -> BatchDocument:
    """Merge query operations into one ``query BatchChain`` document."""
    return _build_batch(operations, OperationType.QUERY, BATCH_QUERY_NAME)


def build_batch_mutation(operations: list[BatchOperation]) -> BatchDocument:
    """Merge mutation operations into one ``mutation BatchComposite`` document."""
    return _build_batch(operations, OperationType.MUTATION, BATCH_MUTATION_NAME)
