"""
Operation Document Registry.

Maps GraphQL operation names to their document text. Documents are
registered from card ``documentPath`` entries when cards load, or
directly in memory (tests, embedded callers).

Usage:
    documents = DocumentRegistry()
    documents.register("IssueClose", "mutation IssueClose($issueId: ID!) { ... }")

    text = documents.get("IssueClose")
    documents.operation_type("IssueClose")  # "mutation"
"""

from __future__ import annotations

import logging
from pathlib import Path

from graphql import GraphQLSyntaxError, OperationDefinitionNode, parse

from ..errors import DocumentNotFoundError, RegistryError

logger = logging.getLogger(__name__)


class DocumentRegistry:
    """Name → GraphQL document text."""

    def __init__(self) -> None:
        self._documents: dict[str, str] = {}

    def register(self, operation_name: str, document: str) -> None:
        """
        Register a document under an operation name.

        Re-registering the same text is a no-op; different text under an
        existing name is an error.

        Raises:
            RegistryError: If the document does not parse or conflicts
        """
        existing = self._documents.get(operation_name)
        if existing is not None:
            if existing == document:
                return
            raise RegistryError(f"Operation document '{operation_name}' already registered")

        try:
            parse(document)
        except GraphQLSyntaxError as e:
            raise RegistryError(f"Operation document '{operation_name}' is invalid: {e.message}") from e

        self._documents[operation_name] = document
        logger.debug(f"[documents] Registered operation document: {operation_name}")

    def register_file(self, operation_name: str, path: Path) -> None:
        """Read a ``.graphql`` file and register its content."""
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise RegistryError(
                f"Operation document '{operation_name}' could not be read from {path}: {e}"
            ) from e
        self.register(operation_name, text)

    def get(self, operation_name: str) -> str:
        """
        Get a document by operation name.

        Raises:
            DocumentNotFoundError: If no document is registered under the name
        """
        document = self._documents.get(operation_name)
        if document is None:
            raise DocumentNotFoundError(f"No GraphQL document registered for operation '{operation_name}'")
        return document

    def operation_type(self, operation_name: str) -> str:
        """``"query"`` or ``"mutation"`` for the first operation in the document."""
        ast = parse(self.get(operation_name))
        for definition in ast.definitions:
            if isinstance(definition, OperationDefinitionNode):
                return definition.operation.value
        raise RegistryError(f"Operation document '{operation_name}' has no operation definition")

    def names(self) -> list[str]:
        return list(self._documents.keys())

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, operation_name: str) -> bool:
        return operation_name in self._documents

    def __repr__(self) -> str:
        return f"<DocumentRegistry documents={list(self._documents.keys())}>"
