"""
Operation Card Registry.

Loads capability definitions from YAML or JSON documents, validates each
against the card meta-schema, and indexes them by capability id.

Design Principle:
    Cards are loaded once at startup and read-only afterwards. Any invalid
    card aborts construction: a broken card set is a packaging bug, not a
    runtime condition.

Usage:
    registry = CardRegistry.from_directory("caproute/cards")

    card = registry.get("issue.close")          # None when unknown
    card = registry.get_required("issue.close")  # raises RegistryError
    for card in registry.list():                 # curated listing order
        print(card.capability_id)

    document = registry.documents.get(card.graphql.operation_name)
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator
from pydantic import ValidationError

from ..errors import RegistryError
from .documents import DocumentRegistry
from .meta_schema import OPERATION_CARD_SCHEMA
from .schema_utils import SchemaIssue
from .schemas import OperationCard

logger = logging.getLogger(__name__)

CARD_SUFFIXES = (".yaml", ".yml", ".json")

# Listing order for known capabilities; anything else follows lexically.
PREFERRED_ORDER: tuple[str, ...] = (
    "repo.view",
    "issue.view",
    "issue.list",
    "issue.comments.list",
    "issue.create",
    "issue.update",
    "issue.close",
    "issue.reopen",
    "issue.delete",
    "issue.labels.update",
    "issue.assignees.update",
    "issue.milestone.set",
    "issue.comments.create",
    "issue.linked_prs.list",
    "issue.relations.get",
    "issue.parent.set",
    "issue.parent.remove",
    "issue.blocked_by.add",
    "issue.blocked_by.remove",
    "pr.view",
    "pr.list",
    "pr.comments.list",
    "pr.reviews.list",
    "pr.diff.list_files",
    "pr.status.checks",
    "pr.checks.get_failed",
    "pr.mergeability.view",
    "pr.thread.reply",
    "pr.thread.resolve",
    "pr.thread.unresolve",
    "pr.threads.composite",
    "pr.ready_for_review.set",
    "check_run.annotations.list",
    "workflow_runs.list",
    "workflow_run.jobs.list",
    "workflow_job.logs.get",
    "workflow_job.logs.analyze",
)
_ORDER_INDEX = {capability_id: index for index, capability_id in enumerate(PREFERRED_ORDER)}

_card_validator = Draft202012Validator(OPERATION_CARD_SCHEMA)


def listing_sort_key(capability_id: str) -> tuple[int, str]:
    return (_ORDER_INDEX.get(capability_id, len(PREFERRED_ORDER)), capability_id)


def validate_card_document(raw: Any) -> list[SchemaIssue]:
    """Check a parsed card document against the meta-schema."""
    errors = sorted(_card_validator.iter_errors(raw), key=lambda error: list(map(str, error.absolute_path)))
    return [
        SchemaIssue("/" + "/".join(str(part) for part in error.absolute_path), error.message)
        for error in errors
    ]


def parse_card(raw: Any, source: str = "<memory>") -> OperationCard:
    """
    Validate a parsed card document and build the model.

    Raises:
        RegistryError: If the document violates the meta-schema
    """
    issues = validate_card_document(raw)
    if issues:
        raise RegistryError(
            f"Invalid operation card '{source}': {issues[0]}",
            details={"issues": [issue.to_dict() for issue in issues]},
        )
    try:
        return OperationCard.model_validate(raw)
    except ValidationError as e:
        raise RegistryError(f"Invalid operation card '{source}': {e}") from e


def load_card_file(path: Path) -> OperationCard:
    """Read one YAML or JSON card document."""
    try:
        text = path.read_text(encoding="utf-8")
        raw = json.loads(text) if path.suffix.lower() == ".json" else yaml.safe_load(text)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise RegistryError(f"Operation card '{path.name}' could not be parsed: {e}") from e
    return parse_card(raw, path.name)


class CardRegistry:
    """
    Index of operation cards by capability id.

    Holds the companion DocumentRegistry so GraphQL routes can find the
    document text for a card's ``operationName``.
    """

    def __init__(
        self,
        cards: Iterable[OperationCard] = (),
        documents: DocumentRegistry | None = None,
    ) -> None:
        self._cards: dict[str, OperationCard] = {}
        self.documents = documents if documents is not None else DocumentRegistry()
        for card in cards:
            self.register(card)

    @classmethod
    def from_directory(
        cls,
        cards_dir: str | Path,
        *,
        documents_root: str | Path | None = None,
    ) -> CardRegistry:
        """
        Load every card document in a directory.

        ``documentPath`` entries are resolved against ``documents_root``,
        which defaults to the parent of the cards directory.

        Raises:
            RegistryError: If the directory is missing or any card is invalid
        """
        cards_dir = Path(cards_dir)
        if not cards_dir.is_dir():
            raise RegistryError(f"Operation card directory not found: {cards_dir}")
        root = Path(documents_root) if documents_root is not None else cards_dir.parent

        registry = cls()
        files = sorted(
            (path for path in cards_dir.iterdir() if path.suffix.lower() in CARD_SUFFIXES),
            key=lambda path: listing_sort_key(path.stem),
        )
        for path in files:
            card = load_card_file(path)
            registry.register(card)
            registry._register_documents(card, root)

        logger.info(f"[card_registry] Loaded {len(registry)} operation cards from {cards_dir}")
        return registry

    def _register_documents(self, card: OperationCard, root: Path) -> None:
        if card.graphql is None:
            return
        self.documents.register_file(card.graphql.operation_name, root / card.graphql.document_path)
        resolution = card.graphql.resolution
        if resolution is not None:
            self.documents.register_file(
                resolution.lookup.operation_name, root / resolution.lookup.document_path
            )

    def register(self, card: OperationCard) -> None:
        """
        Register a card.

        Raises:
            RegistryError: If the capability id is already registered
        """
        if card.capability_id in self._cards:
            raise RegistryError(f"Duplicate operation card for capability '{card.capability_id}'")
        self._cards[card.capability_id] = card
        logger.debug(f"[card_registry] Registered card: {card.capability_id}")

    def get(self, capability_id: str) -> OperationCard | None:
        return self._cards.get(capability_id)

    def get_required(self, capability_id: str) -> OperationCard:
        """
        Get a card by capability id, raising if not found.

        Raises:
            RegistryError: If no card is registered under the id
        """
        card = self._cards.get(capability_id)
        if card is None:
            raise RegistryError(f"Unknown capability '{capability_id}'")
        return card

    def list(self) -> list[OperationCard]:
        """All cards in curated listing order, then lexical."""
        return sorted(self._cards.values(), key=lambda card: listing_sort_key(card.capability_id))

    def __len__(self) -> int:
        return len(self._cards)

    def __contains__(self, capability_id: str) -> bool:
        return capability_id in self._cards

    def __repr__(self) -> str:
        return f"<CardRegistry cards={[card.capability_id for card in self.list()]}>"


@lru_cache()
def get_default_registry() -> CardRegistry:
    """Registry loaded from the configured cards directory (bundled cards by default)."""
    from ..config import get_settings

    return CardRegistry.from_directory(get_settings().cards_dir)
