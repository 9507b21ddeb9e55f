"""
Tests for the card registry, card meta-schema and document registry.
"""

import json

import pytest
import yaml

from caproute.envelope import RouteSource
from caproute.errors import DocumentNotFoundError, RegistryError
from caproute.registry import (
    CardRegistry,
    DocumentRegistry,
    MapArrayInject,
    NullLiteralInject,
    ScalarInject,
    parse_card,
    validate_card_document,
)
from caproute.registry.registry import listing_sort_key

from conftest import ISSUE_CLOSE, REPO_VIEW, make_card


def _raw_card(**overrides):
    raw = {
        "capability_id": "repo.view",
        "version": "1.0.0",
        "description": "Repository metadata",
        "input_schema": {"type": "object"},
        "output_schema": {"type": "object"},
        "routing": {"preferred": "graphql", "fallbacks": ["cli"]},
    }
    raw.update(overrides)
    return raw


# =============================================================================
# Meta-schema
# =============================================================================


class TestCardMetaSchema:
    def test_minimal_card_is_valid(self):
        assert validate_card_document(_raw_card()) == []

    def test_missing_required_field(self):
        raw = _raw_card()
        del raw["routing"]
        issues = validate_card_document(raw)
        assert issues
        assert "routing" in issues[0].message

    def test_unknown_top_level_field(self):
        issues = validate_card_document(_raw_card(extra=True))
        assert any("extra" in issue.message for issue in issues)

    def test_unknown_route(self):
        issues = validate_card_document(_raw_card(routing={"preferred": "soap", "fallbacks": []}))
        assert issues[0].path == "/routing/preferred"

    def test_inject_shapes(self):
        resolution = {
            "lookup": {"operationName": "L", "documentPath": "l.graphql", "vars": {"a": "b"}},
            "inject": [{"target": "x", "source": "scalar"}],
        }
        raw = _raw_card(graphql={"operationName": "Op", "documentPath": "op.graphql", "resolution": resolution})
        # scalar needs a path
        assert validate_card_document(raw)

    def test_map_array_nodes_path_must_end_in_nodes(self):
        resolution = {
            "lookup": {"operationName": "L", "documentPath": "l.graphql", "vars": {}},
            "inject": [
                {
                    "target": "labelIds",
                    "source": "map_array",
                    "from_input": "labels",
                    "nodes_path": "repository.labels",
                    "match_field": "name",
                    "extract_field": "id",
                }
            ],
        }
        raw = _raw_card(graphql={"operationName": "Op", "documentPath": "op.graphql", "resolution": resolution})
        assert validate_card_document(raw)

    def test_parse_card_error_message(self):
        with pytest.raises(RegistryError) as exc_info:
            parse_card(_raw_card(version=""), "repo.view.yaml")
        assert "Invalid operation card 'repo.view.yaml'" in str(exc_info.value)
        assert exc_info.value.details["issues"]


# =============================================================================
# Card models
# =============================================================================


class TestOperationCard:
    def test_route_order_without_duplicates(self):
        card = make_card("x", routing={"preferred": "cli", "fallbacks": ["graphql", "cli", "rest"]})
        assert card.route_order() == [RouteSource.CLI, RouteSource.GRAPHQL, RouteSource.REST]

    def test_inject_discriminator(self):
        card = make_card(
            "x",
            graphql={
                "operationName": "Op",
                "documentPath": "op.graphql",
                "resolution": {
                    "lookup": {"operationName": "L", "documentPath": "l.graphql", "vars": {"n": "number"}},
                    "inject": [
                        {"target": "a", "source": "scalar", "path": "x.id"},
                        {
                            "target": "b",
                            "source": "map_array",
                            "from_input": "labels",
                            "nodes_path": "x.labels.nodes",
                            "match_field": "name",
                            "extract_field": "id",
                        },
                        {"target": "c", "source": "null_literal"},
                    ],
                },
            },
        )
        inject = card.resolution.inject
        assert isinstance(inject[0], ScalarInject)
        assert isinstance(inject[1], MapArrayInject)
        assert isinstance(inject[2], NullLiteralInject)
        assert card.resolution.lookup.vars == {"n": "number"}

    def test_cli_only(self):
        card = make_card("x", routing={"preferred": "cli", "fallbacks": []}, cli={"command": "repo view"})
        assert card.is_cli_only is True
        assert card.resolution is None

    def test_cards_are_frozen(self):
        card = make_card("x")
        with pytest.raises(Exception):
            card.version = "2"


# =============================================================================
# Registries
# =============================================================================


class TestDocumentRegistry:
    def test_register_and_get(self):
        documents = DocumentRegistry()
        documents.register("IssueClose", ISSUE_CLOSE)
        assert documents.get("IssueClose") == ISSUE_CLOSE
        assert documents.operation_type("IssueClose") == "mutation"
        assert "IssueClose" in documents
        assert len(documents) == 1

    def test_identical_re_registration_is_noop(self):
        documents = DocumentRegistry()
        documents.register("RepoView", REPO_VIEW)
        documents.register("RepoView", REPO_VIEW)
        assert documents.names() == ["RepoView"]

    def test_conflicting_registration(self):
        documents = DocumentRegistry()
        documents.register("RepoView", REPO_VIEW)
        with pytest.raises(RegistryError):
            documents.register("RepoView", ISSUE_CLOSE)

    def test_syntax_error(self):
        with pytest.raises(RegistryError, match="is invalid"):
            DocumentRegistry().register("Broken", "query Broken { repository(")

    def test_missing_document(self):
        with pytest.raises(DocumentNotFoundError):
            DocumentRegistry().get("Nope")


class TestCardRegistry:
    def test_duplicate_capability(self):
        registry = CardRegistry([make_card("a")])
        with pytest.raises(RegistryError, match="Duplicate"):
            registry.register(make_card("a"))

    def test_get_and_get_required(self):
        registry = CardRegistry([make_card("a")])
        assert registry.get("a").capability_id == "a"
        assert registry.get("b") is None
        with pytest.raises(RegistryError):
            registry.get_required("b")

    def test_listing_order(self):
        registry = CardRegistry([make_card("zeta.thing"), make_card("issue.close"), make_card("repo.view")])
        assert [card.capability_id for card in registry.list()] == ["repo.view", "issue.close", "zeta.thing"]
        assert listing_sort_key("repo.view") < listing_sort_key("aaa")

    def test_from_directory(self, tmp_path):
        cards_dir = tmp_path / "cards"
        cards_dir.mkdir()
        (tmp_path / "documents").mkdir()
        (tmp_path / "documents" / "repo_view.graphql").write_text(REPO_VIEW)
        raw = _raw_card(graphql={"operationName": "RepoView", "documentPath": "documents/repo_view.graphql"})
        (cards_dir / "repo.view.yaml").write_text(yaml.safe_dump(raw))
        (cards_dir / "issue.close.json").write_text(json.dumps(_raw_card(capability_id="issue.close")))
        (cards_dir / "README.md").write_text("not a card")

        registry = CardRegistry.from_directory(cards_dir)
        assert len(registry) == 2
        assert "RepoView" in registry.documents

    def test_from_directory_missing_document(self, tmp_path):
        raw = _raw_card(graphql={"operationName": "RepoView", "documentPath": "documents/missing.graphql"})
        (tmp_path / "repo.view.yaml").write_text(yaml.safe_dump(raw))
        with pytest.raises(RegistryError, match="could not be read"):
            CardRegistry.from_directory(tmp_path)

    def test_from_directory_invalid_card(self, tmp_path):
        (tmp_path / "bad.yaml").write_text("capability_id: bad\n")
        with pytest.raises(RegistryError, match="Invalid operation card 'bad.yaml'"):
            CardRegistry.from_directory(tmp_path)

    def test_missing_directory(self, tmp_path):
        with pytest.raises(RegistryError, match="not found"):
            CardRegistry.from_directory(tmp_path / "nope")


class TestBundledCards:
    def test_all_bundled_cards_load(self, bundled_registry):
        ids = {card.capability_id for card in bundled_registry.list()}
        assert {"repo.view", "issue.close", "issue.labels.update", "pr.threads.composite"} <= ids

    def test_every_graphql_card_has_its_documents(self, bundled_registry):
        for card in bundled_registry.list():
            if card.graphql is None:
                continue
            assert card.graphql.operation_name in bundled_registry.documents
            if card.resolution is not None:
                assert card.resolution.lookup.operation_name in bundled_registry.documents

    def test_declared_operation_type_matches_document(self, bundled_registry):
        for card in bundled_registry.list():
            if card.graphql is not None and card.graphql.operation_type is not None:
                actual = bundled_registry.documents.operation_type(card.graphql.operation_name)
                assert actual == card.graphql.operation_type, card.capability_id

    def test_composite_steps_reference_cards(self, bundled_registry):
        composite = bundled_registry.get_required("pr.threads.composite").composite
        for step in composite.steps:
            assert step.capability_id in bundled_registry
