"""
Tests for the GraphQL route.
"""

import pytest

from caproute.adapters.graphql import (
    DEFAULT_PAGE_SIZE,
    lookup_variables,
    run_graphql_capability,
    unwrap_root_field,
    with_default_page_size,
)
from caproute.errors import CaprouteError, ErrorCode, ResolutionError
from caproute.gql.transport import GraphqlClient
from caproute.routing.cache import ResolutionCache

from conftest import ISSUE_CLOSE, ScriptedTransport, make_card

LIST_ISSUES = """
query IssueList($owner: String!, $name: String!, $first: Int!) {
  repository(owner: $owner, name: $name) {
    issues(first: $first) { nodes { id } }
  }
}
"""

BY_NUMBER = {"owner": "acme", "name": "api", "issueNumber": 7}


class TestHelpers:
    def test_unwrap_root_field(self):
        assert unwrap_root_field(ISSUE_CLOSE, {"closeIssue": {"issue": {"id": "I_1"}}}) == {"issue": {"id": "I_1"}}
        assert unwrap_root_field(ISSUE_CLOSE, {"other": 1}) == {"other": 1}
        assert unwrap_root_field(ISSUE_CLOSE, None) == {}

    def test_default_page_size(self):
        card = make_card("issue.list")
        assert with_default_page_size(card, LIST_ISSUES, {})["first"] == DEFAULT_PAGE_SIZE
        assert with_default_page_size(card, LIST_ISSUES, {"first": 5})["first"] == 5
        assert "first" not in with_default_page_size(card, ISSUE_CLOSE, {})

    def test_page_size_respects_card_limit(self):
        card = make_card(
            "issue.list",
            graphql={"operationName": "IssueList", "documentPath": "x.graphql", "limits": {"maxPageSize": 10}},
        )
        assert with_default_page_size(card, LIST_ISSUES, {})["first"] == 10

    def test_lookup_variables(self, card_registry):
        resolution = card_registry.get("issue.close.by_number").resolution
        assert lookup_variables(resolution, {**BY_NUMBER, "extra": True}) == BY_NUMBER


class TestRunGraphqlCapability:
    @pytest.mark.asyncio
    async def test_plain_query(self, card_registry):
        transport = ScriptedTransport({"repository": {"id": "R_1", "nameWithOwner": "acme/api"}})
        data = await run_graphql_capability(
            GraphqlClient(transport),
            card_registry.documents,
            card_registry.get("repo.view"),
            {"owner": "acme", "name": "api"},
        )
        assert data == {"id": "R_1", "nameWithOwner": "acme/api"}
        assert transport.calls[0][1] == {"owner": "acme", "name": "api"}

    @pytest.mark.asyncio
    async def test_resolution_then_mutation(self, card_registry):
        transport = ScriptedTransport(
            {"repository": {"issue": {"id": "I_7"}}},
            {"closeIssue": {"issue": {"id": "I_7", "state": "CLOSED"}}},
        )
        cache = ResolutionCache()

        data = await run_graphql_capability(
            GraphqlClient(transport),
            card_registry.documents,
            card_registry.get("issue.close.by_number"),
            BY_NUMBER,
            cache=cache,
        )

        assert data == {"issue": {"id": "I_7", "state": "CLOSED"}}
        lookup_call, mutation_call = transport.calls
        assert lookup_call[1] == BY_NUMBER
        assert mutation_call[1] == {"issueId": "I_7"}
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_cached_lookup_skips_network(self, card_registry):
        cache = ResolutionCache()
        transport = ScriptedTransport(
            {"repository": {"issue": {"id": "I_7"}}},
            {"closeIssue": {"issue": {"id": "I_7", "state": "CLOSED"}}},
            {"closeIssue": {"issue": {"id": "I_7", "state": "CLOSED"}}},
        )
        client = GraphqlClient(transport)
        card = card_registry.get("issue.close.by_number")

        await run_graphql_capability(client, card_registry.documents, card, BY_NUMBER, cache=cache)
        await run_graphql_capability(client, card_registry.documents, card, BY_NUMBER, cache=cache)

        assert len(transport.calls) == 3

    @pytest.mark.asyncio
    async def test_failed_injection(self, card_registry):
        transport = ScriptedTransport({"repository": {"issue": None}})
        with pytest.raises(ResolutionError, match="repository.issue.id"):
            await run_graphql_capability(
                GraphqlClient(transport),
                card_registry.documents,
                card_registry.get("issue.close.by_number"),
                BY_NUMBER,
            )
        assert len(transport.calls) == 1

    @pytest.mark.asyncio
    async def test_null_lookup_is_not_cached(self, card_registry):
        cache = ResolutionCache()
        transport = ScriptedTransport({"repository": None})

        with pytest.raises(ResolutionError):
            await run_graphql_capability(
                GraphqlClient(transport),
                card_registry.documents,
                card_registry.get("issue.close.by_number"),
                BY_NUMBER,
                cache=cache,
            )
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_card_without_graphql(self, card_registry):
        with pytest.raises(CaprouteError) as exc_info:
            await run_graphql_capability(
                GraphqlClient(ScriptedTransport()),
                card_registry.documents,
                card_registry.get("repo.clone_url"),
                {},
            )
        assert exc_info.value.code == ErrorCode.ADAPTER_UNSUPPORTED

    @pytest.mark.asyncio
    async def test_composite_without_builders(self, bundled_registry):
        with pytest.raises(CaprouteError) as exc_info:
            await run_graphql_capability(
                GraphqlClient(ScriptedTransport()),
                bundled_registry.documents,
                bundled_registry.get("pr.threads.composite"),
                {"threads": []},
            )
        assert exc_info.value.code == ErrorCode.ADAPTER_UNSUPPORTED
