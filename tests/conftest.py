"""
Pytest configuration and fixtures for caproute tests.
"""

import sys
from pathlib import Path
from typing import Any

import pytest

# Add the repository root to path for imports
# This allows `from caproute.engine import ...` to work
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from caproute.adapters.cli import CliResult  # noqa: E402
from caproute.config import DEFAULT_CARDS_DIR  # noqa: E402
from caproute.engine.context import ExecutionContext  # noqa: E402
from caproute.gql.transport import GraphqlClient, GraphqlRawResult  # noqa: E402
from caproute.registry.documents import DocumentRegistry  # noqa: E402
from caproute.registry.registry import CardRegistry, parse_card  # noqa: E402


# =============================================================================
# GraphQL documents
# =============================================================================

ISSUE_NODE_ID = """
query IssueNodeId($owner: String!, $name: String!, $issueNumber: Int!) {
  repository(owner: $owner, name: $name) {
    issue(number: $issueNumber) {
      id
    }
  }
}
"""

PR_NODE_ID = """
query PrNodeId($owner: String!, $name: String!, $prNumber: Int!) {
  repository(owner: $owner, name: $name) {
    pullRequest(number: $prNumber) {
      id
    }
  }
}
"""

ISSUE_CLOSE = """
mutation IssueClose($issueId: ID!) {
  closeIssue(input: { issueId: $issueId }) {
    issue {
      id
      state
    }
  }
}
"""

THREAD_RESOLVE = """
mutation PrThreadResolve($threadId: ID!) {
  resolveReviewThread(input: { threadId: $threadId }) {
    thread {
      id
      isResolved
    }
  }
}
"""

PR_READY = """
mutation PrReady($pullRequestId: ID!) {
  markPullRequestReadyForReview(input: { pullRequestId: $pullRequestId }) {
    pullRequest {
      id
      isDraft
    }
  }
}
"""

REPO_VIEW = """
query RepoView($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) {
    id
    nameWithOwner
  }
}
"""


# =============================================================================
# Cards
# =============================================================================


def make_card(capability_id: str, **overrides: Any):
    """Build a valid card document with sensible defaults, then parse it."""
    raw: dict[str, Any] = {
        "capability_id": capability_id,
        "version": "1.0.0",
        "description": f"Test card for {capability_id}",
        "input_schema": {"type": "object"},
        "output_schema": {"type": "object"},
        "routing": {"preferred": "graphql", "fallbacks": []},
    }
    raw.update(overrides)
    return parse_card(raw, capability_id)


def _graphql_block(operation_name: str, operation_type: str, **extra: Any) -> dict[str, Any]:
    return {
        "operationName": operation_name,
        "documentPath": f"documents/{operation_name}.graphql",
        "operationType": operation_type,
        **extra,
    }


def build_test_registry() -> CardRegistry:
    documents = DocumentRegistry()
    for name, text in (
        ("IssueNodeId", ISSUE_NODE_ID),
        ("PrNodeId", PR_NODE_ID),
        ("IssueClose", ISSUE_CLOSE),
        ("PrThreadResolve", THREAD_RESOLVE),
        ("PrReady", PR_READY),
        ("RepoView", REPO_VIEW),
    ):
        documents.register(name, text)

    cards = [
        make_card(
            "issue.close",
            input_schema={
                "type": "object",
                "required": ["issueId"],
                "properties": {"issueId": {"type": "string"}},
            },
            output_schema={"type": "object", "required": ["issue"]},
            graphql=_graphql_block("IssueClose", "mutation"),
        ),
        make_card(
            "issue.close.by_number",
            input_schema={
                "type": "object",
                "required": ["owner", "name", "issueNumber"],
                "properties": {
                    "owner": {"type": "string"},
                    "name": {"type": "string"},
                    "issueNumber": {"type": "integer"},
                },
            },
            output_schema={"type": "object", "required": ["issue"]},
            graphql=_graphql_block(
                "IssueClose",
                "mutation",
                resolution={
                    "lookup": {
                        "operationName": "IssueNodeId",
                        "documentPath": "documents/IssueNodeId.graphql",
                        "vars": {"owner": "owner", "name": "name", "issueNumber": "issueNumber"},
                    },
                    "inject": [{"target": "issueId", "source": "scalar", "path": "repository.issue.id"}],
                },
            ),
        ),
        make_card(
            "pr.ready",
            input_schema={
                "type": "object",
                "properties": {
                    "owner": {"type": "string"},
                    "name": {"type": "string"},
                    "prNumber": {"type": "integer"},
                },
            },
            graphql=_graphql_block(
                "PrReady",
                "mutation",
                resolution={
                    "lookup": {
                        "operationName": "PrNodeId",
                        "documentPath": "documents/PrNodeId.graphql",
                        "vars": {"owner": "owner", "name": "name", "prNumber": "prNumber"},
                    },
                    "inject": [
                        {"target": "pullRequestId", "source": "scalar", "path": "repository.pullRequest.id"}
                    ],
                },
            ),
        ),
        make_card(
            "pr.thread.resolve",
            input_schema={
                "type": "object",
                "required": ["threadId"],
                "properties": {"threadId": {"type": "string"}},
            },
            output_schema={"type": "object", "required": ["thread"]},
            graphql=_graphql_block("PrThreadResolve", "mutation"),
        ),
        make_card(
            "repo.view",
            input_schema={
                "type": "object",
                "required": ["owner", "name"],
                "properties": {"owner": {"type": "string"}, "name": {"type": "string"}},
            },
            output_schema={"type": "object", "required": ["id"]},
            routing={"preferred": "graphql", "fallbacks": ["cli"]},
            graphql=_graphql_block("RepoView", "query"),
            cli={"command": "repo view {owner}/{name}", "jsonFields": ["id", "nameWithOwner"]},
        ),
        make_card(
            "repo.clone_url",
            input_schema={
                "type": "object",
                "required": ["owner", "name"],
                "properties": {"owner": {"type": "string"}, "name": {"type": "string"}},
            },
            routing={"preferred": "cli", "fallbacks": []},
            cli={"command": "repo view {owner}/{name}", "jsonFields": ["sshUrl"]},
        ),
        make_card(
            "repo.rest_only",
            routing={"preferred": "rest", "fallbacks": []},
            rest={"endpoints": [{"method": "GET", "path": "/repos/{owner}/{name}"}]},
        ),
    ]
    return CardRegistry(cards, documents)


# =============================================================================
# Fakes
# =============================================================================


class ScriptedTransport:
    """
    GraphQL transport that answers from a script and records every call.

    ``responses`` items are GraphqlRawResult, dict (taken as ``data``),
    a callable ``(document, variables) -> result``, or an exception to raise.
    """

    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses)
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def execute(self, document: str, variables: dict[str, Any] | None = None) -> GraphqlRawResult:
        variables = variables or {}
        self.calls.append((document, variables))
        if not self.responses:
            raise AssertionError("ScriptedTransport received an unexpected call")
        response = self.responses.pop(0)
        if callable(response) and not isinstance(response, type):
            response = response(document, variables)
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, GraphqlRawResult):
            return response
        return GraphqlRawResult(data=response)


class FakeCliRunner:
    """CliCommandRunner returning canned results keyed by the first argument."""

    def __init__(self, results: dict[str, Any] | None = None, default: CliResult | None = None) -> None:
        self.results = results or {}
        self.default = default or CliResult(stdout="{}", stderr="", exit_code=0)
        self.calls: list[tuple[str, list[str], int]] = []

    async def run(self, command: str, args: list[str], timeout_ms: int) -> CliResult:
        self.calls.append((command, list(args), timeout_ms))
        result = self.results.get(args[0] if args else "", self.default)
        if isinstance(result, list):
            result = result.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def card_registry() -> CardRegistry:
    """In-memory registry of small test cards."""
    return build_test_registry()


@pytest.fixture(scope="session")
def bundled_registry() -> CardRegistry:
    """Registry of the cards shipped with the package."""
    return CardRegistry.from_directory(DEFAULT_CARDS_DIR)


@pytest.fixture
def cli_runner() -> FakeCliRunner:
    return FakeCliRunner()


@pytest.fixture
def make_context(card_registry, cli_runner):
    """Factory for an ExecutionContext over a scripted transport."""

    def factory(*responses: Any, cards: CardRegistry | None = None, **overrides: Any):
        transport = ScriptedTransport(*responses)
        values: dict[str, Any] = {
            "cards": cards or card_registry,
            "client": GraphqlClient(transport),
            "token_present": True,
            "cli_runner": cli_runner,
            "skip_cli_preflight": True,
        }
        values.update(overrides)
        return ExecutionContext(**values), transport

    return factory
