"""
Batch Tasks Example

This example runs the bundled cards against an in-memory transport:
1. Build an ExecutionContext with explicit collaborators
2. Execute one task through the route engine
3. Execute a batch and inspect per-request envelopes

Run: python -m examples.01-batch-tasks.main

Point it at a real endpoint by exporting GITHUB_TOKEN and replacing
``context`` with ``ExecutionContext.from_settings(get_settings())``.
"""

import asyncio
import json
from typing import Any

from caproute import ExecutionContext, TaskRequest, configure_logging, execute_task, execute_tasks, get_default_registry
from caproute.gql.transport import GraphqlClient, GraphqlRawResult

# =============================================================================
# In-memory transport
# =============================================================================


class CannedTransport:
    """Answers every aliased field from a table keyed by root field name."""

    ANSWERS: dict[str, Any] = {
        "repository": {
            "id": "R_1",
            "name": "octo-repo",
            "nameWithOwner": "octo-org/octo-repo",
            "issue": {"id": "I_1"},
        },
        "closeIssue": {"issue": {"id": "I_1", "number": 3, "state": "CLOSED"}},
        "addComment": {"commentEdge": {"node": {"id": "IC_1", "url": "https://example.test/c/1"}}},
    }

    async def execute(self, document: str, variables: dict[str, Any] | None = None) -> GraphqlRawResult:
        print(f"--> {document.split('(')[0].strip()}  variables={json.dumps(variables)}")
        data: dict[str, Any] = {}
        for line in document.splitlines():
            alias, _, rest = line.strip().partition(":")
            root = rest.strip().split("(")[0]
            if alias.startswith("step") and root in self.ANSWERS:
                data[alias] = self.ANSWERS[root]
        if not data:
            data = {"repository": self.ANSWERS["repository"]}
        return GraphqlRawResult(data=data)


# =============================================================================
# Main
# =============================================================================


async def main():
    configure_logging("INFO")

    context = ExecutionContext(
        cards=get_default_registry(),
        client=GraphqlClient(CannedTransport()),
        token_present=True,
        skip_cli_preflight=True,
    )

    print("Single task")
    envelope = await execute_task(TaskRequest("repo.view", {"owner": "octo-org", "name": "octo-repo"}), context)
    print(json.dumps(envelope.to_dict(), indent=2))

    print("\nBatch")
    batch = await execute_tasks(
        [
            {"task": "issue.close", "input": {"owner": "octo-org", "name": "octo-repo", "issueNumber": 3}},
            {
                "task": "issue.comments.create",
                "input": {"owner": "octo-org", "name": "octo-repo", "issueNumber": 3, "body": "Closing as fixed."},
            },
            {"task": "issue.close", "input": {"owner": "octo-org", "name": "octo-repo"}},
        ],
        context,
    )
    print(json.dumps(batch.to_dict(), indent=2))


if __name__ == "__main__":
    asyncio.run(main())
