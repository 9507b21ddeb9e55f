"""
caproute - capability routing and resolution engine for GitHub operations.

Callers name a capability (``issue.close``, ``pr.thread.reply``) and pass
input. The engine validates it against the capability's operation card,
picks a route (GraphQL, CLI, REST), resolves opaque node IDs from
human-readable input, and returns a uniform result envelope.

Features:

- **Operation cards**: declarative YAML capability definitions checked
  against a meta-schema at load time
- **Route engine**: preflight, per-route retry and ordered fallback
- **Resolution**: lookup queries plus inject specs turn numbers and names
  into node IDs, with a TTL cache
- **Batching**: many requests cost at most two GraphQL round trips
- **Composites**: one invocation expanded into several mutations

Quick Start:
    >>> from caproute import ExecutionContext, execute_task, get_settings
    >>>
    >>> context = ExecutionContext.from_settings(get_settings())
    >>> envelope = await execute_task(
    ...     {"task": "issue.close", "input": {"owner": "o", "name": "r", "issueNumber": 7}},
    ...     context,
    ... )
    >>> envelope.ok
"""

__version__ = "0.1.0"

from caproute.config import EngineSettings, get_settings
from caproute.engine import ExecutionContext, TaskRequest, execute_task, execute_tasks
from caproute.envelope import BatchResultEnvelope, ResultEnvelope, RouteReason, RouteSource
from caproute.errors import CaprouteError, ErrorCode
from caproute.observability import configure_logging
from caproute.registry import CardRegistry, OperationCard, get_default_registry

__all__ = [
    # Version info
    "__version__",
    # Entry points
    "ExecutionContext",
    "TaskRequest",
    "execute_task",
    "execute_tasks",
    # Results
    "BatchResultEnvelope",
    "ResultEnvelope",
    "RouteReason",
    "RouteSource",
    # Errors
    "CaprouteError",
    "ErrorCode",
    # Cards
    "CardRegistry",
    "OperationCard",
    "get_default_registry",
    # Configuration
    "EngineSettings",
    "configure_logging",
    "get_settings",
]
