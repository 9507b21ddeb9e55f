"""
Execution context.

Everything a call to ``execute_task`` / ``execute_tasks`` depends on,
passed explicitly: the card registry, the GraphQL client, CLI runner and
availability flags, the resolution cache, and routing overrides.

The resolution cache is owned by the context. Callers choose its
lifetime by reusing (or not) a context or a cache instance; there is no
module-level cache.

Usage:
    context = ExecutionContext.from_settings(get_settings())
    envelope = await execute_task(TaskRequest("repo.view", {...}), context)

    # Tests: explicit collaborators
    context = ExecutionContext(
        cards=registry,
        client=GraphqlClient(fake_transport),
        token_present=True,
        skip_cli_preflight=True,
    )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..adapters.cli import CliCommandRunner, SubprocessCliRunner
from ..composite import OperationBuilderRegistry
from ..gql.transport import GraphqlClient, HttpGraphqlTransport
from ..registry.registry import CardRegistry
from ..routing.cache import ResolutionCache
from ..routing.execute import DEFAULT_MAX_ATTEMPTS_PER_ROUTE, RouteHandler
from ..routing.retry import BackoffStrategy, NoBackoff

if TYPE_CHECKING:
    from ..config import EngineSettings


@dataclass
class ExecutionContext:
    """Collaborators and flags for one or many engine calls."""

    cards: CardRegistry
    client: GraphqlClient | None = None

    # Credential presence; the engine never sees token lifecycle
    token_present: bool = False

    # CLI route
    cli_runner: CliCommandRunner = field(default_factory=SubprocessCliRunner)
    cli_command: str = "gh"
    cli_timeout_ms: int = 10_000
    cli_available: bool | None = None
    cli_authenticated: bool | None = None
    skip_cli_preflight: bool = False

    # REST has no built-in adapter
    rest_handler: RouteHandler | None = None

    # Routing
    reason: str | None = None
    max_attempts_per_route: int = DEFAULT_MAX_ATTEMPTS_PER_ROUTE
    backoff: BackoffStrategy = field(default_factory=NoBackoff)

    resolution_cache: ResolutionCache | None = field(default_factory=ResolutionCache)
    operation_builders: OperationBuilderRegistry | None = None

    def __post_init__(self) -> None:
        if self.operation_builders is None:
            self.operation_builders = OperationBuilderRegistry.from_cards(self.cards)

    @property
    def routing_env(self) -> dict[str, Any]:
        """Environment seen by suitability rules as ``env.<key>``."""
        return {
            "githubTokenPresent": self.token_present,
            "ghCliAvailable": self.cli_available,
            "ghAuthenticated": self.cli_authenticated,
        }

    @classmethod
    def from_settings(
        cls,
        settings: EngineSettings,
        *,
        cards: CardRegistry | None = None,
        client: GraphqlClient | None = None,
        **overrides: Any,
    ) -> ExecutionContext:
        """
        Context built from EngineSettings.

        A GraphQL client over httpx is created when the settings carry a
        token and no client is given.
        """
        if cards is None:
            cards = CardRegistry.from_directory(settings.cards_dir)
        token = settings.token_value
        if client is None and token:
            client = GraphqlClient(
                HttpGraphqlTransport(settings.graphql_url, token=token, timeout=settings.http_timeout)
            )

        values: dict[str, Any] = {
            "token_present": bool(token),
            "cli_command": settings.cli_command,
            "cli_timeout_ms": settings.cli_timeout_ms,
            "skip_cli_preflight": settings.skip_cli_preflight,
            "max_attempts_per_route": settings.max_attempts_per_route,
            "resolution_cache": ResolutionCache(
                ttl_seconds=settings.cache_ttl_seconds,
                max_entries=settings.cache_max_entries,
            ),
        }
        values.update(overrides)
        return cls(cards=cards, client=client, **values)
