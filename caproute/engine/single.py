"""
Single-task execution.

Binds the route engine to the built-in adapters for one request: GraphQL
over the context's client, the CLI through the context's runner, and
REST through a caller-supplied handler.
"""

from __future__ import annotations

import logging
from typing import Any

from ..adapters.cli import run_cli_capability
from ..adapters.graphql import run_graphql_capability
from ..envelope import ResultEnvelope, RouteReason, RouteSource
from ..errors import ErrorCode
from ..registry.schemas import OperationCard
from ..routing.execute import RouteHandler, execute_route
from ..routing.preflight import PreflightResult, get_cli_probe, preflight_check
from .context import ExecutionContext
from .types import TaskRequest

logger = logging.getLogger(__name__)


def build_route_handlers(card: OperationCard, context: ExecutionContext) -> dict[RouteSource, RouteHandler | None]:
    """Route handlers available for a card in this context."""
    handlers: dict[RouteSource, RouteHandler | None] = {}

    if context.client is not None and (card.graphql is not None or card.composite is not None):
        client = context.client

        async def run_graphql(card: OperationCard, params: dict[str, Any]) -> Any:
            return await run_graphql_capability(
                client,
                context.cards.documents,
                card,
                params,
                cache=context.resolution_cache,
                builders=context.operation_builders,
            )

        handlers[RouteSource.GRAPHQL] = run_graphql

    if card.cli is not None:

        async def run_cli(card: OperationCard, params: dict[str, Any]) -> Any:
            return await run_cli_capability(
                context.cli_runner,
                card,
                params,
                command=context.cli_command,
                timeout_ms=context.cli_timeout_ms,
            )

        handlers[RouteSource.CLI] = run_cli

    if context.rest_handler is not None:
        handlers[RouteSource.REST] = context.rest_handler

    return handlers


def build_route_preflight(context: ExecutionContext):
    """Preflight closure; caller-supplied CLI flags win over detection."""

    async def check(route: RouteSource) -> PreflightResult:
        if route != RouteSource.CLI:
            return preflight_check(route, token_present=context.token_present)
        if context.skip_cli_preflight:
            return PreflightResult.passed()

        available = context.cli_available
        authenticated = context.cli_authenticated
        if available is None or authenticated is None:
            detected = await get_cli_probe(context.cli_runner, context.cli_command).detect(context.cli_runner)
            available = detected.available if available is None else available
            authenticated = detected.authenticated if authenticated is None else authenticated
        return preflight_check(route, cli_available=available, cli_authenticated=authenticated)

    return check


async def execute_full_route(request: TaskRequest, context: ExecutionContext) -> ResultEnvelope:
    """
    Execute one request through the full route engine.

    Returns:
        ResultEnvelope, never raises
    """
    card = context.cards.get(request.task)
    if card is None:
        logger.debug(f"[engine] Unsupported task: {request.task}")
        return ResultEnvelope.failure(
            ErrorCode.VALIDATION,
            f"Unsupported task: {request.task}",
            request.task,
            None,
            reason=context.reason or RouteReason.DEFAULT_POLICY.value,
        )

    return await execute_route(
        card,
        request.input,
        routes=build_route_handlers(card, context),
        preflight=build_route_preflight(context),
        env=context.routing_env,
        max_attempts_per_route=context.max_attempts_per_route,
        backoff=context.backoff,
        reason=context.reason,
    )
