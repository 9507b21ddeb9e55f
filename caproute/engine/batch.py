"""
Batch execution.

Pipeline for ``execute_tasks`` with two or more requests:

    preflight      validate every request, collect errors per index
    classify       CLI / GraphQL query / GraphQL mutation
    resolve        one batched lookup query for every resolution step
    prepare        inject resolved values, build variables per step
    execute        one batched mutation and one batched query, in parallel;
                   CLI steps run concurrently through the route engine
    assemble       one envelope per request, in input order

Network cost is at most two round trips for the GraphQL steps (lookup
phase, then the operation phase split into query and mutation
documents), independent of the number of requests.

Failure isolation:
- A rejected request fails alone; its siblings still execute.
- A GraphQL error is attributed to a step by the alias in
  ``errors[].path[0]``. Errors without a recognisable alias fail every
  step of that document with the first error message.
- A transport exception fails every step of the affected document.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Any

from ..adapters.graphql import with_default_page_size
from ..envelope import AttemptRecord, AttemptStatus, BatchResultEnvelope, ResultEnvelope, RouteReason, RouteSource
from ..errors import CaprouteError, ErrorCode, GraphqlResponseError, ResolutionError, map_error_to_code
from ..gql.batch import BatchDocument, BatchOperation, build_batch_mutation, build_batch_query
from ..gql.resolve import apply_injects, build_operation_vars
from ..gql.transport import GraphqlClient, GraphqlRawResult
from ..observability import JSONLogger
from ..registry.documents import DocumentRegistry
from ..registry.schema_utils import format_issues, validate_output
from .context import ExecutionContext
from .preflight import run_preflight
from .resolution import ResolutionResults, run_resolution_phase
from .single import execute_full_route
from .types import ClassifiedStep, StepRoute, TaskRequest

log = JSONLogger(__name__)

BatchBuilder = Callable[[list[BatchOperation]], BatchDocument]


# =============================================================================
# Envelopes
# =============================================================================


def _graphql_reason(step: ClassifiedStep, context: ExecutionContext) -> str:
    if context.reason:
        return context.reason
    if step.card.routing.preferred == RouteSource.GRAPHQL:
        return RouteReason.CARD_PREFERRED.value
    return RouteReason.CARD_FALLBACK.value


def _step_failure(
    step: ClassifiedStep,
    context: ExecutionContext,
    code: ErrorCode,
    message: str,
    details: dict[str, Any] | None = None,
) -> ResultEnvelope:
    return ResultEnvelope.failure(
        code,
        message,
        step.card.capability_id,
        RouteSource.GRAPHQL,
        reason=_graphql_reason(step, context),
        details=details,
        attempts=(AttemptRecord(RouteSource.GRAPHQL, AttemptStatus.ERROR, code),),
    )


def _step_success(step: ClassifiedStep, context: ExecutionContext, value: Any) -> ResultEnvelope:
    issues = validate_output(step.card.output_schema, value)
    if issues:
        return _step_failure(
            step,
            context,
            ErrorCode.VALIDATION,
            f"Output schema validation failed: {format_issues(issues)}",
            {"schema_errors": [issue.to_dict() for issue in issues]},
        )
    return ResultEnvelope.success(
        value,
        step.card.capability_id,
        RouteSource.GRAPHQL,
        reason=_graphql_reason(step, context),
        attempts=(AttemptRecord(RouteSource.GRAPHQL, AttemptStatus.OK),),
    )


# =============================================================================
# Prepare
# =============================================================================


def prepare_operation(
    step: ClassifiedStep,
    documents: DocumentRegistry,
    lookups: ResolutionResults,
) -> BatchOperation:
    """
    Aliased operation for one GraphQL step.

    Raises:
        CaprouteError: When resolution data is missing or cannot be injected
    """
    card = step.card
    document = documents.get(card.graphql.operation_name)
    params = step.request.input

    resolved: dict[str, Any] = {}
    resolution = card.resolution
    if resolution is not None:
        if step.index not in lookups:
            raise ResolutionError(
                f"Resolution failed for '{card.capability_id}': lookup result missing from batch response"
            )
        resolved = apply_injects(resolution.inject, lookups[step.index], params)

    variables = build_operation_vars(document, with_default_page_size(card, document, params), resolved)
    return BatchOperation(step.alias, document, variables)


# =============================================================================
# Execute
# =============================================================================


def _errors_by_alias(raw: GraphqlRawResult) -> dict[str, dict[str, Any]]:
    by_alias: dict[str, dict[str, Any]] = {}
    for error in raw.errors:
        path = error.get("path") or []
        if path and isinstance(path[0], str):
            by_alias.setdefault(path[0], error)
    return by_alias


async def run_operation_group(
    entries: list[tuple[ClassifiedStep, BatchOperation]],
    build: BatchBuilder,
    client: GraphqlClient,
    context: ExecutionContext,
) -> dict[int, ResultEnvelope]:
    """Send one batched document for a group of steps; envelope per step index."""
    if not entries:
        return {}

    kind = "mutation" if build is build_batch_mutation else "query"
    log.debug("batch.group_start", kind=kind, count=len(entries))
    try:
        batch = build([operation for _, operation in entries])
        raw = await client.query_raw(batch.document, batch.variables)
    except Exception as e:
        code = map_error_to_code(e)
        log.warning("batch.group_failed", kind=kind, count=len(entries), error_code=code, error=str(e))
        return {step.index: _step_failure(step, context, code, str(e) or type(e).__name__) for step, _ in entries}

    by_alias = _errors_by_alias(raw)
    unattributed = raw.errors[0] if raw.has_errors and not by_alias else None
    data = raw.data or {}

    results: dict[int, ResultEnvelope] = {}
    for step, operation in entries:
        error = by_alias.get(operation.alias) or unattributed
        if error is not None:
            mapped = GraphqlResponseError(str(error.get("message", "GraphQL error")), errors=[error])
            results[step.index] = _step_failure(step, context, mapped.code, mapped.message)
        elif operation.alias not in data:
            results[step.index] = _step_failure(
                step,
                context,
                ErrorCode.UNKNOWN,
                f"Batch response has no data for '{operation.alias}'",
            )
        else:
            results[step.index] = _step_success(step, context, data[operation.alias])

    log.debug("batch.group_complete", kind=kind, count=len(entries), errors=len(raw.errors))
    return results


async def _run_graphql_steps(
    steps: list[ClassifiedStep],
    context: ExecutionContext,
) -> dict[int, ResultEnvelope]:
    results: dict[int, ResultEnvelope] = {}
    if not steps:
        return results

    if context.client is None:
        for step in steps:
            results[step.index] = _step_failure(
                step,
                context,
                ErrorCode.ADAPTER_UNSUPPORTED,
                "GraphQL client is not configured",
            )
        return results

    client = context.client
    documents = context.cards.documents

    lookups: ResolutionResults = {}
    resolution_steps = [step for step in steps if step.card.resolution is not None]
    if resolution_steps:
        try:
            lookups = await run_resolution_phase(resolution_steps, client, documents, context.resolution_cache)
        except Exception as e:
            code = map_error_to_code(e)
            log.warning("batch.resolution_failed", steps=len(resolution_steps), error_code=code, error=str(e))
            for step in resolution_steps:
                results[step.index] = _step_failure(step, context, code, str(e) or type(e).__name__)

    mutations: list[tuple[ClassifiedStep, BatchOperation]] = []
    queries: list[tuple[ClassifiedStep, BatchOperation]] = []
    for step in steps:
        if step.index in results:
            continue
        try:
            operation = prepare_operation(step, documents, lookups)
        except CaprouteError as e:
            results[step.index] = _step_failure(step, context, e.code, e.message, e.details)
            continue
        group = mutations if step.route == StepRoute.GQL_MUTATION else queries
        group.append((step, operation))

    for group_results in await asyncio.gather(
        run_operation_group(mutations, build_batch_mutation, client, context),
        run_operation_group(queries, build_batch_query, client, context),
    ):
        results.update(group_results)
    return results


async def execute_batch(requests: list[TaskRequest], context: ExecutionContext) -> BatchResultEnvelope:
    """
    Execute several requests with batched GraphQL round trips.

    Returns:
        BatchResultEnvelope with one result per request in input order
    """
    started = time.monotonic()
    preflight = run_preflight(requests, context.cards)
    results: dict[int, ResultEnvelope] = dict(preflight.errors)

    cli_tasks = {
        step.index: asyncio.create_task(execute_full_route(step.request, context))
        for step in preflight.steps
        if step.route == StepRoute.CLI
    }
    graphql_steps = [step for step in preflight.steps if step.route != StepRoute.CLI]

    try:
        results.update(await _run_graphql_steps(graphql_steps, context))
    finally:
        for index, task in cli_tasks.items():
            results[index] = await task

    envelope = BatchResultEnvelope.from_results([results[index] for index in range(len(requests))], preflight.route_used)
    log.info(
        "execute_batch.complete",
        status=envelope.status.value,
        total=envelope.meta.total,
        succeeded=envelope.meta.succeeded,
        failed=envelope.meta.failed,
        duration_ms=round((time.monotonic() - started) * 1000, 1),
    )
    return envelope
