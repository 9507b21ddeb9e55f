"""
Execution engine entry points.

Usage:
    context = ExecutionContext.from_settings(get_settings())

    envelope = await execute_task({"task": "repo.view", "input": {"owner": "o", "name": "r"}}, context)

    batch = await execute_tasks(
        [
            {"task": "issue.close", "input": {"owner": "o", "name": "r", "issueNumber": 7}},
            {"task": "issue.comments.create", "input": {...}},
        ],
        context,
    )

Neither function raises: every outcome, including an unexpected bug,
is reported as an envelope.
"""

from __future__ import annotations

import logging
from typing import Any

from ..envelope import BatchResultEnvelope, ResultEnvelope, RouteReason, RouteSource
from ..errors import CaprouteError, ErrorCode
from .batch import execute_batch, prepare_operation, run_operation_group
from .context import ExecutionContext
from .preflight import PreflightOutcome, classify_route, run_preflight
from .resolution import run_resolution_phase
from .single import build_route_handlers, build_route_preflight, execute_full_route
from .types import ClassifiedStep, StepRoute, TaskRequest

logger = logging.getLogger(__name__)

RequestLike = TaskRequest | dict[str, Any]


def _failure(task: str, error: Exception) -> ResultEnvelope:
    code = error.code if isinstance(error, CaprouteError) else ErrorCode.UNKNOWN
    message = error.message if isinstance(error, CaprouteError) else str(error) or type(error).__name__
    return ResultEnvelope.failure(code, message, task, None, reason=RouteReason.DEFAULT_POLICY.value)


async def execute_task(request: RequestLike, context: ExecutionContext) -> ResultEnvelope:
    """Execute one capability request."""
    task = TaskRequest.task_name(request)
    try:
        return await execute_full_route(TaskRequest.coerce(request), context)
    except CaprouteError as e:
        logger.debug(f"[engine] Rejected request for {task!r}: {e.message}")
        return _failure(task, e)
    except Exception as e:
        logger.exception(f"[engine] Unexpected failure executing {task}")
        return _failure(task, e)


async def execute_tasks(requests: list[RequestLike], context: ExecutionContext) -> BatchResultEnvelope:
    """
    Execute several capability requests.

    A single request takes the full route engine (retry and fallback);
    two or more take the batched pipeline. A malformed request fails the
    whole call, with one envelope per request.
    """
    if not requests:
        return BatchResultEnvelope.from_results([], RouteSource.GRAPHQL)

    if len(requests) == 1:
        envelope = await execute_task(requests[0], context)
        return BatchResultEnvelope.from_results([envelope], envelope.meta.route_used or RouteSource.GRAPHQL)

    try:
        task_requests = [TaskRequest.coerce(request) for request in requests]
        return await execute_batch(task_requests, context)
    except CaprouteError as e:
        logger.debug(f"[engine] Rejected batch: {e.message}")
        error: Exception = e
    except Exception as e:
        logger.exception("[engine] Unexpected failure executing batch")
        error = e
    return BatchResultEnvelope.from_results(
        [_failure(TaskRequest.task_name(request), error) for request in requests],
        RouteSource.GRAPHQL,
    )


__all__ = [
    "ClassifiedStep",
    "ExecutionContext",
    "PreflightOutcome",
    "StepRoute",
    "TaskRequest",
    "build_route_handlers",
    "build_route_preflight",
    "classify_route",
    "execute_batch",
    "execute_full_route",
    "execute_task",
    "execute_tasks",
    "prepare_operation",
    "run_operation_group",
    "run_preflight",
    "run_resolution_phase",
]
