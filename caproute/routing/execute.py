"""
Route Execution Engine.

Executes one capability over an ordered list of routes:

    PENDING
      -> preflight (skip route on failure)
      -> ATTEMPTING (retry while the failure is retryable, up to the cap)
      -> SUCCESS, or FALLBACK to the next route
    -> TERMINAL (success, or failure of the last route tried)

Route order is the card's preferred route followed by its fallbacks,
optionally reordered by the card's suitability rules. Route handlers
are supplied by the caller and return the capability's data or raise.
Every exception is converted to an envelope; nothing escapes
``execute_route``.

Output is validated against the card's output schema even when the
transport reported success.

Usage:
    envelope = await execute_route(
        card,
        params,
        routes={RouteSource.GRAPHQL: run_graphql, RouteSource.CLI: run_cli},
        preflight=check_route,
        env={"githubTokenPresent": True},
    )
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ..envelope import AttemptRecord, AttemptStatus, ResultEnvelope, RouteReason, RouteSource
from ..errors import ErrorCode, is_retryable_code, map_error_to_code
from ..observability import JSONLogger
from ..registry.schema_utils import format_issues, validate_input, validate_output
from ..registry.schemas import OperationCard
from .preflight import PreflightResult
from .retry import BackoffStrategy, NoBackoff, RetryPolicy, with_retry
from .suitability import apply_suitability

log = JSONLogger(__name__)

DEFAULT_MAX_ATTEMPTS_PER_ROUTE = 2

RouteHandler = Callable[[OperationCard, dict[str, Any]], Awaitable[Any]]
RoutePreflight = Callable[[RouteSource], Awaitable[PreflightResult]]


@dataclass(frozen=True, slots=True)
class RouteOutcome:
    """Result of one attempt on one route."""

    ok: bool
    data: Any = None
    code: ErrorCode | None = None
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def retryable(self) -> bool:
        return not self.ok and self.code is not None and is_retryable_code(self.code)


def _route_reason(
    route: RouteSource,
    card: OperationCard,
    promoted: RouteSource | None,
    override: str | None,
) -> str:
    if override:
        return override
    if promoted is not None and route == promoted:
        return RouteReason.SUITABILITY_RULE.value
    if route == card.routing.preferred:
        return RouteReason.CARD_PREFERRED.value
    return RouteReason.CARD_FALLBACK.value


async def _attempt(handler: RouteHandler, card: OperationCard, params: dict[str, Any]) -> RouteOutcome:
    try:
        data = await handler(card, params)
    except Exception as e:
        details = dict(getattr(e, "details", None) or {})
        return RouteOutcome(ok=False, code=map_error_to_code(e), message=str(e) or type(e).__name__, details=details)

    issues = validate_output(card.output_schema, data)
    if issues:
        return RouteOutcome(
            ok=False,
            code=ErrorCode.VALIDATION,
            message=f"Output schema validation failed: {format_issues(issues)}",
            details={"schema_errors": [issue.to_dict() for issue in issues]},
        )
    return RouteOutcome(ok=True, data=data)


async def execute_route(
    card: OperationCard,
    params: dict[str, Any],
    *,
    routes: Mapping[RouteSource, RouteHandler | None],
    preflight: RoutePreflight,
    env: dict[str, Any] | None = None,
    max_attempts_per_route: int = DEFAULT_MAX_ATTEMPTS_PER_ROUTE,
    backoff: BackoffStrategy | None = None,
    reason: str | None = None,
) -> ResultEnvelope:
    """
    Run a card through its routes with preflight, retry and fallback.

    Args:
        card: The capability definition
        params: Request input
        routes: Handler per route; a missing or None handler is unsupported
        preflight: Async check run before each route is attempted
        env: Routing environment for suitability rules
        max_attempts_per_route: Attempts per route for retryable failures
        backoff: Delay between attempts (none by default)
        reason: Caller override reported as ``meta.reason``

    Returns:
        ResultEnvelope, never raises
    """
    started = time.monotonic()
    step_log = log.with_context(capability_id=card.capability_id)

    issues = validate_input(card.input_schema, params)
    if issues:
        step_log.debug("execute.input_invalid", issues=len(issues))
        return ResultEnvelope.failure(
            ErrorCode.VALIDATION,
            f"Input validation failed: {format_issues(issues)}",
            card.capability_id,
            card.routing.preferred,
            reason=reason or RouteReason.DEFAULT_POLICY.value,
            details={"schema_errors": [issue.to_dict() for issue in issues]},
        )

    order, rule = apply_suitability(card.route_order(), card.routing.suitability, env or {}, params)
    promoted = order[0] if rule is not None else None
    if rule is not None:
        step_log.debug("execute.suitability_applied", route=promoted.value, rule_reason=rule.reason)

    policy = RetryPolicy(
        max_attempts=max(1, max_attempts_per_route),
        backoff=backoff or NoBackoff(),
        retry_on_result=lambda outcome: outcome.retryable,
    )

    attempts: list[AttemptRecord] = []
    last_route: RouteSource | None = None
    last_failure = RouteOutcome(
        ok=False,
        code=ErrorCode.ADAPTER_UNSUPPORTED,
        message=f"No route configured for capability '{card.capability_id}'",
    )

    for route in order:
        last_route = route
        handler = routes.get(route)
        if handler is None:
            attempts.append(AttemptRecord(route, AttemptStatus.SKIPPED, ErrorCode.ADAPTER_UNSUPPORTED))
            last_failure = RouteOutcome(
                ok=False,
                code=ErrorCode.ADAPTER_UNSUPPORTED,
                message=f"Route '{route.value}' is not supported for capability '{card.capability_id}'",
            )
            step_log.debug("route.unsupported", route=route.value)
            continue

        check = await preflight(route)
        if not check.ok:
            attempts.append(AttemptRecord(route, AttemptStatus.SKIPPED, check.code))
            last_failure = RouteOutcome(ok=False, code=check.code, message=check.message or "preflight failed")
            step_log.debug("route.skipped", route=route.value, error_code=check.code)
            continue

        outcome = await with_retry(
            lambda handler=handler: _attempt(handler, card, params),
            policy,
            operation_name=f"{card.capability_id}:{route.value}",
        )
        for result in outcome.results:
            status = AttemptStatus.OK if result.ok else AttemptStatus.ERROR
            attempts.append(AttemptRecord(route, status, result.code))

        final = outcome.result
        if final.ok:
            envelope = ResultEnvelope.success(
                final.data,
                card.capability_id,
                route,
                reason=_route_reason(route, card, promoted, reason),
                attempts=tuple(attempts),
            )
            step_log.info(
                "execute.complete",
                ok=True,
                route_used=route.value,
                attempts=len(attempts),
                duration_ms=round((time.monotonic() - started) * 1000, 1),
            )
            return envelope

        last_failure = final
        step_log.info(
            "route.fallback",
            route=route.value,
            error_code=final.code,
            attempts=outcome.attempts,
        )

    step_log.info(
        "execute.complete",
        ok=False,
        route_used=last_route.value if last_route else None,
        error_code=last_failure.code,
        attempts=len(attempts),
        duration_ms=round((time.monotonic() - started) * 1000, 1),
    )
    return ResultEnvelope.failure(
        last_failure.code or ErrorCode.UNKNOWN,
        last_failure.message,
        card.capability_id,
        last_route or card.routing.preferred,
        reason=(
            _route_reason(last_route, card, promoted, reason)
            if last_route
            else reason or RouteReason.DEFAULT_POLICY.value
        ),
        details={"route": last_route.value if last_route else None, **last_failure.details},
        attempts=tuple(attempts),
    )
