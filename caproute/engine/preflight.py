"""
Batch preflight.

Checks every request of a batch before anything touches the network:

1. the capability exists
2. the input satisfies the card's input schema
3. the card has a route that can be batched (graphql or cli)
4. every input field a resolution lookup needs is present

Errors are collected per request, not short-circuited, so one call
reports every invalid step. Valid steps are classified as CLI, GraphQL
query or GraphQL mutation and continue through the pipeline.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..envelope import ResultEnvelope, RouteReason, RouteSource
from ..errors import CaprouteError, ErrorCode
from ..registry.registry import CardRegistry
from ..registry.schema_utils import format_issues, validate_input
from ..registry.schemas import OperationCard
from .types import ClassifiedStep, StepRoute, TaskRequest

logger = logging.getLogger(__name__)


@dataclass
class PreflightOutcome:
    """Classified steps plus a failure envelope for every rejected index."""

    steps: list[ClassifiedStep] = field(default_factory=list)
    errors: dict[int, ResultEnvelope] = field(default_factory=dict)
    route_used: RouteSource = RouteSource.GRAPHQL

    @property
    def ok(self) -> bool:
        return not self.errors


def _check(request: TaskRequest, cards: CardRegistry) -> OperationCard:
    card = cards.get(request.task)
    if card is None:
        raise CaprouteError(f"Invalid task: {request.task}", code=ErrorCode.VALIDATION)

    issues = validate_input(card.input_schema, request.input)
    if issues:
        raise CaprouteError(
            f"Input validation failed: {format_issues(issues)}",
            code=ErrorCode.VALIDATION,
            details={"schema_errors": [issue.to_dict() for issue in issues]},
        )

    if card.graphql is None and card.cli is None:
        raise CaprouteError(
            f"capability '{request.task}' has no supported route (graphql or cli) and cannot be chained",
            code=ErrorCode.ADAPTER_UNSUPPORTED,
        )

    resolution = card.resolution
    if resolution is not None:
        for input_field in resolution.lookup.vars.values():
            if input_field not in request.input:
                raise CaprouteError(
                    f"Resolution pre-flight failed for '{request.task}': "
                    f"lookup var '{input_field}' is missing from input",
                    code=ErrorCode.RESOLUTION_FAILED,
                )
    return card


def classify_route(card: OperationCard, cards: CardRegistry) -> StepRoute:
    if card.graphql is None:
        return StepRoute.CLI
    operation_type = card.graphql.operation_type or cards.documents.operation_type(card.graphql.operation_name)
    return StepRoute.GQL_QUERY if operation_type == "query" else StepRoute.GQL_MUTATION


def run_preflight(requests: list[TaskRequest], cards: CardRegistry) -> PreflightOutcome:
    """Validate and classify every request of a batch."""
    outcome = PreflightOutcome()
    passed_cards: list[OperationCard] = []

    for index, request in enumerate(requests):
        try:
            card = _check(request, cards)
            route = classify_route(card, cards)
        except CaprouteError as e:
            logger.debug(f"[preflight] step {index} ({request.task}) rejected: {e.message}")
            outcome.errors[index] = ResultEnvelope.failure(
                e.code,
                e.message,
                request.task,
                None,
                reason=RouteReason.DEFAULT_POLICY.value,
                details=e.details,
            )
            continue
        passed_cards.append(card)
        outcome.steps.append(ClassifiedStep(route, card, index, request))

    # Display attribution only: cli when every accepted card is CLI-only
    if passed_cards and all(card.graphql is None for card in passed_cards):
        outcome.route_used = RouteSource.CLI
    return outcome
