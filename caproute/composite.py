"""
Composite Expansion.

A composite card turns one logical invocation into a flat list of
concrete GraphQL mutations, which are then sent as a single batch.

    composite:
      steps:
        - capability_id: pr.thread.reply
          foreach: threads
          actions: [reply, reply_and_resolve]
          params_map: {threadId: threadId, body: body}
        - capability_id: pr.thread.resolve
          foreach: threads
          actions: [resolve, reply_and_resolve]
          params_map: {threadId: threadId}
      output_strategy: array

Rules:
- ``foreach`` iterates an array of objects in the params; items are
  expanded in order, every matching step for item 0 before item 1
- ``actions`` restricts a step to items whose ``action`` is listed; an
  item without an ``action`` runs every step, and an action no step
  lists is an error
- ``requires_any_of`` silently skips a step when none of the fields are
  present
- every step needs a registered OperationBuilder
- aliases are ``<capability_id with dots as underscores>_<ordinal>``

This is a flat foreach/conditional mechanism, not a scheduler: steps do
not see each other's results.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from .errors import CompositeError
from .gql.batch import BatchOperation
from .gql.resolve import build_operation_vars, get_at_path
from .registry.schema_utils import format_issues, validate_input
from .registry.schemas import CompositeConfig, CompositeStep, OperationCard

if TYPE_CHECKING:
    from .registry.registry import CardRegistry

logger = logging.getLogger(__name__)


# =============================================================================
# Operation builders
# =============================================================================


@dataclass(frozen=True, slots=True)
class BuiltOperation:
    document: str
    variables: dict[str, Any]


class OperationBuilder(Protocol):
    """Builds one mutation from step input and interprets its aliased response."""

    def build(self, params: dict[str, Any]) -> BuiltOperation:
        ...

    def map_response(self, raw: Any) -> Any:
        ...


@dataclass(frozen=True)
class CardOperationBuilder:
    """
    OperationBuilder backed by a card's GraphQL document.

    Input is validated against the card's input schema, and variables are
    the document's declared variables taken from the input.
    """

    card: OperationCard
    document: str
    response_mapper: Callable[[Any], Any] | None = None

    def build(self, params: dict[str, Any]) -> BuiltOperation:
        issues = validate_input(self.card.input_schema, params)
        if issues:
            raise CompositeError(
                f"Invalid input for '{self.card.capability_id}': {format_issues(issues)}",
                details={"schema_errors": [issue.to_dict() for issue in issues]},
            )
        return BuiltOperation(self.document, build_operation_vars(self.document, params))

    def map_response(self, raw: Any) -> Any:
        if self.response_mapper is None:
            return raw
        return self.response_mapper(raw)


def _thread_comment(raw: Any) -> dict[str, Any]:
    comment_id = get_at_path(raw, "comment.id")
    if not isinstance(comment_id, str):
        raise CompositeError("Review thread mutation failed")
    return {"id": comment_id}


def _thread_state(raw: Any) -> dict[str, Any]:
    thread = get_at_path(raw, "thread")
    if not isinstance(thread, dict) or not isinstance(thread.get("id"), str):
        raise CompositeError("Review thread mutation failed")
    return {"id": thread["id"], "isResolved": bool(thread.get("isResolved"))}


# capability id -> mapper over the aliased root field value
RESPONSE_MAPPERS: dict[str, Callable[[Any], Any]] = {
    "pr.thread.reply": _thread_comment,
    "pr.thread.resolve": _thread_state,
    "pr.thread.unresolve": _thread_state,
}


class OperationBuilderRegistry:
    """capability id → OperationBuilder."""

    def __init__(self) -> None:
        self._builders: dict[str, OperationBuilder] = {}

    def register(self, capability_id: str, builder: OperationBuilder) -> None:
        self._builders[capability_id] = builder

    def get(self, capability_id: str) -> OperationBuilder | None:
        return self._builders.get(capability_id)

    def __contains__(self, capability_id: str) -> bool:
        return capability_id in self._builders

    def __len__(self) -> int:
        return len(self._builders)

    @classmethod
    def from_cards(cls, cards: CardRegistry) -> OperationBuilderRegistry:
        """Builders for every card with a response mapper and a GraphQL document."""
        builders = cls()
        for capability_id, mapper in RESPONSE_MAPPERS.items():
            card = cards.get(capability_id)
            if card is None or card.graphql is None or card.graphql.operation_name not in cards.documents:
                continue
            document = cards.documents.get(card.graphql.operation_name)
            builders.register(capability_id, CardOperationBuilder(card, document, mapper))
        return builders


# =============================================================================
# Expansion
# =============================================================================


@dataclass(frozen=True, slots=True)
class ExpandedOperation:
    capability_id: str
    alias: str
    document: str
    variables: dict[str, Any]
    map_response: Callable[[Any], Any]

    def to_batch_operation(self) -> BatchOperation:
        return BatchOperation(self.alias, self.document, self.variables)


def _json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _present(source: dict[str, Any], fallback: dict[str, Any], key: str) -> bool:
    return source.get(key) is not None or fallback.get(key) is not None


def _step_input(step: CompositeStep, source: dict[str, Any], params: dict[str, Any]) -> dict[str, Any]:
    step_input: dict[str, Any] = {}
    for builder_param, field_name in step.params_map.items():
        if field_name in source:
            step_input[builder_param] = source[field_name]
        elif field_name in params:
            step_input[builder_param] = params[field_name]
    return step_input


def _foreach_items(composite: CompositeConfig, params: dict[str, Any]) -> tuple[str | None, list[dict[str, Any]]]:
    keys = {step.foreach for step in composite.steps if step.foreach}
    if not keys:
        return None, []
    if len(keys) > 1:
        raise CompositeError(f"Composite steps iterate different arrays: {sorted(keys)}")

    key = keys.pop()
    items = params.get(key)
    if not isinstance(items, list):
        raise CompositeError(f'Composite foreach key "{key}" must be an array, got {_json_type(items)}')
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise CompositeError(
                f'Composite foreach item at index {index} of "{key}" must be an object, got {_json_type(item)}'
            )
    return key, items


def expand_composite_steps(
    composite: CompositeConfig,
    params: dict[str, Any],
    builders: OperationBuilderRegistry,
) -> list[ExpandedOperation]:
    """
    Flat, ordered list of operations for one composite invocation.

    Raises:
        CompositeError: For a non-array foreach value, a non-object item, an
            unknown action, or a capability without a builder
    """
    for step in composite.steps:
        if step.capability_id not in builders:
            raise CompositeError(f"No builder registered for capability: {step.capability_id}")

    foreach_key, items = _foreach_items(composite, params)
    declared_actions = {action for step in composite.steps for action in step.actions or ()}
    if declared_actions:
        for index, item in enumerate(items):
            action = item.get("action")
            if action is not None and action not in declared_actions:
                raise CompositeError(f'Invalid action "{action}" for composite item at index {index}')

    operations: list[ExpandedOperation] = []

    def emit(step: CompositeStep, source: dict[str, Any]) -> None:
        action = source.get("action")
        if step.actions is not None and action is not None and action not in step.actions:
            return
        if step.requires_any_of and not any(_present(source, params, key) for key in step.requires_any_of):
            logger.debug(f"[composite] Skipping {step.capability_id}: none of {list(step.requires_any_of)} present")
            return

        builder = builders.get(step.capability_id)
        built = builder.build(_step_input(step, source, params))
        operations.append(
            ExpandedOperation(
                capability_id=step.capability_id,
                alias=f"{step.capability_id.replace('.', '_')}_{len(operations)}",
                document=built.document,
                variables=built.variables,
                map_response=builder.map_response,
            )
        )

    foreach_emitted = False
    for step in composite.steps:
        if step.foreach is None:
            emit(step, params)
            continue
        if foreach_emitted:
            continue
        foreach_emitted = True
        foreach_steps = [candidate for candidate in composite.steps if candidate.foreach == foreach_key]
        for item in items:
            for foreach_step in foreach_steps:
                emit(foreach_step, item)

    return operations


def combine_composite_results(strategy: str, results: list[Any]) -> Any:
    """Apply a composite ``output_strategy`` to mapped per-operation results."""
    if strategy == "merge":
        merged: dict[str, Any] = {}
        for result in results:
            if isinstance(result, dict):
                merged.update(result)
        return merged
    if strategy == "last":
        return results[-1] if results else None
    return list(results)
