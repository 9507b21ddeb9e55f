"""
GraphQL route.

Runs one capability over GraphQL, end to end:

1. composite cards expand into several mutations sent as one batch
2. a card with a resolution spec runs its lookup (cache first)
3. inject specs turn the lookup payload into variables
4. the card's operation runs and its root field value is returned

Page size: when the operation declares ``$first`` and the input does not
set it, ``first`` defaults to 30, or the card's ``maxPageSize`` if lower.
"""

from __future__ import annotations

import logging
from typing import Any

from ..composite import OperationBuilderRegistry, combine_composite_results, expand_composite_steps
from ..errors import CaprouteError, ErrorCode, GraphqlResponseError, ResolutionError
from ..gql.batch import build_batch_mutation
from ..gql.document import declared_variable_names, extract_root_field_name
from ..gql.resolve import apply_injects, build_operation_vars
from ..gql.transport import GraphqlClient
from ..registry.documents import DocumentRegistry
from ..registry.schemas import OperationCard, ResolutionConfig
from ..routing.cache import ResolutionCache, build_cache_key

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 30


def lookup_variables(resolution: ResolutionConfig, params: dict[str, Any]) -> dict[str, Any]:
    """Lookup variables projected from input fields through ``lookup.vars``."""
    return {
        variable: params[field_name]
        for variable, field_name in resolution.lookup.vars.items()
        if field_name in params
    }


def with_default_page_size(card: OperationCard, document: str, params: dict[str, Any]) -> dict[str, Any]:
    if "first" in params or "first" not in declared_variable_names(document):
        return params
    page_size = DEFAULT_PAGE_SIZE
    limits = card.graphql.limits if card.graphql else None
    if limits is not None and limits.max_page_size:
        page_size = min(page_size, int(limits.max_page_size))
    return {**params, "first": page_size}


def unwrap_root_field(document: str, data: dict[str, Any] | None) -> Any:
    """Value of the operation's root field, or the whole payload when absent."""
    data = data or {}
    root = extract_root_field_name(document)
    if root is not None and root in data:
        return data[root]
    return data


async def resolve_lookup(
    client: GraphqlClient,
    documents: DocumentRegistry,
    resolution: ResolutionConfig,
    params: dict[str, Any],
    cache: ResolutionCache | None = None,
) -> Any:
    """Lookup payload for one step, from cache or one network call."""
    variables = lookup_variables(resolution, params)
    missing = [field for field in resolution.lookup.vars.values() if field not in params]
    if missing:
        raise ResolutionError(
            f"Resolution pre-flight failed: lookup var '{missing[0]}' is missing from input"
        )

    key = build_cache_key(resolution.lookup.operation_name, variables)
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            logger.debug(f"[graphql] Lookup cache hit: {resolution.lookup.operation_name}")
            return cached

    document = documents.get(resolution.lookup.operation_name)
    payload = await client.query(document, variables)
    root_field = extract_root_field_name(document)
    node = payload.get(root_field) if root_field is not None else payload or None
    if cache is not None and node is not None:
        cache.set(key, payload)
    return payload


async def run_composite_capability(
    client: GraphqlClient,
    card: OperationCard,
    params: dict[str, Any],
    builders: OperationBuilderRegistry,
) -> Any:
    """Expand a composite card and run its operations as one batched mutation."""
    operations = expand_composite_steps(card.composite, params, builders)
    strategy = card.composite.output_strategy
    if not operations:
        return combine_composite_results(strategy, [])

    batch = build_batch_mutation([operation.to_batch_operation() for operation in operations])
    logger.debug(f"[graphql] Composite {card.capability_id}: {len(operations)} operations")
    raw = await client.query_raw(batch.document, batch.variables)
    if raw.has_errors:
        raise GraphqlResponseError(raw.first_error_message, errors=list(raw.errors))

    data = raw.data or {}
    results = [operation.map_response(data.get(operation.alias)) for operation in operations]
    return combine_composite_results(strategy, results)


async def run_graphql_capability(
    client: GraphqlClient,
    documents: DocumentRegistry,
    card: OperationCard,
    params: dict[str, Any],
    *,
    cache: ResolutionCache | None = None,
    builders: OperationBuilderRegistry | None = None,
) -> Any:
    """
    Execute a card over GraphQL and return its root field value.

    Raises:
        CaprouteError: On resolution, transport or protocol failure
    """
    if card.composite is not None:
        if builders is None:
            raise CaprouteError(
                f"Capability '{card.capability_id}' is composite but no operation builders are configured",
                code=ErrorCode.ADAPTER_UNSUPPORTED,
            )
        return await run_composite_capability(client, card, params, builders)

    if card.graphql is None:
        raise CaprouteError(
            f"Capability '{card.capability_id}' has no GraphQL operation",
            code=ErrorCode.ADAPTER_UNSUPPORTED,
        )

    document = documents.get(card.graphql.operation_name)
    resolved: dict[str, Any] = {}
    if card.graphql.resolution is not None:
        payload = await resolve_lookup(client, documents, card.graphql.resolution, params, cache)
        resolved = apply_injects(card.graphql.resolution.inject, payload, params)

    variables = build_operation_vars(document, with_default_page_size(card, document, params), resolved)
    data = await client.query(document, variables)
    return unwrap_root_field(document, data)
