"""
Resolution phase.

Runs every lookup a batch needs in one network round trip:

1. for each step whose card declares a resolution lookup, build the
   lookup variables from the input
2. serve it from the resolution cache when possible
3. otherwise schedule it; identical lookups within a batch share one alias
4. send all scheduled lookups as one batched query
5. re-wrap each aliased value under the document's root field name, so
   inject paths like ``repository.issue.id`` work the same for cached
   and fresh payloads, and write it through to the cache

An alias missing from the response leaves the step unresolved; the
execute phase reports it. A transport error propagates to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..adapters.graphql import lookup_variables
from ..gql.batch import BatchOperation, build_batch_query
from ..gql.document import extract_root_field_name
from ..gql.transport import GraphqlClient
from ..observability import JSONLogger
from ..registry.documents import DocumentRegistry
from ..routing.cache import ResolutionCache, build_cache_key
from .types import ClassifiedStep

log = JSONLogger(__name__)

# step index -> root-field-wrapped lookup payload
ResolutionResults = dict[int, Any]


@dataclass
class _ScheduledLookup:
    alias: str
    operation_name: str
    document: str
    variables: dict[str, Any]
    cache_key: str
    step_indexes: list[int]


async def run_resolution_phase(
    steps: list[ClassifiedStep],
    client: GraphqlClient,
    documents: DocumentRegistry,
    cache: ResolutionCache | None = None,
) -> ResolutionResults:
    """
    Resolve lookups for all steps that declare one.

    Raises:
        Exception: Whatever the transport raises for the batched call
    """
    results: ResolutionResults = {}
    scheduled: dict[str, _ScheduledLookup] = {}

    for step in steps:
        resolution = step.card.resolution
        if resolution is None:
            continue

        operation_name = resolution.lookup.operation_name
        variables = lookup_variables(resolution, step.request.input)
        key = build_cache_key(operation_name, variables)

        if cache is not None:
            cached = cache.get(key)
            if cached is not None:
                results[step.index] = cached
                log.debug("resolution.cache_hit", step=step.index, operation=operation_name, key=key)
                continue

        if key in scheduled:
            scheduled[key].step_indexes.append(step.index)
            continue

        scheduled[key] = _ScheduledLookup(
            alias=step.alias,
            operation_name=operation_name,
            document=documents.get(operation_name),
            variables=variables,
            cache_key=key,
            step_indexes=[step.index],
        )
        log.debug("resolution.lookup_scheduled", step=step.index, operation=operation_name)

    if not scheduled:
        return results

    lookups = list(scheduled.values())
    batch = build_batch_query(
        [BatchOperation(lookup.alias, lookup.document, lookup.variables) for lookup in lookups]
    )

    log.debug("resolution.batch_start", count=len(lookups))
    data = await client.query(batch.document, batch.variables)
    log.debug("resolution.batch_complete", count=len(lookups))

    for lookup in lookups:
        if lookup.alias not in data:
            log.warning("resolution.step_missing", steps=lookup.step_indexes, alias=lookup.alias)
            continue

        raw_value = data[lookup.alias]
        root_field = extract_root_field_name(lookup.document)
        payload = {root_field: raw_value} if root_field is not None else raw_value
        for index in lookup.step_indexes:
            results[index] = payload
        log.debug("resolution.step_resolved", steps=lookup.step_indexes, alias=lookup.alias)

        if cache is not None and raw_value is not None:
            cache.set(lookup.cache_key, payload)
            log.debug("resolution.cache_set", operation=lookup.operation_name)

    return results
