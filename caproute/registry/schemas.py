"""
Operation Card models.

An operation card is the declarative definition of one capability: its
input and output JSON Schemas, its route preferences, and the per-route
configuration each transport needs.

Design Principle:
    Cards are data, not code. They are validated once at load time
    (meta-schema first, then these models) and never mutated afterwards,
    so every model here is frozen.

Usage:
    card = OperationCard.model_validate(yaml.safe_load(text))

    card.routing.preferred          # RouteSource.GRAPHQL
    card.graphql.resolution.lookup  # LookupSpec(...)
    card.route_order()              # [GRAPHQL, CLI]
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from ..envelope import RouteSource


class _CardModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")


# =============================================================================
# Routing
# =============================================================================


class SuitabilityRule(_CardModel):
    """Rule that promotes one route when a predicate over env or params holds."""

    when: Literal["always", "env", "params"]
    predicate: str
    reason: str


class RoutingConfig(_CardModel):
    preferred: RouteSource
    fallbacks: tuple[RouteSource, ...] = ()
    suitability: tuple[SuitabilityRule, ...] = ()
    notes: tuple[str, ...] = ()


# =============================================================================
# Resolution
# =============================================================================


class ScalarInject(_CardModel):
    """Take one value at a dotted path of the lookup result."""

    source: Literal["scalar"] = "scalar"
    target: str
    path: str


class MapArrayInject(_CardModel):
    """Map a list of input names to ids found in a lookup node list."""

    source: Literal["map_array"] = "map_array"
    target: str
    from_input: str
    nodes_path: str
    match_field: str
    extract_field: str


class InputInject(_CardModel):
    """Pass an input field straight through to a variable."""

    source: Literal["input"] = "input"
    target: str
    from_input: str


class NullLiteralInject(_CardModel):
    """Always set the variable to null (e.g. clearing a milestone)."""

    source: Literal["null_literal"] = "null_literal"
    target: str


InjectSpec = Annotated[
    Union[ScalarInject, MapArrayInject, InputInject, NullLiteralInject],
    Field(discriminator="source"),
]


class LookupSpec(_CardModel):
    operation_name: str = Field(..., alias="operationName")
    document_path: str = Field(..., alias="documentPath")
    # lookup variable name -> input field name
    vars: dict[str, str] = Field(default_factory=dict)


class ResolutionConfig(_CardModel):
    lookup: LookupSpec
    inject: tuple[InjectSpec, ...] = Field(..., min_length=1)


# =============================================================================
# Per-route configuration
# =============================================================================


class GraphqlLimits(_CardModel):
    max_page_size: int | None = Field(None, alias="maxPageSize")


class GraphqlConfig(_CardModel):
    operation_name: str = Field(..., alias="operationName")
    document_path: str = Field(..., alias="documentPath")
    operation_type: Literal["query", "mutation"] | None = Field(None, alias="operationType")
    variables: dict[str, Any] = Field(default_factory=dict)
    limits: GraphqlLimits | None = None
    resolution: ResolutionConfig | None = None


class CliLimits(_CardModel):
    max_items_per_call: int | None = Field(None, alias="maxItemsPerCall")


class CliConfig(_CardModel):
    command: str
    json_fields: tuple[str, ...] = Field((), alias="jsonFields")
    jq: str | None = None
    limits: CliLimits | None = None


class RestEndpoint(_CardModel):
    method: str
    path: str


class RestConfig(_CardModel):
    endpoints: tuple[RestEndpoint, ...]


class CompositeStep(_CardModel):
    capability_id: str
    foreach: str | None = None
    actions: tuple[str, ...] | None = None
    requires_any_of: tuple[str, ...] | None = None
    # builder parameter -> source field on the params (or foreach item)
    params_map: dict[str, str] = Field(default_factory=dict)


class CompositeConfig(_CardModel):
    steps: tuple[CompositeStep, ...] = Field(..., min_length=1)
    output_strategy: Literal["array", "merge", "last"] = "array"


class CardExample(_CardModel):
    title: str
    input: dict[str, Any]


# =============================================================================
# Operation Card
# =============================================================================


class OperationCard(_CardModel):
    """Immutable capability definition."""

    capability_id: str
    version: str
    description: str
    input_schema: dict[str, Any]
    output_schema: dict[str, Any]
    routing: RoutingConfig
    graphql: GraphqlConfig | None = None
    cli: CliConfig | None = None
    rest: RestConfig | None = None
    composite: CompositeConfig | None = None
    examples: tuple[CardExample, ...] = ()

    def route_order(self) -> list[RouteSource]:
        """Preferred route followed by fallbacks, without duplicates."""
        order: list[RouteSource] = []
        for route in (self.routing.preferred, *self.routing.fallbacks):
            if route not in order:
                order.append(route)
        return order

    @property
    def is_cli_only(self) -> bool:
        return self.cli is not None and self.graphql is None

    @property
    def resolution(self) -> ResolutionConfig | None:
        return self.graphql.resolution if self.graphql else None
