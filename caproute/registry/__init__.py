"""
Operation card registry.

Cards are declarative capability definitions loaded from YAML/JSON and
validated against a meta-schema at startup.
"""

from .documents import DocumentRegistry
from .registry import (
    PREFERRED_ORDER,
    CardRegistry,
    get_default_registry,
    load_card_file,
    parse_card,
    validate_card_document,
)
from .schema_utils import (
    SchemaIssue,
    extract_optional_inputs,
    extract_output_fields,
    extract_required_inputs,
    format_issues,
    validate_input,
    validate_output,
)
from .schemas import (
    CliConfig,
    CompositeConfig,
    CompositeStep,
    GraphqlConfig,
    InjectSpec,
    InputInject,
    LookupSpec,
    MapArrayInject,
    NullLiteralInject,
    OperationCard,
    ResolutionConfig,
    RestConfig,
    RoutingConfig,
    ScalarInject,
    SuitabilityRule,
)

__all__ = [
    "PREFERRED_ORDER",
    "CardRegistry",
    "CliConfig",
    "CompositeConfig",
    "CompositeStep",
    "DocumentRegistry",
    "GraphqlConfig",
    "InjectSpec",
    "InputInject",
    "LookupSpec",
    "MapArrayInject",
    "NullLiteralInject",
    "OperationCard",
    "ResolutionConfig",
    "RestConfig",
    "RoutingConfig",
    "ScalarInject",
    "SchemaIssue",
    "SuitabilityRule",
    "extract_optional_inputs",
    "extract_output_fields",
    "extract_required_inputs",
    "format_issues",
    "get_default_registry",
    "load_card_file",
    "parse_card",
    "validate_card_document",
    "validate_input",
    "validate_output",
]
