"""
GraphQL document handling: batching, variable injection and transport.
"""

from .batch import (
    BATCH_MUTATION_NAME,
    BATCH_QUERY_NAME,
    BatchDocument,
    BatchOperation,
    build_batch_mutation,
    build_batch_query,
)
from .document import declared_variable_names, extract_root_field_name, parse_document
from .resolve import (
    apply_inject,
    apply_injects,
    build_mutation_vars,
    build_operation_vars,
    get_at_path,
)
from .transport import GraphqlClient, GraphqlRawResult, GraphqlTransport, HttpGraphqlTransport

__all__ = [
    "BATCH_MUTATION_NAME",
    "BATCH_QUERY_NAME",
    "BatchDocument",
    "BatchOperation",
    "GraphqlClient",
    "GraphqlRawResult",
    "GraphqlTransport",
    "HttpGraphqlTransport",
    "apply_inject",
    "apply_injects",
    "build_batch_mutation",
    "build_batch_query",
    "build_mutation_vars",
    "build_operation_vars",
    "declared_variable_names",
    "extract_root_field_name",
    "get_at_path",
    "parse_document",
]
