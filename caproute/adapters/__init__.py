"""
Default route implementations: GraphQL and CLI.
"""

from .cli import (
    CliCommandRunner,
    CliResult,
    SubprocessCliRunner,
    build_cli_args,
    parse_cli_output,
    run_cli_capability,
)
from .graphql import (
    DEFAULT_PAGE_SIZE,
    lookup_variables,
    resolve_lookup,
    run_composite_capability,
    run_graphql_capability,
    unwrap_root_field,
)

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "CliCommandRunner",
    "CliResult",
    "SubprocessCliRunner",
    "build_cli_args",
    "lookup_variables",
    "parse_cli_output",
    "resolve_lookup",
    "run_cli_capability",
    "run_composite_capability",
    "run_graphql_capability",
    "unwrap_root_field",
]
