"""
Route selection and execution: preflight gating, retry, fallback,
suitability rules and the resolution cache.
"""

from .cache import ResolutionCache, build_cache_key
from .execute import RouteHandler, RouteOutcome, execute_route
from .preflight import (
    CliEnvironment,
    CliEnvironmentProbe,
    PreflightResult,
    get_cli_probe,
    preflight_check,
)
from .retry import (
    BackoffStrategy,
    ConstantBackoff,
    ExponentialBackoff,
    NoBackoff,
    RetryPolicy,
    RetryResult,
    with_retry,
)
from .suitability import apply_suitability, parse_predicate, rule_matches

__all__ = [
    "BackoffStrategy",
    "CliEnvironment",
    "CliEnvironmentProbe",
    "ConstantBackoff",
    "ExponentialBackoff",
    "NoBackoff",
    "PreflightResult",
    "ResolutionCache",
    "RetryPolicy",
    "RetryResult",
    "RouteHandler",
    "RouteOutcome",
    "apply_suitability",
    "build_cache_key",
    "execute_route",
    "get_cli_probe",
    "parse_predicate",
    "preflight_check",
    "rule_matches",
    "with_retry",
]
