"""
Error taxonomy for caproute.

Every failure the engine reports is normalised to one of a small set of
codes. Codes decide two things: whether the route engine retries, and
what the caller sees in ``ResultEnvelope.error.code``.

Retry Strategy:
    - Retryable: NETWORK, RATE_LIMIT, SERVER
    - Non-retryable: everything else (VALIDATION, RESOLUTION_FAILED,
      ADAPTER_UNSUPPORTED, AUTH, NOT_FOUND, UNKNOWN)

Exceptions raised inside the engine carry their code so that
``map_error_to_code`` can classify them without string matching. Foreign
exceptions (httpx, asyncio, OS) are classified by type, HTTP status and
finally by message heuristics.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

import httpx


class ErrorCode(str, Enum):
    """Normalised failure classes."""

    VALIDATION = "VALIDATION"
    RESOLUTION_FAILED = "RESOLUTION_FAILED"
    ADAPTER_UNSUPPORTED = "ADAPTER_UNSUPPORTED"
    NETWORK = "NETWORK"
    RATE_LIMIT = "RATE_LIMIT"
    AUTH = "AUTH"
    NOT_FOUND = "NOT_FOUND"
    SERVER = "SERVER"
    UNKNOWN = "UNKNOWN"


RETRYABLE_CODES = frozenset({ErrorCode.NETWORK, ErrorCode.RATE_LIMIT, ErrorCode.SERVER})


def is_retryable_code(code: ErrorCode | str) -> bool:
    """True when a failure with this code may succeed on a plain retry."""
    try:
        return ErrorCode(code) in RETRYABLE_CODES
    except ValueError:
        return False


# =============================================================================
# Exceptions
# =============================================================================


class CaprouteError(Exception):
    """Base exception for engine errors."""

    default_code: ErrorCode = ErrorCode.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}


class RegistryError(CaprouteError):
    """Raised when operation cards fail to load or validate."""

    default_code = ErrorCode.VALIDATION


class DocumentNotFoundError(CaprouteError):
    """Raised when no operation document is registered under a name."""

    default_code = ErrorCode.ADAPTER_UNSUPPORTED


class ResolutionError(CaprouteError):
    """Raised when a lookup or injection cannot produce a required value."""

    default_code = ErrorCode.RESOLUTION_FAILED


class BatchBuildError(CaprouteError):
    """Raised when operations cannot be merged into one document."""

    default_code = ErrorCode.VALIDATION


class CompositeError(CaprouteError):
    """Raised when a composite invocation cannot be expanded."""

    default_code = ErrorCode.VALIDATION


class CliTemplateError(CaprouteError):
    """Raised when a CLI command template references a missing parameter."""

    default_code = ErrorCode.VALIDATION


class GraphqlTransportError(CaprouteError):
    """Raised by GraphQL transports for HTTP or protocol failures."""

    default_code = ErrorCode.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        response_body: str | None = None,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
    ):
        if code is None and self.default_code is ErrorCode.UNKNOWN:
            code = _code_for_status(status_code)
        super().__init__(message, code=code, details=details)
        self.status_code = status_code
        self.response_body = response_body

    @property
    def retryable(self) -> bool:
        return is_retryable_code(self.code)

    def __str__(self) -> str:
        if self.status_code:
            return f"{self.message} (status={self.status_code})"
        return self.message


class GraphqlAuthError(GraphqlTransportError):
    """Raised when the credential is missing, invalid or lacks scope (401/403)."""

    default_code = ErrorCode.AUTH


class GraphqlRateLimitError(GraphqlTransportError):
    """Raised when the API rate limit is exceeded (429 or secondary limit)."""

    default_code = ErrorCode.RATE_LIMIT

    def __init__(self, message: str, *, retry_after: float | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class GraphqlResponseError(GraphqlTransportError):
    """Raised when a response carries GraphQL errors and no usable data."""

    def __init__(self, message: str, *, errors: list[dict[str, Any]] | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.errors = errors or []
        if kwargs.get("code") is None and self.code is ErrorCode.UNKNOWN:
            self.code = _code_for_graphql_errors(self.errors) or map_message_to_code(message)


# =============================================================================
# Classification
# =============================================================================


def _code_for_status(status_code: int | None) -> ErrorCode | None:
    if status_code is None:
        return None
    if status_code in (401, 403):
        return ErrorCode.AUTH
    if status_code == 404:
        return ErrorCode.NOT_FOUND
    if status_code == 429:
        return ErrorCode.RATE_LIMIT
    if status_code in (400, 422):
        return ErrorCode.VALIDATION
    if status_code >= 500:
        return ErrorCode.SERVER
    return None


def _code_for_graphql_errors(errors: list[dict[str, Any]]) -> ErrorCode | None:
    # GitHub tags errors with a "type" such as NOT_FOUND or RATE_LIMITED
    for error in errors:
        kind = str(error.get("type", "")).upper()
        if kind == "NOT_FOUND":
            return ErrorCode.NOT_FOUND
        if kind in ("RATE_LIMITED", "RATE_LIMIT"):
            return ErrorCode.RATE_LIMIT
        if kind in ("FORBIDDEN", "UNAUTHORIZED", "INSUFFICIENT_SCOPES"):
            return ErrorCode.AUTH
    return None


_MESSAGE_RULES: tuple[tuple[tuple[str, ...], ErrorCode], ...] = (
    (("rate limit", "ratelimit", "too many requests"), ErrorCode.RATE_LIMIT),
    (
        ("timeout", "timed out", "econnreset", "enotfound", "connection", "network"),
        ErrorCode.NETWORK,
    ),
    (
        ("unauthorized", "forbidden", "bad credentials", "authentication", "not logged in"),
        ErrorCode.AUTH,
    ),
    (("not found", "could not resolve"), ErrorCode.NOT_FOUND),
    (("validation", "invalid"), ErrorCode.VALIDATION),
    (("server error", "internal error", "bad gateway", "service unavailable", "5xx"), ErrorCode.SERVER),
)


def map_message_to_code(message: str) -> ErrorCode:
    """Classify a free-form error message."""
    lowered = message.lower()
    for needles, code in _MESSAGE_RULES:
        if any(needle in lowered for needle in needles):
            return code
    return ErrorCode.UNKNOWN


def map_error_to_code(error: BaseException | str) -> ErrorCode:
    """
    Classify an exception (or a message) into an ErrorCode.

    Order: engine exceptions keep their own code, then network-level
    exception types, then HTTP status, then message heuristics.
    """
    if isinstance(error, str):
        return map_message_to_code(error)

    if isinstance(error, CaprouteError):
        return ErrorCode(error.code)

    if isinstance(error, (httpx.TimeoutException, httpx.TransportError, TimeoutError, ConnectionError)):
        return ErrorCode.NETWORK

    if isinstance(error, httpx.HTTPStatusError):
        code = _code_for_status(error.response.status_code)
        if code is not None:
            return code

    return map_message_to_code(str(error))
