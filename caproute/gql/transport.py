"""
GraphQL transport.

The engine talks to the remote API through one narrow contract:

    await transport.execute(document, variables) -> GraphqlRawResult

``GraphqlClient`` wraps a transport with the two call styles the engine
needs:
- ``query``: return ``data`` or raise when the response carries errors
- ``query_raw``: return data and errors together, for batched mutations
  where errors are attributed per alias

``HttpGraphqlTransport`` is the default httpx implementation. It maps
HTTP failures to the transport error family and does not retry; retry is
the route engine's job.

Usage:
    transport = HttpGraphqlTransport(url, token=settings.token_value)
    client = GraphqlClient(transport)

    data = await client.query("query { viewer { login } }")
    raw = await client.query_raw(batch.document, batch.variables)

    await transport.close()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import httpx

from ..errors import (
    ErrorCode,
    GraphqlAuthError,
    GraphqlRateLimitError,
    GraphqlResponseError,
    GraphqlTransportError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class GraphqlRawResult:
    """Response body of a GraphQL call: data and errors, either may be empty."""

    data: dict[str, Any] | None = None
    errors: tuple[dict[str, Any], ...] = ()

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def first_error_message(self) -> str:
        if not self.errors:
            return ""
        return str(self.errors[0].get("message", "GraphQL error"))


@runtime_checkable
class GraphqlTransport(Protocol):
    """Anything that can execute a GraphQL document."""

    async def execute(
        self,
        document: str,
        variables: dict[str, Any] | None = None,
    ) -> GraphqlRawResult:
        ...


class GraphqlClient:
    """Call styles over a GraphqlTransport."""

    def __init__(self, transport: GraphqlTransport) -> None:
        self.transport = transport

    async def query_raw(
        self,
        document: str,
        variables: dict[str, Any] | None = None,
    ) -> GraphqlRawResult:
        return await self.transport.execute(document, variables or {})

    async def query(
        self,
        document: str,
        variables: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Execute and return ``data``.

        Raises:
            GraphqlResponseError: If the response carries any errors
        """
        result = await self.query_raw(document, variables)
        if result.has_errors:
            raise GraphqlResponseError(result.first_error_message, errors=list(result.errors))
        return result.data or {}


@dataclass
class HttpGraphqlTransport:
    """
    GraphQL over HTTP POST with httpx.

    The AsyncClient is created lazily and reused until ``close``.
    """

    url: str
    token: str | None = None
    timeout: float = 30.0
    headers: dict[str, str] = field(default_factory=dict)
    transport: httpx.AsyncBaseTransport | None = None
    _client: httpx.AsyncClient | None = field(default=None, init=False, repr=False)

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self.transport,
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                    **self._auth_headers(),
                    **self.headers,
                },
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def execute(
        self,
        document: str,
        variables: dict[str, Any] | None = None,
    ) -> GraphqlRawResult:
        client = await self._get_client()
        try:
            response = await client.post(self.url, json={"query": document, "variables": variables or {}})
        except httpx.TimeoutException as e:
            raise GraphqlTransportError(f"Request timeout: {e}", code=ErrorCode.NETWORK) from e
        except httpx.TransportError as e:
            raise GraphqlTransportError(f"Network error: {e}", code=ErrorCode.NETWORK) from e

        self._check_response(response)

        try:
            body = response.json()
        except ValueError as e:
            raise GraphqlTransportError(
                "GraphQL response was not valid JSON",
                status_code=response.status_code,
                response_body=response.text[:500],
            ) from e

        if not isinstance(body, dict):
            raise GraphqlTransportError("GraphQL response body must be a JSON object")

        errors = tuple(error for error in body.get("errors") or () if isinstance(error, dict))
        data = body.get("data")
        logger.debug(f"[graphql] status={response.status_code} errors={len(errors)}")
        return GraphqlRawResult(data=data if isinstance(data, dict) else None, errors=errors)

    def _check_response(self, response: httpx.Response) -> None:
        """
        Raise the matching transport error for a non-2xx response.

        Raises:
            GraphqlRateLimitError: For 429, or 403 with an exhausted rate limit
            GraphqlAuthError: For 401/403
            GraphqlTransportError: For other failures
        """
        if response.is_success:
            return

        status = response.status_code
        body = response.text

        rate_limited = status == 429 or (
            status == 403
            and (response.headers.get("x-ratelimit-remaining") == "0" or "rate limit" in body.lower())
        )
        if rate_limited:
            retry_after = response.headers.get("Retry-After")
            raise GraphqlRateLimitError(
                "Rate limit exceeded",
                status_code=status,
                response_body=body,
                retry_after=float(retry_after) if retry_after else None,
            )

        if status in (401, 403):
            raise GraphqlAuthError(
                f"Authentication failed: {body[:200]}",
                status_code=status,
                response_body=body,
            )

        raise GraphqlTransportError(
            f"Request failed: {body[:200]}",
            status_code=status,
            response_body=body,
        )
