"""
Tests for the route execution engine: preflight, retry, fallback.
"""

from unittest.mock import AsyncMock

import pytest

from caproute.envelope import AttemptStatus, RouteReason, RouteSource
from caproute.errors import CaprouteError, ErrorCode
from caproute.routing.execute import execute_route
from caproute.routing.preflight import PreflightResult

from conftest import make_card

CARD = make_card(
    "repo.view",
    input_schema={
        "type": "object",
        "required": ["owner"],
        "properties": {"owner": {"type": "string"}},
    },
    output_schema={"type": "object", "required": ["id"]},
    routing={"preferred": "graphql", "fallbacks": ["cli"]},
)


async def always_ok(route):
    return PreflightResult.passed()


def preflight_failing(*routes, code=ErrorCode.AUTH):
    async def check(route):
        if route in routes:
            return PreflightResult.failed(code, f"{route.value} unavailable")
        return PreflightResult.passed()

    return check


def failing(code, message="boom"):
    return CaprouteError(message, code=code)


class TestExecuteRoute:
    @pytest.mark.asyncio
    async def test_preferred_route_success(self):
        graphql = AsyncMock(return_value={"id": "R_1"})
        cli = AsyncMock()

        envelope = await execute_route(
            CARD,
            {"owner": "acme"},
            routes={RouteSource.GRAPHQL: graphql, RouteSource.CLI: cli},
            preflight=always_ok,
        )

        assert envelope.ok is True
        assert envelope.data == {"id": "R_1"}
        assert envelope.meta.route_used == RouteSource.GRAPHQL
        assert envelope.meta.reason == RouteReason.CARD_PREFERRED.value
        assert [(a.route, a.status) for a in envelope.meta.attempts] == [(RouteSource.GRAPHQL, AttemptStatus.OK)]
        graphql.assert_awaited_once_with(CARD, {"owner": "acme"})
        cli.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_input_never_calls_a_route(self):
        graphql = AsyncMock()
        envelope = await execute_route(
            CARD, {"owner": 1}, routes={RouteSource.GRAPHQL: graphql}, preflight=always_ok
        )
        assert envelope.error.code == ErrorCode.VALIDATION
        assert envelope.error.message.startswith("Input validation failed: /owner:")
        assert envelope.error.details["schema_errors"][0]["path"] == "/owner"
        graphql.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retryable_failure_is_retried_once_then_succeeds(self):
        graphql = AsyncMock(side_effect=[failing(ErrorCode.NETWORK), {"id": "R_1"}])

        envelope = await execute_route(
            CARD, {"owner": "acme"}, routes={RouteSource.GRAPHQL: graphql}, preflight=always_ok
        )

        assert envelope.ok is True
        assert graphql.await_count == 2
        assert [a.status for a in envelope.meta.attempts] == [AttemptStatus.ERROR, AttemptStatus.OK]
        assert envelope.meta.attempts[0].error_code == ErrorCode.NETWORK

    @pytest.mark.asyncio
    async def test_retry_count_is_capped_per_route(self):
        graphql = AsyncMock(side_effect=failing(ErrorCode.SERVER))
        cli = AsyncMock(return_value={"id": "R_1"})

        envelope = await execute_route(
            CARD,
            {"owner": "acme"},
            routes={RouteSource.GRAPHQL: graphql, RouteSource.CLI: cli},
            preflight=always_ok,
            max_attempts_per_route=3,
        )

        assert graphql.await_count == 3
        assert envelope.ok is True
        assert envelope.meta.route_used == RouteSource.CLI
        assert envelope.meta.reason == RouteReason.CARD_FALLBACK.value
        assert len(envelope.meta.attempts) == 4

    @pytest.mark.asyncio
    async def test_non_retryable_failure_falls_back_immediately(self):
        graphql = AsyncMock(side_effect=failing(ErrorCode.NOT_FOUND))
        cli = AsyncMock(return_value={"id": "R_1"})

        envelope = await execute_route(
            CARD,
            {"owner": "acme"},
            routes={RouteSource.GRAPHQL: graphql, RouteSource.CLI: cli},
            preflight=always_ok,
        )

        assert graphql.await_count == 1
        assert envelope.meta.route_used == RouteSource.CLI

    @pytest.mark.asyncio
    async def test_preflight_failure_skips_route(self):
        graphql = AsyncMock()
        cli = AsyncMock(return_value={"id": "R_1"})

        envelope = await execute_route(
            CARD,
            {"owner": "acme"},
            routes={RouteSource.GRAPHQL: graphql, RouteSource.CLI: cli},
            preflight=preflight_failing(RouteSource.GRAPHQL),
        )

        graphql.assert_not_awaited()
        first = envelope.meta.attempts[0]
        assert (first.route, first.status, first.error_code) == (
            RouteSource.GRAPHQL,
            AttemptStatus.SKIPPED,
            ErrorCode.AUTH,
        )
        assert envelope.meta.route_used == RouteSource.CLI

    @pytest.mark.asyncio
    async def test_total_failure_reports_last_route(self):
        graphql = AsyncMock(side_effect=failing(ErrorCode.NOT_FOUND, "no such repo"))

        envelope = await execute_route(
            CARD,
            {"owner": "acme"},
            routes={RouteSource.GRAPHQL: graphql, RouteSource.CLI: None},
            preflight=always_ok,
        )

        assert envelope.ok is False
        assert envelope.meta.route_used == RouteSource.CLI
        assert envelope.error.code == ErrorCode.ADAPTER_UNSUPPORTED
        assert envelope.error.details["route"] == "cli"
        assert [a.status for a in envelope.meta.attempts] == [AttemptStatus.ERROR, AttemptStatus.SKIPPED]

    @pytest.mark.asyncio
    async def test_no_routes_is_adapter_unsupported(self):
        envelope = await execute_route(CARD, {"owner": "acme"}, routes={}, preflight=always_ok)
        assert envelope.error.code == ErrorCode.ADAPTER_UNSUPPORTED

    @pytest.mark.asyncio
    async def test_output_schema_mismatch(self):
        graphql = AsyncMock(return_value={"name": "no id here"})

        envelope = await execute_route(
            CARD, {"owner": "acme"}, routes={RouteSource.GRAPHQL: graphql}, preflight=always_ok
        )

        assert envelope.ok is False
        assert envelope.error.code == ErrorCode.VALIDATION
        assert "Output schema validation failed" in envelope.error.message
        # Schema mismatch is not retryable
        assert graphql.await_count == 1

    @pytest.mark.asyncio
    async def test_foreign_exceptions_are_classified(self):
        graphql = AsyncMock(side_effect=RuntimeError("HTTP 401: Bad credentials"))

        envelope = await execute_route(
            CARD, {"owner": "acme"}, routes={RouteSource.GRAPHQL: graphql}, preflight=always_ok
        )

        assert envelope.error.code == ErrorCode.AUTH
        assert envelope.error.message == "HTTP 401: Bad credentials"

    @pytest.mark.asyncio
    async def test_caller_override_reason(self):
        graphql = AsyncMock(return_value={"id": "R_1"})
        envelope = await execute_route(
            CARD,
            {"owner": "acme"},
            routes={RouteSource.GRAPHQL: graphql},
            preflight=always_ok,
            reason=RouteReason.CALLER_OVERRIDE.value,
        )
        assert envelope.meta.reason == "CALLER_OVERRIDE"


class TestSuitabilityInExecution:
    @pytest.mark.asyncio
    async def test_rule_promotes_cli(self):
        card = make_card(
            "repo.view",
            output_schema={"type": "object"},
            routing={
                "preferred": "graphql",
                "fallbacks": ["cli"],
                "suitability": [
                    {"when": "env", "predicate": "cli if githubTokenPresent == false", "reason": "no token"}
                ],
            },
        )
        graphql = AsyncMock(return_value={})
        cli = AsyncMock(return_value={"via": "cli"})

        envelope = await execute_route(
            card,
            {},
            routes={RouteSource.GRAPHQL: graphql, RouteSource.CLI: cli},
            preflight=always_ok,
            env={"githubTokenPresent": False},
        )

        assert envelope.data == {"via": "cli"}
        assert envelope.meta.reason == RouteReason.SUITABILITY_RULE.value
        graphql.assert_not_awaited()
