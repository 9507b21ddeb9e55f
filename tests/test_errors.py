"""
Tests for error codes and classification.
"""

import httpx
import pytest

from caproute.errors import (
    CaprouteError,
    ErrorCode,
    GraphqlAuthError,
    GraphqlRateLimitError,
    GraphqlResponseError,
    GraphqlTransportError,
    ResolutionError,
    is_retryable_code,
    map_error_to_code,
    map_message_to_code,
)


class TestRetryableCodes:
    @pytest.mark.parametrize("code", [ErrorCode.NETWORK, ErrorCode.RATE_LIMIT, ErrorCode.SERVER])
    def test_transient_codes_are_retryable(self, code):
        assert is_retryable_code(code) is True

    @pytest.mark.parametrize(
        "code",
        [
            ErrorCode.VALIDATION,
            ErrorCode.RESOLUTION_FAILED,
            ErrorCode.ADAPTER_UNSUPPORTED,
            ErrorCode.AUTH,
            ErrorCode.NOT_FOUND,
            ErrorCode.UNKNOWN,
        ],
    )
    def test_other_codes_are_not(self, code):
        assert is_retryable_code(code) is False

    def test_accepts_string_values(self):
        assert is_retryable_code("NETWORK") is True
        assert is_retryable_code("NOPE") is False


class TestExceptions:
    def test_default_codes(self):
        assert ResolutionError("x").code == ErrorCode.RESOLUTION_FAILED
        assert CaprouteError("x").code == ErrorCode.UNKNOWN
        assert GraphqlAuthError("x").code == ErrorCode.AUTH

    def test_explicit_code_wins(self):
        error = CaprouteError("x", code=ErrorCode.NOT_FOUND, details={"a": 1})
        assert error.code == ErrorCode.NOT_FOUND
        assert error.details == {"a": 1}

    def test_transport_error_maps_status(self):
        assert GraphqlTransportError("boom", status_code=502).code == ErrorCode.SERVER
        assert GraphqlTransportError("gone", status_code=404).code == ErrorCode.NOT_FOUND
        assert GraphqlTransportError("odd", status_code=418).code == ErrorCode.UNKNOWN

    def test_rate_limit_on_403_keeps_rate_limit_code(self):
        error = GraphqlRateLimitError("secondary rate limit", status_code=403, retry_after=30)
        assert error.code == ErrorCode.RATE_LIMIT
        assert error.retryable is True
        assert error.retry_after == 30

    def test_str_includes_status(self):
        assert str(GraphqlTransportError("bad", status_code=500)) == "bad (status=500)"
        assert str(GraphqlTransportError("bad")) == "bad"

    def test_response_error_uses_github_error_type(self):
        error = GraphqlResponseError("whatever", errors=[{"message": "whatever", "type": "NOT_FOUND"}])
        assert error.code == ErrorCode.NOT_FOUND

    def test_response_error_falls_back_to_message(self):
        error = GraphqlResponseError("API rate limit exceeded", errors=[{"message": "API rate limit exceeded"}])
        assert error.code == ErrorCode.RATE_LIMIT


class TestMapErrorToCode:
    def test_engine_errors_keep_their_code(self):
        assert map_error_to_code(ResolutionError("network is fine")) == ErrorCode.RESOLUTION_FAILED

    def test_httpx_errors_are_network(self):
        request = httpx.Request("POST", "https://example.test/graphql")
        assert map_error_to_code(httpx.ConnectTimeout("slow", request=request)) == ErrorCode.NETWORK
        assert map_error_to_code(httpx.ConnectError("refused", request=request)) == ErrorCode.NETWORK

    def test_builtin_timeout_is_network(self):
        assert map_error_to_code(TimeoutError("gh timed out")) == ErrorCode.NETWORK

    def test_http_status_error(self):
        request = httpx.Request("POST", "https://example.test/graphql")
        response = httpx.Response(503, request=request)
        error = httpx.HTTPStatusError("unavailable", request=request, response=response)
        assert map_error_to_code(error) == ErrorCode.SERVER

    @pytest.mark.parametrize(
        "message,code",
        [
            ("You have exceeded a secondary rate limit", ErrorCode.RATE_LIMIT),
            ("connection reset by peer", ErrorCode.NETWORK),
            ("HTTP 401: Bad credentials", ErrorCode.AUTH),
            ("gh: To get started, please run: gh auth login. You are not logged in", ErrorCode.AUTH),
            ("Could not resolve to an Issue with the number of 999.", ErrorCode.NOT_FOUND),
            ("Invalid value for labelIds", ErrorCode.VALIDATION),
            ("502 Bad Gateway", ErrorCode.SERVER),
            ("something odd", ErrorCode.UNKNOWN),
        ],
    )
    def test_message_rules(self, message, code):
        assert map_message_to_code(message) == code
        assert map_error_to_code(RuntimeError(message)) == code

    def test_author_in_message_is_not_auth(self):
        assert map_message_to_code("author field missing") == ErrorCode.UNKNOWN
