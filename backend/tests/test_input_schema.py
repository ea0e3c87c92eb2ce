"""Unit tests for request payload validation."""

from __future__ import annotations

import pytest

from sqlgate.security.input_schema import (
    QueryLimits,
    QueryRequest,
    SearchRequest,
    validate_identifier,
    validate_query_request,
    validate_search_request,
)
from sqlgate.security.verdicts import RejectionCategory, ValidationVerdict


class TestQueryRequest:
    """Tests for validate_query_request."""

    def test_minimal_payload_gets_defaults(self):
        """Missing limit and timeout should take the configured defaults."""
        result = validate_query_request({"query": "SELECT 1"}, "10.0.0.1")
        assert result == QueryRequest(
            raw_text="SELECT 1",
            requested_limit=100,
            requested_timeout_ms=30000,
            caller_identity="10.0.0.1",
        )

    def test_explicit_values_are_kept(self):
        """In-range limit and timeout pass through unchanged."""
        result = validate_query_request({"query": "SELECT 1", "limit": 5, "timeout": 1000}, "c")
        assert isinstance(result, QueryRequest)
        assert result.requested_limit == 5
        assert result.requested_timeout_ms == 1000

    def test_null_optional_fields_get_defaults(self):
        """Explicit nulls behave like missing fields."""
        result = validate_query_request({"query": "SELECT 1", "limit": None, "timeout": None}, "c")
        assert isinstance(result, QueryRequest)
        assert result.requested_limit == 100
        assert result.requested_timeout_ms == 30000

    def test_limit_above_range_is_rejected(self):
        """limit=5000 is rejected, not clamped."""
        result = validate_query_request({"query": "SELECT 1", "limit": 5000}, "c")
        assert isinstance(result, ValidationVerdict)
        assert not result.accepted
        assert result.category is RejectionCategory.MALFORMED_INPUT
        assert result.reasons == ("Limit cannot exceed 1000",)

    def test_limit_below_range_is_rejected(self):
        result = validate_query_request({"query": "SELECT 1", "limit": 0}, "c")
        assert result.reasons == ("Limit must be at least 1",)

    @pytest.mark.parametrize(
        "timeout,reason",
        [
            (500, "Timeout must be at least 1000ms"),
            (60000, "Timeout cannot exceed 30000ms"),
        ],
    )
    def test_timeout_out_of_range(self, timeout, reason):
        result = validate_query_request({"query": "SELECT 1", "timeout": timeout}, "c")
        assert result.reasons == (reason,)

    def test_empty_query(self):
        result = validate_query_request({"query": ""}, "c")
        assert result.reasons == ("Query cannot be empty",)

    def test_missing_query(self):
        result = validate_query_request({"limit": 10}, "c")
        assert result.reasons == ("Query is required",)

    @pytest.mark.parametrize("text", ["SELECT '<b>'", "SELECT 1 > 0", "SELECT {fn NOW()}"])
    def test_markup_characters_rejected(self, text):
        """<, >, { and } never reach the classifier."""
        result = validate_query_request({"query": text}, "c")
        assert result.reasons == ("Query contains invalid characters",)

    def test_length_and_characters_both_reported(self):
        """Constraints on the same field accumulate."""
        result = validate_query_request({"query": "{" + "a" * 10000}, "c")
        assert result.reasons == (
            "Query too long (max 10000 characters)",
            "Query contains invalid characters",
        )

    def test_every_failing_field_is_reported(self):
        """Validation is not short-circuited across fields."""
        result = validate_query_request({"query": "", "limit": 5000, "timeout": 1}, "c")
        assert list(result.reasons) == [
            "Query cannot be empty",
            "Limit cannot exceed 1000",
            "Timeout must be at least 1000ms",
        ]
        assert result.rules == ("query", "limit", "timeout")

    @pytest.mark.parametrize("value", ["abc", 2.5, True, [1]])
    def test_limit_must_be_integer(self, value):
        result = validate_query_request({"query": "SELECT 1", "limit": value}, "c")
        assert result.reasons == ("Limit must be an integer",)

    def test_numeric_string_limit_is_accepted(self):
        result = validate_query_request({"query": "SELECT 1", "limit": "50"}, "c")
        assert isinstance(result, QueryRequest)
        assert result.requested_limit == 50

    def test_query_must_be_string(self):
        result = validate_query_request({"query": 123}, "c")
        assert result.reasons == ("Query must be a string",)

    @pytest.mark.parametrize("payload", [None, "SELECT 1", ["SELECT 1"], 42])
    def test_non_object_payload(self, payload):
        result = validate_query_request(payload, "c")
        assert result.reasons == ("Request body must be a JSON object",)

    def test_unknown_keys_are_ignored(self):
        result = validate_query_request({"query": "SELECT 1", "database": "prod"}, "c")
        assert isinstance(result, QueryRequest)

    def test_custom_limits(self):
        """Bounds come from configuration, not from the validator."""
        limits = QueryLimits(max_query_length=10, max_limit=50, default_limit=20)
        too_long = validate_query_request({"query": "SELECT 1234567"}, "c", limits)
        assert too_long.reasons == ("Query too long (max 10 characters)",)

        over = validate_query_request({"query": "SELECT 1", "limit": 51}, "c", limits)
        assert over.reasons == ("Limit cannot exceed 50",)

        ok = validate_query_request({"query": "SELECT 1"}, "c", limits)
        assert ok.requested_limit == 20


class TestIdentifier:
    """Tests for validate_identifier."""

    @pytest.mark.parametrize("name", ["users", "Order_Items", "t2", "a" * 64])
    def test_valid_identifiers(self, name):
        assert validate_identifier(name) == name

    @pytest.mark.parametrize("name", ["2users", "_private", "users; DROP", "user-name", "naïve"])
    def test_invalid_pattern(self, name):
        result = validate_identifier(name)
        assert isinstance(result, ValidationVerdict)
        assert result.reasons == (
            "Table name must start with letter and contain only letters, numbers, and underscores",
        )

    def test_too_long(self):
        result = validate_identifier("a" * 65, "Column name")
        assert result.reasons == ("Column name too long (max 64 characters)",)

    def test_empty(self):
        assert validate_identifier("").reasons == ("Table name cannot be empty",)

    def test_not_a_string(self):
        assert validate_identifier(5).reasons == ("Table name must be a string",)


class TestSearchRequest:
    """Tests for validate_search_request."""

    def test_valid_search(self):
        result = validate_search_request(
            {"table": "users", "column": "name", "search_term": "ali"}, "c"
        )
        assert result == SearchRequest(
            table="users", column="name", search_term="ali", limit=100, caller_identity="c"
        )

    def test_bad_identifiers_and_term_accumulate(self):
        result = validate_search_request(
            {"table": "users;", "column": "1name", "search_term": "x' OR '1'='1"}, "c"
        )
        assert result.category is RejectionCategory.MALFORMED_INPUT
        assert result.rules == ("table", "column", "search_term")
        assert "Search term contains invalid characters" in result.reasons

    def test_missing_search_term(self):
        result = validate_search_request({"table": "users", "column": "name"}, "c")
        assert result.reasons == ("Search term is required",)

    def test_search_term_too_long(self):
        result = validate_search_request(
            {"table": "users", "column": "name", "search_term": "a" * 256}, "c"
        )
        assert result.reasons == ("Search term too long (max 255 characters)",)
