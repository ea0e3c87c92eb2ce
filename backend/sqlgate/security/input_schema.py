"""Shape, type and range checks for caller-supplied parameters.

Runs before any SQL-specific reasoning. Payloads are validated with pydantic
models whose validators read the configured limits from the validation
context; every failing field is reported, not just the first one.
Malformed input is an expected outcome here, so these functions return a
verdict instead of raising.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticCustomError

from .verdicts import RejectionCategory, ValidationVerdict, Violation

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class QueryLimits:
    """Configurable bounds for request parameters."""
    max_query_length: int = 10_000
    forbidden_query_chars: str = "<>{}"
    default_limit: int = 100
    min_limit: int = 1
    max_limit: int = 1000
    default_timeout_ms: int = 30_000
    min_timeout_ms: int = 1000
    max_timeout_ms: int = 30_000
    max_identifier_length: int = 64
    max_search_term_length: int = 255
    forbidden_search_chars: str = "<>{};\"'"


@dataclass(frozen=True)
class QueryRequest:
    raw_text: str
    requested_limit: int
    requested_timeout_ms: int
    caller_identity: str


@dataclass(frozen=True)
class SearchRequest:
    table: str
    column: str
    search_term: str
    limit: int
    caller_identity: str


_FIELD_LABELS = {
    "query": "Query",
    "limit": "Limit",
    "timeout": "Timeout",
    "table": "Table name",
    "column": "Column name",
    "search_term": "Search term",
}

_CONSTRAINTS = "constraint_violations"


def _limits(info: ValidationInfo) -> QueryLimits:
    context = info.context or {}
    return context.get("limits") or QueryLimits()


def _fail(problems: list[str]) -> PydanticCustomError:
    return PydanticCustomError(_CONSTRAINTS, "{summary}", {"summary": "; ".join(problems), "problems": problems})


def _text_problems(value: str, label: str, max_length: int, forbidden: str) -> list[str]:
    if not value:
        return [f"{label} cannot be empty"]
    problems = []
    if len(value) > max_length:
        problems.append(f"{label} too long (max {max_length} characters)")
    if any(char in value for char in forbidden):
        problems.append(f"{label} contains invalid characters")
    return problems


def _range_problems(value: int, label: str, low: int, high: int, unit: str = "") -> list[str]:
    if value < low:
        return [f"{label} must be at least {low}{unit}"]
    if value > high:
        return [f"{label} cannot exceed {high}{unit}"]
    return []


def _identifier_problems(value: str, label: str, limits: QueryLimits) -> list[str]:
    if not value:
        return [f"{label} cannot be empty"]
    problems = []
    if not IDENTIFIER_PATTERN.match(value):
        problems.append(f"{label} must start with letter and contain only letters, numbers, and underscores")
    if len(value) > limits.max_identifier_length:
        problems.append(f"{label} too long (max {limits.max_identifier_length} characters)")
    return problems


def _reject_bool(value: Any) -> Any:
    # bool is an int subclass; a JSON true/false is never a row count
    if isinstance(value, bool):
        raise PydanticCustomError("int_type", "Input should be a valid integer")
    return value


class QueryPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    query: str
    limit: Optional[int] = None
    timeout: Optional[int] = None

    @field_validator("limit", "timeout", mode="before")
    @classmethod
    def _strict_numbers(cls, value: Any) -> Any:
        return _reject_bool(value)

    @field_validator("query")
    @classmethod
    def _check_query(cls, value: str, info: ValidationInfo) -> str:
        limits = _limits(info)
        problems = _text_problems(value, "Query", limits.max_query_length, limits.forbidden_query_chars)
        if problems:
            raise _fail(problems)
        return value

    @field_validator("limit")
    @classmethod
    def _check_limit(cls, value: Optional[int], info: ValidationInfo) -> Optional[int]:
        if value is None:
            return value
        limits = _limits(info)
        problems = _range_problems(value, "Limit", limits.min_limit, limits.max_limit)
        if problems:
            raise _fail(problems)
        return value

    @field_validator("timeout")
    @classmethod
    def _check_timeout(cls, value: Optional[int], info: ValidationInfo) -> Optional[int]:
        if value is None:
            return value
        limits = _limits(info)
        problems = _range_problems(value, "Timeout", limits.min_timeout_ms, limits.max_timeout_ms, "ms")
        if problems:
            raise _fail(problems)
        return value


class SearchPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    table: str
    column: str
    search_term: str
    limit: Optional[int] = None

    @field_validator("limit", mode="before")
    @classmethod
    def _strict_numbers(cls, value: Any) -> Any:
        return _reject_bool(value)

    @field_validator("table", "column")
    @classmethod
    def _check_identifier(cls, value: str, info: ValidationInfo) -> str:
        problems = _identifier_problems(value, _FIELD_LABELS[info.field_name], _limits(info))
        if problems:
            raise _fail(problems)
        return value

    @field_validator("search_term")
    @classmethod
    def _check_term(cls, value: str, info: ValidationInfo) -> str:
        limits = _limits(info)
        problems = _text_problems(
            value, "Search term", limits.max_search_term_length, limits.forbidden_search_chars
        )
        if problems:
            raise _fail(problems)
        return value

    @field_validator("limit")
    @classmethod
    def _check_limit(cls, value: Optional[int], info: ValidationInfo) -> Optional[int]:
        if value is None:
            return value
        limits = _limits(info)
        problems = _range_problems(value, "Limit", limits.min_limit, limits.max_limit)
        if problems:
            raise _fail(problems)
        return value


def _violations(exc: PydanticValidationError) -> list[Violation]:
    """Turn pydantic errors into one human-readable violation per problem."""
    violations: list[Violation] = []
    for error in exc.errors():
        field = str(error["loc"][0]) if error["loc"] else "request"
        label = _FIELD_LABELS.get(field, field)
        kind = error["type"]
        ctx = error.get("ctx") or {}
        if kind == _CONSTRAINTS:
            violations.extend(Violation(field, problem) for problem in ctx["problems"])
        elif kind == "missing":
            violations.append(Violation(field, f"{label} is required"))
        elif kind.startswith("int"):
            violations.append(Violation(field, f"{label} must be an integer"))
        elif kind.startswith("string"):
            violations.append(Violation(field, f"{label} must be a string"))
        else:
            violations.append(Violation(field, f"{label}: {error['msg']}"))
    return violations


def _malformed(violations: list[Violation]) -> ValidationVerdict:
    return ValidationVerdict.reject(RejectionCategory.MALFORMED_INPUT, violations)


def _not_an_object() -> ValidationVerdict:
    return _malformed([Violation("request", "Request body must be a JSON object")])


def validate_query_request(
    payload: Any,
    caller_identity: str,
    limits: Optional[QueryLimits] = None,
) -> QueryRequest | ValidationVerdict:
    """Validate a query payload and fill in defaults.

    Returns:
        QueryRequest on success, otherwise a rejected ValidationVerdict
        listing every violated constraint.
    """
    limits = limits or QueryLimits()
    if not isinstance(payload, dict):
        return _not_an_object()
    try:
        parsed = QueryPayload.model_validate(payload, context={"limits": limits})
    except PydanticValidationError as e:
        return _malformed(_violations(e))

    return QueryRequest(
        raw_text=parsed.query,
        requested_limit=parsed.limit if parsed.limit is not None else limits.default_limit,
        requested_timeout_ms=parsed.timeout if parsed.timeout is not None else limits.default_timeout_ms,
        caller_identity=caller_identity,
    )


def validate_search_request(
    payload: Any,
    caller_identity: str,
    limits: Optional[QueryLimits] = None,
) -> SearchRequest | ValidationVerdict:
    """Validate a search payload (table, column, search term, limit)."""
    limits = limits or QueryLimits()
    if not isinstance(payload, dict):
        return _not_an_object()
    try:
        parsed = SearchPayload.model_validate(payload, context={"limits": limits})
    except PydanticValidationError as e:
        return _malformed(_violations(e))

    return SearchRequest(
        table=parsed.table,
        column=parsed.column,
        search_term=parsed.search_term,
        limit=parsed.limit if parsed.limit is not None else limits.default_limit,
        caller_identity=caller_identity,
    )


def validate_identifier(
    value: Any,
    kind: str = "Table name",
    limits: Optional[QueryLimits] = None,
) -> str | ValidationVerdict:
    """Check a table or column name before it is placed into SQL text."""
    limits = limits or QueryLimits()
    if not isinstance(value, str):
        return _malformed([Violation("identifier", f"{kind} must be a string")])
    problems = _identifier_problems(value, kind, limits)
    if problems:
        return _malformed([Violation("identifier", problem) for problem in problems])
    return value
