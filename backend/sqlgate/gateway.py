"""Query admission pipeline.

request -> input validation -> admission gate -> statement classification
-> execution -> result bounding -> response

The stages themselves are pure and return verdicts. ``QueryGateway`` wires
them together and turns rejections into typed exceptions for the HTTP layer.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Optional

from .core.config import AccessTier, Settings, get_cached_settings
from .core.db import FetchResult, QueryExecutor, TableInfo
from .core.exceptions import (
    DatabaseError,
    RateLimitExceededError,
    StatementRejectedError,
    ValidationError,
)
from .results import ResultSet, bound_rows, effective_limit
from .security.audit import AuditSink, LoggingAuditSink
from .security.classifier import StatementClassifier
from .security.input_schema import (
    QueryRequest,
    SearchRequest,
    validate_identifier,
    validate_query_request,
    validate_search_request,
)
from .security.rate_limit import AdmissionDecision, AdmissionGate
from .security.verdicts import ClassifiedStatement, ValidationVerdict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryResult:
    statement: ClassifiedStatement
    result: ResultSet
    limit: int
    timeout_ms: int


@dataclass(frozen=True)
class SearchResult:
    request: SearchRequest
    result: ResultSet
    limit: int


class QueryGateway:
    def __init__(
        self,
        executor: QueryExecutor,
        settings: Optional[Settings] = None,
        gate: Optional[AdmissionGate] = None,
        classifier: Optional[StatementClassifier] = None,
        audit: Optional[AuditSink] = None,
    ) -> None:
        self.settings = settings or get_cached_settings()
        self.executor = executor
        self.gate = gate or AdmissionGate(
            window_seconds=self.settings.rate_limit_window_seconds,
            max_requests=self.settings.rate_limit_max_requests,
        )
        self.classifier = classifier or StatementClassifier.from_policy(
            self.settings.policy,
            public=self.settings.access_tier is AccessTier.PUBLIC,
        )
        self.audit = audit or LoggingAuditSink()

    # --- Pipeline stages ---

    def validate_request(self, payload: Any, caller_identity: str) -> QueryRequest | ValidationVerdict:
        return validate_query_request(payload, caller_identity, self.settings.limits)

    def validate_and_classify(self, payload: Any, caller_identity: str) -> ClassifiedStatement | ValidationVerdict:
        """Input validation followed by statement classification, without admission."""
        request = self.validate_request(payload, caller_identity)
        if isinstance(request, ValidationVerdict):
            return request
        return self.classifier.classify(request.raw_text)

    def check_admission(self, caller_identity: str) -> AdmissionDecision:
        return self.gate.check(caller_identity)

    def bound(self, fetch: FetchResult, limit: int) -> ResultSet:
        return bound_rows(fetch, limit)

    # --- Operations ---

    def run_query(self, payload: Any, caller_identity: str) -> QueryResult:
        """Validate, admit, classify, execute and bound a free-form statement.

        Raises:
            ValidationError: Malformed request payload
            RateLimitExceededError: Caller exhausted its window
            StatementRejectedError: Statement is not admissible
            DatabaseError: Execution failed or timed out
        """
        request = self.validate_request(payload, caller_identity)
        if isinstance(request, ValidationVerdict):
            query_text = payload.get("query") if isinstance(payload, dict) else None
            self._reject_attempt(request, caller_identity, query_text)
            raise ValidationError(request)

        self._admit(caller_identity, "query")

        classified = self.classifier.classify(request.raw_text)
        if isinstance(classified, ValidationVerdict):
            self._reject_attempt(classified, caller_identity, request.raw_text)
            raise StatementRejectedError(classified)

        limit = effective_limit(request.requested_limit, self.settings.row_ceiling)
        fetch = self._execute(
            classified.canonical_text,
            caller_identity=caller_identity,
            timeout_ms=request.requested_timeout_ms,
            max_rows=limit + 1,
        )
        result = self.bound(fetch, limit)

        self._record(
            "query_executed",
            logging.INFO,
            caller=caller_identity,
            keyword=classified.first_keyword,
            row_count=result.row_count,
            truncated=result.truncated,
            query=self._clip(classified.canonical_text),
        )
        return QueryResult(
            statement=classified,
            result=result,
            limit=limit,
            timeout_ms=request.requested_timeout_ms,
        )

    def describe_schema(self, caller_identity: str) -> list[TableInfo]:
        self._admit(caller_identity, "schema")
        try:
            tables = self.executor.describe_schema()
        except DatabaseError as e:
            self._record("describe_schema_error", logging.ERROR, caller=caller_identity, error=str(e))
            raise
        self._record("describe_schema", logging.INFO, caller=caller_identity, table_count=len(tables))
        return tables

    def count_records(self, table: Any, caller_identity: str) -> int:
        name = validate_identifier(table, "Table name", self.settings.limits)
        if isinstance(name, ValidationVerdict):
            self._reject_attempt(name, caller_identity, None)
            raise ValidationError(name)

        self._admit(caller_identity, "count")

        # name is a validated identifier, quoted for the dialect
        fetch = self._execute(
            f"SELECT COUNT(*) AS record_count FROM {self.executor.quote_identifier(name)}",
            caller_identity=caller_identity,
            timeout_ms=self.settings.limits.default_timeout_ms,
            max_rows=1,
        )
        count = int(next(iter(fetch.rows[0].values()))) if fetch.rows else 0
        self._record("count_records", logging.INFO, caller=caller_identity, table=name, count=count)
        return count

    def search_data(self, payload: Any, caller_identity: str) -> SearchResult:
        request = validate_search_request(payload, caller_identity, self.settings.limits)
        if isinstance(request, ValidationVerdict):
            self._reject_attempt(request, caller_identity, None)
            raise ValidationError(request)

        self._admit(caller_identity, "search")

        limit = effective_limit(request.limit, self.settings.row_ceiling)
        table = self.executor.quote_identifier(request.table)
        column = self.executor.quote_identifier(request.column)
        fetch = self._execute(
            f"SELECT * FROM {table} WHERE {column} LIKE :pattern LIMIT :row_limit",
            params={"pattern": f"%{request.search_term}%", "row_limit": limit + 1},
            caller_identity=caller_identity,
            timeout_ms=self.settings.limits.default_timeout_ms,
            max_rows=limit + 1,
        )
        result = self.bound(fetch, limit)
        self._record(
            "search_data",
            logging.INFO,
            caller=caller_identity,
            table=request.table,
            column=request.column,
            search_term=request.search_term[:50],
            row_count=result.row_count,
        )
        return SearchResult(request=request, result=result, limit=limit)

    # --- Helpers ---

    def _admit(self, caller_identity: str, endpoint: str) -> AdmissionDecision:
        decision = self.check_admission(caller_identity)
        if not decision.admitted:
            self._record(
                "rate_limit_exceeded",
                logging.WARNING,
                caller=caller_identity,
                endpoint=endpoint,
                retry_after=decision.retry_after_seconds,
            )
            raise RateLimitExceededError(decision)
        return decision

    def _execute(
        self,
        sql: str,
        caller_identity: str,
        timeout_ms: int,
        max_rows: int,
        params: Optional[dict[str, Any]] = None,
    ) -> FetchResult:
        try:
            return self.executor.execute(sql, params, timeout_ms=timeout_ms, max_rows=max_rows)
        except DatabaseError as e:
            self._record(
                "query_failed",
                logging.ERROR,
                caller=caller_identity,
                error=str(e),
                error_type=type(e).__name__,
                query=self._clip(sql),
            )
            raise

    def _reject_attempt(self, verdict: ValidationVerdict, caller_identity: str, query: Any) -> None:
        self._record(
            "query_attempt",
            logging.WARNING,
            caller=caller_identity,
            category=verdict.category.value,
            rules=list(verdict.rules),
            reasons=list(verdict.reasons),
            query=self._clip(query) if isinstance(query, str) else None,
        )

    def _clip(self, text: str) -> str:
        return text[: self.settings.audit_query_chars]

    def _record(self, event: str, level: int, **facts: Any) -> None:
        try:
            self.audit.record(event, level, **facts)
        except Exception as e:
            logger.warning(f"Audit sink failed for {event}: {e}")
