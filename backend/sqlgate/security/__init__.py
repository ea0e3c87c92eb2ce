"""Security and validation module.

Contains the admission pipeline stages: input validation, statement
classification, rate limiting and auditing.
"""

from .audit import AuditSink, LoggingAuditSink, MemoryAuditSink
from .classifier import StatementClassifier, canonicalize
from .input_schema import (
    QueryLimits,
    QueryRequest,
    SearchRequest,
    validate_identifier,
    validate_query_request,
    validate_search_request,
)
from .policy import InjectionPattern, StatementPolicy, load_statement_policy
from .rate_limit import AdmissionDecision, AdmissionGate, InMemoryWindowStore, RateLimitWindow
from .verdicts import ClassifiedStatement, RejectionCategory, ValidationVerdict, Violation

__all__ = [
    # Audit
    "AuditSink",
    "LoggingAuditSink",
    "MemoryAuditSink",
    # Classification
    "StatementClassifier",
    "canonicalize",
    "ClassifiedStatement",
    # Input validation
    "QueryLimits",
    "QueryRequest",
    "SearchRequest",
    "validate_identifier",
    "validate_query_request",
    "validate_search_request",
    # Policy
    "InjectionPattern",
    "StatementPolicy",
    "load_statement_policy",
    # Rate limiting
    "AdmissionDecision",
    "AdmissionGate",
    "InMemoryWindowStore",
    "RateLimitWindow",
    # Verdicts
    "RejectionCategory",
    "ValidationVerdict",
    "Violation",
]
