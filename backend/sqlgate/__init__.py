"""SQLGate readonly query gateway.

This package puts a bounded, validated query surface in front of a relational
database: callers submit a statement and get capped results back, or a list
of reasons why the statement was refused.

Package Structure:
    core/       - Core infrastructure (config, execution adapter, models, exceptions)
    security/   - Admission pipeline stages (input schema, classifier, rate limit, audit)
    results.py  - Result bounding
    gateway.py  - Pipeline orchestration
    main.py     - FastAPI application
"""

# Core
from .core.config import AccessTier, DatabaseConnection, Settings, get_cached_settings, get_settings
from .core.db import FetchResult, SqlAlchemyExecutor, create_db_engine
from .core.exceptions import (
    ConfigurationError,
    DatabaseError,
    QueryTimeoutError,
    RateLimitExceededError,
    StatementRejectedError,
    ValidationError,
)

# Pipeline
from .gateway import QueryGateway, QueryResult, SearchResult
from .results import ResultSet, bound_rows, effective_limit

# Security
from .security import (
    AdmissionDecision,
    AdmissionGate,
    ClassifiedStatement,
    StatementClassifier,
    ValidationVerdict,
    canonicalize,
    validate_query_request,
)

__all__ = [
    # Core
    "AccessTier",
    "DatabaseConnection",
    "Settings",
    "get_cached_settings",
    "get_settings",
    "FetchResult",
    "SqlAlchemyExecutor",
    "create_db_engine",
    "ConfigurationError",
    "DatabaseError",
    "QueryTimeoutError",
    "RateLimitExceededError",
    "StatementRejectedError",
    "ValidationError",
    # Pipeline
    "QueryGateway",
    "QueryResult",
    "SearchResult",
    "ResultSet",
    "bound_rows",
    "effective_limit",
    # Security
    "AdmissionDecision",
    "AdmissionGate",
    "ClassifiedStatement",
    "StatementClassifier",
    "ValidationVerdict",
    "canonicalize",
    "validate_query_request",
]
