"""Core infrastructure module.

Contains configuration, the execution adapter, response models, and exceptions.
"""

from .config import (
    AccessTier,
    DatabaseConnection,
    Settings,
    clear_settings_cache,
    get_cached_settings,
    get_settings,
)
from .db import (
    ColumnInfo,
    FetchResult,
    QueryExecutor,
    SqlAlchemyExecutor,
    TableInfo,
    create_db_engine,
)
from .exceptions import (
    ConfigurationError,
    DatabaseError,
    QueryTimeoutError,
    RateLimitExceededError,
    StatementRejectedError,
    ValidationError,
)
from .models import (
    CountResponse,
    ErrorDetail,
    QueryResponse,
    SchemaResponse,
    SearchResponse,
)

__all__ = [
    # Config
    "AccessTier",
    "DatabaseConnection",
    "Settings",
    "clear_settings_cache",
    "get_cached_settings",
    "get_settings",
    # Database
    "ColumnInfo",
    "FetchResult",
    "QueryExecutor",
    "SqlAlchemyExecutor",
    "TableInfo",
    "create_db_engine",
    # Exceptions
    "ConfigurationError",
    "DatabaseError",
    "QueryTimeoutError",
    "RateLimitExceededError",
    "StatementRejectedError",
    "ValidationError",
    # Models
    "CountResponse",
    "ErrorDetail",
    "QueryResponse",
    "SchemaResponse",
    "SearchResponse",
]
