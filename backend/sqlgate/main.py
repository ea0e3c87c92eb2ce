from __future__ import annotations

from contextlib import asynccontextmanager
import logging
import threading
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from .core import (
    CountResponse,
    DatabaseError,
    ErrorDetail,
    QueryResponse,
    QueryTimeoutError,
    RateLimitExceededError,
    SchemaResponse,
    SearchResponse,
    SqlAlchemyExecutor,
    StatementRejectedError,
    ValidationError,
    create_db_engine,
    get_cached_settings,
)
from .core.models import ColumnSchema, TableSchema
from .gateway import QueryGateway

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

settings = get_cached_settings()

# Gateway is built lazily so importing the app never opens a connection
_gateway_lock = threading.Lock()
_gateway: Optional[QueryGateway] = None


def get_gateway() -> QueryGateway:
    global _gateway
    with _gateway_lock:
        if _gateway is None:
            engine = create_db_engine(settings.database)
            executor = SqlAlchemyExecutor(engine, max_workers=settings.database.pool_size)
            _gateway = QueryGateway(executor, settings=settings)
            logger.info(
                f"Gateway ready: tier={settings.access_tier.value}, "
                f"rate_limit={settings.rate_limit_max_requests}/{settings.rate_limit_window_seconds:.0f}s"
            )
        return _gateway


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    global _gateway
    with _gateway_lock:
        if _gateway is not None and isinstance(_gateway.executor, SqlAlchemyExecutor):
            _gateway.executor.close()
        _gateway = None


app = FastAPI(title="SQLGate", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type"],
)


# --- Structured Error Response ---

def raise_error(
    status_code: int,
    error_code: str,
    message: str,
    details: dict | None = None,
    headers: dict[str, str] | None = None,
):
    """Raise HTTPException with structured error detail."""
    raise HTTPException(
        status_code=status_code,
        detail=ErrorDetail(error_code=error_code, message=message, details=details).model_dump(),
        headers=headers,
    )


def caller_identity(request: Request) -> str:
    """Network address of the caller; used only as the rate-limit key."""
    return request.client.host if request.client else "unknown"


def _raise_for(exc: Exception) -> None:
    """Map pipeline exceptions to HTTP errors."""
    if isinstance(exc, ValidationError):
        raise_error(
            400,
            "invalid_request",
            "Input validation failed",
            {"category": exc.verdict.category.value, "reasons": list(exc.verdict.reasons)},
        )
    if isinstance(exc, StatementRejectedError):
        raise_error(
            403,
            "statement_rejected",
            "Query validation failed",
            {"category": exc.verdict.category.value, "reasons": list(exc.verdict.reasons)},
        )
    if isinstance(exc, RateLimitExceededError):
        retry_after = exc.decision.retry_after_seconds
        raise_error(
            429,
            "rate_limited",
            "Rate limit exceeded. Please try again later.",
            {"retry_after": retry_after},
            headers={"Retry-After": str(retry_after)},
        )
    if isinstance(exc, QueryTimeoutError):
        raise_error(504, "query_timeout", f"Query execution failed: {exc}")
    if isinstance(exc, DatabaseError):
        raise_error(502, "database_error", f"Query execution failed: {exc}")
    raise exc


# --- API Endpoints ---

@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/api/query", response_model=QueryResponse)
def run_query(
    payload: Any = Body(default=None),
    caller: str = Depends(caller_identity),
    gateway: QueryGateway = Depends(get_gateway),
) -> QueryResponse:
    """
    Run a readonly statement.

    - **query**: SQL text (SELECT, SHOW, DESCRIBE, EXPLAIN, ...)
    - **limit**: Maximum rows to return (default 100)
    - **timeout**: Execution timeout in milliseconds (default 30000)
    """
    try:
        outcome = gateway.run_query(payload, caller)
    except (ValidationError, StatementRejectedError, RateLimitExceededError, DatabaseError) as exc:
        _raise_for(exc)

    result = outcome.result
    logger.info(f"Query from {caller} returned {result.row_count} rows (truncated={result.truncated})")
    return QueryResponse(
        query=outcome.statement.canonical_text,
        columns=list(result.columns),
        rows=list(result.rows),
        row_count=result.row_count,
        truncated=result.truncated,
        limit=outcome.limit,
        timeout=outcome.timeout_ms,
    )


@app.get("/api/schema", response_model=SchemaResponse)
def describe_schema(
    caller: str = Depends(caller_identity),
    gateway: QueryGateway = Depends(get_gateway),
) -> SchemaResponse:
    """List tables and columns of the connected database."""
    try:
        tables = gateway.describe_schema(caller)
    except (RateLimitExceededError, DatabaseError) as exc:
        _raise_for(exc)

    return SchemaResponse(
        tables=[
            TableSchema(
                name=table.name,
                columns=[
                    ColumnSchema(name=col.name, data_type=col.data_type, nullable=col.nullable)
                    for col in table.columns
                ],
            )
            for table in tables
        ],
        table_count=len(tables),
    )


@app.get("/api/tables/{table}/count", response_model=CountResponse)
def count_records(
    table: str,
    caller: str = Depends(caller_identity),
    gateway: QueryGateway = Depends(get_gateway),
) -> CountResponse:
    """Count the rows of a single table."""
    try:
        count = gateway.count_records(table, caller)
    except (ValidationError, RateLimitExceededError, DatabaseError) as exc:
        _raise_for(exc)

    return CountResponse(table=table, count=count)


@app.post("/api/search", response_model=SearchResponse)
def search_data(
    payload: Any = Body(default=None),
    caller: str = Depends(caller_identity),
    gateway: QueryGateway = Depends(get_gateway),
) -> SearchResponse:
    """Substring search on one column of one table."""
    try:
        outcome = gateway.search_data(payload, caller)
    except (ValidationError, RateLimitExceededError, DatabaseError) as exc:
        _raise_for(exc)

    result = outcome.result
    return SearchResponse(
        table=outcome.request.table,
        column=outcome.request.column,
        search_term=outcome.request.search_term,
        columns=list(result.columns),
        rows=list(result.rows),
        row_count=result.row_count,
        truncated=result.truncated,
        limit=outcome.limit,
    )
