"""Execution adapter: runs sanitized statements against the database."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
import logging
import threading
from typing import Any, Mapping, Optional, Protocol

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import DataError, DBAPIError, OperationalError, ProgrammingError, SQLAlchemyError

from .config import DatabaseConnection
from .exceptions import DatabaseError, QueryTimeoutError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchResult:
    """Raw rows as returned by the database, before bounding."""
    columns: tuple[str, ...] = ()
    rows: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class ColumnInfo:
    name: str
    data_type: str
    nullable: bool


@dataclass
class TableInfo:
    name: str
    columns: list[ColumnInfo] = field(default_factory=list)


class QueryExecutor(Protocol):
    def execute(
        self,
        sql: str,
        params: Optional[Mapping[str, Any]] = None,
        timeout_ms: int = 30_000,
        max_rows: Optional[int] = None,
    ) -> FetchResult:
        ...

    def describe_schema(self) -> list[TableInfo]:
        ...

    def quote_identifier(self, name: str) -> str:
        ...


def create_db_engine(connection: DatabaseConnection) -> Engine:
    """Create a SQLAlchemy engine for the configured database."""
    url = make_url(connection.url)
    backend = url.get_backend_name()
    kwargs: dict[str, Any] = {"pool_pre_ping": True}

    if backend == "sqlite":
        # Worker threads share pooled connections
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": connection.connect_timeout}
    else:
        kwargs["pool_size"] = connection.pool_size
        kwargs["connect_args"] = {"connect_timeout": connection.connect_timeout}

    logger.info(f"Creating {backend} engine for {url.render_as_string(hide_password=True)}")
    return create_engine(url, **kwargs)


def _normalize_value(value: Any) -> Any:
    """Normalize database values for JSON serialization."""
    if value is None:
        return None
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, bytes):
        # Try to decode as UTF-8, otherwise return hex representation
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError:
            return value.hex()
    if isinstance(value, memoryview):
        return bytes(value).hex()
    return value


def _apply_statement_timeout(conn: Connection, timeout_ms: int) -> None:
    """Ask the server to abort the statement itself where the dialect allows it."""
    dialect = conn.dialect.name
    if dialect in ("mysql", "mariadb"):
        conn.exec_driver_sql(f"SET SESSION MAX_EXECUTION_TIME = {int(timeout_ms)}")
    elif dialect == "postgresql":
        conn.exec_driver_sql(f"SET LOCAL statement_timeout = {int(timeout_ms)}")


class _RunningStatement:
    """Driver connection of a statement in flight.

    The waiting thread uses it to abort a statement that outlived its
    timeout. Attach, detach and abort share one lock, so an abort never lands
    on a connection that already went back to the pool.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._conn: Optional[Connection] = None
        self.abandoned = False

    def attach(self, conn: Connection) -> None:
        with self._lock:
            if self.abandoned:
                raise QueryTimeoutError("Query abandoned before it started")
            self._conn = conn

    def detach(self) -> None:
        with self._lock:
            conn, self._conn = self._conn, None
            if conn is not None and self.abandoned:
                # the driver connection may still be mid-statement
                conn.invalidate()

    def abandon(self, engine: Engine) -> None:
        with self._lock:
            self.abandoned = True
            if self._conn is not None:
                _interrupt(engine, self._conn)


def _interrupt(engine: Engine, conn: Connection) -> None:
    """Ask the driver or the server to stop the statement running on ``conn``."""
    dialect = conn.dialect.name
    driver_conn = conn.connection.driver_connection
    try:
        if dialect == "sqlite":
            driver_conn.interrupt()
        elif dialect == "postgresql":
            driver_conn.cancel()
        elif dialect in ("mysql", "mariadb"):
            thread_id = driver_conn.thread_id()
            with engine.connect() as killer:
                killer.exec_driver_sql(f"KILL QUERY {int(thread_id)}")
        else:
            logger.warning(f"No way to interrupt a running {dialect} statement")
    except Exception as e:
        logger.warning(f"Failed to interrupt timed out statement: {e}")


class SqlAlchemyExecutor:
    """Run statements on a worker pool so the caller's wait is bounded.

    Statements without parameters go to the driver untouched; statements
    with parameters are compiled with ``text()`` and use named binds
    (``:name``). Results are streamed so only the fetched rows leave the
    server. Connections are never committed.
    """

    def __init__(self, engine: Engine, max_workers: int = 5) -> None:
        self.engine = engine
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="sqlgate-db")

    def quote_identifier(self, name: str) -> str:
        """Quote a validated identifier for this dialect (reserved words, case)."""
        return self.engine.dialect.identifier_preparer.quote(name)

    def _fetch(
        self,
        sql: str,
        params: Optional[Mapping[str, Any]],
        timeout_ms: int,
        max_rows: Optional[int],
        running: _RunningStatement,
    ) -> FetchResult:
        try:
            with self.engine.connect() as conn:
                running.attach(conn)
                try:
                    _apply_statement_timeout(conn, timeout_ms)
                    streaming = conn.execution_options(stream_results=True)
                    if params:
                        result = streaming.execute(text(sql), dict(params))
                    else:
                        result = streaming.execution_options(no_parameters=True).exec_driver_sql(sql)
                    if not result.returns_rows:
                        return FetchResult()

                    columns = tuple(result.keys())
                    mapped = result.mappings()
                    rows = mapped.fetchmany(max_rows) if max_rows is not None else mapped.all()
                    result.close()
                    normalized = [{key: _normalize_value(value) for key, value in row.items()} for row in rows]
                    return FetchResult(columns=columns, rows=normalized)
                finally:
                    running.detach()

        except ProgrammingError as e:
            logger.error(f"SQL programming error: {e}")
            raise DatabaseError(f"Invalid SQL query: {e.orig}") from e
        except DataError as e:
            logger.error(f"SQL data error: {e}")
            raise DatabaseError(f"Data error in query: {e.orig}") from e
        except OperationalError as e:
            logger.error(f"Database operational error: {e}")
            raise DatabaseError(f"Database operation failed: {e.orig}") from e
        except DBAPIError as e:
            logger.error(f"Database error: {e}")
            raise DatabaseError(f"Database error: {e.orig}") from e
        except SQLAlchemyError as e:
            logger.error(f"Query could not be executed: {e}")
            raise DatabaseError(f"Query could not be executed: {e}") from e

    def execute(
        self,
        sql: str,
        params: Optional[Mapping[str, Any]] = None,
        timeout_ms: int = 30_000,
        max_rows: Optional[int] = None,
    ) -> FetchResult:
        """Execute a statement and fetch at most ``max_rows`` rows.

        Raises:
            QueryTimeoutError: If the statement does not finish within timeout_ms
            DatabaseError: If the database rejects the statement
        """
        logger.debug(f"Executing SQL (timeout={timeout_ms}ms, max_rows={max_rows}): {sql[:200]}")
        running = _RunningStatement()
        future = self._pool.submit(self._fetch, sql, params, timeout_ms, max_rows, running)
        try:
            result = future.result(timeout=timeout_ms / 1000)
        except FuturesTimeoutError as e:
            # a started statement would hold its worker until the database gives up
            if not future.cancel():
                running.abandon(self.engine)
            logger.error(f"Query exceeded timeout of {timeout_ms}ms")
            raise QueryTimeoutError(f"Query exceeded timeout of {timeout_ms}ms") from e

        logger.debug(f"Query returned {len(result.rows)} rows")
        return result

    def describe_schema(self) -> list[TableInfo]:
        """List tables and their columns."""
        try:
            inspector = inspect(self.engine)
            tables = []
            for table_name in sorted(inspector.get_table_names()):
                columns = [
                    ColumnInfo(
                        name=column["name"],
                        data_type=str(column["type"]),
                        nullable=bool(column.get("nullable", True)),
                    )
                    for column in inspector.get_columns(table_name)
                ]
                tables.append(TableInfo(name=table_name, columns=columns))
            return tables
        except SQLAlchemyError as e:
            logger.error(f"Failed to read schema: {e}")
            raise DatabaseError(f"Failed to read schema: {e}") from e

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)
        self.engine.dispose()
