"""Shared fixtures for gateway tests."""

from __future__ import annotations

from dataclasses import replace
import os
import sys
from typing import Any, Optional

import pytest

# Add backend to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from sqlgate.core.config import AccessTier, DatabaseConnection, Settings
from sqlgate.core.db import ColumnInfo, FetchResult, TableInfo
from sqlgate.gateway import QueryGateway
from sqlgate.security.audit import MemoryAuditSink
from sqlgate.security.input_schema import QueryLimits
from sqlgate.security.policy import StatementPolicy
from sqlgate.security.rate_limit import AdmissionGate


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeExecutor:
    """Records calls and serves canned rows."""

    def __init__(
        self,
        rows: Optional[list[dict[str, Any]]] = None,
        error: Optional[Exception] = None,
        tables: Optional[list[TableInfo]] = None,
    ) -> None:
        self.rows = rows if rows is not None else []
        self.error = error
        self.tables = tables or []
        self.calls: list[dict[str, Any]] = []

    def execute(self, sql, params=None, timeout_ms=30_000, max_rows=None) -> FetchResult:
        self.calls.append({"sql": sql, "params": params, "timeout_ms": timeout_ms, "max_rows": max_rows})
        if self.error is not None:
            raise self.error
        rows = self.rows if max_rows is None else self.rows[:max_rows]
        columns = tuple(self.rows[0].keys()) if self.rows else ()
        return FetchResult(columns=columns, rows=list(rows))

    def describe_schema(self) -> list[TableInfo]:
        if self.error is not None:
            raise self.error
        return self.tables

    def quote_identifier(self, name: str) -> str:
        return name


def make_settings(**overrides: Any) -> Settings:
    base = Settings(
        database=DatabaseConnection(url_override="sqlite://"),
        access_tier=AccessTier.TRUSTED,
        limits=QueryLimits(),
        policy=StatementPolicy(),
        rate_limit_window_seconds=60.0,
        rate_limit_max_requests=10,
        audit_query_chars=200,
        cors_origins=(),
    )
    return replace(base, **overrides)


def user_rows(count: int) -> list[dict[str, Any]]:
    return [{"id": i, "name": f"user{i}"} for i in range(1, count + 1)]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def audit() -> MemoryAuditSink:
    return MemoryAuditSink()


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor(
        rows=user_rows(5),
        tables=[TableInfo(name="users", columns=[ColumnInfo(name="id", data_type="INTEGER", nullable=False)])],
    )


@pytest.fixture
def make_gateway(clock: FakeClock, audit: MemoryAuditSink):
    """Build a gateway around a fake executor with a controllable clock."""

    def _make(executor: FakeExecutor, **settings_overrides: Any) -> QueryGateway:
        settings = make_settings(**settings_overrides)
        gate = AdmissionGate(
            window_seconds=settings.rate_limit_window_seconds,
            max_requests=settings.rate_limit_max_requests,
            clock=clock,
        )
        return QueryGateway(executor, settings=settings, gate=gate, audit=audit)

    return _make
