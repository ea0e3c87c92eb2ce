from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class QueryResponse(BaseModel):
    query: str
    columns: list[str] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)
    row_count: int = 0
    truncated: bool = False
    limit: int
    timeout: int


class SearchResponse(BaseModel):
    table: str
    column: str
    search_term: str
    columns: list[str] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)
    row_count: int = 0
    truncated: bool = False
    limit: int


class CountResponse(BaseModel):
    table: str
    count: int


class ColumnSchema(BaseModel):
    name: str
    data_type: str
    nullable: bool


class TableSchema(BaseModel):
    name: str
    columns: list[ColumnSchema] = Field(default_factory=list)


class SchemaResponse(BaseModel):
    tables: list[TableSchema] = Field(default_factory=list)
    table_count: int = 0


class ErrorDetail(BaseModel):
    error_code: str
    message: str
    details: dict[str, Any] | None = None
