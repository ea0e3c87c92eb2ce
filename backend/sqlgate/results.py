"""Result bounding: cap returned rows and flag truncation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .core.db import FetchResult


@dataclass(frozen=True)
class ResultSet:
    columns: tuple[str, ...]
    rows: tuple[dict[str, Any], ...]
    truncated: bool

    @property
    def row_count(self) -> int:
        return len(self.rows)


def effective_limit(requested: int, ceiling: int) -> int:
    """The smaller of the caller's limit and the access ceiling."""
    return min(requested, ceiling)


def bound_rows(fetch: FetchResult, limit: int) -> ResultSet:
    """Keep the first ``limit`` rows; only the sequence length is inspected."""
    if limit < 0:
        raise ValueError("limit must not be negative")
    rows = tuple(fetch.rows[:limit])
    return ResultSet(
        columns=tuple(fetch.columns),
        rows=rows,
        truncated=len(fetch.rows) > limit,
    )
