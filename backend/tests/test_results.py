"""Tests for result bounding."""

from __future__ import annotations

import pytest

from sqlgate.core.db import FetchResult
from sqlgate.results import bound_rows, effective_limit


def fetch(count: int) -> FetchResult:
    return FetchResult(columns=("n",), rows=[{"n": i} for i in range(count)])


class TestBoundRows:
    def test_truncation_law(self):
        """len(rows) == min(raw, limit) and truncated iff raw > limit."""
        for raw in range(0, 8):
            for limit in range(0, 8):
                result = bound_rows(fetch(raw), limit)
                assert result.row_count == min(raw, limit)
                assert result.truncated == (raw > limit)

    def test_keeps_first_rows_in_order(self):
        result = bound_rows(fetch(250), 100)
        assert result.row_count == 100
        assert result.truncated
        assert result.rows[0] == {"n": 0}
        assert result.rows[-1] == {"n": 99}
        assert result.columns == ("n",)

    def test_short_result_not_truncated(self):
        result = bound_rows(fetch(5), 100)
        assert result.row_count == 5
        assert not result.truncated

    def test_input_untouched(self):
        raw = fetch(10)
        bound_rows(raw, 3)
        assert len(raw.rows) == 10

    def test_negative_limit(self):
        with pytest.raises(ValueError):
            bound_rows(fetch(1), -1)


class TestEffectiveLimit:
    @pytest.mark.parametrize(
        "requested,ceiling,expected",
        [(50, 100, 50), (500, 100, 100), (1000, 1000, 1000), (100, 1000, 100)],
    )
    def test_smaller_of_requested_and_ceiling(self, requested, ceiling, expected):
        assert effective_limit(requested, ceiling) == expected
