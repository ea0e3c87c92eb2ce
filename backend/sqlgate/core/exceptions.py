"""Custom exceptions for the gateway."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..security.rate_limit import AdmissionDecision
    from ..security.verdicts import ValidationVerdict


class ConfigurationError(Exception):
    """Raised when settings or the statement policy are invalid."""

    pass


class DatabaseError(Exception):
    """Raised when a database operation fails."""

    pass


class QueryTimeoutError(DatabaseError):
    """Raised when a statement runs longer than its timeout."""

    pass


class ValidationError(Exception):
    """Raised when the request payload fails input validation."""

    def __init__(self, verdict: ValidationVerdict) -> None:
        super().__init__("; ".join(verdict.reasons))
        self.verdict = verdict


class StatementRejectedError(Exception):
    """Raised when a well-formed request carries an inadmissible statement."""

    def __init__(self, verdict: ValidationVerdict) -> None:
        super().__init__("; ".join(verdict.reasons))
        self.verdict = verdict


class RateLimitExceededError(Exception):
    """Raised when a caller exhausts its request window."""

    def __init__(self, decision: AdmissionDecision) -> None:
        super().__init__(f"Rate limit exceeded, retry after {decision.retry_after:.0f}s")
        self.decision = decision

    @property
    def retry_after(self) -> float:
        return self.decision.retry_after
