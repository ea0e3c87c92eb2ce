"""Outcome types shared by the admission pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable


class RejectionCategory(str, Enum):
    """Why a request was turned away before execution."""
    MALFORMED_INPUT = "malformed_input"                  # fix the request shape
    INADMISSIBLE_STATEMENT = "inadmissible_statement"    # statement not allowed


@dataclass(frozen=True)
class Violation:
    """A single failed rule."""
    rule: str
    message: str


@dataclass(frozen=True)
class ValidationVerdict:
    """Every violation found for one request, in rule order."""
    category: RejectionCategory
    violations: tuple[Violation, ...] = ()

    @property
    def accepted(self) -> bool:
        return not self.violations

    @property
    def reasons(self) -> tuple[str, ...]:
        return tuple(v.message for v in self.violations)

    @property
    def rules(self) -> tuple[str, ...]:
        """Names of the rules that fired, without duplicates."""
        return tuple(dict.fromkeys(v.rule for v in self.violations))

    @classmethod
    def reject(cls, category: RejectionCategory, violations: Iterable[Violation]) -> "ValidationVerdict":
        return cls(category=category, violations=tuple(violations))


@dataclass(frozen=True)
class ClassifiedStatement:
    """An accepted statement, ready for execution."""
    canonical_text: str
    is_readonly: bool
    first_keyword: str
