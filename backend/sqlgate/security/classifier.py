"""Statement classification and canonicalization."""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional

from .policy import StatementPolicy
from .statement_rules import STATEMENT_SEPARATOR, StatementRule, StatementText, default_rules
from .verdicts import ClassifiedStatement, RejectionCategory, ValidationVerdict, Violation

logger = logging.getLogger(__name__)

_WHITESPACE_RUN = re.compile(r"\s+")
_TRAILING_SEPARATORS = re.compile(rf"[{re.escape(STATEMENT_SEPARATOR)}\s]+$")


def canonicalize(text: str) -> str:
    """Collapse whitespace runs and strip trailing separators.

    Case is preserved; canonicalizing a canonical string returns it unchanged.
    """
    collapsed = _WHITESPACE_RUN.sub(" ", text.strip())
    return _TRAILING_SEPARATORS.sub("", collapsed)


class StatementClassifier:
    """Run the rule chain over a statement and produce a verdict."""

    def __init__(self, rules: Iterable[StatementRule], readonly_keywords: Iterable[str]) -> None:
        self.rules = list(rules)
        self.readonly_keywords = frozenset(readonly_keywords)

    @classmethod
    def from_policy(cls, policy: Optional[StatementPolicy] = None, public: bool = False) -> "StatementClassifier":
        policy = policy or StatementPolicy()
        return cls(default_rules(policy, public=public), policy.readonly_keywords)

    def parse(self, text: str) -> Optional[StatementText]:
        trimmed = (text or "").strip()
        if not trimmed:
            return None
        upper = trimmed.upper()
        first_keyword = upper.split()[0]
        return StatementText(
            original=text,
            upper=upper,
            first_keyword=first_keyword,
            is_readonly=first_keyword in self.readonly_keywords,
        )

    def classify(self, text: str) -> ClassifiedStatement | ValidationVerdict:
        statement = self.parse(text)
        if statement is None:
            return ValidationVerdict.reject(
                RejectionCategory.INADMISSIBLE_STATEMENT,
                [Violation("empty", "Query cannot be empty")],
            )

        violations = [
            Violation(rule.name, message)
            for rule in self.rules
            for message in rule.check(statement)
        ]
        if violations:
            logger.debug(f"Statement rejected by {', '.join(v.rule for v in violations)}")
            return ValidationVerdict.reject(RejectionCategory.INADMISSIBLE_STATEMENT, violations)

        return ClassifiedStatement(
            canonical_text=canonicalize(text),
            is_readonly=statement.is_readonly,
            first_keyword=statement.first_keyword,
        )
