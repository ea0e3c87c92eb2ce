"""Admission rules for free-form statements.

Each rule inspects a parsed statement and yields zero or more rejection
messages. The classifier runs them in a fixed order and keeps every message,
so a caller sees all problems with a statement at once.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Iterable, Iterator, Protocol

import sqlparse
from sqlparse.tokens import DDL, DML

from .policy import InjectionPattern, StatementPolicy

STATEMENT_SEPARATOR = ";"

_FROM_CLAUSE = re.compile(r"\bFROM\b")
_DUAL_TABLE = re.compile(r"\bDUAL\b")
# Literals, arithmetic, identifiers and calls with an optional trailing alias
_SIMPLE_EXPRESSION = re.compile(r"^SELECT\s+[\w\s,()*+\-/.]+(\s+AS\s+\w+)?\s*$", re.IGNORECASE)


@dataclass(frozen=True)
class StatementText:
    """A statement as seen by the rules.

    ``original`` is the caller's text untouched, ``upper`` is the trimmed,
    uppercased copy used for keyword matching only.
    """
    original: str
    upper: str
    first_keyword: str
    is_readonly: bool


class StatementRule(Protocol):
    name: str

    def check(self, statement: StatementText) -> Iterable[str]:
        ...


class KeywordRule:
    """Whitelist the leading verb; name forbidden verbs explicitly."""

    name = "keyword"

    def __init__(self, readonly: Iterable[str], forbidden: Iterable[str]) -> None:
        self.readonly = tuple(readonly)
        self.forbidden = frozenset(forbidden)

    def check(self, statement: StatementText) -> Iterator[str]:
        keyword = statement.first_keyword
        if keyword in self.forbidden:
            yield f"Operation '{keyword}' is not allowed (readonly access only)"
        elif keyword not in self.readonly:
            yield f"Query must start with a readonly operation: {', '.join(self.readonly)}"


class InjectionPatternRule:
    """Scan the full text for injection indicators."""

    name = "injection_pattern"

    def __init__(self, patterns: Iterable[InjectionPattern]) -> None:
        self.patterns = [(p.name, p.compile()) for p in patterns]

    def matches(self, text: str) -> list[str]:
        return [name for name, regex in self.patterns if regex.search(text)]

    def check(self, statement: StatementText) -> Iterator[str]:
        matched = self.matches(statement.original)
        if matched:
            yield f"Query contains potential SQL injection patterns ({', '.join(matched)})"


class DangerousFunctionRule:
    """Reject calls to functions that touch files, sleep or leak session info.

    A name only counts when it is followed by an opening parenthesis, so
    columns such as ``user_id`` or ``sleep_hours`` do not trip it.
    """

    name = "dangerous_function"

    def __init__(self, functions: Iterable[str]) -> None:
        self.functions = [
            (func, re.compile(rf"\b{re.escape(func)}\s*\(", re.IGNORECASE)) for func in functions
        ]

    def check(self, statement: StatementText) -> Iterator[str]:
        for func, regex in self.functions:
            if regex.search(statement.original):
                yield f"Function '{func}' is not allowed"


class MultipleStatementRule:
    name = "multiple_statements"

    def check(self, statement: StatementText) -> Iterator[str]:
        parts = [part for part in statement.original.split(STATEMENT_SEPARATOR) if part.strip()]
        if len(parts) > 1:
            yield "Multiple statements are not allowed"


class SelectShapeRule:
    """A readonly SELECT needs a FROM clause, DUAL, or a simple expression."""

    name = "select_shape"

    def check(self, statement: StatementText) -> Iterator[str]:
        if not statement.is_readonly or statement.first_keyword != "SELECT":
            return
        text = statement.upper
        if _FROM_CLAUSE.search(text) or _DUAL_TABLE.search(text):
            return
        if _SIMPLE_EXPRESSION.match(text):
            return
        yield "Invalid SELECT query structure"


class EmbeddedWriteRule:
    """Catch write verbs hidden behind a readonly prefix, e.g. ``EXPLAIN DELETE``.

    ``SHOW CREATE ...`` is introspection and passes.
    """

    name = "embedded_write"

    def __init__(self, forbidden: Iterable[str]) -> None:
        self.forbidden = frozenset(forbidden)

    def check(self, statement: StatementText) -> Iterator[str]:
        if not statement.is_readonly:
            return
        seen: set[str] = set()
        for parsed in sqlparse.parse(statement.original):
            tokens = [token for token in parsed.flatten() if not token.is_whitespace]
            for index, token in enumerate(tokens):
                if token.ttype not in (DML, DDL):
                    continue
                # REPLACE(...) and friends are function calls, not verbs
                following = tokens[index + 1] if index + 1 < len(tokens) else None
                if following is not None and following.value == "(":
                    continue
                value = token.normalized.upper()
                # SHOW CREATE TABLE and friends only print DDL
                if value == "CREATE" and index > 0 and tokens[index - 1].normalized.upper() == "SHOW":
                    continue
                if value in self.forbidden and value not in seen:
                    seen.add(value)
                    yield f"Embedded operation '{value}' is not allowed"


class PublicShapeRule:
    """Restrict public callers to a short list of statement shapes."""

    name = "public_shape"

    def __init__(self, shapes: Iterable[str]) -> None:
        self.shapes = [re.compile(shape) for shape in shapes]

    def check(self, statement: StatementText) -> Iterator[str]:
        candidate = " ".join(statement.upper.split()).rstrip(STATEMENT_SEPARATOR).rstrip()
        if not any(shape.match(candidate) for shape in self.shapes):
            yield "Query not allowed for public access"


def default_rules(policy: StatementPolicy, public: bool = False) -> list[StatementRule]:
    """Build the rule chain in evaluation order."""
    rules: list[StatementRule] = [
        KeywordRule(policy.readonly_keywords, policy.forbidden_keywords),
        InjectionPatternRule(policy.injection_patterns),
        DangerousFunctionRule(policy.dangerous_functions),
        MultipleStatementRule(),
        SelectShapeRule(),
        EmbeddedWriteRule(policy.forbidden_keywords),
    ]
    if public:
        rules.append(PublicShapeRule(policy.public_shapes))
    return rules
