"""Statement policy: keyword sets, function list and injection patterns.

Defaults mirror a MySQL-flavoured readonly gateway. A YAML or JSON file can
override any section; sections missing from the file keep their defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
import json
import os
import re
from typing import Any

import yaml

from ..core.exceptions import ConfigurationError

DEFAULT_READONLY_KEYWORDS = ("SELECT", "SHOW", "DESCRIBE", "DESC", "EXPLAIN", "ANALYZE")

DEFAULT_FORBIDDEN_KEYWORDS = (
    # Data and schema changes
    "INSERT", "UPDATE", "DELETE", "DROP", "CREATE", "ALTER", "TRUNCATE",
    "REPLACE", "MERGE",
    # Procedures and privileges
    "CALL", "EXECUTE", "GRANT", "REVOKE",
    # Locks and session state
    "LOCK", "UNLOCK", "SET", "RESET",
    # Transaction control
    "START", "BEGIN", "COMMIT", "ROLLBACK", "SAVEPOINT",
    # File I/O
    "LOAD", "OUTFILE", "INFILE", "DUMPFILE",
    "BACKUP", "RESTORE",
)

DEFAULT_DANGEROUS_FUNCTIONS = (
    "LOAD_FILE", "SYSTEM", "BENCHMARK", "SLEEP", "GET_LOCK", "RELEASE_LOCK",
    "CONNECTION_ID", "USER", "CURRENT_USER", "SESSION_USER", "SYSTEM_USER",
)


@dataclass(frozen=True)
class InjectionPattern:
    """A named injection indicator, matched case-insensitively."""
    name: str
    pattern: str

    def compile(self) -> re.Pattern[str]:
        return re.compile(self.pattern, re.IGNORECASE)


DEFAULT_INJECTION_PATTERNS = (
    InjectionPattern("single quote", r"'"),
    InjectionPattern("escaped quote", r"\\'"),
    InjectionPattern("statement separator", r";|%3B"),
    InjectionPattern("line comment", r"--|#"),
    InjectionPattern("block comment", r"/\*|\*/"),
    InjectionPattern("union select", r"union\s+select"),
    InjectionPattern("script tag", r"script\s*>"),
    InjectionPattern("javascript url", r"javascript\s*:"),
    InjectionPattern("vbscript url", r"vbscript\s*:"),
    InjectionPattern("onload handler", r"onload\s*="),
    InjectionPattern("onerror handler", r"onerror\s*="),
    InjectionPattern("eval call", r"eval\s*\("),
    InjectionPattern("css expression", r"expression\s*\("),
)

# Statement shapes allowed for public (untrusted) access, matched against the
# uppercased canonical text.
DEFAULT_PUBLIC_SHAPES = (
    r"^SHOW TABLES$",
    r"^SHOW DATABASES$",
    r"^SELECT \* FROM \w+ LIMIT \d+$",
    r"^SELECT .+ FROM \w+ LIMIT \d+$",
    r"^DESCRIBE \w+$",
    r"^DESC \w+$",
    r"^SHOW COLUMNS FROM \w+$",
)


@dataclass(frozen=True)
class StatementPolicy:
    readonly_keywords: tuple[str, ...] = DEFAULT_READONLY_KEYWORDS
    forbidden_keywords: tuple[str, ...] = DEFAULT_FORBIDDEN_KEYWORDS
    dangerous_functions: tuple[str, ...] = DEFAULT_DANGEROUS_FUNCTIONS
    injection_patterns: tuple[InjectionPattern, ...] = DEFAULT_INJECTION_PATTERNS
    public_shapes: tuple[str, ...] = field(default=DEFAULT_PUBLIC_SHAPES)

    def __post_init__(self) -> None:
        overlap = set(self.readonly_keywords) & set(self.forbidden_keywords)
        if overlap:
            raise ConfigurationError(
                f"Keywords cannot be both readonly and forbidden: {', '.join(sorted(overlap))}"
            )


def _load_payload(path: str) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as handle:
        if path.lower().endswith(".json"):
            return json.load(handle)
        return yaml.safe_load(handle) or {}


def _keywords(payload: dict[str, Any], key: str) -> tuple[str, ...] | None:
    items = payload.get(key)
    if items is None:
        return None
    if not isinstance(items, list) or not all(isinstance(item, str) for item in items):
        raise ConfigurationError(f"Policy section '{key}' must be a list of strings")
    return tuple(item.strip().upper() for item in items if item.strip())


def _injection_patterns(payload: dict[str, Any]) -> tuple[InjectionPattern, ...] | None:
    items = payload.get("injection_patterns")
    if items is None:
        return None
    if not isinstance(items, list):
        raise ConfigurationError("Policy section 'injection_patterns' must be a list")
    patterns: list[InjectionPattern] = []
    for item in items:
        if not isinstance(item, dict) or not item.get("pattern"):
            raise ConfigurationError(f"Injection pattern entry needs a 'pattern': {item!r}")
        pattern = InjectionPattern(name=item.get("name") or item["pattern"], pattern=item["pattern"])
        try:
            pattern.compile()
        except re.error as e:
            raise ConfigurationError(f"Invalid injection pattern '{pattern.name}': {e}") from e
        patterns.append(pattern)
    return tuple(patterns)


def _public_shapes(payload: dict[str, Any]) -> tuple[str, ...] | None:
    items = payload.get("public_shapes")
    if items is None:
        return None
    if not isinstance(items, list) or not all(isinstance(item, str) for item in items):
        raise ConfigurationError("Policy section 'public_shapes' must be a list of strings")
    for shape in items:
        try:
            re.compile(shape)
        except re.error as e:
            raise ConfigurationError(f"Invalid public shape '{shape}': {e}") from e
    return tuple(items)


def load_statement_policy(path: str | None) -> StatementPolicy:
    """Load the statement policy, overlaying the file at ``path`` on the defaults."""
    policy = StatementPolicy()
    if not path:
        return policy
    resolved = os.path.abspath(path)
    if not os.path.exists(resolved):
        raise ConfigurationError(f"Policy file not found: {resolved}")

    try:
        payload = _load_payload(resolved)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read policy file {resolved}: {e}") from e
    if not isinstance(payload, dict):
        raise ConfigurationError(f"Policy file {resolved} must contain a mapping")

    overrides: dict[str, Any] = {}
    for key in ("readonly_keywords", "forbidden_keywords", "dangerous_functions"):
        value = _keywords(payload, key)
        if value is not None:
            overrides[key] = value
    patterns = _injection_patterns(payload)
    if patterns is not None:
        overrides["injection_patterns"] = patterns
    shapes = _public_shapes(payload)
    if shapes is not None:
        overrides["public_shapes"] = shapes

    return replace(policy, **overrides)
