"""Classify statements offline, without a database.

Useful for checking a policy file or a batch of saved queries before they
reach the gateway.

Usage:
    cd backend
    python -m tools.check_statements "SELECT * FROM users LIMIT 10"
    python -m tools.check_statements --file queries.sql --json
    python -m tools.check_statements --public --policy policy.yaml "SHOW TABLES"
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from sqlgate.security import StatementClassifier, ValidationVerdict, load_statement_policy


def _read_statements(path: Path) -> list[str]:
    """One statement per non-empty line; lines starting with '--' are skipped."""
    statements = []
    for line in path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("--"):
            statements.append(stripped)
    return statements


def check(statements: list[str], classifier: StatementClassifier) -> list[dict[str, Any]]:
    report = []
    for statement in statements:
        outcome = classifier.classify(statement)
        if isinstance(outcome, ValidationVerdict):
            report.append({
                "statement": statement,
                "accepted": False,
                "rules": list(outcome.rules),
                "reasons": list(outcome.reasons),
            })
        else:
            report.append({
                "statement": statement,
                "accepted": True,
                "canonical": outcome.canonical_text,
                "first_keyword": outcome.first_keyword,
            })
    return report


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Classify SQL statements against the gateway policy")
    parser.add_argument("statements", nargs="*", help="Statements to check")
    parser.add_argument("--file", type=Path, help="File with one statement per line")
    parser.add_argument("--policy", help="Policy file (YAML or JSON) overriding the defaults")
    parser.add_argument("--public", action="store_true", help="Apply the public access shape rules")
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    args = parser.parse_args(argv)

    statements = list(args.statements)
    if args.file:
        statements.extend(_read_statements(args.file))
    if not statements:
        parser.error("no statements given")

    classifier = StatementClassifier.from_policy(load_statement_policy(args.policy), public=args.public)
    report = check(statements, classifier)

    if args.json:
        print(json.dumps(report, indent=2, ensure_ascii=False))
    else:
        for item in report:
            if item["accepted"]:
                print(f"OK      {item['canonical']}")
            else:
                print(f"REJECT  {item['statement']}")
                for reason in item["reasons"]:
                    print(f"        - {reason}")

    rejected = sum(1 for item in report if not item["accepted"])
    print(f"\n{len(report) - rejected} accepted, {rejected} rejected", file=sys.stderr)
    return 1 if rejected else 0


if __name__ == "__main__":
    sys.exit(main())
