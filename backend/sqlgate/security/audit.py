"""Audit trail for admission decisions."""

from __future__ import annotations

import logging
from typing import Any, Protocol

audit_logger = logging.getLogger("sqlgate.audit")


class AuditSink(Protocol):
    def record(self, event: str, level: int = logging.INFO, **facts: Any) -> None:
        ...


class LoggingAuditSink:
    """Write audit events to the ``sqlgate.audit`` logger.

    The structured facts ride along as ``record.audit`` so a JSON formatter or
    log shipper can pick them up without parsing the message.
    """

    def __init__(self, logger: logging.Logger = audit_logger) -> None:
        self.logger = logger

    def record(self, event: str, level: int = logging.INFO, **facts: Any) -> None:
        summary = ", ".join(f"{key}={value}" for key, value in facts.items() if key != "query")
        self.logger.log(level, f"Security event: {event} ({summary})", extra={"audit": {"event": event, **facts}})


class MemoryAuditSink:
    """Keeps events in a list for inspection."""

    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []

    def record(self, event: str, level: int = logging.INFO, **facts: Any) -> None:
        self.events.append({"event": event, "level": level, **facts})

    def named(self, event: str) -> list[dict[str, Any]]:
        return [item for item in self.events if item["event"] == event]
