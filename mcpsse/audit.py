"""JSON-lines audit trail for tool calls, resource reads and SSE sessions.

Events go to the ``mcpsse.audit`` logger. Fields that do not apply to an
event are left out of the line rather than written as ``null``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Optional

from .config import LoggingSettings

AUDIT_LOGGER = "mcpsse.audit"


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(slots=True)
class AuditEvent:
    action: str
    outcome: str
    session: Optional[str] = None
    tool: Optional[str] = None
    resource: Optional[str] = None
    error_kind: Optional[str] = None
    latency_ms: Optional[float] = None
    ts: str = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


def build_handler(settings: LoggingSettings) -> logging.Handler:
    handler: logging.Handler
    if settings.output == "file":
        handler = RotatingFileHandler(settings.file_path, maxBytes=settings.rotate_bytes, backupCount=3)
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


class AuditLogger:
    """Serialises :class:`AuditEvent` records, one JSON object per line.

    Each instance owns a single handler on the shared logger. Creating a new
    instance replaces the handler of the previous one.
    """

    def __init__(self, settings: LoggingSettings, server_version: str) -> None:
        self.server_version = server_version
        self.logger = logging.getLogger(AUDIT_LOGGER)
        self.logger.setLevel(getattr(logging, settings.level.upper(), logging.INFO))
        for existing in list(self.logger.handlers):
            if isinstance(existing, _OwnedHandler):
                self.logger.removeHandler(existing)
                existing.inner.close()
        self.handler = _OwnedHandler(build_handler(settings))
        self.logger.addHandler(self.handler)

    def emit(self, event: AuditEvent) -> None:
        payload = event.to_dict()
        payload["server_version"] = self.server_version
        self.logger.info(json.dumps(payload, sort_keys=True))

    def tool_call(
        self,
        tool: str,
        *,
        ok: bool,
        session: Optional[str] = None,
        error_kind: Optional[str] = None,
        latency_ms: Optional[float] = None,
    ) -> None:
        self.emit(
            AuditEvent(
                action="tool",
                outcome="ok" if ok else "error",
                session=session,
                tool=tool,
                error_kind=error_kind,
                latency_ms=latency_ms,
            )
        )

    def resource_read(self, uri: str, *, session: Optional[str] = None, error_kind: Optional[str] = None) -> None:
        outcome = "error" if error_kind else "ok"
        self.emit(AuditEvent(action="resource", outcome=outcome, session=session, resource=uri, error_kind=error_kind))

    def session_event(self, outcome: str, session: str) -> None:
        self.emit(AuditEvent(action="session", outcome=outcome, session=session))

    def close(self) -> None:
        self.logger.removeHandler(self.handler)
        self.handler.inner.close()


class _OwnedHandler(logging.Handler):
    """Forwards records to the configured handler so it can be swapped out."""

    def __init__(self, inner: logging.Handler) -> None:
        super().__init__()
        self.inner = inner

    def emit(self, record: logging.LogRecord) -> None:
        self.inner.handle(record)
