from __future__ import annotations

import json
import logging
import sys
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Deque, Dict, List, Optional

_CONTEXT_KEYS = {"tenant", "correlation_id"}


@dataclass
class AuditEvent:
    timestamp: str
    level: str
    message: str
    tenant: Optional[str] = None
    correlation_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "level": self.level,
            "message": self.message,
            "tenant": self.tenant,
            "correlation_id": self.correlation_id,
            "extra": self.extra,
        }


class InMemoryAuditStore:
    """Thread-safe buffer of recent reconcile events, newest first."""

    def __init__(self, max_events: int = 1000):
        self._events: Deque[AuditEvent] = deque(maxlen=max_events)
        self._lock = Lock()

    def append(self, event: AuditEvent) -> None:
        with self._lock:
            self._events.appendleft(event)

    def list(self, limit: int = 100, tenant: Optional[str] = None) -> List[AuditEvent]:
        with self._lock:
            events = list(self._events)
        if tenant is not None:
            events = [event for event in events if event.tenant == tenant]
        return events[:limit]


class JsonAuditLogger:
    """Structured logger for reconcile and portal events.

    Every event is written as one JSON line to stdout and, when a store is
    attached, mirrored into it for the web app.
    """

    def __init__(
        self,
        name: str = "tenant_operator",
        level: int = logging.INFO,
        store: Optional[InMemoryAuditStore] = None,
    ):
        self.logger = logging.getLogger(name)
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(_JsonFormatter())
            self.logger.addHandler(handler)
        self.logger.setLevel(level)
        self.logger.propagate = False
        self.store = store

    def _log(self, level: int, message: str, **kwargs: Any) -> None:
        if self.store:
            self.store.append(self._build_event(level, message, **kwargs))
        self.logger.log(level, message, extra={"extra": kwargs})

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, **kwargs)

    def bind(self, **context: Any) -> "BoundAuditLogger":
        return BoundAuditLogger(self, context)

    def _build_event(self, level: int, message: str, **kwargs: Any) -> AuditEvent:
        return AuditEvent(
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=logging.getLevelName(level),
            message=message,
            tenant=kwargs.get("tenant"),
            correlation_id=kwargs.get("correlation_id"),
            extra={k: v for k, v in kwargs.items() if k not in _CONTEXT_KEYS},
        )


class BoundAuditLogger:
    """Audit logger with fixed context fields (tenant, correlation id) for one run."""

    def __init__(self, parent: JsonAuditLogger, context: Dict[str, Any]):
        self.parent = parent
        self.context = context

    def debug(self, message: str, **kwargs: Any) -> None:
        self.parent.debug(message, **{**self.context, **kwargs})

    def info(self, message: str, **kwargs: Any) -> None:
        self.parent.info(message, **{**self.context, **kwargs})

    def warning(self, message: str, **kwargs: Any) -> None:
        self.parent.warning(message, **{**self.context, **kwargs})

    def error(self, message: str, **kwargs: Any) -> None:
        self.parent.error(message, **{**self.context, **kwargs})


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra: Optional[Dict[str, Any]] = getattr(record, "extra", None)  # type: ignore[attr-defined]
        if extra:
            payload.update(extra)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)
