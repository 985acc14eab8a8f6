"""
MockExam - logging

A single "mockexam" logger serves the whole API. The request and user ids live in
context variables set by the HTTP middleware and the auth dependency; both
formatters read them, so call sites never pass them explicitly.

Production writes JSON lines, anything else writes a readable line. LOG_FILE adds
a rotating file handler with the same layout (more detail outside production).
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from app.core.config import settings


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str] = ContextVar("user_id", default="")

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

# Attributes every LogRecord has; anything else came in through extra=
_RECORD_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "request_id", "user_id"}


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id)


def set_user_id(user_id: str) -> None:
    user_id_var.set(user_id)


def generate_request_id() -> str:
    return uuid.uuid4().hex[:12]


def request_context() -> Dict[str, str]:
    """Non-empty request and user ids for the current task"""
    context = {"request_id": request_id_var.get(), "user_id": user_id_var.get()}
    return {key: value for key, value in context.items() if value}


class JSONFormatter(logging.Formatter):
    """One JSON object per record; extra= fields become top-level keys"""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
            **request_context(),
        }
        payload.update(
            (key, value) for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class ContextualFormatter(logging.Formatter):
    """Readable line carrying the request id (and the user id in detailed mode)"""

    CONSOLE_FORMAT = "%(levelname)-8s | [%(request_id)s] %(message)s"
    DETAILED_FORMAT = (
        "%(asctime)s | %(levelname)-8s | [%(request_id)s] [%(user_id)s] | "
        "%(module)s:%(lineno)d | %(message)s"
    )

    def __init__(self, detailed: bool = False):
        super().__init__(self.DETAILED_FORMAT if detailed else self.CONSOLE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        record.request_id = request_id_var.get() or "-"
        record.user_id = user_id_var.get() or "-"
        return super().format(record)


class MockExamLogger(logging.Logger):
    """Logger with one helper per kind of event the API reports"""

    def _event(self, level: int, event_type: str, message: str,
               exc_info: bool = False, **fields: Any) -> None:
        # stacklevel 3 attributes the record to the caller of the public helper
        self.log(level, message, exc_info=exc_info, stacklevel=3,
                 extra={"event_type": event_type, **fields})

    def log_request(self, method: str, path: str, status_code: int, duration_ms: float) -> None:
        if status_code >= 500:
            level = logging.ERROR
        elif status_code >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO
        self._event(
            level, "http_request", f"[HTTP] {method} {path} -> {status_code} ({duration_ms:.1f}ms)",
            http_method=method, http_path=path, http_status=status_code,
            duration_ms=round(duration_ms, 2),
        )

    def log_auth_event(self, event: str, success: bool, user_email: Optional[str] = None,
                       reason: Optional[str] = None, **fields: Any) -> None:
        summary = " - ".join(
            part for part in (f"[Auth] {event} {'ok' if success else 'failed'}", user_email, reason) if part
        )
        self._event(
            logging.INFO if success else logging.WARNING, "auth", summary,
            auth_event=event, auth_success=success, user_email=user_email,
            failure_reason=reason, **fields,
        )

    def log_audit_event(self, action: str, resource: str, resource_id: Optional[str] = None,
                        actor_id: Optional[str] = None) -> None:
        target = f"{resource} {resource_id}" if resource_id else resource
        self._event(
            logging.INFO, "audit", f"[Audit] {action} on {target} by {actor_id or 'system'}",
            audit_action=action, audit_resource=resource,
            audit_resource_id=resource_id, audit_actor_id=actor_id,
        )

    def log_error_with_context(self, error: Exception, context: Optional[str] = None) -> None:
        self._event(
            logging.ERROR, "error", f"[Error] {context or 'unhandled'}: {type(error).__name__}: {error}",
            exc_info=True, error_type=type(error).__name__, error_context=context,
        )

    def log_performance(self, operation: str, duration_ms: float, threshold_ms: float = 1000) -> None:
        slow = duration_ms > threshold_ms
        self._event(
            logging.WARNING if slow else logging.DEBUG, "performance",
            f"[Perf] {operation} took {duration_ms:.1f}ms" + (f" (over {threshold_ms:.0f}ms)" if slow else ""),
            operation=operation, duration_ms=round(duration_ms, 2), slow=slow,
        )


def _formatter(production: bool, detailed: bool = False) -> logging.Formatter:
    return JSONFormatter() if production else ContextualFormatter(detailed=detailed)


def setup_logging() -> MockExamLogger:
    production = settings.ENVIRONMENT == "production"

    log = logging.getLogger("mockexam")
    log.__class__ = MockExamLogger
    log.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    log.propagate = False
    log.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.INFO)
    console.setFormatter(_formatter(production))
    log.addHandler(console)

    if settings.LOG_FILE:
        path = Path(settings.LOG_FILE)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(path, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS)
        file_handler.setFormatter(_formatter(production, detailed=True))
        log.addHandler(file_handler)

    for noisy in ("uvicorn.access", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return log


logger: MockExamLogger = setup_logging()
