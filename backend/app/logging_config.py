"""
Logging for SiteLedger

Two streams:

- application logs on the root logger, one JSON object per line (or
  plain text when LOG_FORMAT=text), with anything passed through
  ``extra=`` flattened into the record
- the ``audit`` logger, which only carries workflow events written by
  audit_log(): PR decisions, stock movements and BOM changes. It never
  propagates to the root logger and goes to AUDIT_LOG_FILE.
"""
import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from app.core.settings import settings

AUDIT_LOGGER = "audit"

# Attributes every LogRecord carries; anything else came in through `extra`.
_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "taskName", "message",
})


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}


def _jsonable(value: Any) -> Any:
    # Decimal quantities, enums and datetimes end up as strings
    try:
        json.dumps(value)
        return value
    except (TypeError, ValueError):
        return str(value)


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.levelno >= logging.ERROR:
            entry["source"] = f"{record.pathname}:{record.lineno} in {record.funcName}"
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        entry.update({key: _jsonable(value) for key, value in _extra_fields(record).items()})
        return json.dumps(entry)


class TextFormatter(logging.Formatter):
    """``12:00:00 INFO  app.services.bom_tracker  BOM entry added bom_id=7``"""

    def format(self, record: logging.LogRecord) -> str:
        line = f"{datetime.now():%H:%M:%S} {record.levelname:<5} {record.name}  {record.getMessage()}"
        extras = " ".join(f"{key}={value}" for key, value in _extra_fields(record).items())
        if extras:
            line = f"{line} {extras}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class AuditFormatter(logging.Formatter):
    """One JSON line per workflow event; unset fields are left out"""

    FIELDS = ("event", "user_id", "resource_type", "resource_id", "details", "ip_address")

    def format(self, record: logging.LogRecord) -> str:
        entry = {"timestamp": datetime.now(timezone.utc).isoformat()}
        for field in self.FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value
        entry.setdefault("event", record.getMessage())
        return json.dumps(entry, default=str)


def _rotating_handler(path: str, max_mb: int, backups: int, formatter: logging.Formatter) -> logging.Handler:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(path, maxBytes=max_mb * 1024 * 1024, backupCount=backups)
    handler.setFormatter(formatter)
    return handler


def setup_logging() -> None:
    """Install handlers on the root and audit loggers; safe to call twice"""
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    formatter = JSONFormatter() if settings.LOG_FORMAT.lower() == "json" else TextFormatter()

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    root.addHandler(console)

    if settings.LOG_FILE:
        root.addHandler(_rotating_handler(settings.LOG_FILE, 10, 5, formatter))

    setup_audit_logging()

    # SQL echo and per-request access lines drown out the ledger
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def setup_audit_logging() -> None:
    audit_logger = logging.getLogger(AUDIT_LOGGER)
    audit_logger.setLevel(logging.INFO)
    audit_logger.handlers.clear()
    audit_logger.propagate = False

    if settings.AUDIT_LOG_FILE:
        audit_logger.addHandler(_rotating_handler(settings.AUDIT_LOG_FILE, 50, 10, AuditFormatter()))

    if settings.DEBUG:
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(AuditFormatter())
        audit_logger.addHandler(console)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def audit_log(
    event: str,
    *,
    user_id: Optional[int] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[Any] = None,
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
) -> None:
    """
    Record a committed workflow event

    Args:
        event: upper-case event name, e.g. "PR_STAGE_APPROVED" or "STOCK_ADJUSTED"
        user_id: caller that triggered it
        resource_type: "purchase_request", "material", "material_usage", "bom" or "project"
        resource_id: primary key of that resource
        details: event payload (stage, quantities, costs)
        ip_address: request origin, when the event came through the API
    """
    logging.getLogger(AUDIT_LOGGER).info(
        event,
        extra={
            "event": event,
            "user_id": user_id,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "details": details or {},
            "ip_address": ip_address,
        },
    )


def get_client_ip(request) -> Optional[str]:
    """First hop of X-Forwarded-For, then X-Real-IP, then the socket peer"""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    return request.client.host if request.client else None
