"""
JSON logging for the marketplace API.

Each record is written as one JSON object per line on stdout. Records emitted
while a request is in flight carry its correlation id; domain events attach
the ids they concern (booking_id, request_id, wallet_id, ...) as context.
"""
import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from easyserve.lib.settings import settings


# Correlation id of the request being served, set by the API middleware
correlation_id_var: ContextVar[Optional[str]] = ContextVar("easyserve_correlation_id", default=None)

# LogRecord attribute holding per-call context fields
CONTEXT_ATTR = "context"

# Loggers that drown out marketplace events at INFO
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "alembic.runtime.migration")


class JSONFormatter(logging.Formatter):
    """Render a record as a single JSON line.

    Keys: timestamp, level, logger, message, plus correlation_id when a
    request is in flight, the record's context fields, and the formatted
    traceback for exceptions. Warnings and above also name the source
    location so reconciliation entries can be traced back.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = correlation_id_var.get()
        if correlation_id:
            entry["correlation_id"] = correlation_id

        if record.levelno >= logging.WARNING:
            entry["source"] = f"{record.module}:{record.lineno}"

        context = getattr(record, CONTEXT_ATTR, None)
        if context:
            entry.update(context)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        # Decimal amounts and UUIDs fall back to str
        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", json_format: bool = True) -> None:
    """Install a single stdout handler on the root logger.

    Args:
        level: Root log level name; unknown names fall back to INFO
        json_format: JSON lines when True, plain text for local reading otherwise
    """
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s"))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    # SQL echo only when debugging
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if settings.debug else logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_correlation_id(correlation_id: Optional[str]) -> None:
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()


def log_with_context(logger: logging.Logger, level: str, message: str, **context: Any) -> None:
    """Log `message` at `level` ("info", "warning", ...) with keyword context fields.

    Example:
        log_with_context(logger, "info", "Bid accepted", bid_id=str(bid.id))
    """
    # stacklevel=2 so the record points at the caller, not this helper
    getattr(logger, level.lower())(message, extra={CONTEXT_ATTR: context}, stacklevel=2)


setup_logging(level="DEBUG" if settings.debug else settings.log_level)
