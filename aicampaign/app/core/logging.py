"""Logging setup for the campaign service.

Standard library logging configured through dictConfig. LOG_FORMAT selects
one of three renderings:
- text: plain one-line records
- structured: one-line records with the campaign context appended
- json: one JSON object per record, for log aggregation
"""

import json
import logging
import logging.config
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from aicampaign.app.core.config import settings

# Context attached to records through ``extra=get_log_context(...)``
CONTEXT_FIELDS = (
    "request_id",    # Scan/request a slot is reserved for
    "campaign_id",
    "admin_id",      # Acting admin for audited operations
    "path",
    "method",
    "status_code",
    "duration_ms",
)

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RECORD_ATTRS = frozenset((
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "processName", "process", "taskName",
    "message", "asctime",
))

_TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_STRUCTURED_FORMAT = (
    _TEXT_FORMAT
    + " - request_id=%(request_id)s - campaign_id=%(campaign_id)s - admin_id=%(admin_id)s"
)


class JSONFormatter(logging.Formatter):
    """Render a record as a single JSON object.

    Context fields are emitted at the top level when set; any other
    ``extra=`` attribute is nested under ``"extra"``.
    """

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()

        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.message,
            "source": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or value is None:
                continue
            if key in CONTEXT_FIELDS:
                log_data[key] = value
            else:
                log_data.setdefault("extra", {})[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            log_data["exception"] = traceback.format_exception(*record.exc_info)

        return json.dumps(log_data, default=str, ensure_ascii=False)


class ContextFilter(logging.Filter):
    """Give every record the context attributes the formats reference."""

    def filter(self, record: logging.LogRecord) -> bool:
        for field in CONTEXT_FIELDS:
            if not hasattr(record, field):
                setattr(record, field, None)
        return True


class BelowErrorFilter(logging.Filter):
    """Pass only records below ERROR; those go to stderr instead."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < logging.ERROR


def get_logging_config() -> Dict[str, Any]:
    """Build the dictConfig mapping for the current settings."""
    log_format = settings.log_format.lower()
    log_level = settings.log_level.upper()

    formatters: Dict[str, Any] = {
        "standard": {"format": _TEXT_FORMAT},
        "structured": {"format": _STRUCTURED_FORMAT},
    }
    if log_format == "json":
        formatters["json"] = {"()": "aicampaign.app.core.logging.JSONFormatter"}
    formatter = log_format if log_format in formatters else "standard"

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "filters": {
            "context": {"()": "aicampaign.app.core.logging.ContextFilter"},
            "below_error": {"()": "aicampaign.app.core.logging.BelowErrorFilter"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": formatter,
                "stream": sys.stdout,
                "filters": ["context", "below_error"],
            },
            "error_console": {
                "class": "logging.StreamHandler",
                "level": "ERROR",
                "formatter": formatter,
                "stream": sys.stderr,
                "filters": ["context"],
            },
        },
        "loggers": {
            "aicampaign": {
                "level": log_level,
                "handlers": ["console", "error_console"],
                "propagate": False,
            },
            "uvicorn": {
                "level": log_level,
                "handlers": ["console", "error_console"],
                "propagate": False,
            },
        },
        "root": {
            "level": log_level,
            "handlers": ["console", "error_console"],
        },
    }


def setup_logging() -> None:
    """Configure logging for the application."""
    logging.config.dictConfig(get_logging_config())

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str = "aicampaign") -> logging.Logger:
    return logging.getLogger(name)


def get_log_context(
    request_id: Optional[str] = None,
    campaign_id: Optional[str] = None,
    admin_id: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Build an ``extra=`` mapping, dropping unset fields.

    Example:
        >>> logger.info(
        ...     "Reserved slot",
        ...     extra=get_log_context(request_id="scan-1", remaining=549)
        ... )
    """
    context = {
        "request_id": request_id,
        "campaign_id": campaign_id,
        "admin_id": admin_id,
        **extra,
    }
    return {k: v for k, v in context.items() if v is not None}
