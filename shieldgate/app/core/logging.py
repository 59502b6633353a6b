"""Structured logging configuration for ShieldGate.

This module provides a structured logging setup using Python's standard
logging module with JSON formatting for production environments.
"""

import hashlib
import json
import logging
import logging.config
import sys
import traceback
from datetime import datetime
from typing import Any, Dict, Optional

from shieldgate.app.core.config import Settings, settings as default_settings


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Outputs log records as JSON objects for consumption by log aggregation
    systems like ELK Stack or Grafana Loki.
    """

    # Contextual fields for admission decisions
    CONTEXT_FIELDS = [
        "request_id",    # Request ID from X-Request-ID header
        "client_key",    # Hashed client identifier
        "attack_types",  # Detected attack categories
        "score",         # Current suspicion score
        "backend",       # Store backend name (memory, database, redis)
        "path",          # Request path
        "method",        # HTTP method
        "status_code",   # HTTP response status
    ]

    _RESERVED = frozenset((
        "name", "msg", "args", "levelname", "levelno", "pathname",
        "filename", "module", "exc_info", "exc_text", "stack_info",
        "lineno", "funcName", "created", "msecs", "relativeCreated",
        "thread", "threadName", "processName", "process", "message",
        "asctime", "timestamp", "logger", "level", "source", "taskName",
    ))

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON string representation of the log record
        """
        log_data: Dict[str, Any] = {}

        record.message = record.getMessage()

        log_data["timestamp"] = datetime.now().astimezone().isoformat()
        log_data["level"] = record.levelname
        log_data["logger"] = record.name
        log_data["message"] = record.message

        log_data["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }

        for field in self.CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None and value != "-":
                log_data[field] = value

        for key, value in record.__dict__.items():
            if key in self._RESERVED or key in self.CONTEXT_FIELDS:
                continue
            log_data.setdefault("extra", {})[key] = value

        if record.exc_info and record.exc_info != (None, None, None):
            log_data["exception"] = traceback.format_exception(*record.exc_info)

        return json.dumps(log_data, default=str, ensure_ascii=False)


class ContextFilter(logging.Filter):
    """Logging filter that adds contextual fields to log records.

    Fills in defaults so that the structured format string never fails on a
    record that was logged without ``extra``.
    """

    CONTEXT_DEFAULTS = {field: None for field in JSONFormatter.CONTEXT_FIELDS}

    def filter(self, record: logging.LogRecord) -> bool:
        for field, default in self.CONTEXT_DEFAULTS.items():
            if not hasattr(record, field):
                setattr(record, field, default)
        return True


def get_logging_config(config: Optional[Settings] = None) -> Dict[str, Any]:
    """Get logging configuration dictionary.

    Returns:
        Logging configuration dict compatible with logging.config.dictConfig
    """
    config = config or default_settings
    log_format = config.log_format.lower()
    log_level = config.log_level.upper()

    formatters: Dict[str, Any] = {
        "standard": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        },
        "structured": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s - client_key=%(client_key)s - backend=%(backend)s"
        },
    }

    if log_format == "json":
        formatters["json"] = {
            "()": "shieldgate.app.core.logging.JSONFormatter",
        }
        default_formatter = "json"
    else:
        default_formatter = "structured" if log_format == "structured" else "standard"

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "filters": {
            "context": {
                "()": "shieldgate.app.core.logging.ContextFilter",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": default_formatter,
                "stream": sys.stdout,
                "filters": ["context"],
            },
        },
        "loggers": {
            "shieldgate": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
        },
        "root": {
            "level": log_level,
            "handlers": ["console"],
        },
    }


def setup_logging(config: Optional[Settings] = None) -> None:
    """Configure logging for the application."""
    logging.config.dictConfig(get_logging_config(config))

    # Reduce noise from third-party libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str = "shieldgate") -> logging.Logger:
    """Get a logger instance with the specified name."""
    return logging.getLogger(name)


def hash_client_key(key: str) -> str:
    """Hash a client key for logging without exposing the raw identifier."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def get_log_context(
    client_key: Optional[str] = None,
    backend: Optional[str] = None,
    score: Optional[int] = None,
    **extra
) -> Dict[str, Any]:
    """Create a log context dictionary for use with extra parameter.

    The client key is hashed before it is attached.

    Example:
        >>> logger.warning(
        ...     "Suspicious request",
        ...     extra=get_log_context(client_key="ip:10.0.0.1", score=3)
        ... )
    """
    context = {
        "client_key": hash_client_key(client_key) if client_key else None,
        "backend": backend,
        "score": score,
    }
    context.update(extra)
    return {k: v for k, v in context.items() if v is not None}
