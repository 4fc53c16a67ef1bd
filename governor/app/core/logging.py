"""Logging setup for the governor.

Configured through ``logging.config.dictConfig``. Three output formats are
supported (``text``, ``structured`` and ``json``); the latter two carry the
rate limit context attached to each record via ``extra=``.

Client keys are never logged in clear. Use ``hash_key`` and log the digest
under ``key_hash``.
"""

import hashlib
import json
import logging
import logging.config
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from governor.app.core.config import Settings, settings

# Placeholder for context that was not supplied on a record
UNSET = "-"

# Attributes a record may carry via ``extra=``, in output order
CORRELATION_FIELDS = ("request_id", "client_kind", "key_hash")
DECISION_FIELDS = ("count", "limit", "remaining", "reset_at", "error_type")
HTTP_FIELDS = ("path", "method", "status_code", "duration_ms")
SERVICE_FIELDS = ("store", "store_reachable", "exception_type")

LOG_FIELDS = CORRELATION_FIELDS + DECISION_FIELDS + HTTP_FIELDS + SERVICE_FIELDS

TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
STRUCTURED_FORMAT = (
    TEXT_FORMAT
    + " [request_id=%(request_id)s client=%(client_kind)s key=%(key_hash)s]"
)


class JSONFormatter(logging.Formatter):
    """Render a record as one JSON object per line.

    Only the known context attributes in ``LOG_FIELDS`` are emitted, as
    top-level keys, and only when set. Anything else passed through
    ``extra=`` is dropped so arbitrary objects never reach the log sink.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in LOG_FIELDS:
            value = getattr(record, field, None)
            if value is not None and value != UNSET:
                entry[field] = value

        if record.exc_info:
            entry["exception"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(entry, default=str, ensure_ascii=False)


class ContextFilter(logging.Filter):
    """Fill in correlation fields missing from a record.

    The structured text format interpolates ``request_id``, ``client_kind``
    and ``key_hash``; records logged without them get ``UNSET``.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for field in CORRELATION_FIELDS:
            if getattr(record, field, None) is None:
                setattr(record, field, UNSET)
        return True


def get_logging_config(app_settings: Optional[Settings] = None) -> Dict[str, Any]:
    """Build the dictConfig for the given settings.

    Args:
        app_settings: Settings to read log_level and log_format from;
            defaults to the process-wide settings

    Returns:
        Dict accepted by logging.config.dictConfig
    """
    cfg = app_settings or settings
    log_level = cfg.log_level.upper()

    if cfg.log_format == "json":
        formatter: Dict[str, Any] = {"()": "governor.app.core.logging.JSONFormatter"}
    elif cfg.log_format == "structured":
        formatter = {"format": STRUCTURED_FORMAT}
    else:
        formatter = {"format": TEXT_FORMAT}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"governor": formatter},
        "filters": {
            "context": {"()": "governor.app.core.logging.ContextFilter"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "governor",
                "filters": ["context"],
                "stream": sys.stdout,
            },
        },
        "loggers": {
            "governor": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
            # Access logs duplicate the request completion records
            "uvicorn.access": {"level": "WARNING"},
            "redis": {"level": "WARNING"},
        },
        "root": {"level": log_level, "handlers": ["console"]},
    }


def setup_logging(app_settings: Optional[Settings] = None) -> None:
    """Configure logging for the application."""
    logging.config.dictConfig(get_logging_config(app_settings))


def get_logger(name: str = "governor") -> logging.Logger:
    return logging.getLogger(name)


def hash_key(key: str) -> str:
    """Hash a rate limit key for logging without exposing identities."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def get_log_context(**fields: Any) -> Dict[str, Any]:
    """Build an ``extra=`` dict, dropping fields that are None.

    Example:
        >>> logger.warning(
        ...     "Rate limit exceeded",
        ...     extra=get_log_context(client_kind="ip", key_hash=hash_key(key), count=11)
        ... )
    """
    return {k: v for k, v in fields.items() if v is not None}
